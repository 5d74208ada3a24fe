"""
This file contains custom, application-specific exceptions.

Every exception carries an HTTP status, a machine-readable `code` and an
optional `context` dict. The context is logged server-side only; the exception
handlers in main.py turn these into the standard response envelope.
"""
from typing import Any, Optional


class TutorateError(Exception):
    """Base class for every error the API knows how to serialize."""
    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred."

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.context = context or {}
        super().__init__(self.message)


class UnauthenticatedError(TutorateError):
    """Missing, invalid or expired credential, or no account behind it."""
    status_code = 401
    default_code = "INVALID_TOKEN"
    default_message = "Could not validate credentials."


class ForbiddenError(TutorateError):
    """Blocked account, role mismatch, identity mismatch or non-owner mutation."""
    status_code = 403
    default_code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action."


class ValidationError(TutorateError):
    """Raised when client input fails a business validation rule."""
    status_code = 400
    default_code = "VALIDATION_ERROR"
    default_message = "Validation failed."


class NotFoundError(TutorateError):
    status_code = 404
    default_code = "NOT_FOUND"
    default_message = "The requested resource was not found."

    def __init__(self, resource: str = "Resource", resource_id: Any = None, code: Optional[str] = None):
        message = f"{resource} not found."
        context = {"resource": resource}
        if resource_id is not None:
            context["resource_id"] = str(resource_id)
        super().__init__(message, code=code, context=context)


class ConflictError(TutorateError):
    """Duplicate entity, or a state transition that is not allowed from the current state."""
    status_code = 409
    default_code = "CONFLICT"
    default_message = "The request conflicts with the current state of the resource."


class ServiceUnavailableError(TutorateError):
    """Store, verifier or charge authority timed out or is unreachable. Retriable."""
    status_code = 503
    default_code = "SERVICE_UNAVAILABLE"
    default_message = "The service is temporarily unavailable. Please try again."


class InternalError(TutorateError):
    """Unexpected failure. The message is never returned to the client."""
    status_code = 500


class PaymentAssignmentError(InternalError):
    """
    The assignment transaction failed after the charge was confirmed.
    This is a money/state consistency break and must be reconciled by hand.
    """
    default_code = "PAYMENT_ASSIGNMENT_FAILED"
