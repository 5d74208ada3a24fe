'''
Identity verification, principal resolution and role guards.

The identity verifier only vouches for (external id, email). Everything about
roles and account status comes from the accounts table, looked up per request.
'''
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional, Annotated

from jose import ExpiredSignatureError, JWTError, jwt
from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as PydanticValidationError

from ..common.config import settings
from ..common.exceptions import ForbiddenError, UnauthenticatedError
from ..common.logger import log
from ..database.db_enums import AccountStatus, UserRole
from ..models.token import Principal, TokenPayload, VerifiedIdentity
from .user_service import UserService

# --- JWT Handling ---
class JWTHandler:
    @staticmethod
    def create_access_token(
        subject: str,
        email: str,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        expire = datetime.now(timezone.utc) + expires_delta
        to_encode = {"sub": str(subject), "email": email, "exp": expire}
        encoded_jwt = jwt.encode(
            to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM
        )
        return encoded_jwt

    @staticmethod
    def decode_token(token: str) -> TokenPayload:
        """
        Raises ExpiredSignatureError / JWTError for bad signatures and
        pydantic's ValidationError for a token missing its claims.
        """
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        return TokenPayload(**payload)


class IdentityVerifier:
    """
    Turns a bearer credential into a VerifiedIdentity.
    Decoding runs off the event loop and is bounded by VERIFIER_TIMEOUT_SECONDS.
    """
    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else settings.VERIFIER_TIMEOUT_SECONDS

    async def verify(self, token: str) -> VerifiedIdentity:
        try:
            payload = await asyncio.wait_for(
                asyncio.to_thread(JWTHandler.decode_token, token),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            log.warning(f"Identity verification timed out after {self.timeout}s.")
            raise UnauthenticatedError("Identity verification timed out.", code="TOKEN_EXPIRED")
        except ExpiredSignatureError:
            raise UnauthenticatedError("Token has expired.", code="TOKEN_EXPIRED")
        except (JWTError, PydanticValidationError) as e:
            log.warning(f"JWT decode/validation error: {e}")
            raise UnauthenticatedError("Invalid token.", code="INVALID_TOKEN")

        return VerifiedIdentity(external_id=payload.sub, email=payload.email.lower())


def get_identity_verifier() -> IdentityVerifier:
    return IdentityVerifier()


bearer_scheme = HTTPBearer(auto_error=False)

async def get_verified_identity(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    verifier: Annotated[IdentityVerifier, Depends(get_identity_verifier)]
) -> VerifiedIdentity:
    """Dependency: a verified identity, with no account lookup."""
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("No token provided.", code="NO_TOKEN")
    return await verifier.verify(credentials.credentials)


async def get_current_principal(
    identity: Annotated[VerifiedIdentity, Depends(get_verified_identity)],
    user_service: Annotated[UserService, Depends(UserService)]
) -> Principal:
    """
    Dependency to verify the bearer token and resolve the caller's account.
    Deleted accounts do not resolve; blocked accounts are refused.
    """
    account = await user_service.get_account_by_email(identity.email)
    if account is None:
        log.warning(f"Account for '{identity.email}' not found during token verification.")
        raise UnauthenticatedError("User not found.", code="USER_NOT_FOUND")

    if account.status == AccountStatus.BLOCKED.value:
        log.warning(f"SECURITY: Blocked account {account.id} tried to access the API.")
        raise ForbiddenError("Your account has been blocked.", code="ACCOUNT_BLOCKED")

    return Principal(
        external_id=identity.external_id,
        email=account.email,
        role=account.role,
        account_id=account.id,
        status=account.status,
    )


def check_identity_param(principal: Principal, email: str) -> Principal:
    if email.strip().lower() != principal.email.lower():
        log.warning(f"SECURITY: Account {principal.account_id} sent identity parameter for '{email}'.")
        raise ForbiddenError("You can only access your own data.", code="UNAUTHORIZED_ACCESS")
    return principal


async def verify_identity_param(
    principal: Annotated[Principal, Depends(get_current_principal)],
    email: Annotated[str, Query(description="Email of the authenticated caller")]
) -> Principal:
    """Dependency for routes open to every role: only the identity parameter is checked."""
    return check_identity_param(principal, email)


class RoleGuard:
    """
    Callable dependency restricting a route to a set of roles.
    It also enforces the `email` identity parameter.

        principal: Annotated[Principal, Depends(RoleGuard(UserRole.STUDENT))]
    """
    def __init__(self, *roles: UserRole):
        self.allowed = {role.value for role in roles}

    def authorize(self, principal: Optional[Principal]) -> Principal:
        if principal is None:
            raise UnauthenticatedError("Authentication required.", code="NO_TOKEN")
        if principal.role.value not in self.allowed:
            log.warning(
                f"SECURITY: Account {principal.account_id} (Role: {principal.role.value}) "
                f"tried a route restricted to {sorted(self.allowed)}."
            )
            raise ForbiddenError(
                "You do not have permission to perform this action.",
                code="INSUFFICIENT_PERMISSIONS",
            )
        return principal

    async def __call__(
        self,
        principal: Annotated[Principal, Depends(get_current_principal)],
        email: Annotated[str, Query(description="Email of the authenticated caller")]
    ) -> Principal:
        return check_identity_param(self.authorize(principal), email)


require_student = RoleGuard(UserRole.STUDENT)
require_tutor = RoleGuard(UserRole.TUTOR)
require_admin = RoleGuard(UserRole.ADMIN)
require_student_or_tutor = RoleGuard(UserRole.STUDENT, UserRole.TUTOR)
