'''
API models for tutor applications.
'''
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..database.db_enums import ApplicationStatus
from .tuition import TuitionPublicRead


class ApplicationCreate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    tuition_post_id: UUID
    qualifications: str = Field(..., min_length=1)
    experience: str = Field(..., min_length=1)
    expected_salary: Decimal = Field(..., gt=0)
    cover_letter: Optional[str] = None


class ApplicationUpdate(BaseModel):
    """Only the tutor's bid can change; the target post and the status cannot."""
    model_config = ConfigDict(extra='forbid')

    qualifications: Optional[str] = Field(None, min_length=1)
    experience: Optional[str] = Field(None, min_length=1)
    expected_salary: Optional[Decimal] = Field(None, gt=0)
    cover_letter: Optional[str] = None

    @field_validator('qualifications', 'experience', 'expected_salary')
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("This field cannot be null.")
        return value


class ApplicationRead(BaseModel):
    id: UUID
    tuition_post_id: UUID
    tutor_id: UUID
    tutor_name: str
    tutor_email: str
    tutor_photo: Optional[str] = None
    qualifications: str
    experience: str
    expected_salary: Decimal
    cover_letter: Optional[str] = None
    status: ApplicationStatus
    applied_at: datetime
    updated_at: datetime
    decided_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ApplicationWithTuitionRead(ApplicationRead):
    """A tutor's own application, with the post it targets."""
    tuition_post: Optional[TuitionPublicRead] = None


class ApplicationDecisionResult(BaseModel):
    """
    Outcome of a student's decision.
    `approve` does not finalize anything: it tells the client to collect
    `amount` in `currency` before the application can be approved.
    """
    application: ApplicationRead
    payment_required: bool
    application_id: UUID
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
