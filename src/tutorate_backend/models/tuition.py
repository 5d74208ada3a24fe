'''
API models for tuition posts.
'''
import re
from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..database.db_enums import TuitionStatus

_BUDGET_LABEL = re.compile(r"(\d+(?:\.\d+)?)(?:\s*-\s*(\d+(?:\.\d+)?))?")


def parse_budget_range(label: str) -> tuple[Decimal, Decimal]:
    """
    Parses a free-text budget label such as "800-1200/hr" into (min, max).
    A single figure ("1000/month") is read as a fixed budget.
    """
    match = _BUDGET_LABEL.search(label.replace(",", ""))
    if not match:
        raise ValueError(f"Budget label '{label}' does not contain an amount.")
    low = Decimal(match.group(1))
    high = Decimal(match.group(2)) if match.group(2) else low
    return low, high


class Schedule(BaseModel):
    days: Optional[str] = None
    hours: Optional[str] = None
    flexible: bool = False
    start_date: Optional[str] = None
    duration: Optional[str] = None


class _BudgetInput(BaseModel):
    """Shared budget handling: explicit bounds, or a legacy label."""
    budget: Optional[str] = Field(None, description='Legacy label, e.g. "800-1200/hr"')
    budget_min: Optional[Decimal] = Field(None, ge=0)
    budget_max: Optional[Decimal] = Field(None, ge=0)

    budget_required: ClassVar[bool] = False

    @model_validator(mode='after')
    def resolve_budget(self):
        if self.budget is not None:
            low, high = parse_budget_range(self.budget)
            if self.budget_min is None:
                self.budget_min = low
            if self.budget_max is None:
                self.budget_max = high
            self.budget = None
        if self.budget_min is not None and self.budget_max is not None and self.budget_min > self.budget_max:
            raise ValueError("budget_min cannot be greater than budget_max.")
        if self.budget_required and (self.budget_min is None or self.budget_max is None):
            raise ValueError("A budget range (budget_min and budget_max, or a budget label) is required.")
        return self


# --- API Write Models (Input) ---

class TuitionCreate(_BudgetInput):
    """A new tuition post. Always starts out pending admin review."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True)
    budget_required: ClassVar[bool] = True

    title: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    class_level: str = Field(..., min_length=1, alias='class')
    description: Optional[str] = None
    location: Optional[str] = None
    area: Optional[str] = None
    mode: Optional[str] = None
    budget_currency: Optional[str] = Field(None, min_length=3, max_length=8)
    schedule: Optional[Schedule] = None
    requirements: list[str] = []
    qualifications: list[str] = []
    responsibilities: list[str] = []
    benefits: list[str] = []
    slots: int = Field(1, ge=1)
    application_deadline: Optional[datetime] = None


class TuitionUpdate(_BudgetInput):
    """
    Owner edits. Ownership fields are not part of the model, so any attempt
    to send student_id or student_email is rejected as an unknown field.
    """
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    title: Optional[str] = Field(None, min_length=1)
    subject: Optional[str] = Field(None, min_length=1)
    class_level: Optional[str] = Field(None, min_length=1, alias='class')
    description: Optional[str] = None
    location: Optional[str] = None
    area: Optional[str] = None
    mode: Optional[str] = None
    budget_currency: Optional[str] = Field(None, min_length=3, max_length=8)
    schedule: Optional[Schedule] = None
    requirements: Optional[list[str]] = None
    qualifications: Optional[list[str]] = None
    responsibilities: Optional[list[str]] = None
    benefits: Optional[list[str]] = None
    slots: Optional[int] = Field(None, ge=1)
    application_deadline: Optional[datetime] = None

    @field_validator(
        'title', 'subject', 'class_level', 'budget_min', 'budget_max', 'budget_currency',
        'requirements', 'qualifications', 'responsibilities', 'benefits', 'slots'
    )
    @classmethod
    def reject_null(cls, value):
        """Fields may be omitted from a partial update, but not blanked out with null."""
        if value is None:
            raise ValueError("This field cannot be null.")
        return value


class TuitionReject(BaseModel):
    model_config = ConfigDict(extra='forbid')

    reason: Optional[str] = None


# --- API Read Models (Output) ---

class TuitionPublicRead(BaseModel):
    """A tuition post as shown on public listings (no student contact details)."""
    id: UUID
    student_id: UUID
    student_name: str
    title: str
    subject: str
    class_level: str
    description: Optional[str] = None
    location: Optional[str] = None
    area: Optional[str] = None
    mode: Optional[str] = None
    budget_min: Decimal
    budget_max: Decimal
    budget_currency: str
    schedule: Optional[Schedule] = None
    requirements: list[str] = []
    qualifications: list[str] = []
    responsibilities: list[str] = []
    benefits: list[str] = []
    slots: int
    application_deadline: Optional[datetime] = None
    status: TuitionStatus
    applicants: int
    views: int
    saved_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TuitionRead(TuitionPublicRead):
    """The owner's and the admin's view of a tuition post."""
    student_email: str
    tutor_id: Optional[UUID] = None
    rejection_reason: Optional[str] = None
    approved_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class TuitionDeleteResult(BaseModel):
    id: UUID
    soft_deleted: bool
