# In models/user.py

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from ..database.db_enums import UserRole, AccountStatus

STUDENT_PROFILE_FIELDS = ("preferred_subjects", "class_level")
TUTOR_PROFILE_FIELDS = ("qualifications", "subjects", "experience", "hourly_rate", "availability")

# --- User API Read Models ---

class AccountRead(BaseModel):
    """
    Base Pydantic model for reading account data.
    Corresponds to the db_models.Accounts ORM model.
    """
    id: UUID
    email: str
    name: str
    role: UserRole
    status: AccountStatus
    phone: Optional[str] = None
    photo_url: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    whatsapp: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class StudentRead(AccountRead):
    role: Literal[UserRole.STUDENT.value]
    preferred_subjects: Optional[list[str]] = None
    class_level: Optional[str] = None

class TutorRead(AccountRead):
    role: Literal[UserRole.TUTOR.value]
    qualifications: Optional[str] = None
    subjects: Optional[list[str]] = None
    experience: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    availability: Optional[str] = None
    rating: Optional[Decimal] = None
    total_reviews: Optional[int] = None
    is_verified: Optional[bool] = None

class AdminRead(AccountRead):
    role: Literal[UserRole.ADMIN.value]

AccountReadRoleBased = Annotated[
    Union[StudentRead, TutorRead, AdminRead],
    Field(discriminator='role')
]


class TutorPublicRead(BaseModel):
    """
    A tutor as shown on public listings. Contact details and the external
    identity id are not exposed.
    """
    id: UUID
    name: str
    photo_url: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    qualifications: Optional[str] = None
    subjects: Optional[list[str]] = None
    experience: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    availability: Optional[str] = None
    rating: Optional[Decimal] = None
    total_reviews: Optional[int] = None
    is_verified: Optional[bool] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- Registration Models ---

class AccountCreate(BaseModel):
    """
    Validates a registration request. Admins cannot self-register and
    profile fields of the other role are refused.
    """
    model_config = ConfigDict(extra='forbid')

    name: str = Field(..., min_length=1)
    email: EmailStr
    role: Literal[UserRole.STUDENT.value, UserRole.TUTOR.value] = UserRole.STUDENT.value
    phone: Optional[str] = None
    photo_url: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    whatsapp: Optional[str] = None
    # student
    preferred_subjects: Optional[list[str]] = None
    class_level: Optional[str] = None
    # tutor
    qualifications: Optional[str] = None
    subjects: Optional[list[str]] = None
    experience: Optional[str] = None
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    availability: Optional[str] = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode='after')
    def check_role_fields(self) -> 'AccountCreate':
        foreign = TUTOR_PROFILE_FIELDS if self.role == UserRole.STUDENT.value else STUDENT_PROFILE_FIELDS
        provided = [name for name in foreign if getattr(self, name) is not None]
        if provided:
            raise ValueError(f"Fields {provided} are not allowed for role '{self.role}'.")
        return self


class GoogleLogin(BaseModel):
    """Federated sign-in. Creates the account on first login."""
    model_config = ConfigDict(extra='forbid')

    email: EmailStr
    name: Optional[str] = None
    photo_url: Optional[str] = None
    role: Literal[UserRole.STUDENT.value, UserRole.TUTOR.value] = UserRole.STUDENT.value

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class AccountCreateResult(BaseModel):
    account: AccountReadRoleBased
    created: bool


# --- Profile Update Models (one per role) ---

class ProfileUpdate(BaseModel):
    """
    Self-service profile fields shared by every role.
    Email, role and status are not editable here.
    """
    model_config = ConfigDict(extra='forbid')

    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    photo_url: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    whatsapp: Optional[str] = None

    @field_validator('name')
    @classmethod
    def name_not_null(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("name cannot be null.")
        return value

class StudentProfileUpdate(ProfileUpdate):
    preferred_subjects: Optional[list[str]] = None
    class_level: Optional[str] = None

class TutorProfileUpdate(ProfileUpdate):
    qualifications: Optional[str] = None
    subjects: Optional[list[str]] = None
    experience: Optional[str] = None
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    availability: Optional[str] = None

PROFILE_UPDATE_MODELS: dict[str, type[ProfileUpdate]] = {
    UserRole.STUDENT.value: StudentProfileUpdate,
    UserRole.TUTOR.value: TutorProfileUpdate,
    UserRole.ADMIN.value: ProfileUpdate,
}


# --- Admin Models ---

class RoleUpdate(BaseModel):
    role: UserRole

class StatusUpdate(BaseModel):
    """Soft deletion has its own endpoint, so `deleted` is not accepted here."""
    status: Literal[AccountStatus.PENDING.value, AccountStatus.ACTIVE.value, AccountStatus.BLOCKED.value]


READ_MODELS: dict[str, type[AccountRead]] = {
    UserRole.STUDENT.value: StudentRead,
    UserRole.TUTOR.value: TutorRead,
    UserRole.ADMIN.value: AdminRead,
}

def to_account_read(account) -> AccountRead:
    """Picks the read model matching the ORM object's role."""
    return READ_MODELS[account.role].model_validate(account)
