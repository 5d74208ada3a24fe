'''
Identity token payloads and the typed principal attached to authenticated requests.
'''
from uuid import UUID
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr

from ..database.db_enums import UserRole, AccountStatus

class Token(BaseModel):
    access_token: str
    token_type: str

class TokenPayload(BaseModel):
    sub: str # stable external identity id
    email: EmailStr
    exp: datetime

class VerifiedIdentity(BaseModel):
    """What the identity verifier vouches for: nothing about roles or accounts."""
    external_id: str
    email: str

class Principal(BaseModel):
    """
    The authenticated caller, resolved once by the auth dependency and handed
    down explicitly to the role guard, the handler and the services.
    """
    external_id: str
    email: str
    role: UserRole
    account_id: UUID
    status: AccountStatus

    model_config = ConfigDict(frozen=True)
