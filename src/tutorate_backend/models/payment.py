'''
API models for payment intents, confirmations and the payment ledger.
'''
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import PaymentStatus


class PaymentIntentCreate(BaseModel):
    model_config = ConfigDict(extra='forbid')

    application_id: UUID


class PaymentIntentRead(BaseModel):
    payment_intent_id: str
    client_secret: Optional[str] = None
    application_id: UUID
    amount: int # minor units
    currency: str


class PaymentConfirm(BaseModel):
    model_config = ConfigDict(extra='forbid')

    application_id: UUID
    transaction_id: str = Field(..., min_length=1)


class PaymentRecordRead(BaseModel):
    id: UUID
    application_id: UUID
    tuition_post_id: UUID
    student_id: UUID
    tutor_id: UUID
    amount: Decimal
    currency: str
    status: PaymentStatus
    transaction_ref: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentConfirmResult(BaseModel):
    payment: PaymentRecordRead
    duplicate: bool = False


class ChargeIntent(BaseModel):
    """The subset of a provider payment intent this service relies on."""
    id: str
    status: str
    amount: int
    currency: str
    client_secret: Optional[str] = None
    metadata: dict[str, str] = {}

    model_config = ConfigDict(extra='ignore')
