from datetime import datetime
from typing import Optional, Union, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import PaymentStatus


class CreateOrderIn(BaseModel):
    # checked by the order service so a missing or non-positive amount maps to 400
    amount: Optional[float] = Field(None, description="Amount in major units e.g. 500 for INR 500")
    currency: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def no_booleans(cls, value):
        # JSON true would otherwise coerce to 1.0, treat it as no amount
        if isinstance(value, bool):
            return None
        return value


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    user_id: str
    amount: float
    currency: str
    status: PaymentStatus
    event_id: Optional[str] = None
    receipt: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CreateOrderOut(BaseModel):
    order: dict  # gateway order payload as returned by Razorpay
    payment: PaymentOut


class WebhookAck(BaseModel):
    received: bool = True


# ---- webhook events -------------------------------------------------------

class PaymentEntity(BaseModel):
    """The `payload.payment.entity` object of a Razorpay payment event."""

    id: str
    order_id: str
    amount: int  # minor units
    currency: str
    status: Optional[str] = None
    notes: dict = Field(default_factory=dict)
    error_description: Optional[str] = None

    @field_validator("notes", mode="before")
    @classmethod
    def empty_notes(cls, value):
        # Razorpay serialises empty notes as []
        if not value:
            return {}
        return value

    @property
    def user_id(self) -> Optional[str]:
        user_id = self.notes.get("userId") or self.notes.get("user_id")
        return str(user_id) if user_id else None


class PaymentCaptured(BaseModel):
    event: Literal["payment.captured"] = "payment.captured"
    event_id: str
    payment: PaymentEntity


class PaymentFailed(BaseModel):
    event: Literal["payment.failed"] = "payment.failed"
    event_id: str
    payment: PaymentEntity


class UnknownEvent(BaseModel):
    event: Optional[str] = None
    event_id: Optional[str] = None


WebhookEvent = Union[PaymentCaptured, PaymentFailed, UnknownEvent]
