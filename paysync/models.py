from enum import Enum
from typing import Optional
from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands datetimes back without tzinfo, they were written as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PaymentStatus(str, Enum):
    CREATED = "CREATED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    gateway_order_id: str = Field(index=True)
    # null until capture, unique once set
    gateway_payment_id: Optional[str] = Field(default=None, unique=True)
    user_id: str = Field(index=True)
    amount: float
    currency: str = "INR"
    status: PaymentStatus = Field(default=PaymentStatus.CREATED, index=True)
    # webhook event that last mutated this record, the idempotency key
    event_id: Optional[str] = Field(default=None, unique=True)
    receipt: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class User(SQLModel, table=True):
    """Subscription fragment of the user entity.

    Accounts are created by the auth service; only the subscription
    columns are written here.
    """

    id: str = Field(primary_key=True)
    email: Optional[str] = Field(default=None, index=True)
    subscription_plan: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_expires_at: Optional[datetime] = None
