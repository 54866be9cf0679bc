import hashlib
import hmac
import json
import logging
from typing import Optional

from pydantic import ValidationError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..errors import InvalidSignature, MalformedPayload, MissingSignature
from ..models import Payment
from ..schemas import PaymentCaptured, PaymentEntity, PaymentFailed, UnknownEvent, WebhookEvent

logger = logging.getLogger(__name__)

EVENT_TYPES = {
    "payment.captured": PaymentCaptured,
    "payment.failed": PaymentFailed,
}


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> None:
    """
    Check the X-Razorpay-Signature header against an HMAC-SHA256 of the raw
    request body. The body must be the bytes as received, never re-serialised JSON.
    """
    if not signature:
        raise MissingSignature()
    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        raise InvalidSignature()


def parse_event(raw_body: bytes, event_id: Optional[str] = None) -> WebhookEvent:
    """Parse a verified body into PaymentCaptured, PaymentFailed or UnknownEvent."""
    try:
        body = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        raise MalformedPayload()
    if not isinstance(body, dict):
        raise MalformedPayload()

    event_type = body.get("event")
    event_id = event_id or body.get("id")

    event_cls = EVENT_TYPES.get(event_type)
    if event_cls is None:
        return UnknownEvent(event=event_type if isinstance(event_type, str) else None,
                            event_id=event_id if isinstance(event_id, str) else None)

    if not event_id:
        logger.warning("Webhook %s arrived without an event id", event_type)
        raise MalformedPayload()

    try:
        entity = body["payload"]["payment"]["entity"]
        return event_cls(event_id=event_id, payment=PaymentEntity.model_validate(entity))
    except (KeyError, TypeError, ValidationError):
        logger.warning("Webhook %s (%s) has no usable payment entity", event_type, event_id)
        raise MalformedPayload()


async def find_processed_event(session: AsyncSession, event_id: str) -> Optional[Payment]:
    """Ledger record already holding `event_id`, if any."""
    res = await session.exec(select(Payment).where(Payment.event_id == event_id))
    return res.first()
