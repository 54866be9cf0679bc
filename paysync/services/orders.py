import logging
import math
import time
from typing import Optional, Tuple

from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import settings
from ..errors import GatewayError, InvalidAmount
from ..models import Payment, PaymentStatus
from .razorpay import RazorpayClient

logger = logging.getLogger(__name__)


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def new_receipt() -> str:
    return f"receipt_{int(time.time() * 1000)}"


def validate_amount(amount) -> float:
    """Amount in major units, rejected unless it is a positive whole number of paise."""
    if amount is None or isinstance(amount, bool):
        raise InvalidAmount()
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise InvalidAmount()
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidAmount()
    minor = to_minor_units(amount)
    if minor <= 0 or abs(amount * 100 - minor) > 1e-6:
        raise InvalidAmount()
    # the ledger keeps exactly what the gateway is asked to charge
    return minor / 100


async def create_order(session: AsyncSession,
                       gateway: RazorpayClient,
                       user_id: str,
                       amount,
                       currency: Optional[str] = None,
                       ) -> Tuple[dict, Payment]:
    """
    Create a gateway order and record it locally as CREATED.

    Nothing is written unless the gateway call succeeds. `notes.userId` is what
    lets the webhook find the user again, so it is always sent.
    """
    amount = validate_amount(amount)
    currency = (currency or settings.default_currency).upper()
    receipt = new_receipt()

    # raises GatewayError, nothing persisted yet
    order = await gateway.create_order(
        amount=to_minor_units(amount),
        currency=currency,
        receipt=receipt,
        notes={"userId": str(user_id)},
    )
    if not order.get("id"):
        raise GatewayError("Payment gateway returned an invalid response")

    payment = Payment(
        gateway_order_id=order["id"],
        user_id=str(user_id),
        amount=amount,
        currency=order.get("currency", currency),
        status=PaymentStatus.CREATED,
        receipt=receipt,
    )
    session.add(payment)
    await session.commit()
    await session.refresh(payment)

    logger.info("Created order %s for user %s (%s %s)",
                payment.gateway_order_id, payment.user_id, payment.amount, payment.currency)
    return order, payment
