"""
Payment state machine driven by Razorpay webhook events.

    (no record) --captured--> SUCCESS
    CREATED     --captured--> SUCCESS
    (any)       --failed----> new FAILED record

SUCCESS and FAILED are terminal. A captured event completes the open order
record, a failed event always appends its own record and leaves the order's
CREATED record alone, so every failed attempt stays visible in the ledger.

There is no in-process locking. Duplicate deliveries are stopped by the
event id lookup, and when two of them race past it, by the unique constraints
on event_id / gateway_payment_id and the status guard on the CREATED update.
The loser rolls back its ledger write and entitlement change together.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import Settings
from ..errors import MissingUserCorrelation
from ..models import Payment, PaymentStatus, utcnow
from ..schemas import PaymentCaptured, PaymentFailed, UnknownEvent, WebhookEvent
from .entitlements import EntitlementResult, activate_subscription
from .webhooks import find_processed_event

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    APPLIED = "APPLIED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    IGNORED = "IGNORED"


@dataclass
class ReconcileResult:
    outcome: Outcome
    payment: Optional[Payment] = None
    entitlement: Optional[EntitlementResult] = None


def _require_user(event: Union[PaymentCaptured, PaymentFailed]) -> str:
    user_id = event.payment.user_id
    if not user_id:
        # the order was created without notes.userId, or not by us
        logger.error("Webhook %s for order %s carries no userId in notes",
                     event.event_id, event.payment.order_id)
        raise MissingUserCorrelation()
    return user_id


async def _open_record(session: AsyncSession, gateway_order_id: str) -> Optional[Payment]:
    # failure records share the order id, the order's own record is the non-FAILED one
    q = (
        select(Payment)
        .where(Payment.gateway_order_id == gateway_order_id)
        .where(Payment.status != PaymentStatus.FAILED)
        .order_by(Payment.id)
    )
    res = await session.exec(q)
    return res.first()


async def _apply_captured(session: AsyncSession, event: PaymentCaptured, settings: Settings) -> ReconcileResult:
    entity = event.payment
    user_id = _require_user(event)
    now = utcnow()

    payment = await _open_record(session, entity.order_id)
    if payment is None:
        # webhook outran the order-creation write
        payment = Payment(
            gateway_order_id=entity.order_id,
            gateway_payment_id=entity.id,
            user_id=user_id,
            amount=entity.amount / 100,
            currency=entity.currency,
            status=PaymentStatus.SUCCESS,
            event_id=event.event_id,
            created_at=now,
            updated_at=now,
        )
        session.add(payment)
        await session.flush()
        logger.info("Order %s captured before it was recorded locally, created SUCCESS record",
                    entity.order_id)
    elif payment.status == PaymentStatus.CREATED:
        stmt = (
            update(Payment)
            .where(Payment.id == payment.id)
            .where(Payment.status == PaymentStatus.CREATED)
            .values(
                status=PaymentStatus.SUCCESS,
                gateway_payment_id=entity.id,
                event_id=event.event_id,
                updated_at=now,
            )
        )
        res = await session.execute(stmt)
        if res.rowcount != 1:
            # a concurrent delivery completed it first
            await session.rollback()
            return ReconcileResult(Outcome.ALREADY_PROCESSED, payment)
    else:
        logger.warning("Order %s already %s, ignoring captured event %s",
                       entity.order_id, payment.status.value, event.event_id)
        return ReconcileResult(Outcome.ALREADY_PROCESSED, payment)

    if payment.user_id != user_id:
        logger.warning("Order %s recorded for user %s but event %s names user %s",
                       entity.order_id, payment.user_id, event.event_id, user_id)

    entitlement = await activate_subscription(session, user_id, settings)
    await session.commit()
    await session.refresh(payment)

    logger.info("Order %s captured (payment %s, event %s)",
                entity.order_id, entity.id, event.event_id)
    return ReconcileResult(Outcome.APPLIED, payment, entitlement)


async def _apply_failed(session: AsyncSession, event: PaymentFailed) -> ReconcileResult:
    entity = event.payment
    user_id = _require_user(event)
    now = utcnow()

    payment = Payment(
        gateway_order_id=entity.order_id,
        gateway_payment_id=entity.id,
        user_id=user_id,
        amount=entity.amount / 100,
        currency=entity.currency,
        status=PaymentStatus.FAILED,
        event_id=event.event_id,
        created_at=now,
        updated_at=now,
    )
    session.add(payment)
    await session.commit()
    await session.refresh(payment)

    logger.info("Payment %s for order %s failed (event %s): %s",
                entity.id, entity.order_id, event.event_id, entity.error_description or "no reason given")
    return ReconcileResult(Outcome.APPLIED, payment)


async def reconcile(session: AsyncSession, event: WebhookEvent, settings: Settings) -> ReconcileResult:
    """Apply one verified webhook event to the ledger, at most once per event id."""
    if isinstance(event, UnknownEvent):
        logger.info("Ignoring webhook event %s (%s)", event.event, event.event_id)
        return ReconcileResult(Outcome.IGNORED)

    processed = await find_processed_event(session, event.event_id)
    if processed is not None:
        logger.info("Webhook event %s already applied to payment %s", event.event_id, processed.id)
        return ReconcileResult(Outcome.ALREADY_PROCESSED, processed)

    try:
        if isinstance(event, PaymentCaptured):
            return await _apply_captured(session, event, settings)
        return await _apply_failed(session, event)
    except IntegrityError:
        await session.rollback()
        logger.info("Webhook event %s lost a uniqueness race, treating as already processed",
                    event.event_id)
        return ReconcileResult(Outcome.ALREADY_PROCESSED)
