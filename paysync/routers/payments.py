from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlmodel import select

from .. import db
from ..config import settings
from ..errors import PaymentNotFound
from ..models import Payment
from ..schemas import CreateOrderIn, CreateOrderOut, PaymentOut, WebhookAck
from ..services.orders import create_order as create_gateway_order
from ..services.razorpay import RazorpayClient
from ..services.reconciler import reconcile
from ..services.webhooks import parse_event, verify_signature
from ..utils import current_user_id

router = APIRouter(prefix="/api/payment", tags=["payments"])


def get_gateway(request: Request) -> RazorpayClient:
    return request.app.state.gateway


@router.post("/create-order", response_model=CreateOrderOut)
async def create_order(payload: CreateOrderIn,
                       user_id: str = Depends(current_user_id),
                       gateway: RazorpayClient = Depends(get_gateway),
                       ):
    """Create a Razorpay order for the caller and record it as CREATED."""
    async with db.get_session() as session:
        order, payment = await create_gateway_order(
            session, gateway, user_id, payload.amount, payload.currency
        )

    return CreateOrderOut(order=order, payment=PaymentOut.model_validate(payment))


@router.get("/orders/{gateway_order_id}", response_model=List[PaymentOut])
async def order_payments(gateway_order_id: str, user_id: str = Depends(current_user_id)):
    """Ledger records of one of the caller's orders, newest first."""
    async with db.get_session() as session:
        q = (
            select(Payment)
            .where(Payment.gateway_order_id == gateway_order_id)
            .where(Payment.user_id == user_id)
            .order_by(Payment.id.desc())
        )
        res = await session.exec(q)
        payments = res.all()

    if not payments:
        raise PaymentNotFound()
    return [PaymentOut.model_validate(p) for p in payments]


# Webhook (Razorpay -> POST)
@router.post("/webhook", response_model=WebhookAck)
async def webhook(request: Request,
                  x_razorpay_signature: Optional[str] = Header(default=None),
                  x_razorpay_event_id: Optional[str] = Header(default=None),
                  ):
    """
    Razorpay POSTs payment events here, at least once and in any order.
    Duplicates and unknown events are acknowledged so Razorpay stops retrying.
    """
    # signature covers the exact bytes received, read them before any parsing
    raw_body = await request.body()
    verify_signature(raw_body, x_razorpay_signature, settings.razorpay_webhook_secret.get_secret_value())

    event = parse_event(raw_body, x_razorpay_event_id)

    async with db.get_session() as session:
        await reconcile(session, event, settings)

    return WebhookAck(received=True)
