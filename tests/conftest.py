import json
import os
import shutil
import tempfile

# settings are read at import time, configure the environment first
TEST_DB_DIR = tempfile.mkdtemp(prefix="paysync-tests-")
TEST_DB_PATH = os.path.join(TEST_DB_DIR, "test_paysync.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"
os.environ["JWT_ACCESS_SECRET"] = "jwt_test_secret"
os.environ["SUBSCRIPTION_RENEWAL"] = "extend"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session, SQLModel, create_engine, select

from paysync.errors import GatewayError
from paysync.main import app as fastapi_app
from paysync.models import Payment, User  # noqa: F401  registers tables
from paysync.routers.payments import get_gateway
from paysync.services.webhooks import compute_signature

WEBHOOK_SECRET = "whsec_test"

engine = create_engine(f"sqlite:///{TEST_DB_PATH}", connect_args={"check_same_thread": False})


class FakeGateway:
    """Stands in for RazorpayClient, records every create_order call."""

    def __init__(self):
        self.calls = []
        self.error = None
        self.order_id = "order_test_001"

    async def create_order(self, amount, currency, receipt, notes):
        self.calls.append({"amount": amount, "currency": currency, "receipt": receipt, "notes": notes})
        if self.error is not None:
            raise self.error
        return {
            "id": self.order_id,
            "entity": "order",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
            "notes": notes,
        }

    def fail_with(self, description):
        self.error = GatewayError(description)


@pytest.fixture(scope="session", autouse=True)
def cleanup_db_dir():
    yield
    engine.dispose()
    shutil.rmtree(TEST_DB_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def setup_db():
    SQLModel.metadata.create_all(engine)
    yield
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(gateway):
    fastapi_app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


def make_token(user_id, secret="jwt_test_secret"):
    return jwt.encode({"id": user_id}, secret, algorithm="HS256")


def auth_headers(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def add_user(user_id, **fields):
    with Session(engine) as session:
        session.add(User(id=user_id, **fields))
        session.commit()


def get_user(user_id):
    with Session(engine) as session:
        return session.get(User, user_id)


def all_payments():
    with Session(engine) as session:
        return session.exec(select(Payment).order_by(Payment.id)).all()


def payment_event(event, order_id="order_test_001", payment_id="pay_test_001",
                  user_id="user_1", amount=50000, currency="INR", notes=None, **extra):
    if notes is None:
        notes = {"userId": user_id} if user_id else []
    entity = {
        "id": payment_id,
        "entity": "payment",
        "amount": amount,
        "currency": currency,
        "status": "captured" if event == "payment.captured" else "failed",
        "order_id": order_id,
        "notes": notes,
    }
    entity.update(extra)
    return {
        "entity": "event",
        "account_id": "acc_test",
        "event": event,
        "contains": ["payment"],
        "payload": {"payment": {"entity": entity}},
        "created_at": 1700000000,
    }


def send_webhook(client, body, event_id="evt_test_001", secret=WEBHOOK_SECRET, raw=None, signature=None):
    """POST a webhook signed over the exact bytes sent."""
    raw = raw if raw is not None else json.dumps(body).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if event_id is not None:
        headers["X-Razorpay-Event-Id"] = event_id
    if signature is None:
        signature = compute_signature(raw, secret)
    if signature is not False:
        headers["X-Razorpay-Signature"] = signature
    return client.post("/api/payment/webhook", content=raw, headers=headers)
