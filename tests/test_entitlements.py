from datetime import datetime, timezone

import pytest
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine

from paysync.config import Settings
from paysync.models import User, as_utc
from paysync.services.entitlements import (
    EntitlementOutcome,
    activate_subscription,
    add_months,
    next_expiry,
)

from conftest import TEST_DB_PATH, add_user, get_user


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


NOW = utc(2024, 5, 20, 12, 0, 0)


@pytest.mark.parametrize("start, expected", [
    (utc(2024, 1, 31, 9, 30), utc(2024, 2, 29, 9, 30)),
    (utc(2023, 1, 31), utc(2023, 2, 28)),
    (utc(2024, 12, 15), utc(2025, 1, 15)),
    (utc(2024, 3, 10), utc(2024, 4, 10)),
])
def test_add_months(start, expected):
    assert add_months(start) == expected


def test_extend_renews_from_future_expiry():
    current = utc(2024, 6, 1)
    assert next_expiry(current, NOW, "extend") == utc(2024, 7, 1)


def test_extend_restarts_lapsed_subscription_from_now():
    current = utc(2024, 4, 1)
    assert next_expiry(current, NOW, "extend") == add_months(NOW)


def test_reset_always_starts_from_now():
    assert next_expiry(utc(2024, 6, 1), NOW, "reset") == add_months(NOW)
    assert next_expiry(None, NOW, "reset") == add_months(NOW)


def test_expiry_read_back_without_tzinfo_is_treated_as_utc():
    # SQLite returns stored datetimes naive
    current = datetime(2024, 6, 1)
    assert next_expiry(current, NOW, "extend") == utc(2024, 7, 1)


def make_settings(**overrides):
    values = dict(
        razorpay_key_id="k",
        razorpay_key_secret="s",
        razorpay_webhook_secret="w",
        jwt_access_secret="j",
    )
    values.update(overrides)
    return Settings(**values)


async def _activate(user_id, settings):
    engine = create_async_engine(f"sqlite+aiosqlite:///{TEST_DB_PATH}")
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            result = await activate_subscription(session, user_id, settings, now=NOW)
            await session.commit()
        return result
    finally:
        await engine.dispose()


@pytest.mark.anyio
async def test_activate_sets_plan_status_and_expiry():
    add_user("user_1")

    result = await _activate("user_1", make_settings())

    assert result.outcome == EntitlementOutcome.UPDATED
    user = get_user("user_1")
    assert user.subscription_plan == "PRO"
    assert user.subscription_status == "ACTIVE"
    assert as_utc(user.subscription_expires_at) == add_months(NOW)


@pytest.mark.anyio
async def test_active_subscription_in_store_is_extended():
    add_user("user_1", subscription_plan="PRO", subscription_status="ACTIVE",
             subscription_expires_at=utc(2024, 6, 10, 8, 15))

    result = await _activate("user_1", make_settings())

    assert result.outcome == EntitlementOutcome.UPDATED
    assert as_utc(get_user("user_1").subscription_expires_at) == utc(2024, 7, 10, 8, 15)


@pytest.mark.anyio
async def test_reset_policy_ignores_remaining_time():
    add_user("user_1", subscription_plan="PRO", subscription_status="ACTIVE",
             subscription_expires_at=utc(2024, 6, 10))

    await _activate("user_1", make_settings(subscription_renewal="reset"))

    assert as_utc(get_user("user_1").subscription_expires_at) == add_months(NOW)


@pytest.mark.anyio
async def test_cancelled_subscription_is_not_extended():
    add_user("user_1", subscription_plan="PRO", subscription_status="CANCELLED",
             subscription_expires_at=utc(2024, 6, 10))

    await _activate("user_1", make_settings())

    user = get_user("user_1")
    assert user.subscription_status == "ACTIVE"
    assert as_utc(user.subscription_expires_at) == add_months(NOW)


@pytest.mark.anyio
async def test_missing_user_is_reported_not_raised():
    result = await _activate("nobody", make_settings())

    assert result.outcome == EntitlementOutcome.NOT_FOUND
    assert result.user is None
    assert get_user("nobody") is None


def test_user_model_has_subscription_fragment():
    user = User(id="u")
    assert user.subscription_plan is None
    assert user.subscription_status is None
    assert user.subscription_expires_at is None
