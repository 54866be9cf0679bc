import calendar
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import Settings
from ..models import User, as_utc, utcnow

logger = logging.getLogger(__name__)

ACTIVE = "ACTIVE"


class EntitlementOutcome(str, Enum):
    UPDATED = "UPDATED"
    NOT_FOUND = "NOT_FOUND"


@dataclass
class EntitlementResult:
    outcome: EntitlementOutcome
    user: Optional[User] = None


def add_months(moment: datetime, months: int = 1) -> datetime:
    """Calendar month arithmetic, clamping the day (Jan 31 + 1 month -> Feb 28/29)."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_expiry(current: Optional[datetime], now: datetime, renewal: str) -> datetime:
    current, now = as_utc(current), as_utc(now)
    if renewal == "extend" and current is not None and current > now:
        return add_months(current)
    return add_months(now)


async def activate_subscription(session: AsyncSession,
                                user_id: str,
                                settings: Settings,
                                now: Optional[datetime] = None,
                                ) -> EntitlementResult:
    """
    Grant the paid plan to `user_id`. Changes are left in the session; the
    caller commits them together with the ledger write.
    """
    user = await session.get(User, user_id)
    if user is None:
        # not retried: a missing user will not appear on redelivery
        logger.error("Entitlement skipped, user %s not found", user_id)
        return EntitlementResult(EntitlementOutcome.NOT_FOUND)

    now = now or utcnow()
    current = as_utc(user.subscription_expires_at) if user.subscription_status == ACTIVE else None

    user.subscription_plan = settings.subscription_plan
    user.subscription_status = ACTIVE
    user.subscription_expires_at = next_expiry(current, now, settings.subscription_renewal)
    session.add(user)

    logger.info("Subscription %s active for user %s until %s",
                user.subscription_plan, user_id, user.subscription_expires_at.isoformat())
    return EntitlementResult(EntitlementOutcome.UPDATED, user)
