"""
app/services/usage_service.py

Purpose: Usage metering and paywall

- Decides whether a user is on a Pro-equivalent plan
- Meters billable intents against the free daily limit
- Daily counter rolls lazily to the business-timezone day
- Counter updates are atomic ($inc behind a conditional filter), so
  concurrent deliveries can never push a free user past the limit
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from pymongo import ReturnDocument

from app.core.config import settings
from app.core.logging import get_logger
from app.db.mongo import get_users_collection
from app.schemas.intents import Intent
from utils.constants import BILLABLE_INTENTS
from utils.time_utils import is_active_until, local_day, utcnow

logger = get_logger(__name__)

ACTIVE_STATUSES = {"active", "trialing"}
DEGRADED_STATUSES = {"past_due", "unpaid"}


@dataclass
class GateResult:
    blocked: bool
    warn: bool = False
    remaining: Optional[int] = None  # None for unlimited plans


def pro_source(user: Dict[str, Any], now: Optional[datetime] = None) -> Optional[str]:
    """
    Works out why a user has Pro, most authoritative reason first.

    1. Non-expired trial/admin grant
    2. Billing subscription active or trialing
    3. Billing subscription past_due/unpaid, still inside grace_until
    4. plan == "pro" with no expiry, or an expiry still in the future

    Returns:
        "trial" / "admin" / "billing" / "grace" / "plan", or None for free
    """
    now = now or utcnow()
    plan_source = user.get("plan_source")
    plan_until = user.get("plan_until")

    if plan_source in ("trial", "admin") and is_active_until(plan_until, now):
        return plan_source

    status = user.get("subscription_status")
    if status in ACTIVE_STATUSES:
        return "billing"

    if status in DEGRADED_STATUSES and is_active_until(user.get("grace_until"), now):
        return "grace"

    # An expired grant must not fall back to the bare flag
    if user.get("plan") == "pro" and (plan_until is None or plan_until > now):
        return "plan"

    return None


def is_pro(user: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    return pro_source(user, now) is not None


def is_billable(intent: Intent) -> bool:
    """
    Only complete billable intents cost quota. An add_debt without an
    amount or a remind without a client just gets a prompt back.
    """
    if intent.intent not in BILLABLE_INTENTS:
        return False
    if intent.intent == "add_debt":
        return intent.amount is not None
    if intent.intent == "remind":
        return bool(intent.client_name)
    return True


def usage_today(user: Dict[str, Any], now: Optional[datetime] = None) -> int:
    """Counter value for today; a stale day reads as zero."""
    today = local_day(now, settings.BUSINESS_TIMEZONE)
    if user.get("daily_count_day") != today:
        return 0
    return int(user.get("daily_count") or 0)


class UsageMeter:
    """
    Free-plan quota gate.

    Args:
        daily_limit: Billable actions per day on the free plan
        warn_at: Remaining quota that triggers the low-balance nudge
        tz_name: Timezone that defines the day boundary
    """

    def __init__(
        self,
        daily_limit: int = settings.FREE_DAILY_LIMIT,
        warn_at: int = settings.LOW_BALANCE_WARNING,
        tz_name: str = settings.BUSINESS_TIMEZONE,
    ):
        self.daily_limit = daily_limit
        self.warn_at = warn_at
        self.tz_name = tz_name

    async def _roll_day(self, phone: str, today: str) -> None:
        users = get_users_collection()
        await users.update_one(
            {"phone": phone, "daily_count_day": {"$ne": today}},
            {"$set": {"daily_count": 0, "daily_count_day": today}}
        )

    async def consume(self, phone: str, now: Optional[datetime] = None) -> Optional[int]:
        """
        Takes one unit of today's quota.

        Returns:
            The new count, or None if the limit was already reached
        """
        today = local_day(now, self.tz_name)
        await self._roll_day(phone, today)

        users = get_users_collection()
        updated = await users.find_one_and_update(
            {
                "phone": phone,
                "daily_count_day": today,
                "daily_count": {"$lt": self.daily_limit},
            },
            {"$inc": {"daily_count": 1}},
            return_document=ReturnDocument.AFTER,
            projection={"daily_count": 1},
        )
        if updated is None:
            return None
        return int(updated["daily_count"])

    async def gate(self, user: Dict[str, Any], intent: Intent, now: Optional[datetime] = None) -> GateResult:
        """
        Checks and consumes quota for one resolved intent.

        Args:
            user: Identity record (plan fields are read from it)
            intent: Resolved intent
            now: Naive UTC time (injectable for tests)

        Returns:
            GateResult; warn is advisory and never blocks
        """
        if not is_billable(intent):
            return GateResult(blocked=False)

        if is_pro(user, now):
            return GateResult(blocked=False)

        count = await self.consume(user["phone"], now)
        if count is None:
            logger.info("Paywall reached")
            return GateResult(blocked=True, remaining=0)

        remaining = self.daily_limit - count
        return GateResult(
            blocked=False,
            warn=remaining == self.warn_at,
            remaining=remaining,
        )
