"""
app/services/user_service.py

Purpose: Identity record management

- Get-or-create by phone (atomic upsert)
- Onboarding flag, business profile
- Plan grants (trial, admin) and billing mirror fields
- Lookups by Stripe customer / subscription id
"""

from app.db.mongo import get_users_collection
from app.core.logging import get_logger, LogContext
from utils.time_utils import utcnow, days_from_now
from datetime import datetime
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from typing import Optional, Dict, Any

logger = get_logger(__name__)


def _new_user_fields(now: datetime, name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "profile_name": name,
        "pending_action": None,
        "pending_payload": None,
        "plan": "free",
        "plan_source": None,
        "plan_until": None,
        "subscription_status": None,
        "grace_until": None,
        "stripe_customer_id": None,
        "stripe_subscription_id": None,
        "daily_count": 0,
        "daily_count_day": None,
        "seen_onboarding": False,
        "trial_used": False,
        "business_name": None,
        "billing_cycle": None,
        "created_at": now,
    }


async def get_or_create_user(phone: str, name: Optional[str] = None) -> Dict[str, Any]:
    """
    Returns the identity record for a phone, creating it on first contact.

    Concurrent first messages from the same phone race on the unique
    index; the upsert makes both callers end up with the same document.

    Args:
        phone: E.164 phone number
        name: WhatsApp profile name, stored on creation only

    Returns:
        User document
    """
    now = utcnow()
    users = get_users_collection()

    try:
        user = await users.find_one_and_update(
            {"phone": phone},
            {
                "$setOnInsert": _new_user_fields(now, name),
                "$set": {"updated_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # Lost the insert race to a concurrent first message
        logger.warning("Concurrent user creation, re-reading")
        user = await users.find_one({"phone": phone})

    if not user.get("seen_onboarding"):
        logger.debug("User has not been onboarded yet")

    return user


async def get_user_by_phone(phone: str) -> Optional[Dict[str, Any]]:
    users = get_users_collection()
    return await users.find_one({"phone": phone})


async def get_user_by_billing_ids(
    subscription_id: Optional[str] = None,
    customer_id: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """
    Finds the user a billing event belongs to.

    Subscription id wins over customer id.
    """
    users = get_users_collection()

    if subscription_id:
        user = await users.find_one({"stripe_subscription_id": subscription_id})
        if user:
            return user

    if customer_id:
        return await users.find_one({"stripe_customer_id": customer_id})

    return None


async def patch_user(phone: str, fields: Dict[str, Any]) -> bool:
    """
    Sets fields on a user.

    Args:
        phone: User phone
        fields: Field -> value

    Returns:
        True if a document matched
    """
    users = get_users_collection()
    result = await users.update_one(
        {"phone": phone},
        {"$set": {**fields, "updated_at": utcnow()}}
    )
    return result.matched_count > 0


async def mark_onboarded(phone: str) -> bool:
    """
    Flips seen_onboarding once.

    Returns:
        True only for the call that actually flipped it, so concurrent
        first messages show the welcome at most once
    """
    users = get_users_collection()
    result = await users.update_one(
        {"phone": phone, "seen_onboarding": {"$ne": True}},
        {"$set": {"seen_onboarding": True, "updated_at": utcnow()}}
    )
    return result.modified_count > 0


async def activate_trial(
    phone: str,
    days: int,
    business_name: Optional[str] = None,
    billing_cycle: Optional[str] = None
) -> Optional[datetime]:
    """
    Grants the one-time Pro trial.

    The trial_used filter makes this a no-op for users who already had it.

    Returns:
        Trial expiry, or None if the trial was already used
    """
    with LogContext(phone=phone):
        now = utcnow()
        until = days_from_now(days, now)

        users = get_users_collection()
        result = await users.update_one(
            {"phone": phone, "trial_used": {"$ne": True}},
            {
                "$set": {
                    "plan": "pro",
                    "plan_source": "trial",
                    "plan_until": until,
                    "trial_used": True,
                    "business_name": business_name,
                    "billing_cycle": billing_cycle,
                    "updated_at": now,
                }
            }
        )

        if result.modified_count == 0:
            logger.info("Trial already used")
            return None

        logger.info(f"Trial activated until {until.isoformat()}")
        return until


async def grant_plan(phone: str, days: int, source: str = "admin") -> Optional[datetime]:
    """
    Grants Pro for a number of days (admin comps, support goodwill).

    Returns:
        Grant expiry, or None if the user does not exist
    """
    until = days_from_now(days)
    updated = await patch_user(phone, {
        "plan": "pro",
        "plan_source": source,
        "plan_until": until,
    })
    if not updated:
        return None

    logger.info(f"Granted pro ({source}) to {phone} until {until.isoformat()}")
    return until


async def set_billing_state(phone: str, **fields: Any) -> bool:
    """
    Mirrors billing processor state onto the user.

    Accepted fields: plan, plan_source, plan_until, subscription_status,
    grace_until, stripe_customer_id, stripe_subscription_id, billing_cycle.
    """
    allowed = {
        "plan", "plan_source", "plan_until", "subscription_status",
        "grace_until", "stripe_customer_id", "stripe_subscription_id",
        "billing_cycle",
    }
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown billing fields: {sorted(unknown)}")

    return await patch_user(phone, fields)
