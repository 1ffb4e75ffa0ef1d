"""
app/services/billing_events.py

Purpose: Idempotent gate for billing webhook events

- acquire(): unique insert keyed strictly on the processor's event id
- mark_done(): stamps processed_at once effects have run
- A claim left with processed_at=None (crash mid-effect) stays claimed;
  replays are skipped and the event needs a manual replay
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.exceptions import StoreUnavailableError
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_billing_events_collection
from utils.time_utils import utcnow

logger = get_logger(__name__)


@dataclass
class AcquireResult:
    is_new: bool
    event_id: str


async def acquire(event_id: str, event_type: str) -> AcquireResult:
    """
    Claims a billing event.

    Args:
        event_id: Processor-assigned event id (evt_...)
        event_type: Event type, stored for audit only

    Returns:
        AcquireResult(is_new=False) when the event was already claimed

    Raises:
        StoreUnavailableError: If the claim could not be written
    """
    with LogContext(event_id=event_id, event_type=event_type):
        try:
            await get_billing_events_collection().insert_one({
                "event_id": event_id,
                "type": event_type,
                "claimed_at": utcnow(),
                "processed_at": None,
                "outcome": None,
                "error": None,
            })
        except DuplicateKeyError:
            logger.info("Billing event already claimed, skipping")
            return AcquireResult(is_new=False, event_id=event_id)
        except (PyMongoError, RuntimeError) as e:
            logger.error(f"Could not claim billing event: {e}")
            raise StoreUnavailableError(
                "Could not record billing event",
                details={"event_id": event_id}
            ) from e

        logger.info("Billing event claimed")
        return AcquireResult(is_new=True, event_id=event_id)


async def mark_done(event_id: str, outcome: str = "processed") -> bool:
    """
    Marks a claimed event as finished.

    Returns:
        True if the record was updated
    """
    try:
        result = await get_billing_events_collection().update_one(
            {"event_id": event_id, "processed_at": None},
            {"$set": {"processed_at": utcnow(), "outcome": outcome}}
        )
    except PyMongoError as e:
        # The claim still exists, so replays stay skipped
        logger.error(f"Could not mark billing event {event_id} done: {e}")
        return False

    return result.modified_count > 0


async def record_failure(event_id: str, error: str) -> None:
    """
    Notes an effect failure on the claim. processed_at stays None.
    """
    try:
        await get_billing_events_collection().update_one(
            {"event_id": event_id},
            {"$set": {"error": error[:500], "failed_at": utcnow()}}
        )
    except PyMongoError as e:
        logger.error(f"Could not record failure for billing event {event_id}: {e}")


async def get_event(event_id: str) -> Optional[Dict[str, Any]]:
    return await get_billing_events_collection().find_one({"event_id": event_id})


async def list_unfinished(limit: int = 50) -> List[Dict[str, Any]]:
    """
    Claims that never reached mark_done, oldest first.
    Used by operators to find events that need a manual replay.
    """
    cursor = get_billing_events_collection().find(
        {"processed_at": None}
    ).sort("claimed_at", 1).limit(limit)
    return await cursor.to_list(length=limit)
