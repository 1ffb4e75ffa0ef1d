"""
app/services/session_service.py

Purpose: Conversation state persistence

- Starts, advances and clears the per-user pending_action
- Every transition is a compare-and-swap on the expected current state,
  so two concurrent deliveries cannot both apply the same step
- pending_action and pending_payload are always written together
"""

from app.db.mongo import get_users_collection
from app.flow.states import PendingAction, is_valid_transition, stored_value
from app.core.logging import get_logger
from utils.time_utils import utcnow
from typing import Optional, Dict, Any

logger = get_logger(__name__)


async def _swap(
    phone: str,
    expected: PendingAction,
    new_state: PendingAction,
    payload: Optional[Dict[str, Any]]
) -> bool:
    users = get_users_collection()

    expected_value = stored_value(expected)
    if expected_value is None:
        state_filter = {"$in": [None, PendingAction.IDLE.value]}
    else:
        state_filter = expected_value

    new_value = stored_value(new_state)
    result = await users.update_one(
        {"phone": phone, "pending_action": state_filter},
        {
            "$set": {
                "pending_action": new_value,
                "pending_payload": payload if new_value else None,
                "state_updated_at": utcnow(),
            }
        }
    )

    if result.matched_count == 0:
        logger.warning(f"State transition lost race: {expected.value} -> {new_state.value}")
        return False

    logger.info(f"State updated: {expected.value} -> {new_state.value}")
    return True


async def begin_flow(
    phone: str,
    action: PendingAction,
    payload: Optional[Dict[str, Any]] = None
) -> bool:
    """
    Enters a flow from idle.

    Returns:
        True if this call moved the user out of idle
    """
    return await _swap(phone, PendingAction.IDLE, action, payload or {})


async def advance(
    phone: str,
    expected: PendingAction,
    new_state: PendingAction,
    payload: Optional[Dict[str, Any]] = None
) -> bool:
    """
    Moves from one flow step to the next.

    Args:
        phone: User phone
        expected: State the caller observed
        new_state: Target state
        payload: Full replacement payload for the new state

    Raises:
        ValueError: If the transition is not allowed
    """
    if not is_valid_transition(expected, new_state):
        raise ValueError(f"Invalid state transition: {expected.value} -> {new_state.value}")

    return await _swap(phone, expected, new_state, payload or {})


async def clear_pending(phone: str, expected: Optional[PendingAction] = None) -> bool:
    """
    Returns the user to idle and discards the payload.

    Args:
        phone: User phone
        expected: If given, only clear when still in this state. Terminal
                  steps pass it and skip their effect when this returns False.

    Returns:
        True if the state was cleared by this call
    """
    if expected is None:
        users = get_users_collection()
        result = await users.update_one(
            {"phone": phone},
            {
                "$set": {
                    "pending_action": None,
                    "pending_payload": None,
                    "state_updated_at": utcnow(),
                }
            }
        )
        return result.matched_count > 0

    return await _swap(phone, expected, PendingAction.IDLE, None)
