"""
app/flow/handlers/support.py

Handles: support_collect

- Next message after "soporte" becomes a ticket
"""

from typing import Any, Dict

from app.flow.states import PendingAction, StepResult
from app.services.debt_service import create_support_ticket
from app.services.session_service import clear_pending
from utils.constants import SUPPORT_PROMPT_MESSAGE, SUPPORT_RECEIVED_MESSAGE


async def handle_support_collect(user: Dict[str, Any], text: str, services) -> StepResult:
    report = (text or "").strip()
    if not report:
        return StepResult.respond(SUPPORT_PROMPT_MESSAGE)

    if not await clear_pending(user["phone"], PendingAction.SUPPORT_COLLECT):
        return StepResult()

    ticket = await create_support_ticket(user["phone"], report)
    return StepResult.respond(SUPPORT_RECEIVED_MESSAGE.format(ticket=ticket))
