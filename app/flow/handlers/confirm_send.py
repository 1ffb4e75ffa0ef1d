"""
app/flow/handlers/confirm_send.py

Handles: confirm_send

- "sí" sends the drafted reminder to the debtor, "no" discards it
- The state is cleared before sending, so a duplicate delivery of the
  same "sí" can never send twice
- Send failures only change the reply text
"""

from typing import Any, Dict

from app.core.logging import get_logger
from app.flow.states import PendingAction, StepResult
from app.services.debt_service import record_reminder
from app.services.session_service import clear_pending
from utils.constants import (
    AFFIRMATIVE_WORDS,
    CONFIRM_SEND_RETRY_MESSAGE,
    NEGATIVE_WORDS,
    REMINDER_DISCARDED_MESSAGE,
    REMINDER_FAILED_MESSAGE,
    REMINDER_SENT_MESSAGE,
)
from utils.validation_utils import prepare_text

logger = get_logger(__name__)


async def handle_confirm_send(user: Dict[str, Any], text: str, services) -> StepResult:
    payload = user.get("pending_payload") or {}
    prepared = prepare_text(text)
    phone = user["phone"]

    if prepared in AFFIRMATIVE_WORDS:
        if not await clear_pending(phone, PendingAction.CONFIRM_SEND):
            return StepResult()

        client_name = payload.get("client_name", "")
        try:
            result = await services.sender.send_message(payload.get("to_phone"), payload.get("draft", ""))
        except Exception as e:
            logger.error(f"Transport raised while sending reminder: {e}", exc_info=True)
            result = {"success": False, "error": str(e)}
        status = "sent" if result.get("success") else "failed"

        await record_reminder(
            owner=phone,
            client_name=client_name,
            to_phone=payload.get("to_phone"),
            amount=payload.get("amount", 0),
            message=payload.get("draft", ""),
            status=status,
            error=result.get("error"),
        )

        if status == "sent":
            logger.info("Reminder sent")
            return StepResult.respond(REMINDER_SENT_MESSAGE.format(client=client_name))

        logger.warning(f"Reminder send failed: {result.get('error')}")
        return StepResult.respond(REMINDER_FAILED_MESSAGE.format(client=client_name))

    if prepared in NEGATIVE_WORDS:
        if not await clear_pending(phone, PendingAction.CONFIRM_SEND):
            return StepResult()
        return StepResult.respond(REMINDER_DISCARDED_MESSAGE)

    if services.resolver.looks_like_command(text):
        logger.info("Unrelated command during confirmation, aborting flow")
        await clear_pending(phone, PendingAction.CONFIRM_SEND)
        return StepResult.abort()

    return StepResult.respond(CONFIRM_SEND_RETRY_MESSAGE)
