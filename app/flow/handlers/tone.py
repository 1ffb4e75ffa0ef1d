"""
app/flow/handlers/tone.py

Handles: choose_tone

- Matches amable / firme / formal (or 1 / 2 / 3)
- Builds the reminder draft and moves to confirm_send
- Unrelated commands abort the flow and fall through
"""

from typing import Any, Dict

from app.core.logging import get_logger
from app.flow.states import PendingAction, StepResult
from app.services.session_service import advance, clear_pending
from utils.constants import (
    CHOOSE_TONE_RETRY_MESSAGE,
    CONFIRM_SEND_MESSAGE,
    DEFAULT_BUSINESS_NAME,
    REMINDER_TEMPLATES,
    TONE_CHOICES,
)
from utils.validation_utils import prepare_text
from utils.whatsapp_utils import format_money

logger = get_logger(__name__)


def match_tone(text: str):
    prepared = prepare_text(text)
    for tone, accepted in TONE_CHOICES.items():
        if prepared in accepted:
            return tone
    return None


def build_draft(tone: str, client_name: str, amount: float, business_name: str = None) -> str:
    return REMINDER_TEMPLATES[tone].format(
        client=client_name,
        business=business_name or DEFAULT_BUSINESS_NAME,
        amount=format_money(amount),
    )


async def handle_choose_tone(user: Dict[str, Any], text: str, services) -> StepResult:
    """
    Args:
        user: Identity record (pending_payload has client_name, to_phone, amount)
        text: Raw message
        services: Services container

    Returns:
        StepResult
    """
    payload = user.get("pending_payload") or {}
    tone = match_tone(text)

    if tone is None:
        if services.resolver.looks_like_command(text):
            logger.info("Unrelated command during tone choice, aborting flow")
            await clear_pending(user["phone"], PendingAction.CHOOSE_TONE)
            return StepResult.abort()
        return StepResult.respond(CHOOSE_TONE_RETRY_MESSAGE)

    client_name = payload.get("client_name", "")
    draft = build_draft(tone, client_name, payload.get("amount", 0), user.get("business_name"))

    moved = await advance(
        user["phone"],
        PendingAction.CHOOSE_TONE,
        PendingAction.CONFIRM_SEND,
        {**payload, "tone": tone, "draft": draft},
    )
    if not moved:
        # A concurrent delivery already handled this step
        return StepResult()

    return StepResult.respond(CONFIRM_SEND_MESSAGE.format(client=client_name, draft=draft))
