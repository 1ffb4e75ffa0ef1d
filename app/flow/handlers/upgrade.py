"""
app/flow/handlers/upgrade.py

Handles: ask_name, ask_cycle

- "quiero pro": ask_name -> ask_cycle -> one-time trial
- "pagar": checkout link for the stored cycle, asking the cycle first
  when none is stored (ask_cycle with purpose "checkout")
"""

from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.logging import get_logger
from app.flow.states import PendingAction, StepResult
from app.services.session_service import advance, begin_flow, clear_pending
from app.services.usage_service import pro_source
from app.services.user_service import activate_trial, patch_user
from utils.constants import (
    ALREADY_PRO_MESSAGE,
    ASK_CYCLE_CHECKOUT_MESSAGE,
    ASK_CYCLE_MESSAGE,
    ASK_CYCLE_RETRY_MESSAGE,
    ASK_NAME_MESSAGE,
    ASK_NAME_RETRY_MESSAGE,
    CHECKOUT_FAILED_MESSAGE,
    CHECKOUT_LINK_MESSAGE,
    CYCLE_CHOICES,
    CYCLE_LABELS,
    TRIAL_ACTIVATED_MESSAGE,
    TRIAL_ALREADY_USED_MESSAGE,
)
from utils.time_utils import format_date
from utils.validation_utils import prepare_text

logger = get_logger(__name__)

MAX_BUSINESS_NAME_LENGTH = 80


def match_cycle(text: str) -> Optional[str]:
    prepared = prepare_text(text)
    for cycle, accepted in CYCLE_CHOICES.items():
        if prepared in accepted:
            return cycle
    return None


def _cycle_prompt(template: str) -> str:
    return template.format(monthly=settings.PRICE_MONTHLY_LABEL, yearly=settings.PRICE_YEARLY_LABEL)


async def checkout_reply(phone: str, cycle: str, services) -> str:
    url = await services.checkout.create_session(phone, cycle)
    if not url:
        return CHECKOUT_FAILED_MESSAGE
    return CHECKOUT_LINK_MESSAGE.format(cycle=CYCLE_LABELS[cycle], url=url)


async def start_trial_flow(user: Dict[str, Any], services) -> str:
    """Entry for the want_pro intent."""
    if pro_source(user) is not None:
        return ALREADY_PRO_MESSAGE
    if user.get("trial_used"):
        return TRIAL_ALREADY_USED_MESSAGE

    await begin_flow(user["phone"], PendingAction.ASK_NAME, {"purpose": "trial"})
    return ASK_NAME_MESSAGE


async def start_checkout(user: Dict[str, Any], services) -> str:
    """Entry for the pay intent."""
    if pro_source(user) == "billing":
        return ALREADY_PRO_MESSAGE

    cycle = user.get("billing_cycle")
    if cycle in CYCLE_CHOICES:
        return await checkout_reply(user["phone"], cycle, services)

    await begin_flow(user["phone"], PendingAction.ASK_CYCLE, {"purpose": "checkout"})
    return _cycle_prompt(ASK_CYCLE_CHECKOUT_MESSAGE)


async def handle_ask_name(user: Dict[str, Any], text: str, services) -> StepResult:
    business_name = " ".join((text or "").split())[:MAX_BUSINESS_NAME_LENGTH]
    if not business_name:
        return StepResult.respond(ASK_NAME_RETRY_MESSAGE)

    payload = {**(user.get("pending_payload") or {}), "business_name": business_name}
    moved = await advance(user["phone"], PendingAction.ASK_NAME, PendingAction.ASK_CYCLE, payload)
    if not moved:
        return StepResult()

    return StepResult.respond(_cycle_prompt(ASK_CYCLE_MESSAGE))


async def handle_ask_cycle(user: Dict[str, Any], text: str, services) -> StepResult:
    payload = user.get("pending_payload") or {}
    phone = user["phone"]
    cycle = match_cycle(text)

    if cycle is None:
        if services.resolver.looks_like_command(text):
            logger.info("Unrelated command during cycle choice, aborting flow")
            await clear_pending(phone, PendingAction.ASK_CYCLE)
            return StepResult.abort()
        return StepResult.respond(ASK_CYCLE_RETRY_MESSAGE)

    if not await clear_pending(phone, PendingAction.ASK_CYCLE):
        return StepResult()

    if payload.get("purpose") == "checkout":
        await patch_user(phone, {"billing_cycle": cycle})
        return StepResult.respond(await checkout_reply(phone, cycle, services))

    business_name = payload.get("business_name")
    until = await activate_trial(phone, settings.TRIAL_DAYS, business_name, cycle)
    if until is None:
        return StepResult.respond(TRIAL_ALREADY_USED_MESSAGE)

    return StepResult.respond(TRIAL_ACTIVATED_MESSAGE.format(
        business=business_name or "",
        days=settings.TRIAL_DAYS,
        until=format_date(until),
    ))
