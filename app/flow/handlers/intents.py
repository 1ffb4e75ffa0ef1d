"""
app/flow/handlers/intents.py

Handles: resolved intents from the idle state

- Debt book commands (add, list, prioritize, save phone, mark paid)
- Reminder flow entry (choose_tone / confirm_send)
- Plan commands (pricing, want_pro, pay, my_plan)
- Help, support, cancel, unknown
"""

from typing import Any, Dict

from app.core.config import settings
from app.core.logging import get_logger
from app.flow.handlers.tone import build_draft
from app.flow.handlers.upgrade import start_checkout, start_trial_flow
from app.flow.states import PendingAction
from app.schemas.intents import (
    AddDebtIntent,
    Intent,
    MarkPaidIntent,
    RemindIntent,
    SavePhoneIntent,
)
from app.services import debt_service
from app.services.session_service import begin_flow
from app.services.usage_service import pro_source, usage_today
from utils.constants import (
    CHOOSE_TONE_MESSAGE,
    CLIENT_HAS_NO_DEBTS_MESSAGE,
    CONFIRM_SEND_MESSAGE,
    DEBT_LIST_HEADER,
    DEBT_MISSING_AMOUNT_MESSAGE,
    DEBT_SAVED_MESSAGE,
    HELP_MESSAGE,
    MARK_PAID_MESSAGE,
    MY_PLAN_FREE_MESSAGE,
    MY_PLAN_PRO_MESSAGE,
    NO_DEBTS_MESSAGE,
    NOTHING_TO_CANCEL_MESSAGE,
    PHONE_INVALID_MESSAGE,
    PHONE_SAVED_MESSAGE,
    PLAN_SOURCE_LABELS,
    PRICING_MESSAGE,
    PRIORITIZE_MESSAGE,
    PRIORITIZE_TOTALS_HEADER,
    REMIND_NEEDS_PHONE_MESSAGE,
    REMIND_WHO_MESSAGE,
    SUPPORT_PROMPT_MESSAGE,
    UNKNOWN_MESSAGE,
)
from utils.time_utils import format_date
from utils.whatsapp_utils import format_debt_lines, format_money

logger = get_logger(__name__)

TOP_CLIENTS = 3


async def _add_debt(user: Dict[str, Any], intent: AddDebtIntent) -> str:
    if intent.amount is None:
        return DEBT_MISSING_AMOUNT_MESSAGE

    debt = await debt_service.add_debt(user["phone"], intent.client_name, intent.amount, intent.since_text)
    since_line = f"• Desde: {debt['since_text']}\n" if debt.get("since_text") else ""
    return DEBT_SAVED_MESSAGE.format(
        client=debt["client_name"],
        amount=format_money(debt["amount"]),
        since_line=since_line,
    )


async def _list_debts(user: Dict[str, Any]) -> str:
    debts = await debt_service.list_pending(user["phone"])
    if not debts:
        return NO_DEBTS_MESSAGE
    return "\n".join([DEBT_LIST_HEADER, *format_debt_lines(debts)])


async def _prioritize(user: Dict[str, Any]) -> str:
    debts = await debt_service.list_pending(user["phone"])
    if not debts:
        return NO_DEBTS_MESSAGE

    top = debt_service.rank_debts(debts)[0]
    since = f" (desde {top['since_text']})" if top.get("since_text") else ""
    reply = PRIORITIZE_MESSAGE.format(
        client=top["client_name"],
        amount=format_money(top["amount"]),
        since=since,
    )

    totals = debt_service.totals_by_client(debts)
    if len(totals) > 1:
        lines = [
            f"{i}) {t['client_name']}: {format_money(t['amount'])}"
            for i, t in enumerate(totals[:TOP_CLIENTS], 1)
        ]
        reply = "\n\n".join([reply, "\n".join([PRIORITIZE_TOTALS_HEADER, *lines])])

    return reply


async def _save_phone(user: Dict[str, Any], intent: SavePhoneIntent) -> str:
    if not intent.phone:
        return PHONE_INVALID_MESSAGE
    client = await debt_service.set_client_phone(user["phone"], intent.client_name, intent.phone)
    return PHONE_SAVED_MESSAGE.format(client=client["name"], phone=intent.phone)


async def _remind(user: Dict[str, Any], intent: RemindIntent) -> str:
    if not intent.client_name:
        return REMIND_WHO_MESSAGE

    owner = user["phone"]
    debts = await debt_service.pending_for_client(owner, intent.client_name)
    if not debts:
        return CLIENT_HAS_NO_DEBTS_MESSAGE.format(client=intent.client_name)

    client = await debt_service.find_client(owner, intent.client_name)
    if not client or not client.get("phone"):
        return REMIND_NEEDS_PHONE_MESSAGE.format(client=intent.client_name)

    client_name = client.get("name") or intent.client_name
    amount = sum(float(d.get("amount") or 0) for d in debts)
    payload = {"client_name": client_name, "to_phone": client["phone"], "amount": amount}

    if intent.tone:
        draft = build_draft(intent.tone, client_name, amount, user.get("business_name"))
        await begin_flow(owner, PendingAction.CONFIRM_SEND, {**payload, "tone": intent.tone, "draft": draft})
        return CONFIRM_SEND_MESSAGE.format(client=client_name, draft=draft)

    await begin_flow(owner, PendingAction.CHOOSE_TONE, payload)
    return CHOOSE_TONE_MESSAGE.format(client=client_name, amount=format_money(amount))


async def _mark_paid(user: Dict[str, Any], intent: MarkPaidIntent) -> str:
    result = await debt_service.mark_paid(user["phone"], intent.client_name)
    if not result["count"]:
        return CLIENT_HAS_NO_DEBTS_MESSAGE.format(client=intent.client_name)
    return MARK_PAID_MESSAGE.format(
        client=intent.client_name,
        count=result["count"],
        amount=format_money(result["amount"]),
    )


def _my_plan(user: Dict[str, Any]) -> str:
    source = pro_source(user)
    if source is None:
        return MY_PLAN_FREE_MESSAGE.format(used=usage_today(user), limit=settings.FREE_DAILY_LIMIT)

    until = ""
    if source in ("trial", "admin", "plan") and user.get("plan_until"):
        until = f" hasta el {format_date(user['plan_until'])}"
    elif source == "grace" and user.get("grace_until"):
        until = f" hasta el {format_date(user['grace_until'])}"

    return MY_PLAN_PRO_MESSAGE.format(source=PLAN_SOURCE_LABELS.get(source, source), until=until)


def _pricing() -> str:
    return PRICING_MESSAGE.format(
        free_limit=settings.FREE_DAILY_LIMIT,
        monthly=settings.PRICE_MONTHLY_LABEL,
        yearly=settings.PRICE_YEARLY_LABEL,
        trial_days=settings.TRIAL_DAYS,
    )


async def execute_intent(user: Dict[str, Any], intent: Intent, services) -> str:
    """
    Runs one resolved intent for an idle user.

    Args:
        user: Identity record
        intent: Resolved intent (already past the paywall)
        services: Services container

    Returns:
        Reply text
    """
    name = intent.intent
    logger.info(f"Executing intent {name}")

    if name == "add_debt":
        return await _add_debt(user, intent)
    if name == "list_debts":
        return await _list_debts(user)
    if name == "prioritize":
        return await _prioritize(user)
    if name == "save_phone":
        return await _save_phone(user, intent)
    if name == "remind":
        return await _remind(user, intent)
    if name == "mark_paid":
        return await _mark_paid(user, intent)
    if name == "pricing":
        return _pricing()
    if name == "want_pro":
        return await start_trial_flow(user, services)
    if name == "pay":
        return await start_checkout(user, services)
    if name == "my_plan":
        return _my_plan(user)
    if name == "help":
        return HELP_MESSAGE
    if name == "support":
        await begin_flow(user["phone"], PendingAction.SUPPORT_COLLECT)
        return SUPPORT_PROMPT_MESSAGE
    if name == "cancel":
        return NOTHING_TO_CANCEL_MESSAGE

    return UNKNOWN_MESSAGE
