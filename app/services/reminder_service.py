"""
app/services/reminder_service.py

Purpose: Daily collection digest for business owners

- Picks pending debts not included in a digest within the cooldown
- One WhatsApp summary per owner (small amounts hidden, top N, total)
- Logs every debt included so the cooldown holds across runs
"""

from collections import OrderedDict
from datetime import timedelta
from typing import Any, Dict, List

from app.core.config import settings
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_debts_collection, get_reminder_logs_collection
from utils.constants import DIGEST_FOOTER, DIGEST_HEADER
from utils.time_utils import utcnow
from utils.whatsapp_utils import format_money

logger = get_logger(__name__)

CANDIDATE_LIMIT = 200


async def pick_debts_to_remind(cooldown_hours: int = settings.REMINDER_COOLDOWN_HOURS) -> Dict[str, List[Dict[str, Any]]]:
    """
    Pending debts grouped by owner, oldest first, skipping debts that
    were in a digest within the last cooldown_hours.
    """
    since = utcnow() - timedelta(hours=cooldown_hours)

    recent = await get_reminder_logs_collection().distinct("debt_id", {"sent_at": {"$gt": since}})

    cursor = get_debts_collection().find(
        {"status": "pending", "_id": {"$nin": recent}}
    ).sort("created_at", 1).limit(CANDIDATE_LIMIT)

    by_owner: Dict[str, List[Dict[str, Any]]] = OrderedDict()
    for debt in await cursor.to_list(length=CANDIDATE_LIMIT):
        by_owner.setdefault(debt["owner"], []).append(debt)
    return by_owner


def select_items(
    debts: List[Dict[str, Any]],
    min_amount: float = settings.REMINDER_MIN_AMOUNT,
    max_items: int = settings.REMINDER_MAX_ITEMS
) -> List[Dict[str, Any]]:
    """
    Hides small amounts (unless that leaves nothing) and keeps the top N.
    """
    filtered = [d for d in debts if float(d.get("amount") or 0) >= min_amount]
    base = filtered or debts
    return base[:max_items]


def build_digest(debts: List[Dict[str, Any]], shown: List[Dict[str, Any]], min_amount: float = settings.REMINDER_MIN_AMOUNT) -> str:
    """
    Args:
        debts: All candidate debts for the owner
        shown: The subset included in the message
    """
    lines = [DIGEST_HEADER]
    for debt in shown:
        name = debt.get("client_name")
        if not name or name == "Cliente":
            name = "Cliente (sin nombre)"
        since = f" (desde: {debt['since_text']})" if debt.get("since_text") else ""
        lines.append(f"• *{name}*: {format_money(debt.get('amount'))}{since}")

    base_count = len([d for d in debts if float(d.get("amount") or 0) >= min_amount]) or len(debts)
    if base_count > len(shown):
        lines.append(f"\n(+{base_count - len(shown)} más pendientes)")

    total = sum(float(d.get("amount") or 0) for d in shown)
    lines.append(f"\n💰 *Total recuperable hoy (de este resumen):* {format_money(total)}")
    lines.append(DIGEST_FOOTER)
    return "\n".join(lines)


async def log_sent(owner: str, debt_ids: List[Any]) -> None:
    if not debt_ids:
        return
    now = utcnow()
    await get_reminder_logs_collection().insert_many([
        {"owner": owner, "debt_id": debt_id, "sent_at": now} for debt_id in debt_ids
    ])


async def send_daily_digests(sender) -> Dict[str, int]:
    """
    Sends one digest per owner with reminder-worthy debts.

    Args:
        sender: Outbound transport (send_message(to_phone, text) -> dict)

    Returns:
        {"sent": n, "failed": n}
    """
    stats = {"sent": 0, "failed": 0}
    by_owner = await pick_debts_to_remind()

    for owner, debts in by_owner.items():
        with LogContext(phone=owner):
            shown = select_items(debts)
            message = build_digest(debts, shown)

            result = await sender.send_message(owner, message)
            if not result.get("success"):
                logger.warning(f"Digest not delivered: {result.get('error')}")
                stats["failed"] += 1
                continue

            await log_sent(owner, [d["_id"] for d in shown])
            stats["sent"] += 1

    logger.info(f"Daily digest finished: {stats}")
    return stats
