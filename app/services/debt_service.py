"""
app/services/debt_service.py

Purpose: Debt book persistence

- Record debts and keep the client contact book in sync
- List / prioritize pending debts
- Mark a client's debts as paid
- Client phone numbers for reminders
- Reminder history and support tickets
"""

from app.db.mongo import (
    get_debts_collection,
    get_clients_collection,
    get_reminders_collection,
    get_support_tickets_collection,
)
from app.core.logging import get_logger
from utils.time_utils import utcnow
from utils.validation_utils import client_key
from pymongo import ReturnDocument
from typing import Optional, Dict, Any, List

logger = get_logger(__name__)

MAX_LISTED_DEBTS = 50


async def _upsert_client(owner: str, name: str) -> Dict[str, Any]:
    now = utcnow()
    clients = get_clients_collection()
    return await clients.find_one_and_update(
        {"owner": owner, "name_key": client_key(name)},
        {
            "$setOnInsert": {"name": name, "phone": None, "created_at": now},
            "$set": {"updated_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


async def add_debt(
    owner: str,
    client_name: str,
    amount: float,
    since_text: Optional[str] = None
) -> Dict[str, Any]:
    """
    Records a pending debt.

    Args:
        owner: Phone of the business owner
        client_name: Display name of the debtor
        amount: Amount owed (MXN)
        since_text: Free-text "since when" ("el 3 de mayo")

    Returns:
        The inserted debt document
    """
    await _upsert_client(owner, client_name)

    debt = {
        "owner": owner,
        "client_name": client_name,
        "client_key": client_key(client_name),
        "amount": float(amount),
        "since_text": since_text,
        "status": "pending",
        "created_at": utcnow(),
        "paid_at": None,
    }
    result = await get_debts_collection().insert_one(debt)
    debt["_id"] = result.inserted_id

    logger.info(f"Debt recorded: {client_name} {amount}")
    return debt


async def list_pending(owner: str, limit: int = MAX_LISTED_DEBTS) -> List[Dict[str, Any]]:
    """Pending debts, newest first."""
    cursor = get_debts_collection().find(
        {"owner": owner, "status": "pending"}
    ).sort("created_at", -1).limit(limit)
    return await cursor.to_list(length=limit)


def rank_debts(debts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Collection priority: largest amount first, oldest first on ties.
    """
    by_age = sorted(debts, key=lambda d: d.get("created_at") or utcnow())
    return sorted(by_age, key=lambda d: float(d.get("amount") or 0), reverse=True)


def totals_by_client(debts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Sums pending amounts per client, largest total first.
    """
    totals: Dict[str, Dict[str, Any]] = {}
    for debt in debts:
        key = debt.get("client_key") or client_key(debt.get("client_name") or "cliente")
        entry = totals.setdefault(key, {"client_name": debt.get("client_name"), "amount": 0.0, "count": 0})
        entry["amount"] += float(debt.get("amount") or 0)
        entry["count"] += 1
    return sorted(totals.values(), key=lambda t: t["amount"], reverse=True)


async def pending_for_client(owner: str, name: str) -> List[Dict[str, Any]]:
    cursor = get_debts_collection().find(
        {"owner": owner, "client_key": client_key(name), "status": "pending"}
    ).sort("created_at", 1)
    return await cursor.to_list(length=MAX_LISTED_DEBTS)


async def mark_paid(owner: str, name: str) -> Dict[str, Any]:
    """
    Marks every pending debt of a client as paid.

    Returns:
        {"count": int, "amount": float}
    """
    debts = await pending_for_client(owner, name)
    if not debts:
        return {"count": 0, "amount": 0.0}

    ids = [d["_id"] for d in debts]
    result = await get_debts_collection().update_many(
        {"_id": {"$in": ids}, "status": "pending"},
        {"$set": {"status": "paid", "paid_at": utcnow()}}
    )

    amount = sum(float(d.get("amount") or 0) for d in debts)
    logger.info(f"Marked {result.modified_count} debt(s) paid for {name}")
    return {"count": result.modified_count, "amount": amount}


async def find_client(owner: str, name: str) -> Optional[Dict[str, Any]]:
    return await get_clients_collection().find_one(
        {"owner": owner, "name_key": client_key(name)}
    )


async def set_client_phone(owner: str, name: str, phone: str) -> Dict[str, Any]:
    """
    Saves a debtor's phone, creating the client entry if needed.
    """
    await _upsert_client(owner, name)
    return await get_clients_collection().find_one_and_update(
        {"owner": owner, "name_key": client_key(name)},
        {"$set": {"phone": phone, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )


async def record_reminder(
    owner: str,
    client_name: str,
    to_phone: str,
    amount: float,
    message: str,
    status: str,
    error: Optional[str] = None
) -> None:
    """Stores one outbound reminder attempt (status: sent / failed)."""
    now = utcnow()
    await get_reminders_collection().insert_one({
        "owner": owner,
        "client_name": client_name,
        "to_phone": to_phone,
        "amount": amount,
        "message": message,
        "status": status,
        "error": error,
        "created_at": now,
        "sent_at": now if status == "sent" else None,
    })


async def create_support_ticket(phone: str, text: str) -> str:
    """
    Stores a support report.

    Returns:
        Short ticket reference shown to the user
    """
    result = await get_support_tickets_collection().insert_one({
        "phone": phone,
        "text": text,
        "status": "open",
        "created_at": utcnow(),
    })
    ticket = str(result.inserted_id)[-6:].upper()
    logger.info(f"Support ticket created: {ticket}")
    return ticket
