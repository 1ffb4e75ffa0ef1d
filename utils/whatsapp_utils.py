"""
utils/whatsapp_utils.py

Purpose: WhatsApp message builders

- TwiML payloads returned to the Twilio webhook
- Money formatting (MXN)
- Debt list / ranking text blocks
"""

from typing import Any, Dict, Iterable, List, Optional
from xml.sax.saxutils import escape

WHATSAPP_PREFIX = "whatsapp:"

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def create_twiml_message(text: Optional[str]) -> str:
    """
    Builds a TwiML reply.

    Args:
        text: Reply text; None or empty yields an empty <Response/>
              (used for deduplicated deliveries)

    Returns:
        TwiML XML string
    """
    if not text:
        return EMPTY_TWIML
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<Response><Message>{escape(text)}</Message></Response>"
    )


def to_whatsapp_address(phone: str) -> str:
    """
    "+5215512345678" -> "whatsapp:+5215512345678"
    """
    return phone if phone.startswith(WHATSAPP_PREFIX) else f"{WHATSAPP_PREFIX}{phone}"


def format_money(amount: Any) -> str:
    """
    Formats an amount as Mexican pesos: 8500 -> "$8,500.00".
    """
    try:
        value = float(amount or 0)
    except (TypeError, ValueError):
        value = 0.0
    return f"${value:,.2f}"


def format_debt_lines(debts: Iterable[Dict[str, Any]]) -> List[str]:
    """
    One numbered line per debt: "1) Juan: $8,500.00 (desde mayo)".
    """
    lines = []
    for i, debt in enumerate(debts, 1):
        since = f" (desde {debt['since_text']})" if debt.get("since_text") else ""
        lines.append(f"{i}) {debt.get('client_name') or 'Cliente'}: {format_money(debt.get('amount'))}{since}")
    return lines


def join_messages(*parts: Optional[str]) -> str:
    """
    Joins non-empty reply fragments with a blank line between them.
    """
    return "\n\n".join(p for p in parts if p)
