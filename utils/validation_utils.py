"""
utils/validation_utils.py

Purpose: Input parsing and validation

- Text preparation for command matching
- Amount parsing ($8,500.00, 8500, 2k, 2.5k, 2 mil)
- Client name / "desde ..." extraction from debt phrases
- Phone number normalization (E.164)
"""

import re
from typing import Optional


_LEADING_PUNCT = "¿¡\"'“”*_ "
_TRAILING_PUNCT = "?!.,;:\"'“”*_ "

_THOUSANDS_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*(k|mil)\b", re.IGNORECASE)
_AMOUNT_RE = re.compile(r"\$?\s*(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)")
_HAS_THOUSANDS_RE = re.compile(r"\d\s*(k|mil)\b", re.IGNORECASE)

_SINCE_RE = re.compile(r"\bdesde\b\s+(.+)$", re.IGNORECASE)

MAX_NAME_LENGTH = 60


def prepare_text(text: Optional[str]) -> str:
    """
    Lowercases and trims a message for command matching.

    Accents are kept (patterns accept both forms); surrounding
    punctuation such as ¿...? is removed and whitespace collapsed.
    """
    if not text:
        return ""
    cleaned = re.sub(r"\s+", " ", text).strip().lower()
    return cleaned.lstrip(_LEADING_PUNCT).rstrip(_TRAILING_PUNCT).strip()


def parse_amount(text: Optional[str]) -> Optional[float]:
    """
    Extracts the first money amount from free text.

    Examples:
        "8500" -> 8500.0
        "$8,500.00" -> 8500.0
        "2k" / "2 mil" -> 2000.0
        "2,5k" -> 2500.0

    Returns:
        Positive amount or None
    """
    if not text:
        return None

    m = _THOUSANDS_RE.search(text)
    if m:
        n = float(m.group(1).replace(",", "."))
        return round(n * 1000, 2) if n > 0 else None

    m = _AMOUNT_RE.search(text)
    if not m:
        return None

    try:
        value = float(m.group(1).replace(",", ""))
    except ValueError:
        return None

    return value if value > 0 else None


def correct_thousands(amount: Optional[float], text: str) -> Optional[float]:
    """
    Fixes amounts from the NLP parser when the user wrote "k"/"mil".

    "me debe 2k" sometimes comes back as 2; the text wins.
    """
    if amount is None:
        return parse_amount(text) if _HAS_THOUSANDS_RE.search(text or "") else None
    if _HAS_THOUSANDS_RE.search(text or "") and amount < 1000:
        return round(amount * 1000, 2)
    return amount


def parse_since(text: str) -> Optional[str]:
    """
    Extracts whatever follows "desde" ("desde el 3 de mayo" -> "el 3 de mayo").
    """
    m = _SINCE_RE.search(text)
    return m.group(1).strip().rstrip(".") if m else None


def clean_client_name(name: Optional[str]) -> Optional[str]:
    """
    Normalizes a client name for display: trimmed, single-spaced, title case.
    """
    if not isinstance(name, str) or not name:
        return None
    cleaned = re.sub(r"\s+", " ", name).strip(" .,;:¿?¡!\"'")
    if not cleaned:
        return None
    return cleaned[:MAX_NAME_LENGTH].title()


def client_key(name: str) -> str:
    """
    Case-insensitive lookup key for a client name.
    """
    return re.sub(r"\s+", " ", name).strip().lower()


def normalize_phone(raw: Optional[str], default_country_code: str = "52") -> Optional[str]:
    """
    Normalizes a phone number to E.164.

    Accepts "whatsapp:+5215512345678", "+52 55 1234 5678", "55-1234-5678".
    Ten-digit national numbers get the default country code.

    Returns:
        "+<digits>" or None when the input is not a plausible number
    """
    if not raw:
        return None

    value = raw.strip()
    if value.lower().startswith("whatsapp:"):
        value = value[len("whatsapp:"):]

    has_plus = value.startswith("+")
    digits = re.sub(r"\D", "", value)

    if not has_plus and len(digits) == 10:
        digits = f"{default_country_code}{digits}"

    if len(digits) < 11 or len(digits) > 15:
        return None

    return f"+{digits}"
