"""
app/flow/router.py

Purpose: Local (regex) intent router

- Ordered list of cheap pure matchers over prepared text
- First match wins; order encodes precedence where patterns overlap
  (e.g. "quién me debe" must be checked before "X me debe 500")
- No I/O, no NLP: anything unmatched returns None
"""

import re
from typing import Callable, List, Optional, Tuple

from app.schemas.intents import (
    AddDebtIntent,
    CancelIntent,
    HelpIntent,
    Intent,
    ListDebtsIntent,
    MarkPaidIntent,
    MyPlanIntent,
    PayIntent,
    PricingIntent,
    PrioritizeIntent,
    RemindIntent,
    SavePhoneIntent,
    SupportIntent,
    WantProIntent,
)
from utils.constants import CANCEL_WORDS
from utils.validation_utils import (
    clean_client_name,
    normalize_phone,
    parse_amount,
    parse_since,
    prepare_text,
)

_QUIEN = r"qui[eé]n(?:es)?"

LIST_DEBTS_RE = re.compile(
    rf"^(?:{_QUIEN}\s+me\s+deben?|(?:ver|mis|lista(?:r)?|lista\s+de)\s+(?:mis\s+)?deudas|deudas|pendientes)$"
)
PRIORITIZE_RE = re.compile(
    rf"^(?:a\s+{_QUIEN}\s+(?:le\s+)?cobro(?:\s+primero)?|{_QUIEN}\s+(?:me\s+)?paga\s+primero|"
    r"prioriza(?:r)?|prioridad(?:es)?)$"
)
SAVE_PHONE_RE = re.compile(
    r"^(?:guarda(?:r)?|agrega(?:r)?|registra(?:r)?)\s+(?:el\s+)?"
    r"(?:tel(?:[eé]fono)?|n[uú]mero|cel(?:ular)?|whats(?:app)?)\.?\s+de\s+"
    r"(?P<name>[^\d+]+?)\s*:?\s*(?P<phone>\+?[\d][\d\s\-().]{6,})$"
)
REMIND_RE = re.compile(
    r"^(?:recu[eé]rda(?:le)?|recordarle|c[oó]bra(?:le)?|m[aá]nda(?:le)?\s+(?:un\s+)?recordatorio)"
    r"\s+a\s+(?P<name>.+?)"
    r"(?:\s+(?:en\s+tono\s+|tono\s+|de\s+forma\s+|de\s+manera\s+)?(?P<tone>amable|firme|formal))?$"
)
REMIND_BARE_RE = re.compile(r"^(?:recu[eé]rdale|recordatorio|mandar\s+recordatorio|cobrar)$")
MARK_PAID_RES = (
    re.compile(r"^(?P<name>.+?)\s+ya\s+(?:me\s+)?pag[oó]$"),
    re.compile(r"^(?:ya\s+)?pag[oó]\s+(?P<name>.+)$"),
    re.compile(r"^marca(?:r)?\s+(?:como\s+)?pagad[oa]s?\s+(?:a\s+)?(?P<name>.+)$"),
)
ADD_DEBT_RE = re.compile(r"^(?:(?P<name>.+?)\s+)?(?:me\s+debe|me\s+deben|qued[oó]\s+a\s+deber)\b(?P<rest>.*)$")
PRICING_RE = re.compile(r"^(?:precios?|planes|tarifas?|costos?|cu[aá]nto\s+cuesta(?:\s+.*)?)$")
WANT_PRO_RE = re.compile(r"^(?:quiero\s+(?:el\s+)?(?:plan\s+)?pro|pro|activar\s+pro|prueba\s+gratis|quiero\s+probar(?:\s+pro)?)$")
PAY_RE = re.compile(r"^(?:quiero\s+pagar|suscribirme|pagar\s+pro|quiero\s+suscribirme)$")
MY_PLAN_RE = re.compile(r"^(?:mi\s+plan|mi\s+cuenta|estado\s+de\s+(?:mi\s+)?(?:plan|cuenta))$")
HELP_RE = re.compile(
    r"^(?:ayuda|help|men[uú]|hola|buenas|buenos\s+d[ií]as|buenas\s+tardes|inicio|start|hi|opciones|comandos)$"
)
SUPPORT_RE = re.compile(
    r"^(?:soporte|support|reportar(?:\s+(?:un\s+)?problema)?|tengo\s+un\s+problema|"
    r"hablar\s+con\s+(?:alguien|un\s+humano|soporte))$"
)

_NOT_A_CLIENT = {"quien", "quién", "quienes", "quiénes", "alguien", "nadie"}


def _match_list_debts(text: str) -> Optional[Intent]:
    return ListDebtsIntent() if LIST_DEBTS_RE.match(text) else None


def _match_prioritize(text: str) -> Optional[Intent]:
    return PrioritizeIntent() if PRIORITIZE_RE.match(text) else None


def _match_save_phone(text: str) -> Optional[Intent]:
    m = SAVE_PHONE_RE.match(text)
    if not m:
        return None
    name = clean_client_name(m.group("name"))
    if not name:
        return None
    return SavePhoneIntent(client_name=name, phone=normalize_phone(m.group("phone")))


def _match_remind(text: str) -> Optional[Intent]:
    m = REMIND_RE.match(text)
    if m:
        return RemindIntent(client_name=clean_client_name(m.group("name")), tone=m.group("tone"))
    if REMIND_BARE_RE.match(text):
        return RemindIntent()
    return None


def _match_mark_paid(text: str) -> Optional[Intent]:
    for pattern in MARK_PAID_RES:
        m = pattern.match(text)
        if m:
            name = clean_client_name(m.group("name"))
            if name:
                return MarkPaidIntent(client_name=name)
    return None


def _match_add_debt(text: str) -> Optional[Intent]:
    m = ADD_DEBT_RE.match(text)
    if not m:
        return None

    raw_name = (m.group("name") or "").strip()
    if raw_name in _NOT_A_CLIENT:
        return None

    rest = m.group("rest") or ""
    # "desde el 3 de mayo" must not be read as the amount
    amount_part = re.split(r"\bdesde\b", rest, maxsplit=1)[0]

    return AddDebtIntent(
        client_name=clean_client_name(raw_name) or "Cliente",
        amount=parse_amount(amount_part),
        since_text=parse_since(rest),
    )


def _simple(pattern: "re.Pattern", factory: Callable[[], Intent]) -> Callable[[str], Optional[Intent]]:
    def matcher(text: str) -> Optional[Intent]:
        return factory() if pattern.match(text) else None
    return matcher


def _match_cancel(text: str) -> Optional[Intent]:
    return CancelIntent() if text in CANCEL_WORDS else None


# Precedence order
MATCHERS: List[Tuple[str, Callable[[str], Optional[Intent]]]] = [
    ("list_debts", _match_list_debts),
    ("prioritize", _match_prioritize),
    ("save_phone", _match_save_phone),
    ("remind", _match_remind),
    ("mark_paid", _match_mark_paid),
    ("add_debt", _match_add_debt),
    ("pricing", _simple(PRICING_RE, PricingIntent)),
    ("want_pro", _simple(WANT_PRO_RE, WantProIntent)),
    ("pay", _simple(PAY_RE, PayIntent)),
    ("my_plan", _simple(MY_PLAN_RE, MyPlanIntent)),
    ("help", _simple(HELP_RE, HelpIntent)),
    ("support", _simple(SUPPORT_RE, SupportIntent)),
    ("cancel", _match_cancel),
]


def route(text: str) -> Optional[Intent]:
    """
    Runs the matchers in order over the prepared text.

    Args:
        text: Raw user message

    Returns:
        First matching intent (source="local"), or None
    """
    prepared = prepare_text(text)
    if not prepared:
        return None

    for _name, matcher in MATCHERS:
        intent = matcher(prepared)
        if intent is not None:
            return intent

    return None
