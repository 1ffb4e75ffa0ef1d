"""
app/services/intent_service.py

Purpose: Intent resolution pipeline

1. Hard guard: the exact payment keyword always means "pay"
2. Local regex router
3. OpenAI fallback, validated against an allow-list of intents

Every result carries its source; "unknown" results are sampled into
intent_misses for product metrics.
"""

from typing import Any, Dict, Optional, Protocol

from pymongo.errors import PyMongoError

from app.core.config import settings
from app.core.logging import get_logger
from app.db.mongo import get_intent_misses_collection
from app.flow.router import route
from app.schemas.intents import Intent, PayIntent, UnknownIntent, parse_intent
from utils.time_utils import utcnow
from utils.validation_utils import clean_client_name, correct_thousands, prepare_text

logger = get_logger(__name__)

# The fallback may only produce these. Payment, upgrades, cancel and
# phone edits are reachable through exact commands only.
NLP_ALLOWED_INTENTS = {
    "add_debt",
    "list_debts",
    "prioritize",
    "remind",
    "mark_paid",
    "pricing",
    "support",
    "help",
    "unknown",
}

_TONES = {"amable", "firme", "formal"}


class IntentParser(Protocol):
    async def parse(self, text: str) -> Optional[Dict[str, Any]]:
        ...


class IntentResolver:
    """
    Resolves raw text into one Intent variant. Never raises.

    Args:
        parser: Fallback parser (OpenAIIntentParser in production)
        pay_keyword: Literal that is always routed to payment
        record_misses: Store unknown samples in intent_misses
    """

    def __init__(
        self,
        parser: Optional[IntentParser] = None,
        pay_keyword: str = settings.PAY_KEYWORD,
        record_misses: bool = True
    ):
        self.parser = parser
        self.pay_keyword = prepare_text(pay_keyword)
        self.record_misses = record_misses

    def guard(self, text: str) -> Optional[Intent]:
        if prepare_text(text) == self.pay_keyword:
            return PayIntent(source="guard")
        return None

    def resolve_local(self, text: str) -> Optional[Intent]:
        """Guard plus local router. No I/O."""
        return self.guard(text) or route(text)

    def looks_like_command(self, text: str) -> bool:
        """
        True when the text matches a known command. Used by flows with a
        fixed vocabulary to decide whether to abort or re-prompt.
        """
        intent = self.resolve_local(text)
        return intent is not None and intent.intent != "cancel"

    def _from_nlp(self, payload: Dict[str, Any], text: str) -> Intent:
        name = payload.get("intent")
        if not isinstance(name, str) or name not in NLP_ALLOWED_INTENTS:
            return UnknownIntent(source="nlp", reason=f"disallowed_intent: {name}")

        candidate: Dict[str, Any] = {"intent": name, "source": "nlp"}

        if name == "add_debt":
            amount = payload.get("amount_due")
            if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
                amount = None
            candidate["amount"] = correct_thousands(amount, text)
            candidate["client_name"] = clean_client_name(payload.get("client_name")) or "Cliente"
            since = payload.get("since_text")
            candidate["since_text"] = since if isinstance(since, str) and since.strip() else None

        elif name == "remind":
            candidate["client_name"] = clean_client_name(payload.get("client_name"))
            tone = payload.get("tone")
            candidate["tone"] = tone if isinstance(tone, str) and tone in _TONES else None

        elif name == "mark_paid":
            client = clean_client_name(payload.get("client_name"))
            if not client:
                return UnknownIntent(source="nlp", reason="mark_paid_without_client")
            candidate["client_name"] = client

        elif name == "unknown":
            candidate["reason"] = "nlp_unknown"

        return parse_intent(candidate)

    async def _record_miss(self, text: str, intent: Intent) -> None:
        logger.info(f"Unresolved message ({intent.reason})")
        if not self.record_misses:
            return
        try:
            await get_intent_misses_collection().insert_one({
                "text": text[:500],
                "source": intent.source,
                "reason": intent.reason,
                "created_at": utcnow(),
            })
        except (PyMongoError, RuntimeError) as e:
            logger.warning(f"Could not record intent miss: {e}")

    async def resolve(self, text: str) -> Intent:
        """
        Args:
            text: Raw user message

        Returns:
            Resolved intent with source guard / local / nlp / fallback
        """
        intent = self.resolve_local(text)
        if intent is not None:
            return intent

        payload = None
        if self.parser is not None:
            try:
                payload = await self.parser.parse(text)
            except Exception as e:
                # Parser contract is to return None, but a broken parser
                # must not take the turn down with it
                logger.error(f"Intent parser failed: {e}", exc_info=True)
                payload = None

        if payload is None:
            intent = UnknownIntent(source="fallback", reason="no_parse")
        else:
            try:
                intent = self._from_nlp(payload, text)
            except Exception as e:
                logger.warning(f"Malformed parser output: {e}")
                intent = UnknownIntent(source="nlp", reason="malformed")

        if intent.intent == "unknown":
            await self._record_miss(text, intent)

        return intent
