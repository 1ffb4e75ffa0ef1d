"""
app/services/nlp_service.py

Purpose: Free-text intent parser backed by OpenAI

- Last resort after the local router
- Output is untrusted: returned as a raw dict for the resolver to validate
- Timeouts, API errors and malformed JSON all come back as None
"""

import asyncio
import json
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, OpenAIError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = """
Eres un parser para un asistente de cobranza por WhatsApp en México (micro/pyme informal).
Tu trabajo es convertir mensajes informales a un JSON ESTRICTO.

Reglas:
- Responde ÚNICAMENTE con JSON válido (sin markdown, sin texto extra).
- Si el usuario pide "¿Quién me debe?" -> intent="list_debts"
- Si el usuario describe una deuda ("Juan me debe 8500", "me deben 2k", "Pedro quedó a deber 300") -> intent="add_debt"
- Si el usuario pide "¿A quién cobro primero?" o similar -> intent="prioritize"
- Si el usuario pide recordar/cobrar ("Recuérdale a Juan mañana") -> intent="remind"
- Si el usuario dice que un cliente ya pagó -> intent="mark_paid"
- Si el usuario pregunta precios o planes -> intent="pricing"
- Si el usuario reporta un problema o pide hablar con alguien -> intent="support"
- Si el usuario pide ayuda -> intent="help"
- Si falta el monto en add_debt, deja amount_due = null
- Interpreta "2k" como 2000. Si no es claro, null.
- client_name: intenta extraer nombre corto ("Juan", "Juan Pérez"). Si no hay, null.
- since_text: extrae lo que sigue a "desde..." si existe.
- tone: si el usuario pide "amable/firme/formal", inclúyelo; si no, null.

Formato EXACTO:
{
  "intent": "add_debt|list_debts|prioritize|remind|mark_paid|pricing|support|help|unknown",
  "client_name": string|null,
  "amount_due": number|null,
  "since_text": string|null,
  "tone": "amable|firme|formal"|null
}
""".strip()


class OpenAIIntentParser:
    """
    Wraps one chat completion call per message.

    Args:
        api_key: OpenAI key; without one the parser always returns None
        model: Chat model
        timeout: Seconds before the call is abandoned
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout or settings.NLP_TIMEOUT_SECONDS
        self.client = AsyncOpenAI(api_key=api_key, max_retries=0) if api_key else None

    async def parse(self, text: str) -> Optional[Dict[str, Any]]:
        """
        Args:
            text: Raw user message

        Returns:
            Parsed JSON object, or None on any failure
        """
        if not self.client:
            return None

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": f"Mensaje: {text}"},
                    ],
                    temperature=0,
                    response_format={"type": "json_object"},
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"NLP parse timed out after {self.timeout}s")
            return None
        except OpenAIError as e:
            logger.error(f"OpenAI API error: {e}")
            return None

        content = (response.choices[0].message.content or "").strip() if response.choices else ""

        try:
            parsed = json.loads(content or "{}")
        except json.JSONDecodeError as e:
            logger.warning(f"NLP returned invalid JSON: {e}")
            return None

        if not isinstance(parsed, dict):
            logger.warning("NLP returned a non-object payload")
            return None

        return parsed
