"""
app/services/twilio_service.py

Purpose: Outbound WhatsApp messages via the Twilio REST API

- Used for reminders to debtors, billing notifications and the daily digest
- Never raises: failures come back as {"success": False, "error": ...}
  so callers can turn them into a "try again" reply
"""

import httpx
from typing import Dict, Any, Optional
from app.core.config import settings
from app.core.logging import get_logger
from utils.whatsapp_utils import to_whatsapp_address

logger = get_logger(__name__)


class TwilioService:
    """Thin async client for the Twilio Messages endpoint."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        whatsapp_number: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token or settings.TWILIO_AUTH_TOKEN
        self.whatsapp_number = whatsapp_number or settings.TWILIO_WHATSAPP_NUMBER
        self.timeout = timeout or settings.TWILIO_SEND_TIMEOUT
        self.base_url = f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}"

    async def send_message(self, to_phone: str, message: str) -> Dict[str, Any]:
        """
        Sends one WhatsApp message.

        Args:
            to_phone: Recipient in E.164 (+5215512345678)
            message: Body text

        Returns:
            {"success": True, "message_sid": ..., "status": ...} or
            {"success": False, "error": ...}
        """
        if not self.is_configured():
            logger.error("Twilio is not configured, cannot send message")
            return _failure("Twilio not configured")

        to_address = to_whatsapp_address(to_phone)
        logger.info(f"📤 Sending WhatsApp message to {to_address}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/Messages.json",
                    data={"From": self.whatsapp_number, "To": to_address, "Body": message},
                    auth=(self.account_sid, self.auth_token),
                )
        except httpx.TimeoutException:
            logger.error("Twilio API timeout")
            return _failure("Twilio API timeout")
        except httpx.HTTPError as e:
            logger.error(f"Twilio request failed: {e}", exc_info=True)
            return _failure(str(e))

        if not response.is_success:
            logger.error(f"❌ Twilio API error: {response.status_code} - {response.text}")
            return _failure(f"Twilio API error: {response.status_code}")

        sent = response.json()
        logger.info(f"✅ Message sent: SID={sent.get('sid')}")
        return {"success": True, "message_sid": sent.get("sid"), "status": sent.get("status")}

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.whatsapp_number)


def _failure(error: str) -> Dict[str, Any]:
    return {"success": False, "error": error}


twilio_service = TwilioService()
