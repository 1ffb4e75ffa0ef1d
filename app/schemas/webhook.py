"""
app/schemas/webhook.py

Purpose: WhatsApp webhook payload schemas and parsers

- Validates incoming Twilio messages
- Normalizes them into InboundMessage
- Ensures predictable request handling
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from utils.time_utils import utcnow
from utils.validation_utils import normalize_phone


class InboundMessage(BaseModel):
    """
    Normalized inbound chat event.

    message_id is the transport's delivery identifier when it sends one;
    dedup falls back to a content hash when it is missing.
    """
    phone: str = Field(..., description="Sender phone number in E.164 format")
    name: Optional[str] = Field(None, description="Sender display name")
    text: str = Field("", description="Message text content")
    message_id: Optional[str] = Field(None, description="Transport delivery identifier")
    received_at: datetime = Field(default_factory=utcnow)

    model_config = {
        "json_schema_extra": {
            "example": {
                "phone": "+5215512345678",
                "name": "Doña Lupe",
                "text": "¿Quién me debe?",
                "message_id": "SM1234567890abcdef",
            }
        }
    }


def parse_twilio_message(
    from_number: str,
    body: Optional[str],
    profile_name: Optional[str] = None,
    message_sid: Optional[str] = None
) -> InboundMessage:
    """
    Parses Twilio WhatsApp webhook payload

    Twilio format (form data):
    - From: whatsapp:+5215512345678
    - Body: message text
    - ProfileName: User's name
    - MessageSid: SM...
    """
    phone = normalize_phone(from_number) or from_number.replace("whatsapp:", "").strip()

    return InboundMessage(
        phone=phone,
        name=profile_name or None,
        text=(body or "").strip(),
        message_id=message_sid or None,
    )
