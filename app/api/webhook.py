"""
app/api/webhook.py

Purpose: WhatsApp webhook endpoint (Twilio)

- Receives incoming messages as Twilio form data
- Normalizes them into InboundMessage
- Passes control to the flow dispatcher
- Replies inline with TwiML (empty <Response/> for duplicate deliveries)
"""

from fastapi import APIRouter, Depends, Form
from fastapi.responses import Response
from typing import Optional

from app.core.logging import get_logger
from app.dependencies import Services, get_services
from app.flow.dispatcher import dispatch_message
from app.schemas.webhook import parse_twilio_message
from utils.whatsapp_utils import EMPTY_TWIML, create_twiml_message

logger = get_logger(__name__)
router = APIRouter()

TWIML_MEDIA_TYPE = "application/xml"


@router.post("/webhook/whatsapp")
async def whatsapp_webhook(
    From: Optional[str] = Form(None),
    Body: Optional[str] = Form(None),
    ProfileName: Optional[str] = Form(None),
    MessageSid: Optional[str] = Form(None),
    services: Services = Depends(get_services),
):
    """
    Twilio WhatsApp webhook.

    Always answers 200 with TwiML so Twilio does not retry a message
    that was already handled.
    """
    if not From:
        logger.warning("Webhook call without From, ignoring")
        return Response(content=EMPTY_TWIML, media_type=TWIML_MEDIA_TYPE)

    message = parse_twilio_message(
        from_number=From,
        body=Body,
        profile_name=ProfileName,
        message_sid=MessageSid,
    )

    logger.info(f"📱 Message from {message.phone}: {message.text[:50]}")

    reply = await dispatch_message(message, services)

    return Response(content=create_twiml_message(reply), media_type=TWIML_MEDIA_TYPE)


@router.get("/webhook/whatsapp")
async def webhook_verification():
    """
    Webhook verification endpoint (for platforms that require GET verification)
    """
    return {"status": "ok", "message": "Webhook endpoint is active"}
