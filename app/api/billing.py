"""
app/api/billing.py

Purpose: Stripe webhook endpoint

- 400 on a bad signature (nothing claimed, no effects)
- 503 when the event claim cannot be written (Stripe retries)
- 200 otherwise, including duplicates and failed effects
"""

from fastapi import APIRouter, Depends, Header, Request

from app.core.logging import get_logger
from app.dependencies import Services, get_services
from app.schemas.response import WebhookAck
from app.services.billing_service import process_webhook

logger = get_logger(__name__)
router = APIRouter()


@router.post("/webhook/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    services: Services = Depends(get_services),
):
    payload = await request.body()
    ack = await process_webhook(payload, stripe_signature, services.billing_handler)
    logger.info(f"Stripe webhook {ack.event_type}: {ack.status}")
    return ack
