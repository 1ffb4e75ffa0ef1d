"""
app/dependencies.py

Purpose: Wiring of long-lived components

- One Services container per process (admission, resolver, meter,
  outbound sender, checkout, billing handler)
- get_services() is a FastAPI dependency so tests can override it
"""

from dataclasses import dataclass
from typing import Optional

from app.core.config import settings
from app.services.billing_service import BillingWebhookHandler, MessageSender, StripeCheckout
from app.services.dedup_service import AdmissionService, DedupStore, TTLCache
from app.services.intent_service import IntentResolver
from app.services.nlp_service import OpenAIIntentParser
from app.services.rate_limiter import SlidingWindowRateLimiter
from app.services.twilio_service import twilio_service
from app.services.usage_service import UsageMeter


@dataclass
class Services:
    admission: AdmissionService
    resolver: IntentResolver
    meter: UsageMeter
    sender: MessageSender
    checkout: StripeCheckout
    billing_handler: BillingWebhookHandler


def build_services(
    sender: Optional[MessageSender] = None,
    parser: Optional[OpenAIIntentParser] = None,
    checkout: Optional[StripeCheckout] = None
) -> Services:
    """
    Builds the container from settings. Collaborators can be swapped in.
    """
    sender = sender or twilio_service

    admission = AdmissionService(
        store=DedupStore(),
        rate_limiter=SlidingWindowRateLimiter(
            settings.RATE_LIMIT_MESSAGES,
            settings.RATE_LIMIT_WINDOW_SECONDS,
        ),
        cache=TTLCache(),
        sid_retention_seconds=settings.DEDUP_SID_RETENTION_SECONDS,
        hash_window_seconds=settings.DEDUP_HASH_WINDOW_SECONDS,
    )

    return Services(
        admission=admission,
        resolver=IntentResolver(parser=parser or OpenAIIntentParser()),
        meter=UsageMeter(),
        sender=sender,
        checkout=checkout or StripeCheckout(),
        billing_handler=BillingWebhookHandler(sender),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services
