"""Pytest configuration and fixtures."""

import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime, timedelta

import pytest
from mongomock_motor import AsyncMongoMockClient

from app.db import mongo
from app.db.indexes import create_indexes
from app.dependencies import Services
from app.schemas.webhook import InboundMessage
from app.services.billing_service import BillingWebhookHandler
from app.services.dedup_service import AdmissionService, DedupStore, TTLCache
from app.services.intent_service import IntentResolver
from app.services.rate_limiter import SlidingWindowRateLimiter
from app.services.usage_service import UsageMeter
from utils.time_utils import utcnow

OWNER = "+5215511111111"
STRIPE_SECRET = "whsec_test_secret"


class FakeSender:
    """Records outbound messages instead of calling Twilio."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send_message(self, to_phone, message):
        self.sent.append((to_phone, message))
        if self.fail:
            return {"success": False, "error": "Twilio API error: 500"}
        return {"success": True, "message_sid": f"SM{len(self.sent)}"}


class FakeParser:
    """Stands in for the OpenAI parser."""

    def __init__(self, result=None, error: Exception = None):
        self.result = result
        self.error = error
        self.calls = []

    async def parse(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.result


class FakeCheckout:
    def __init__(self, url: str = "https://checkout.stripe.com/c/pay/cs_test_123"):
        self.url = url
        self.calls = []

    async def create_session(self, phone, cycle):
        self.calls.append((phone, cycle))
        return self.url


class FakeClock:
    """Drives both the monotonic clock and naive-UTC now() from one offset."""

    def __init__(self, start: datetime = None):
        # Anchored to the real clock so TTL indexes never see stale dates
        self.start = start or utcnow()
        self.offset = 0.0

    def monotonic(self) -> float:
        return 1000.0 + self.offset

    def utcnow(self) -> datetime:
        return self.start + timedelta(seconds=self.offset)

    def advance(self, seconds: float):
        self.offset += seconds


@pytest.fixture
async def db(monkeypatch):
    """In-memory Motor database patched into app.db.mongo."""
    client = AsyncMongoMockClient()
    database = client[f"cobraya_test_{uuid.uuid4().hex[:8]}"]
    monkeypatch.setattr(mongo, "_client", client)
    monkeypatch.setattr(mongo, "_database", database)
    await create_indexes()
    yield database


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def parser():
    return FakeParser(result={"intent": "unknown"})


@pytest.fixture
def checkout():
    return FakeCheckout()


@pytest.fixture
def services(db, sender, parser, checkout):
    admission = AdmissionService(
        store=DedupStore(),
        rate_limiter=SlidingWindowRateLimiter(max_events=1000, window_seconds=60),
        cache=TTLCache(),
    )
    return Services(
        admission=admission,
        resolver=IntentResolver(parser=parser),
        meter=UsageMeter(daily_limit=15, warn_at=3),
        sender=sender,
        checkout=checkout,
        billing_handler=BillingWebhookHandler(sender),
    )


@pytest.fixture
async def client(services):
    """Test client with the services container overridden (lifespan not run)."""
    from fastapi.testclient import TestClient
    from app.dependencies import get_services
    from app.main import app

    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_message(text: str, phone: str = OWNER, message_id: str = None) -> InboundMessage:
    return InboundMessage(
        phone=phone,
        name="Doña Lupe",
        text=text,
        message_id=message_id or f"SM{uuid.uuid4().hex}",
    )


def stripe_signature(payload: str, secret: str = STRIPE_SECRET, timestamp: int = None) -> str:
    """Builds a Stripe-Signature header with the real v1 scheme."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def stripe_event(event_type: str, obj: dict, event_id: str = None) -> str:
    return json.dumps({
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })
