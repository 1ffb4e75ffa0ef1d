"""Stripe webhook endpoint: signature, idempotency, effects."""

import time
from datetime import timedelta

import pytest

from app.core.config import settings
from app.db import mongo
from app.services import billing_events
from app.services.billing_service import BillingWebhookHandler
from app.services.usage_service import pro_source
from app.services.user_service import get_or_create_user, get_user_by_phone, set_billing_state
from utils.constants import PAYMENT_CONFIRMED_MESSAGE, SUBSCRIPTION_CANCELLED_MESSAGE
from utils.time_utils import utcnow
from tests.conftest import OWNER, STRIPE_SECRET, stripe_event, stripe_signature

URL = f"{settings.API_PREFIX}/webhook/stripe"


@pytest.fixture(autouse=True)
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", STRIPE_SECRET)


def post_event(client, payload: str, signature: str = None):
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = signature if signature is not None else stripe_signature(payload)
    return client.post(URL, content=payload, headers=headers)


def checkout_completed(event_id="evt_checkout_1"):
    return stripe_event(
        "checkout.session.completed",
        {
            "id": "cs_test_1",
            "client_reference_id": OWNER,
            "customer": "cus_1",
            "subscription": "sub_1",
            "metadata": {"phone": OWNER, "cycle": "monthly"},
        },
        event_id=event_id,
    )


class RaisingSender:
    async def send_message(self, to_phone, message):
        raise ConnectionError("transport down")


async def test_bad_signature_rejected_without_claim(client, db):
    payload = checkout_completed()
    response = post_event(client, payload, signature="t=1,v1=deadbeef")

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_SIGNATURE"
    assert await billing_events.get_event("evt_checkout_1") is None


async def test_wrong_secret_rejected(client, db):
    payload = checkout_completed()
    response = post_event(client, payload, signature=stripe_signature(payload, secret="whsec_other"))
    assert response.status_code == 400


async def test_missing_signature_rejected(client, db):
    response = client.post(URL, content=checkout_completed())
    assert response.status_code == 400


async def test_checkout_completed_activates_pro(client, db, sender):
    await get_or_create_user(OWNER, "Lupe")

    response = post_event(client, checkout_completed())

    assert response.status_code == 200
    assert response.json() == {
        "received": True,
        "event_id": "evt_checkout_1",
        "event_type": "checkout.session.completed",
        "status": "processed",
    }

    user = await get_user_by_phone(OWNER)
    assert user["plan"] == "pro"
    assert user["subscription_status"] == "active"
    assert user["stripe_subscription_id"] == "sub_1"
    assert user["billing_cycle"] == "monthly"
    assert pro_source(user) == "billing"
    assert sender.sent == [(OWNER, PAYMENT_CONFIRMED_MESSAGE)]

    record = await billing_events.get_event("evt_checkout_1")
    assert record["processed_at"] is not None


async def test_replayed_event_has_no_second_effect(client, db, sender):
    await get_or_create_user(OWNER, "Lupe")
    payload = checkout_completed()

    first = post_event(client, payload)
    second = post_event(client, payload)

    assert first.json()["status"] == "processed"
    assert second.status_code == 200
    assert second.json()["status"] == "duplicate"
    assert len(sender.sent) == 1


async def test_unhandled_type_is_ignored_but_recorded(client, db):
    payload = stripe_event("customer.created", {"id": "cus_1"}, event_id="evt_other")
    response = post_event(client, payload)

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    record = await billing_events.get_event("evt_other")
    assert record["outcome"] == "ignored"


async def test_failed_effect_acks_and_stays_unfinished(client, db, services):
    await get_or_create_user(OWNER, "Lupe")
    services.billing_handler = BillingWebhookHandler(RaisingSender())
    payload = checkout_completed(event_id="evt_fail")

    response = post_event(client, payload)
    assert response.status_code == 200
    assert response.json()["status"] == "failed"

    record = await billing_events.get_event("evt_fail")
    assert record["processed_at"] is None
    assert "transport down" in record["error"]

    # Replays are skipped; the unfinished claim needs a manual replay
    assert post_event(client, payload).json()["status"] == "duplicate"


async def test_store_unavailable_returns_503(client, db, monkeypatch):
    monkeypatch.setattr(mongo, "_database", None)
    response = post_event(client, checkout_completed())

    assert response.status_code == 503
    assert response.json()["code"] == "STORE_UNAVAILABLE"


async def test_payment_failed_opens_grace(client, db, sender):
    await get_or_create_user(OWNER, "Lupe")
    await set_billing_state(
        OWNER, plan="pro", plan_source="billing", subscription_status="active",
        stripe_customer_id="cus_1", stripe_subscription_id="sub_1",
    )

    payload = stripe_event("invoice.payment_failed", {"id": "in_1", "customer": "cus_1", "subscription": "sub_1"})
    assert post_event(client, payload).json()["status"] == "processed"

    user = await get_user_by_phone(OWNER)
    assert user["subscription_status"] == "past_due"
    assert user["grace_until"] > utcnow() + timedelta(days=settings.BILLING_GRACE_DAYS - 1)
    assert pro_source(user) == "grace"
    assert len(sender.sent) == 1


async def test_subscription_update_resolves_user_by_subscription_id(client, db):
    await get_or_create_user(OWNER, "Lupe")
    await set_billing_state(OWNER, stripe_subscription_id="sub_1", subscription_status="active", plan="pro")

    period_end = int(time.time()) + 30 * 24 * 3600
    payload = stripe_event(
        "customer.subscription.updated",
        {"id": "sub_1", "customer": "cus_1", "status": "past_due", "current_period_end": period_end},
    )
    assert post_event(client, payload).json()["status"] == "processed"

    user = await get_user_by_phone(OWNER)
    assert user["subscription_status"] == "past_due"
    assert user["grace_until"] is not None


async def test_subscription_deleted_downgrades(client, db, sender):
    await get_or_create_user(OWNER, "Lupe")
    await set_billing_state(
        OWNER, plan="pro", plan_source="billing", subscription_status="active",
        stripe_subscription_id="sub_1",
    )

    payload = stripe_event("customer.subscription.deleted", {"id": "sub_1", "customer": "cus_1"})
    assert post_event(client, payload).json()["status"] == "processed"

    user = await get_user_by_phone(OWNER)
    assert user["plan"] == "free"
    assert user["subscription_status"] == "canceled"
    assert pro_source(user) is None
    assert sender.sent == [(OWNER, SUBSCRIPTION_CANCELLED_MESSAGE)]


async def test_checkout_for_unknown_user_is_ignored(client, db, sender):
    response = post_event(client, checkout_completed(event_id="evt_nobody"))
    assert response.json()["status"] == "ignored"
    assert sender.sent == []
