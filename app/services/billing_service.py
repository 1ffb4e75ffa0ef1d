"""
app/services/billing_service.py

Purpose: Stripe billing integration

- Webhook signature verification (stripe library)
- Checkout session creation for the monthly / yearly plan
- Webhook processing behind the idempotent event gate
- Event effects: activate, mirror status, grace on failed payment, downgrade
"""

import asyncio
import json
from datetime import timedelta
from typing import Any, Dict, Optional, Protocol

import stripe

from app.core.config import settings
from app.core.exceptions import InvalidSignatureError
from app.core.logging import get_logger, LogContext
from app.schemas.response import WebhookAck
from app.services import billing_events
from app.services.user_service import (
    get_user_by_billing_ids,
    get_user_by_phone,
    set_billing_state,
)
from utils.constants import (
    PAYMENT_CONFIRMED_MESSAGE,
    PAYMENT_FAILED_MESSAGE,
    SUBSCRIPTION_CANCELLED_MESSAGE,
)
from utils.time_utils import format_date, from_unix, utcnow

logger = get_logger(__name__)

ACTIVE_STATUSES = {"active", "trialing"}
DEGRADED_STATUSES = {"past_due", "unpaid"}
ENDED_STATUSES = {"canceled", "incomplete_expired"}


class MessageSender(Protocol):
    async def send_message(self, to_phone: str, message: str) -> Dict[str, Any]:
        ...


def verify_webhook(payload: bytes, sig_header: Optional[str], secret: Optional[str] = None) -> Dict[str, Any]:
    """
    Verifies the Stripe-Signature header and decodes the event.

    Raises:
        InvalidSignatureError: On a missing/invalid signature or a body
                               that is not a JSON object
    """
    secret = secret or settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured, rejecting webhook")
        raise InvalidSignatureError("Webhook secret not configured")
    if not sig_header:
        raise InvalidSignatureError("Missing Stripe-Signature header")

    try:
        text = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            text, sig_header, secret, settings.STRIPE_WEBHOOK_TOLERANCE
        )
        event = json.loads(text)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Invalid Stripe signature: {e}")
        raise InvalidSignatureError() from e
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Invalid Stripe payload: {e}")
        raise InvalidSignatureError("Invalid payload") from e

    if not isinstance(event, dict):
        raise InvalidSignatureError("Invalid payload")

    return event


class StripeCheckout:
    """Creates hosted Checkout sessions for the Pro subscription."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY

    def _price_for(self, cycle: str) -> Optional[str]:
        return settings.STRIPE_PRICE_YEARLY if cycle == "yearly" else settings.STRIPE_PRICE_MONTHLY

    async def create_session(self, phone: str, cycle: str) -> Optional[str]:
        """
        Args:
            phone: Buyer phone; echoed back on checkout.session.completed
            cycle: "monthly" or "yearly"

        Returns:
            Hosted checkout URL, or None if Stripe is not configured or failed
        """
        price_id = self._price_for(cycle)
        if not self.api_key or not price_id:
            logger.error(f"Stripe checkout not configured for cycle {cycle}")
            return None

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self.api_key,
                mode="subscription",
                line_items=[{"price": price_id, "quantity": 1}],
                client_reference_id=phone,
                metadata={"phone": phone, "cycle": cycle},
                subscription_data={"metadata": {"phone": phone, "cycle": cycle}},
                success_url=settings.CHECKOUT_SUCCESS_URL,
                cancel_url=settings.CHECKOUT_CANCEL_URL,
            )
        except stripe.StripeError as e:
            logger.error(f"Error creating checkout session: {e}")
            return None

        logger.info(f"Checkout session created ({cycle})")
        return session.url


def _subscription_period_end(subscription: Dict[str, Any]):
    ts = subscription.get("current_period_end")
    if ts is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            ts = items[0].get("current_period_end")
    return from_unix(ts)


def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    if invoice.get("subscription"):
        return invoice["subscription"]
    details = ((invoice.get("parent") or {}).get("subscription_details") or {})
    return details.get("subscription")


class BillingWebhookHandler:
    """
    Applies Stripe events to user records.

    Every handler returns "processed" or "ignored"; anything raised is
    treated by the caller as a failed effect.
    """

    def __init__(self, sender: MessageSender, grace_days: int = settings.BILLING_GRACE_DAYS):
        self.sender = sender
        self.grace_days = grace_days

    async def _notify(self, phone: str, text: str) -> None:
        result = await self.sender.send_message(phone, text)
        if not result.get("success"):
            logger.warning(f"Billing notification not delivered: {result.get('error')}")

    async def _find_user(
        self,
        subscription_id: Optional[str],
        customer_id: Optional[str],
        metadata: Optional[Dict[str, Any]]
    ) -> Optional[Dict[str, Any]]:
        user = await get_user_by_billing_ids(subscription_id, customer_id)
        if user is None and metadata and metadata.get("phone"):
            user = await get_user_by_phone(metadata["phone"])
        return user

    async def handle_event(self, event: Dict[str, Any]) -> str:
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}

        handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "invoice.payment_failed": self.handle_payment_failed,
            "invoice.payment_succeeded": self.handle_payment_succeeded,
        }

        handler = handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled event type: {event_type}")
            return "ignored"

        return await handler(obj)

    async def handle_checkout_completed(self, session: Dict[str, Any]) -> str:
        metadata = session.get("metadata") or {}
        phone = session.get("client_reference_id") or metadata.get("phone")
        user = await get_user_by_phone(phone) if phone else None
        if user is None:
            logger.warning("Checkout completed for unknown user")
            return "ignored"

        await set_billing_state(
            user["phone"],
            plan="pro",
            plan_source="billing",
            plan_until=None,
            subscription_status="active",
            grace_until=None,
            stripe_customer_id=session.get("customer"),
            stripe_subscription_id=session.get("subscription"),
            billing_cycle=metadata.get("cycle") or user.get("billing_cycle"),
        )
        logger.info("Pro activated from checkout")

        await self._notify(user["phone"], PAYMENT_CONFIRMED_MESSAGE)
        return "processed"

    async def handle_subscription_updated(self, subscription: Dict[str, Any]) -> str:
        user = await self._find_user(
            subscription.get("id"), subscription.get("customer"), subscription.get("metadata")
        )
        if user is None:
            logger.warning("Subscription update for unknown user")
            return "ignored"

        status = subscription.get("status")
        fields: Dict[str, Any] = {
            "subscription_status": status,
            "stripe_subscription_id": subscription.get("id"),
            "stripe_customer_id": subscription.get("customer"),
        }

        if status in ACTIVE_STATUSES:
            fields.update(
                plan="pro",
                plan_source="billing",
                plan_until=_subscription_period_end(subscription),
                grace_until=None,
            )
        elif status in DEGRADED_STATUSES:
            # Keep an existing grace window; do not extend it on every update
            if not user.get("grace_until"):
                fields["grace_until"] = utcnow() + timedelta(days=self.grace_days)
        elif status in ENDED_STATUSES:
            fields.update(plan="free", plan_source=None, plan_until=None, grace_until=None)

        await set_billing_state(user["phone"], **fields)
        logger.info(f"Subscription status mirrored: {status}")
        return "processed"

    async def handle_subscription_deleted(self, subscription: Dict[str, Any]) -> str:
        user = await self._find_user(
            subscription.get("id"), subscription.get("customer"), subscription.get("metadata")
        )
        if user is None:
            logger.warning("Subscription deletion for unknown user")
            return "ignored"

        await set_billing_state(
            user["phone"],
            plan="free",
            plan_source=None,
            plan_until=None,
            subscription_status="canceled",
            grace_until=None,
        )
        logger.info("Subscription ended, downgraded to free")

        await self._notify(user["phone"], SUBSCRIPTION_CANCELLED_MESSAGE)
        return "processed"

    async def handle_payment_failed(self, invoice: Dict[str, Any]) -> str:
        user = await self._find_user(_invoice_subscription_id(invoice), invoice.get("customer"), None)
        if user is None:
            logger.warning("Payment failure for unknown user")
            return "ignored"

        grace_until = user.get("grace_until") or utcnow() + timedelta(days=self.grace_days)
        await set_billing_state(
            user["phone"],
            subscription_status="past_due",
            grace_until=grace_until,
        )
        logger.info("Payment failed, grace window open")

        await self._notify(user["phone"], PAYMENT_FAILED_MESSAGE.format(until=format_date(grace_until)))
        return "processed"

    async def handle_payment_succeeded(self, invoice: Dict[str, Any]) -> str:
        user = await self._find_user(_invoice_subscription_id(invoice), invoice.get("customer"), None)
        if user is None:
            logger.info("Payment for unknown user (checkout not processed yet)")
            return "ignored"

        await set_billing_state(
            user["phone"],
            plan="pro",
            plan_source="billing",
            subscription_status="active",
            grace_until=None,
        )
        return "processed"


async def process_webhook(
    payload: bytes,
    sig_header: Optional[str],
    handler: BillingWebhookHandler
) -> WebhookAck:
    """
    Verify, claim, apply, mark done.

    Once the claim is written the answer is always a 2xx, even if the
    effect fails, so Stripe stops retrying an event already recorded.

    Raises:
        InvalidSignatureError: Bad signature (nothing claimed)
        StoreUnavailableError: Claim could not be written (Stripe retries)
    """
    event = verify_webhook(payload, sig_header)
    event_id = event.get("id")
    event_type = event.get("type") or "unknown"

    if not event_id:
        logger.warning("Verified Stripe event without id, ignoring")
        return WebhookAck(event_type=event_type, status="ignored")

    with LogContext(event_id=event_id, event_type=event_type):
        claim = await billing_events.acquire(event_id, event_type)
        if not claim.is_new:
            return WebhookAck(event_id=event_id, event_type=event_type, status="duplicate")

        try:
            outcome = await handler.handle_event(event)
        except Exception as e:
            # Claim stays unfinished; replay is manual
            logger.error(f"Billing effect failed: {e}", exc_info=True)
            await billing_events.record_failure(event_id, str(e))
            return WebhookAck(event_id=event_id, event_type=event_type, status="failed")

        await billing_events.mark_done(event_id, outcome)
        return WebhookAck(event_id=event_id, event_type=event_type, status=outcome)
