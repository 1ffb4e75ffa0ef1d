"""
Integration setup check

Verifies Twilio / Stripe / OpenAI settings, prints the webhook URLs to
configure, and optionally sends a test WhatsApp message.

Usage:
    python scripts/check_setup.py --base-url https://abc.ngrok.app
    python scripts/check_setup.py --send-to +5215512345678
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load .env before settings are read
load_dotenv()

from app.core.config import settings
from app.services.twilio_service import twilio_service
from utils.validation_utils import normalize_phone

TEST_MESSAGE = "🧪 *Mensaje de prueba de CobraYa*\n\nSi te llegó, la integración con Twilio funciona ✅"


def _mark(ok: bool) -> str:
    return "✅" if ok else "❌"


def check_config() -> bool:
    print("=" * 60)
    print("  CobraYa configuration")
    print("=" * 60 + "\n")

    twilio_ok = twilio_service.is_configured()
    stripe_ok = bool(settings.STRIPE_SECRET_KEY and settings.STRIPE_PRICE_MONTHLY and settings.STRIPE_PRICE_YEARLY)
    webhook_ok = bool(settings.STRIPE_WEBHOOK_SECRET)

    print(f"Twilio credentials:     {_mark(twilio_ok)}")
    print(f"WhatsApp sender:        {settings.TWILIO_WHATSAPP_NUMBER}")
    print(f"Stripe key + prices:    {_mark(stripe_ok)}")
    print(f"Stripe webhook secret:  {_mark(webhook_ok)}")
    # The NLP fallback is optional; without it unmatched text is "unknown"
    print(f"OpenAI fallback:        {'✅' if settings.OPENAI_API_KEY else '⚪ disabled'}")
    print(f"Environment:            {settings.ENVIRONMENT}\n")

    return twilio_ok and stripe_ok and webhook_ok


def print_webhooks(base_url: str) -> None:
    base = base_url.rstrip("/") + settings.API_PREFIX
    print("Configure these endpoints:")
    print(f"  Twilio  'When a message comes in' (POST): {base}/webhook/whatsapp")
    print(f"  Stripe  webhook endpoint:                 {base}/webhook/stripe")
    print("  Stripe events: checkout.session.completed, customer.subscription.updated,")
    print("                 customer.subscription.deleted, invoice.payment_failed,")
    print("                 invoice.payment_succeeded\n")


async def send_test(raw_phone: str) -> bool:
    phone = normalize_phone(raw_phone)
    if not phone:
        print(f"❌ Invalid phone number: {raw_phone}")
        return False

    print(f"📤 Sending test message to {phone}...")
    result = await twilio_service.send_message(to_phone=phone, message=TEST_MESSAGE)

    if result["success"]:
        print(f"✅ Sent (SID {result.get('message_sid')}). Check WhatsApp!")
        return True

    print(f"❌ Failed: {result.get('error')}")
    return False


async def main(base_url: str, send_to: str = None) -> int:
    ok = check_config()
    print_webhooks(base_url)

    if send_to:
        if not twilio_service.is_configured():
            print("⚠️  Set TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN in .env first")
            return 1
        if not await send_test(send_to):
            return 1

    return 0 if ok else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Check CobraYa integration settings")
    parser.add_argument("--base-url", default="http://localhost:8000", help="Public URL of this server")
    parser.add_argument("--send-to", help="Send a test WhatsApp message to this number")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.base_url, args.send_to)))
