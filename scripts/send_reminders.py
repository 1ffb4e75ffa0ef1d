"""
Daily collection digest - run once a day (cron / scheduled job):
    python scripts/send_reminders.py

Sends each business owner one WhatsApp summary of pending debts.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection
from app.db.indexes import create_indexes
from app.services.reminder_service import send_daily_digests
from app.services.twilio_service import twilio_service

setup_logging()
logger = get_logger("scripts.send_reminders")


async def main() -> int:
    if not twilio_service.is_configured():
        logger.error("❌ TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN must be set")
        return 1

    await connect_to_mongo()
    try:
        await create_indexes()
        stats = await send_daily_digests(twilio_service)
        logger.info(f"✅ Digest run complete. Sent: {stats['sent']}, failed: {stats['failed']}")
        return 0 if not stats["failed"] else 2
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
