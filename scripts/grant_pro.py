"""
Grant Pro access to a user (support goodwill, partners):
    python scripts/grant_pro.py +5215512345678 30
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection
from app.services.user_service import grant_plan
from utils.time_utils import format_date
from utils.validation_utils import normalize_phone

setup_logging()
logger = get_logger("scripts.grant_pro")


async def main(phone: str, days: int) -> int:
    normalized = normalize_phone(phone)
    if not normalized:
        logger.error(f"❌ Invalid phone number: {phone}")
        return 1

    await connect_to_mongo()
    try:
        until = await grant_plan(normalized, days, source="admin")
        if until is None:
            logger.error(f"❌ User not found: {normalized}")
            return 1
        logger.info(f"✅ {normalized} is Pro until {format_date(until)}")
        return 0
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Grant admin Pro access")
    parser.add_argument("phone", help="User phone (E.164 or 10-digit MX number)")
    parser.add_argument("days", type=int, nargs="?", default=30, help="Length of the grant in days")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.phone, args.days)))
