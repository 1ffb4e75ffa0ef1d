"""
Database initialization script

Run once (or after adding indexes) to create collections and indexes:
    python scripts/init_db.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, get_database
from app.db.indexes import create_indexes

setup_logging()
logger = get_logger("scripts.init_db")

COLLECTIONS = [
    "users",
    "dedup_keys",
    "billing_events",
    "debts",
    "clients",
    "reminders",
    "reminder_logs",
    "support_tickets",
    "intent_misses",
]


async def main():
    """Main initialization"""
    logger.info("=" * 60)
    logger.info("  CobraYa Database Setup")
    logger.info("=" * 60)

    await connect_to_mongo()
    try:
        await create_indexes()

        # ==================== VERIFICATION ====================
        logger.info("🔍 Verifying indexes...")
        db = get_database()
        for name in COLLECTIONS:
            indexes = await db[name].index_information()
            count = await db[name].count_documents({})
            names = ", ".join(i for i in indexes if i != "_id_")
            logger.info(f"  {name} ({count} docs): {names}")

        logger.info("✅ Database initialization complete!")
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main())
