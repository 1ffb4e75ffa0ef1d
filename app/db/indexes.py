"""
app/db/indexes.py

Purpose: Database index management

- Unique indexes that back dedup, billing event locks and identities
- Performance indexes for debt / reminder queries
- TTL indexes for automatic cleanup
"""

from pymongo import ASCENDING, DESCENDING

from app.db.mongo import (
    get_users_collection,
    get_dedup_collection,
    get_billing_events_collection,
    get_debts_collection,
    get_clients_collection,
    get_reminders_collection,
    get_reminder_logs_collection,
    get_support_tickets_collection,
    get_intent_misses_collection,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

INTENT_MISS_RETENTION_SECONDS = 30 * 24 * 3600


async def create_indexes():
    """
    Creates all necessary database indexes.
    This function is idempotent - safe to run multiple times.
    """
    try:
        logger.info("Creating database indexes...")

        # ==============================================
        # USERS
        # ==============================================
        users = get_users_collection()
        await users.create_index("phone", unique=True, name="phone_unique")
        await users.create_index("stripe_subscription_id", name="stripe_subscription_idx")
        await users.create_index("stripe_customer_id", name="stripe_customer_idx")

        # ==============================================
        # DEDUP KEYS
        # Uniqueness on key is the cross-instance dedup primitive.
        # ==============================================
        dedup = get_dedup_collection()
        await dedup.create_index("key", unique=True, name="dedup_key_unique")
        await dedup.create_index(
            "expires_at",
            expireAfterSeconds=0,  # Delete when expires_at is reached
            name="dedup_expiry_ttl_idx"
        )

        # ==============================================
        # BILLING EVENTS
        # Retained indefinitely for audit.
        # ==============================================
        events = get_billing_events_collection()
        await events.create_index("event_id", unique=True, name="event_id_unique")
        await events.create_index("processed_at", name="event_processed_idx")

        # ==============================================
        # DEBTS / CLIENTS
        # ==============================================
        debts = get_debts_collection()
        await debts.create_index(
            [("owner", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)],
            name="owner_status_created_idx"
        )
        await debts.create_index(
            [("owner", ASCENDING), ("client_key", ASCENDING)],
            name="owner_client_idx"
        )

        clients = get_clients_collection()
        await clients.create_index(
            [("owner", ASCENDING), ("name_key", ASCENDING)],
            unique=True,
            name="owner_client_unique"
        )

        # ==============================================
        # REMINDERS
        # ==============================================
        reminders = get_reminders_collection()
        await reminders.create_index(
            [("owner", ASCENDING), ("created_at", DESCENDING)],
            name="owner_reminders_idx"
        )

        reminder_logs = get_reminder_logs_collection()
        await reminder_logs.create_index(
            [("owner", ASCENDING), ("debt_id", ASCENDING), ("sent_at", DESCENDING)],
            name="owner_debt_sent_idx"
        )

        # ==============================================
        # SUPPORT / QUALITY
        # ==============================================
        tickets = get_support_tickets_collection()
        await tickets.create_index(
            [("phone", ASCENDING), ("created_at", DESCENDING)],
            name="ticket_phone_idx"
        )

        misses = get_intent_misses_collection()
        await misses.create_index(
            "created_at",
            expireAfterSeconds=INTENT_MISS_RETENTION_SECONDS,
            name="intent_miss_ttl_idx"
        )

        logger.info("✅ All database indexes created successfully")

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise


if __name__ == "__main__":
    """
    Run this script directly to create indexes manually.
    """
    import asyncio
    from app.db.mongo import connect_to_mongo, close_mongo_connection

    async def main():
        await connect_to_mongo()
        await create_indexes()
        await close_mongo_connection()

    asyncio.run(main())
