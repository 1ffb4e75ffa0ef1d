"""
app/db/mongo.py

Purpose: MongoDB connection setup

- One Motor client per process, pooled
- Collections: users, dedup_keys, billing_events, debts, clients,
  reminders, reminder_logs, support_tickets, intent_misses
- Startup retries with backoff; ping-based health check
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from typing import Optional
import asyncio
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None

CONNECT_ATTEMPTS = 3
FIRST_BACKOFF_SECONDS = 2


def _new_client() -> AsyncIOMotorClient:
    return AsyncIOMotorClient(
        settings.MONGODB_URL,
        maxPoolSize=50,
        minPoolSize=5,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=10000,
        # A slow store must cost one turn, not hang the webhook
        socketTimeoutMS=15000,
        retryWrites=True,
        retryReads=True,
    )


async def connect_to_mongo():
    """Opens the shared client at startup, retrying with exponential backoff."""
    global _client, _database

    if _client is not None:
        logger.warning("MongoDB client already initialized")
        return

    backoff = FIRST_BACKOFF_SECONDS
    for attempt in range(1, CONNECT_ATTEMPTS + 1):
        client = _new_client()
        try:
            await client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            client.close()
            logger.error(f"MongoDB ping failed ({attempt}/{CONNECT_ATTEMPTS}): {e}")
            if attempt == CONNECT_ATTEMPTS:
                logger.critical("Giving up on MongoDB")
                raise ConnectionError("Could not establish MongoDB connection") from e
            logger.info(f"Retrying in {backoff}s")
            await asyncio.sleep(backoff)
            backoff *= 2
            continue

        _client = client
        _database = client[settings.MONGODB_DB_NAME]
        logger.info(f"✅ Connected to MongoDB: {settings.MONGODB_DB_NAME}")
        return


async def close_mongo_connection():
    global _client, _database

    if _client is None:
        return
    _client.close()
    _client = None
    _database = None
    logger.info("MongoDB connection closed")


async def check_database_health() -> bool:
    """True when the server answers a ping."""
    if _client is None:
        logger.error("MongoDB client not initialized")
        return False
    try:
        await _client.admin.command("ping")
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
    return True


def get_database() -> AsyncIOMotorDatabase:
    """
    Raises:
        RuntimeError: before connect_to_mongo() ran (or after shutdown)
    """
    if _database is None:
        raise RuntimeError("Database not initialized. Call connect_to_mongo() during startup.")
    return _database

def get_users_collection():
    """
    Returns the users collection (one document per WhatsApp identity).

    Fields:
    - phone: str (primary key, E.164 without the whatsapp: prefix)
    - pending_action: str | None (in-progress flow, see app.flow.states)
    - pending_payload: dict | None (owned by pending_action)
    - plan: "free" | "pro"
    - plan_source: "trial" | "billing" | "admin" | None
    - plan_until: datetime | None
    - subscription_status, grace_until, stripe_customer_id, stripe_subscription_id
    - daily_count: int, daily_count_day: "YYYY-MM-DD"
    - seen_onboarding: bool, trial_used: bool
    - business_name, billing_cycle
    - created_at, updated_at
    """
    return get_database()["users"]


def get_dedup_collection():
    """Dedup records: key (unique), created_at, expires_at."""
    return get_database()["dedup_keys"]


def get_billing_events_collection():
    """Billing event locks: event_id (unique), type, claimed_at, processed_at."""
    return get_database()["billing_events"]


def get_debts_collection():
    return get_database()["debts"]


def get_clients_collection():
    return get_database()["clients"]


def get_reminders_collection():
    return get_database()["reminders"]


def get_reminder_logs_collection():
    return get_database()["reminder_logs"]


def get_support_tickets_collection():
    return get_database()["support_tickets"]


def get_intent_misses_collection():
    return get_database()["intent_misses"]
