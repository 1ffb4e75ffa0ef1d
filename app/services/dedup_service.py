"""
app/services/dedup_service.py

Purpose: At-most-once admission of inbound chat deliveries

- Durable dedup keys in MongoDB (unique index is the lock)
  - sid:{MessageSid}  long retention, covers transport retries
  - hash:{sha1(phone + body)}  short window, covers retries with a new id
- In-process TTL cache mirroring both keys (fast path, not authoritative)
- Fail-open on store errors, with a monitoring signal and counter
- Rate limiting after durable dedup passes
"""

import hashlib
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Literal, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.logging import get_logger
from app.db.mongo import get_dedup_collection
from app.services.rate_limiter import SlidingWindowRateLimiter
from utils.time_utils import utcnow

logger = get_logger(__name__)

FAIL_OPEN_SIGNAL = "dedup_fail_open"


def sid_key(message_id: str) -> str:
    return f"sid:{message_id}"


def hash_key(phone: str, body: str) -> str:
    digest = hashlib.sha1(f"{phone}{body}".encode("utf-8")).hexdigest()
    return f"hash:{digest}"


class TTLCache:
    """
    Small in-process set of keys with per-key expiry.

    Only ever used as a shortcut in front of the durable store; a miss
    here says nothing about other instances.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_size: int = 50_000):
        self._clock = clock
        self._max_size = max_size
        self._expiry: Dict[str, float] = {}

    def contains(self, key: str) -> bool:
        expires = self._expiry.get(key)
        if expires is None:
            return False
        if expires <= self._clock():
            del self._expiry[key]
            return False
        return True

    def add(self, key: str, ttl_seconds: float) -> None:
        if len(self._expiry) >= self._max_size:
            self.sweep()
        self._expiry[key] = self._clock() + ttl_seconds

    def sweep(self) -> int:
        """Removes expired keys. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, exp in self._expiry.items() if exp <= now]
        for k in expired:
            del self._expiry[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._expiry)


ClaimOutcome = Literal["new", "duplicate", "fail_open"]


class DedupStore:
    """
    Durable dedup keys backed by the dedup_keys collection.

    The TTL index on expires_at garbage-collects records, but Mongo's TTL
    monitor only runs about once a minute, so an expired record that is
    still physically present is reclaimed in place.
    """

    def __init__(self, now: Callable = utcnow):
        self._now = now
        self.fail_open_count = 0

    async def claim(self, key: str, ttl_seconds: int) -> ClaimOutcome:
        """
        Claims a key for ttl_seconds.

        Returns:
            "new" if this caller owns the key now, "duplicate" if another
            delivery already claimed it, "fail_open" if the store errored
            (caller admits the message anyway)
        """
        now = self._now()
        expires_at = now + timedelta(seconds=ttl_seconds)

        try:
            collection = get_dedup_collection()
            try:
                await collection.insert_one({
                    "key": key,
                    "created_at": now,
                    "expires_at": expires_at,
                })
                return "new"
            except DuplicateKeyError:
                pass

            reclaimed = await collection.find_one_and_update(
                {"key": key, "expires_at": {"$lte": now}},
                {"$set": {"created_at": now, "expires_at": expires_at}},
                return_document=ReturnDocument.AFTER,
            )
            return "new" if reclaimed else "duplicate"

        except (PyMongoError, RuntimeError) as e:
            self.fail_open_count += 1
            logger.warning(
                f"Dedup store unavailable, admitting message: {e}",
                extra={"signal": FAIL_OPEN_SIGNAL, "dedup_key": key}
            )
            return "fail_open"


@dataclass
class Admission:
    admitted: bool
    reason: Literal["new", "duplicate", "rate_limited"]


class AdmissionService:
    """
    Decides whether an inbound delivery gets processed.

    Order: local cache, durable sid key, durable hash key, rate limiter.
    Duplicates get no reply; rate-limited deliveries get a throttle reply.
    """

    def __init__(
        self,
        store: DedupStore,
        rate_limiter: SlidingWindowRateLimiter,
        cache: Optional[TTLCache] = None,
        sid_retention_seconds: int = 48 * 3600,
        hash_window_seconds: int = 10,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self.cache = cache or TTLCache()
        self.sid_retention_seconds = sid_retention_seconds
        self.hash_window_seconds = hash_window_seconds
        self.stats = {"admitted": 0, "duplicate": 0, "rate_limited": 0}

    async def _check(self, key: str, ttl_seconds: int) -> bool:
        if self.cache.contains(key):
            return False
        outcome = await self.store.claim(key, ttl_seconds)
        if outcome == "duplicate":
            self.cache.add(key, ttl_seconds)
            return False
        self.cache.add(key, ttl_seconds)
        return True

    async def admit(self, phone: str, message_id: Optional[str], body: str) -> Admission:
        """
        Args:
            phone: Sender identity
            message_id: Transport delivery id, when present
            body: Raw message text

        Returns:
            Admission with reason new / duplicate / rate_limited
        """
        if message_id and not await self._check(sid_key(message_id), self.sid_retention_seconds):
            logger.info("Duplicate delivery (sid)")
            self.stats["duplicate"] += 1
            return Admission(False, "duplicate")

        if not await self._check(hash_key(phone, body or ""), self.hash_window_seconds):
            logger.info("Duplicate delivery (content hash)")
            self.stats["duplicate"] += 1
            return Admission(False, "duplicate")

        if not self.rate_limiter.hit(phone):
            self.stats["rate_limited"] += 1
            return Admission(False, "rate_limited")

        self.stats["admitted"] += 1
        return Admission(True, "new")

    def sweep(self) -> Dict[str, int]:
        """Sweeps both in-process maps."""
        return {
            "cache": self.cache.sweep(),
            "rate_limiter": self.rate_limiter.sweep(),
        }

    def snapshot(self) -> Dict[str, int]:
        """Counters for /health."""
        return {
            **self.stats,
            "fail_open": self.store.fail_open_count,
            "cache_size": len(self.cache),
            "tracked_identities": len(self.rate_limiter),
        }
