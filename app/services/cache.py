"""Redis-backed key-value store for provider snapshots and identity keys.

All keys live under the ``provider:`` namespace. Values are stored without
expiry unless a TTL is passed; transport faults surface as ``CacheError``.
"""

import logging
from typing import Any, cast

import redis
from redis.lock import Lock

from app.config import settings
from app.services.billing.errors import CacheError

logger = logging.getLogger(__name__)

_redis_client: redis.Redis | None = None

KEY_PREFIX = "provider"


class _Missing:
    """Sentinel for a key that does not exist."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def get_redis() -> redis.Redis:
    """Return the process-wide Redis client, creating it on first use."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
        )
    return _redis_client


def customer_snapshot_key(customer_id: str) -> str:
    return f"{KEY_PREFIX}:customer:{customer_id}"


def customer_account_key(customer_id: str) -> str:
    return f"{KEY_PREFIX}:customer:{customer_id}:accountid"


def account_customer_key(account_id: object) -> str:
    return f"{KEY_PREFIX}:accountid:{account_id}:customer"


def sync_lock_key(customer_id: str) -> str:
    return f"{KEY_PREFIX}:lock:sync:{customer_id}"


class CacheStore:
    def __init__(self, client: redis.Redis | None = None):
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis()
        return self._client

    def get(self, key: str) -> str | Any:
        """Return the stored string, or ``MISSING`` when the key is absent."""
        try:
            value = cast(str | None, self.client.get(key))
        except redis.RedisError as exc:
            logger.warning("Cache get failed for %s: %s", key, exc)
            raise CacheError(f"Cache read failed for {key}") from exc
        if value is None:
            return MISSING
        return value

    def set(self, key: str, value: str) -> None:
        """Store ``value`` with no expiry."""
        try:
            self.client.set(key, value)
        except redis.RedisError as exc:
            logger.warning("Cache set failed for %s: %s", key, exc)
            raise CacheError(f"Cache write failed for {key}") from exc

    def lock(self, name: str, timeout: float, blocking_timeout: float) -> Lock:
        """Return a distributed lock; acquire it with ``with``."""
        return self.client.lock(
            name, timeout=timeout, blocking_timeout=blocking_timeout
        )

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as exc:
            raise CacheError("Cache ping failed") from exc
