"""Bidirectional account id <-> provider customer id index.

The cache holds both directions without expiry. The ``accounts`` table is the
fallback: a cache miss is answered from it and written back before returning.
"""
from __future__ import annotations

import logging
import uuid

from app.services.accounts import AccountDirectory
from app.services.billing.errors import CacheError, NotFoundError
from app.services.cache import (
    MISSING,
    CacheStore,
    account_customer_key,
    customer_account_key,
)
from app.services.common import require_uuid

logger = logging.getLogger(__name__)


class IdentityIndex:
    def __init__(self, cache: CacheStore, directory: AccountDirectory):
        self.cache = cache
        self.directory = directory

    def _cached(self, key: str) -> str | None:
        try:
            value = self.cache.get(key)
        except CacheError:
            logger.warning("Identity cache read failed, using accounts table: %s", key)
            return None
        if value is MISSING or not value:
            return None
        return value

    def _backfill(self, key: str, value: str) -> None:
        try:
            self.cache.set(key, value)
        except CacheError:
            logger.warning("Identity cache backfill failed: %s", key)

    def resolve_account_id(self, customer_id: str) -> uuid.UUID:
        key = customer_account_key(customer_id)
        cached = self._cached(key)
        if cached is not None:
            try:
                return uuid.UUID(cached)
            except ValueError:
                logger.warning(
                    "Ignoring malformed cached account id %r",
                    cached,
                    extra={"customer_id": customer_id},
                )
        account = self.directory.get_by_customer_id(customer_id)
        if account is None:
            raise NotFoundError(
                f"No account for customer {customer_id}",
                details={"customer_id": customer_id},
            )
        self._backfill(key, str(account.id))
        return account.id

    def resolve_customer_id(self, account_id: uuid.UUID | str) -> str:
        account_id = require_uuid(account_id)
        key = account_customer_key(account_id)
        cached = self._cached(key)
        if cached is not None:
            return cached
        account = self.directory.get(account_id)
        if account is None or not account.provider_customer_id:
            raise NotFoundError(
                f"No customer for account {account_id}",
                details={"account_id": str(account_id)},
            )
        self._backfill(key, account.provider_customer_id)
        return account.provider_customer_id

    def record_mapping(self, account_id: uuid.UUID | str, customer_id: str) -> None:
        """Write both cache directions. The accounts row is not touched."""
        account_id = require_uuid(account_id)
        self.cache.set(customer_account_key(customer_id), str(account_id))
        self.cache.set(account_customer_key(account_id), customer_id)
        logger.info(
            "Recorded identity mapping",
            extra={"account_id": str(account_id), "customer_id": customer_id},
        )
