"""Pull provider state for one customer and republish it locally.

A sync fetches everything from the provider, resolves the owning account,
upserts every subscription and payment in one transaction and, only after
that transaction commits, replaces the cached snapshot.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any

from pydantic import ValidationError
from redis.exceptions import LockError, RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import Settings, settings
from app.metrics import SYNC_LATENCY, SYNC_RECORDS, SYNC_RUNS
from app.schemas.billing import (
    CustomerSnapshot,
    PaymentRecordUpsert,
    SubscriptionRecordUpsert,
)
from app.services.billing.errors import (
    BillingError,
    CacheError,
    NotFoundError,
    PersistenceError,
    SerializationError,
    SyncInProgressError,
    UnresolvedAccountError,
)
from app.services.billing.identity import IdentityIndex
from app.services.billing.provider import ProviderClient
from app.services.billing.reconciler import PersistenceReconciler
from app.services.billing.snapshots import (
    SnapshotCache,
    build_snapshot,
    from_timestamp,
    subscription_period,
    subscription_price_id,
)
from app.services.cache import CacheStore, sync_lock_key

logger = logging.getLogger(__name__)


def payment_record(
    account_id: uuid.UUID, customer_id: str, intent: dict[str, Any]
) -> PaymentRecordUpsert:
    return PaymentRecordUpsert(
        account_id=account_id,
        provider_customer_id=customer_id,
        provider_payment_id=intent["id"],
        amount=intent.get("amount") or 0,
        currency=intent.get("currency") or "usd",
        status=intent["status"],
    )


def subscription_record(
    account_id: uuid.UUID, customer_id: str, subscription: dict[str, Any]
) -> SubscriptionRecordUpsert:
    start, end = subscription_period(subscription)
    return SubscriptionRecordUpsert(
        account_id=account_id,
        provider_customer_id=customer_id,
        provider_subscription_id=subscription["id"],
        price_id=subscription_price_id(subscription),
        status=subscription["status"],
        current_period_start=from_timestamp(start),
        current_period_end=from_timestamp(end),
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
    )


class StateSynchronizer:
    def __init__(
        self,
        provider: ProviderClient,
        identity: IdentityIndex,
        reconciler: PersistenceReconciler,
        snapshots: SnapshotCache,
        session_factory: sessionmaker[Session],
        locks: CacheStore | None = None,
        config: Settings = settings,
    ):
        self.provider = provider
        self.identity = identity
        self.reconciler = reconciler
        self.snapshots = snapshots
        self.session_factory = session_factory
        self.locks = locks
        self.config = config

    @contextmanager
    def _customer_lock(self, customer_id: str):
        if self.locks is None or not self.config.sync_lock_enabled:
            yield
            return
        lock = self.locks.lock(
            sync_lock_key(customer_id),
            timeout=self.config.sync_lock_timeout_seconds,
            blocking_timeout=self.config.sync_lock_blocking_timeout_seconds,
        )
        try:
            acquired = lock.acquire()
        except RedisError:
            acquired = None
        if acquired is None:
            # Syncs are idempotent; run unlocked rather than fail.
            logger.warning(
                "Sync lock unavailable, continuing without it",
                extra={"customer_id": customer_id},
            )
            yield
            return
        if not acquired:
            raise SyncInProgressError(
                f"Sync for {customer_id} is already running",
                details={"customer_id": customer_id},
            )
        try:
            yield
        finally:
            try:
                lock.release()
            except (LockError, RedisError):
                logger.warning(
                    "Sync lock expired before release",
                    extra={"customer_id": customer_id},
                )

    def sync(self, customer_id: str) -> CustomerSnapshot:
        """Reconcile one customer's provider state into the local stores.

        Raises ``UnresolvedAccountError`` when no account owns the customer,
        ``PersistenceError`` when the transaction fails (nothing committed,
        cache untouched) and ``ProviderError``/``NotFoundError`` from the
        fetch. A cache write failure after commit is logged only.
        """
        start = time.monotonic()
        outcome = "error"
        try:
            with self._customer_lock(customer_id):
                snapshot = self._sync(customer_id)
            outcome = "ok"
            return snapshot
        except BillingError as exc:
            outcome = exc.code
            raise
        finally:
            duration = time.monotonic() - start
            SYNC_RUNS.labels(outcome).inc()
            SYNC_LATENCY.observe(duration)
            logger.info(
                "customer_sync",
                extra={
                    "customer_id": customer_id,
                    "outcome": outcome,
                    "duration_ms": round(duration * 1000.0, 2),
                },
            )

    def _sync(self, customer_id: str) -> CustomerSnapshot:
        customer = self.provider.get_customer(customer_id)
        subscriptions = self.provider.list_subscriptions(customer_id)
        payments = self.provider.list_payments(customer_id)

        try:
            account_id = self.identity.resolve_account_id(customer_id)
        except NotFoundError as exc:
            raise UnresolvedAccountError(
                f"Customer {customer_id} has no owning account",
                details={"customer_id": customer_id},
            ) from exc

        try:
            subscription_records = [
                subscription_record(account_id, customer_id, sub)
                for sub in subscriptions
            ]
            payment_records = [
                payment_record(account_id, customer_id, intent) for intent in payments
            ]
        except (KeyError, ValidationError) as exc:
            raise SerializationError(
                f"Provider records for {customer_id} are incomplete",
                details={"customer_id": customer_id},
            ) from exc
        try:
            with self.session_factory() as db, db.begin():
                for record in subscription_records:
                    self.reconciler.upsert_subscription(db, record)
                for record in payment_records:
                    self.reconciler.upsert_payment(db, record)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Sync transaction for {customer_id} failed",
                details={"customer_id": customer_id},
            ) from exc
        SYNC_RECORDS.labels("subscription").inc(len(subscription_records))
        SYNC_RECORDS.labels("payment").inc(len(payment_records))

        # Relational state stays committed if the snapshot cannot be built.
        snapshot = build_snapshot(customer, subscriptions, payments)

        try:
            self.snapshots.write_snapshot(customer_id, snapshot)
        except CacheError:
            logger.warning(
                "Snapshot write failed after commit",
                extra={"customer_id": customer_id, "account_id": str(account_id)},
            )
        return snapshot
