"""Assembly of the billing services.

Construction order is fixed and acyclic: the account directory has no billing
dependencies, the engine is built on top of it, and the account service is
built last from the finished engine.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from celery import Task
from sqlalchemy.orm import Session, sessionmaker

from app.config import Settings, settings
from app.services.accounts import AccountDirectory, Accounts
from app.services.billing.accessor import ReadThroughAccessor
from app.services.billing.dispatch import BackgroundSyncDispatcher
from app.services.billing.identity import IdentityIndex
from app.services.billing.provider import (
    ProviderClient,
    ProviderConfig,
    StripeProviderClient,
)
from app.services.billing.reconciler import PersistenceReconciler
from app.services.billing.snapshots import SnapshotCache
from app.services.billing.synchronizer import StateSynchronizer
from app.services.billing.webhooks import WebhookEventRouter
from app.services.cache import CacheStore


@dataclass(frozen=True)
class BillingServices:
    cache: CacheStore
    directory: AccountDirectory
    identity: IdentityIndex
    reconciler: PersistenceReconciler
    snapshots: SnapshotCache
    synchronizer: StateSynchronizer
    accessor: ReadThroughAccessor
    webhooks: WebhookEventRouter
    dispatcher: BackgroundSyncDispatcher
    accounts: Accounts


class BillingServicesBuilder:
    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        cache: CacheStore | None = None,
        provider: ProviderClient | None = None,
        sync_task: Task | None = None,
        config: Settings = settings,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.provider = provider
        self.sync_task = sync_task
        self.config = config

    def build(self) -> BillingServices:
        session_factory = self.session_factory
        if session_factory is None:
            from app.db import SessionLocal

            session_factory = SessionLocal
        cache = self.cache or CacheStore()
        provider = self.provider or StripeProviderClient(
            ProviderConfig.from_settings(self.config)
        )
        sync_task = self.sync_task
        if sync_task is None:
            from app.tasks.billing import sync_customer_state

            sync_task = sync_customer_state

        # Phase one: account lookups, no billing dependencies.
        directory = AccountDirectory(session_factory)

        # Phase two: the sync engine.
        identity = IdentityIndex(cache, directory)
        reconciler = PersistenceReconciler()
        snapshots = SnapshotCache(cache)
        synchronizer = StateSynchronizer(
            provider,
            identity,
            reconciler,
            snapshots,
            session_factory,
            locks=cache,
            config=self.config,
        )
        accessor = ReadThroughAccessor(snapshots, synchronizer)
        webhooks = WebhookEventRouter(
            synchronizer,
            secret=self.config.stripe_webhook_secret,
            allowed_events=self.config.stripe_webhook_events,
            session_factory=session_factory,
            tolerance=self.config.stripe_webhook_tolerance_seconds,
        )
        dispatcher = BackgroundSyncDispatcher(sync_task)

        # Phase three: the account service over the finished engine.
        accounts = Accounts(directory, identity, provider, accessor, dispatcher)

        return BillingServices(
            cache=cache,
            directory=directory,
            identity=identity,
            reconciler=reconciler,
            snapshots=snapshots,
            synchronizer=synchronizer,
            accessor=accessor,
            webhooks=webhooks,
            dispatcher=dispatcher,
            accounts=accounts,
        )


@lru_cache(maxsize=1)
def get_billing_services() -> BillingServices:
    return BillingServicesBuilder().build()
