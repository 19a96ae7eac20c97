import pytest
from sqlalchemy import func, select

from app.models.billing import PaymentRecord, SubscriptionRecord
from app.services.billing.errors import (
    NotFoundError,
    PersistenceError,
    ProviderError,
    SyncInProgressError,
    UnresolvedAccountError,
)
from app.services.billing.reconciler import PersistenceReconciler
from app.services.billing.synchronizer import StateSynchronizer
from app.services.cache import customer_snapshot_key, sync_lock_key
from tests.mocks import make_payment, make_subscription


class FailingReconciler(PersistenceReconciler):
    """Fails the Nth payment upsert."""

    def __init__(self, fail_on: int):
        self.fail_on = fail_on
        self.payment_calls = 0

    def upsert_payment(self, db, record):
        self.payment_calls += 1
        if self.payment_calls == self.fail_on:
            raise PersistenceError("payment upsert failed")
        super().upsert_payment(db, record)


def _count(session_factory, model) -> int:
    with session_factory() as db:
        return db.scalar(select(func.count()).select_from(model))


@pytest.fixture
def seeded(provider):
    provider.subscriptions["cus_1"] = [make_subscription("sub_1", "cus_1", "active")]
    provider.payments["cus_1"] = [make_payment("pi_1", "cus_1", "succeeded")]
    return provider


def test_end_to_end_sync(billing, seeded, account, session_factory):
    snapshot = billing.synchronizer.sync("cus_1")

    with session_factory() as db:
        subscription = db.scalars(select(SubscriptionRecord)).one()
        payment = db.scalars(select(PaymentRecord)).one()
    assert subscription.provider_subscription_id == "sub_1"
    assert subscription.status == "active"
    assert subscription.account_id == account.id
    assert payment.provider_payment_id == "pi_1"
    assert payment.status == "succeeded"

    cached = billing.snapshots.read_snapshot("cus_1")
    assert [s.subscription_id for s in cached.subscriptions] == ["sub_1"]
    assert [s.status for s in cached.subscriptions] == ["active"]
    assert [p.payment_id for p in cached.payments] == ["pi_1"]
    assert [p.status for p in cached.payments] == ["succeeded"]
    assert cached == snapshot


def test_replay_updates_rows_in_place(billing, seeded, account, session_factory):
    billing.synchronizer.sync("cus_1")
    seeded.subscriptions["cus_1"] = [make_subscription("sub_1", "cus_1", "canceled")]

    billing.synchronizer.sync("cus_1")

    assert _count(session_factory, SubscriptionRecord) == 1
    assert _count(session_factory, PaymentRecord) == 1
    with session_factory() as db:
        assert db.scalars(select(SubscriptionRecord)).one().status == "canceled"
    cached = billing.snapshots.read_snapshot("cus_1")
    assert cached.subscriptions[0].status == "canceled"


def test_sync_is_idempotent(billing, seeded, account, session_factory):
    first = billing.synchronizer.sync("cus_1")
    second = billing.synchronizer.sync("cus_1")

    assert _count(session_factory, SubscriptionRecord) == 1
    assert _count(session_factory, PaymentRecord) == 1
    assert first.model_dump(exclude={"synced_at"}) == second.model_dump(
        exclude={"synced_at"}
    )


def test_nth_upsert_failure_rolls_back_and_skips_cache(
    billing, provider, account, session_factory, cache, fake_redis
):
    provider.subscriptions["cus_1"] = [make_subscription("sub_1", "cus_1")]
    provider.payments["cus_1"] = [
        make_payment("pi_1", "cus_1"),
        make_payment("pi_2", "cus_1"),
        make_payment("pi_3", "cus_1"),
    ]
    synchronizer = StateSynchronizer(
        provider,
        billing.identity,
        FailingReconciler(fail_on=3),
        billing.snapshots,
        session_factory,
        locks=cache,
    )

    with pytest.raises(PersistenceError):
        synchronizer.sync("cus_1")

    assert _count(session_factory, SubscriptionRecord) == 0
    assert _count(session_factory, PaymentRecord) == 0
    assert customer_snapshot_key("cus_1") not in fake_redis.store
    assert sync_lock_key("cus_1") not in fake_redis.held_locks


def test_unmapped_customer_is_unresolved(billing, provider, session_factory, fake_redis):
    provider.add_customer("cus_orphan")
    provider.payments["cus_orphan"] = [make_payment("pi_9", "cus_orphan")]

    with pytest.raises(UnresolvedAccountError):
        billing.synchronizer.sync("cus_orphan")

    assert _count(session_factory, PaymentRecord) == 0
    assert customer_snapshot_key("cus_orphan") not in fake_redis.store


def test_provider_failure_propagates(billing, provider, account):
    provider.fail = True

    with pytest.raises(ProviderError):
        billing.synchronizer.sync("cus_1")


def test_unknown_provider_customer_is_not_found(billing, account):
    with pytest.raises(NotFoundError):
        billing.synchronizer.sync("cus_missing")


def test_cache_write_failure_after_commit_is_suppressed(
    billing, seeded, account, session_factory, fake_redis
):
    billing.identity.resolve_account_id("cus_1")
    fake_redis.fail_writes = True

    snapshot = billing.synchronizer.sync("cus_1")

    assert snapshot.subscriptions[0].subscription_id == "sub_1"
    assert _count(session_factory, SubscriptionRecord) == 1
    assert customer_snapshot_key("cus_1") not in fake_redis.store


def test_concurrent_sync_is_refused(billing, seeded, account, fake_redis, provider):
    fake_redis.held_locks.add(sync_lock_key("cus_1"))

    with pytest.raises(SyncInProgressError):
        billing.synchronizer.sync("cus_1")

    assert provider.count("get_customer") == 0


def test_lock_is_released_after_sync(billing, seeded, account, fake_redis):
    billing.synchronizer.sync("cus_1")

    assert fake_redis.held_locks == set()
    assert fake_redis.lock_requests[0]["name"] == "provider:lock:sync:cus_1"
