import json

import pytest

from app.services.billing.errors import CacheError, SerializationError
from app.services.billing.snapshots import SnapshotCache, build_snapshot
from app.services.cache import MISSING, customer_snapshot_key
from tests.mocks import make_customer, make_payment, make_subscription


@pytest.fixture
def snapshots(cache):
    return SnapshotCache(cache)


def _snapshot():
    return build_snapshot(
        make_customer("cus_1"),
        [make_subscription("sub_1", "cus_1")],
        [make_payment("pi_1", "cus_1")],
    )


def test_read_missing_returns_sentinel(snapshots):
    assert snapshots.read_snapshot("cus_1") is MISSING


def test_write_then_read(snapshots, fake_redis):
    snapshot = _snapshot()
    snapshots.write_snapshot("cus_1", snapshot)

    assert customer_snapshot_key("cus_1") == "provider:customer:cus_1"
    assert customer_snapshot_key("cus_1") in fake_redis.store
    assert not fake_redis.ttls
    assert snapshots.read_snapshot("cus_1") == snapshot


def test_write_replaces_previous_snapshot(snapshots):
    snapshots.write_snapshot("cus_1", _snapshot())
    replacement = build_snapshot(make_customer("cus_1"), [], [])
    snapshots.write_snapshot("cus_1", replacement)

    stored = snapshots.read_snapshot("cus_1")
    assert stored.subscriptions == []
    assert stored.payments == []


def test_undecodable_snapshot_raises(snapshots, fake_redis):
    fake_redis.store[customer_snapshot_key("cus_1")] = json.dumps({"customer": "nope"})

    with pytest.raises(SerializationError):
        snapshots.read_snapshot("cus_1")


def test_cache_outage_raises_cache_error(snapshots, fake_redis):
    fake_redis.fail = True

    with pytest.raises(CacheError):
        snapshots.read_snapshot("cus_1")
    with pytest.raises(CacheError):
        snapshots.write_snapshot("cus_1", _snapshot())


class TestBuildSnapshot:
    def test_projects_subscription_and_payment_views(self):
        snapshot = _snapshot()

        assert snapshot.customer.id == "cus_1"
        assert snapshot.customer.address.city == "London"
        assert snapshot.customer.invoice_settings.default_payment_method == "pm_1"
        [sub] = snapshot.subscriptions
        assert sub.subscription_id == "sub_1"
        assert sub.status == "active"
        assert sub.price_id == "price_basic"
        assert sub.payment_method.brand == "visa"
        assert sub.payment_method.last4 == "4242"
        assert sub.current_period_end is not None
        [payment] = snapshot.payments
        assert payment.payment_id == "pi_1"
        assert payment.status == "succeeded"
        assert payment.amount == 2000

    def test_each_subscription_keeps_its_own_payment_method(self):
        snapshot = build_snapshot(
            make_customer("cus_1"),
            [
                make_subscription("sub_1", "cus_1", card={"brand": "visa", "last4": "4242"}),
                make_subscription("sub_2", "cus_1", card={"brand": "amex", "last4": "0005"}),
            ],
            [],
        )

        assert [s.payment_method.last4 for s in snapshot.subscriptions] == ["4242", "0005"]

    def test_unexpanded_payment_method_has_no_summary(self):
        sub = make_subscription("sub_1", "cus_1")
        sub["default_payment_method"] = "pm_1"

        snapshot = build_snapshot(make_customer("cus_1"), [sub], [])

        assert snapshot.subscriptions[0].payment_method is None

    def test_period_end_read_from_first_item(self):
        sub = make_subscription("sub_1", "cus_1")
        end = sub.pop("current_period_end")
        sub.pop("current_period_start")
        sub["items"]["data"][0]["current_period_end"] = end

        snapshot = build_snapshot(make_customer("cus_1"), [sub], [])

        assert int(snapshot.subscriptions[0].current_period_end.timestamp()) == end

    def test_discount_is_summarized(self):
        customer = make_customer(
            "cus_1",
            discount={"id": "di_1", "coupon": {"id": "SPRING", "percent_off": 25.0}, "start": 1},
        )

        snapshot = build_snapshot(customer, [], [])

        assert snapshot.customer.discount.coupon_id == "SPRING"
        assert snapshot.customer.discount.percent_off == 25.0

    def test_missing_ids_raise_serialization_error(self):
        with pytest.raises(SerializationError):
            build_snapshot(make_customer("cus_1"), [{"status": "active"}], [])
