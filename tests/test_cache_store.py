import pytest

from app.services.billing.errors import CacheError
from app.services.cache import (
    MISSING,
    CacheStore,
    account_customer_key,
    customer_account_key,
    customer_snapshot_key,
    sync_lock_key,
)


def test_key_layout():
    assert customer_snapshot_key("cus_1") == "provider:customer:cus_1"
    assert customer_account_key("cus_1") == "provider:customer:cus_1:accountid"
    assert account_customer_key("a1") == "provider:accountid:a1:customer"
    assert sync_lock_key("cus_1") == "provider:lock:sync:cus_1"


def test_missing_is_a_falsy_singleton():
    assert not MISSING
    assert type(MISSING)() is MISSING
    assert repr(MISSING) == "MISSING"


def test_get_set(cache, fake_redis):
    assert cache.get("k") is MISSING

    cache.set("k", "v")
    assert cache.get("k") == "v"
    assert "k" not in fake_redis.ttls


def test_empty_string_is_a_value(cache):
    cache.set("k", "")
    assert cache.get("k") == ""


def test_transport_errors_become_cache_errors(cache, fake_redis):
    fake_redis.fail = True
    with pytest.raises(CacheError):
        cache.get("k")
    with pytest.raises(CacheError):
        cache.set("k", "v")
    with pytest.raises(CacheError):
        cache.ping()


def test_lock_passes_timeouts(cache, fake_redis):
    lock = cache.lock("provider:lock:sync:cus_1", timeout=60, blocking_timeout=15)

    assert lock.acquire() is True
    assert fake_redis.lock_requests == [
        {"name": "provider:lock:sync:cus_1", "timeout": 60, "blocking_timeout": 15}
    ]


def test_ping(cache):
    assert cache.ping() is True


def test_default_client_is_lazy():
    store = CacheStore()
    assert store._client is None
