import os

# Configure the app for tests BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["OTEL_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.config import settings  # noqa: E402
from app.db import Base, SessionLocal, engine  # noqa: E402
from app.models import Account  # noqa: E402
from app.services.billing import container  # noqa: E402
from app.services.billing.container import BillingServicesBuilder  # noqa: E402
from app.services.cache import CacheStore  # noqa: E402
from app.tasks.billing import sync_customer_state  # noqa: E402
from tests.mocks import FakeProvider, FakeRedis  # noqa: E402


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def session_factory():
    return SessionLocal


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return CacheStore(fake_redis)


@pytest.fixture
def provider():
    provider = FakeProvider()
    provider.add_customer("cus_1")
    return provider


def _create_account(email: str, customer_id: str | None = None) -> Account:
    with SessionLocal() as db, db.begin():
        account = Account(email=email, provider_customer_id=customer_id)
        db.add(account)
    return account


@pytest.fixture
def account():
    return _create_account("ada@example.com", "cus_1")


@pytest.fixture
def unlinked_account():
    return _create_account("grace@example.com")


@pytest.fixture
def billing(cache, provider, monkeypatch):
    services = BillingServicesBuilder(
        session_factory=SessionLocal,
        cache=cache,
        provider=provider,
        sync_task=sync_customer_state,
        config=settings,
    ).build()
    # Celery runs eagerly in tests; the task must see the same services.
    monkeypatch.setattr(container, "get_billing_services", lambda: services)
    return services


@pytest.fixture
def client(billing):
    from app.api.deps import get_billing
    from app.main import app

    app.dependency_overrides[get_billing] = lambda: billing
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()

