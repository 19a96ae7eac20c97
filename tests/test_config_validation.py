"""Tests for configuration validation and health checks."""

from __future__ import annotations

import os
from unittest.mock import patch

from app.config import DEFAULT_WEBHOOK_EVENTS, Settings, validate_settings
from app.services.billing.errors import CacheError


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "database_url": "sqlite:///:memory:",
        "stripe_secret_key": "sk_test_abc",
        "stripe_webhook_secret": "whsec_abc",
        "stripe_webhook_events": ("payment_intent.succeeded",),
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


class TestValidateSettings:
    def test_no_warnings_when_configured(self) -> None:
        assert validate_settings(_settings()) == []

    def test_missing_secret_key(self) -> None:
        warnings = validate_settings(_settings(stripe_secret_key=""))
        assert any("STRIPE_SECRET_KEY is not set" in w for w in warnings)

    def test_unexpected_secret_key_prefix(self) -> None:
        warnings = validate_settings(_settings(stripe_secret_key="pk_test_abc"))
        assert any("does not look like" in w for w in warnings)

    def test_restricted_key_accepted(self) -> None:
        assert validate_settings(_settings(stripe_secret_key="rk_live_abc")) == []

    def test_missing_webhook_secret(self) -> None:
        warnings = validate_settings(_settings(stripe_webhook_secret=""))
        assert any("STRIPE_WEBHOOK_SECRET" in w for w in warnings)

    def test_empty_event_allow_list(self) -> None:
        warnings = validate_settings(_settings(stripe_webhook_events=()))
        assert any("STRIPE_WEBHOOK_EVENTS" in w for w in warnings)

    def test_localhost_database_in_production(self) -> None:
        s = _settings(database_url="postgresql+psycopg://u:p@localhost:5432/paysync")
        with patch.dict(os.environ, {"ENVIRONMENT": "production"}):
            warnings = validate_settings(s)
        assert any("localhost" in w for w in warnings)

    def test_localhost_database_outside_production(self) -> None:
        s = _settings(database_url="postgresql+psycopg://u:p@localhost:5432/paysync")
        with patch.dict(os.environ, {"ENVIRONMENT": "dev"}):
            assert validate_settings(s) == []


class TestWebhookEventSetting:
    def test_default_allow_list(self) -> None:
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("STRIPE_WEBHOOK_EVENTS", None)
            events = Settings().stripe_webhook_events
        assert events == tuple(DEFAULT_WEBHOOK_EVENTS.split(","))
        assert "customer.subscription.deleted" in events

    def test_allow_list_from_env(self) -> None:
        with patch.dict(
            os.environ,
            {"STRIPE_WEBHOOK_EVENTS": " payment_intent.succeeded , ,invoice.paid"},
        ):
            events = Settings().stripe_webhook_events
        assert events == ("payment_intent.succeeded", "invoice.paid")


class TestHealthCheck:
    def test_liveness_always_ok(self, client) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_readiness_reports_redis_outage(self, client) -> None:
        with patch("app.main.CacheStore") as store:
            store.return_value.ping.side_effect = CacheError()
            resp = client.get("/health/ready")
        assert resp.status_code == 503
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["checks"]["database"] == "ok"
        assert body["checks"]["redis"].startswith("error")

    def test_readiness_ok(self, client) -> None:
        with patch("app.main.CacheStore") as store:
            store.return_value.ping.return_value = True
            resp = client.get("/health/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"] == {
            "database": "ok",
            "redis": "ok",
            "stripe": "ok",
        }

    def test_metrics_endpoint(self, client) -> None:
        client.get("/health")
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "http_requests_total" in resp.text
        assert "billing_sync_runs_total" in resp.text
