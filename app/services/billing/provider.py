"""Stripe client used by the sync engine.

The client is built from an explicit ``ProviderConfig``; nothing here touches
``stripe.api_key`` so several configurations can coexist in one process.
All results are returned as plain dicts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import stripe

from app.config import Settings, settings
from app.services.billing.errors import NotFoundError, ProviderError

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


@dataclass(frozen=True)
class ProviderConfig:
    api_key: str
    api_version: str | None = None
    timeout_seconds: int = 20
    max_network_retries: int = 2

    @classmethod
    def from_settings(cls, s: Settings = settings) -> ProviderConfig:
        return cls(
            api_key=s.stripe_secret_key,
            api_version=s.stripe_api_version,
            timeout_seconds=s.stripe_timeout_seconds,
            max_network_retries=s.stripe_max_network_retries,
        )


class ProviderClient(Protocol):
    def get_customer(self, customer_id: str) -> dict[str, Any]: ...

    def list_subscriptions(self, customer_id: str) -> list[dict[str, Any]]: ...

    def list_payments(self, customer_id: str) -> list[dict[str, Any]]: ...

    def create_customer(self, email: str, account_id: str) -> dict[str, Any]: ...


def _as_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def customer_create_key(account_id: object) -> str:
    return f"customer-create-{account_id}"


class StripeProviderClient:
    def __init__(self, config: ProviderConfig, client: stripe.StripeClient | None = None):
        self.config = config
        self._client = client

    @property
    def client(self) -> stripe.StripeClient:
        if self._client is None:
            self._client = stripe.StripeClient(
                self.config.api_key,
                stripe_version=self.config.api_version,
                max_network_retries=self.config.max_network_retries,
                http_client=stripe.RequestsClient(
                    timeout=self.config.timeout_seconds
                ),
            )
        return self._client

    def _call(self, operation: str, customer_id: str | None, fn):
        try:
            return fn()
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                raise NotFoundError(
                    f"Provider has no customer {customer_id}",
                    details={"customer_id": customer_id},
                ) from exc
            logger.warning(
                "Stripe %s rejected: %s",
                operation,
                exc,
                extra={"customer_id": customer_id},
            )
            raise ProviderError(f"Stripe {operation} failed") from exc
        except stripe.StripeError as exc:
            logger.warning(
                "Stripe %s failed: %s",
                operation,
                exc,
                extra={"customer_id": customer_id},
            )
            raise ProviderError(f"Stripe {operation} failed") from exc

    def get_customer(self, customer_id: str) -> dict[str, Any]:
        customer = self._call(
            "customer retrieve",
            customer_id,
            lambda: self.client.v1.customers.retrieve(
                customer_id, params={"expand": ["tax"]}
            ),
        )
        return _as_dict(customer)

    def list_subscriptions(self, customer_id: str) -> list[dict[str, Any]]:
        def fetch():
            page = self.client.v1.subscriptions.list(
                params={
                    "customer": customer_id,
                    "status": "all",
                    "limit": PAGE_SIZE,
                    "expand": ["data.default_payment_method"],
                }
            )
            return [_as_dict(item) for item in page.auto_paging_iter()]

        return self._call("subscription list", customer_id, fetch)

    def list_payments(self, customer_id: str) -> list[dict[str, Any]]:
        def fetch():
            page = self.client.v1.payment_intents.list(
                params={
                    "customer": customer_id,
                    "limit": PAGE_SIZE,
                    "expand": ["data.payment_method"],
                }
            )
            return [_as_dict(item) for item in page.auto_paging_iter()]

        return self._call("payment intent list", customer_id, fetch)

    def create_customer(self, email: str, account_id: str) -> dict[str, Any]:
        """Create a customer tagged with its account.

        The idempotency key is per account, so a retried or overlapping create
        returns the customer Stripe already made instead of a second one.
        """
        customer = self._call(
            "customer create",
            None,
            lambda: self.client.v1.customers.create(
                params={"email": email, "metadata": {"account_id": str(account_id)}},
                options={"idempotency_key": customer_create_key(account_id)},
            ),
        )
        return _as_dict(customer)
