"""Denormalized per-customer snapshot stored in the cache.

One JSON document per customer under ``provider:customer:{id}``. Writes
replace the whole document and never expire.
"""
from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from app.db import utcnow
from app.metrics import SNAPSHOT_READS
from app.schemas.billing import (
    CustomerProfile,
    CustomerSnapshot,
    PaymentMethodSummary,
    PaymentView,
    SubscriptionView,
)
from app.services.billing.errors import SerializationError
from app.services.cache import MISSING, CacheStore, customer_snapshot_key

logger = logging.getLogger(__name__)


def from_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


def first_item(subscription: dict[str, Any]) -> dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def subscription_price_id(subscription: dict[str, Any]) -> str | None:
    price = first_item(subscription).get("price")
    if isinstance(price, dict):
        return price.get("id")
    return price


def subscription_period(subscription: dict[str, Any]) -> tuple[Any, Any]:
    """Period bounds live on the subscription in older API versions and on
    its first item in newer ones."""
    item = first_item(subscription)
    start = subscription.get("current_period_start") or item.get(
        "current_period_start"
    )
    end = subscription.get("current_period_end") or item.get("current_period_end")
    return start, end


def payment_method_summary(subscription: dict[str, Any]) -> PaymentMethodSummary | None:
    method = subscription.get("default_payment_method")
    if not isinstance(method, dict):
        return None
    card = method.get("card") or {}
    return PaymentMethodSummary(brand=card.get("brand"), last4=card.get("last4"))


def _profile(customer: dict[str, Any]) -> CustomerProfile:
    data = dict(customer)
    discount = data.get("discount")
    if isinstance(discount, dict):
        coupon = discount.get("coupon") or {}
        data["discount"] = {
            "id": discount.get("id"),
            "coupon_id": coupon.get("id"),
            "percent_off": coupon.get("percent_off"),
            "amount_off": coupon.get("amount_off"),
            "start": discount.get("start"),
            "end": discount.get("end"),
        }
    invoice_settings = data.get("invoice_settings")
    if isinstance(invoice_settings, dict):
        default_method = invoice_settings.get("default_payment_method")
        if isinstance(default_method, dict):
            default_method = default_method.get("id")
        data["invoice_settings"] = {
            "default_payment_method": default_method,
            "footer": invoice_settings.get("footer"),
        }
    if data.get("preferred_locales") is None:
        data["preferred_locales"] = []
    if data.get("metadata") is None:
        data["metadata"] = {}
    if data.get("balance") is None:
        data["balance"] = 0
    return CustomerProfile.model_validate(data)


def build_snapshot(
    customer: dict[str, Any],
    subscriptions: list[dict[str, Any]],
    payments: list[dict[str, Any]],
) -> CustomerSnapshot:
    """Project provider payloads onto the cached read model.

    Ordering of subscriptions and payments follows the provider's listing.
    """
    try:
        return CustomerSnapshot(
            customer=_profile(customer),
            subscriptions=[
                SubscriptionView(
                    subscription_id=sub["id"],
                    status=sub["status"],
                    price_id=subscription_price_id(sub),
                    cancel_at_period_end=bool(sub.get("cancel_at_period_end")),
                    current_period_end=from_timestamp(subscription_period(sub)[1]),
                    payment_method=payment_method_summary(sub),
                )
                for sub in subscriptions
            ],
            payments=[
                PaymentView(
                    payment_id=intent["id"],
                    status=intent["status"],
                    amount=intent.get("amount"),
                    currency=intent.get("currency"),
                )
                for intent in payments
            ],
            synced_at=utcnow(),
        )
    except (KeyError, ValidationError) as exc:
        raise SerializationError(
            f"Provider payload for {customer.get('id')} does not fit the snapshot"
        ) from exc


class SnapshotCache:
    def __init__(self, cache: CacheStore):
        self.cache = cache

    def write_snapshot(self, customer_id: str, snapshot: CustomerSnapshot) -> None:
        try:
            payload = snapshot.model_dump_json()
        except PydanticSerializationError as exc:
            raise SerializationError(
                f"Snapshot for {customer_id} could not be encoded"
            ) from exc
        self.cache.set(customer_snapshot_key(customer_id), payload)
        logger.debug("Wrote snapshot", extra={"customer_id": customer_id})

    def read_snapshot(self, customer_id: str) -> CustomerSnapshot | Any:
        """Return the decoded snapshot, or ``MISSING`` when none is cached."""
        raw = self.cache.get(customer_snapshot_key(customer_id))
        if raw is MISSING:
            SNAPSHOT_READS.labels("miss").inc()
            return MISSING
        try:
            snapshot = CustomerSnapshot.model_validate_json(raw)
        except ValidationError as exc:
            SNAPSHOT_READS.labels("error").inc()
            logger.error(
                "Cached snapshot does not decode",
                extra={"customer_id": customer_id},
            )
            raise SerializationError(
                f"Snapshot for {customer_id} could not be decoded"
            ) from exc
        SNAPSHOT_READS.labels("hit").inc()
        return snapshot
