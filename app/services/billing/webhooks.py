"""Inbound provider webhook handling.

An event is either accepted, which triggers a full sync of the customer it
names, or rejected with a typed error. Field deltas carried by the event are
ignored; the provider's REST state is re-read instead.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.metrics import WEBHOOK_EVENTS
from app.models.billing import WebhookEventLog, WebhookEventOutcome
from app.schemas.billing import CustomerSnapshot
from app.services.billing.errors import (
    AuthenticationError,
    BillingError,
    MalformedEventError,
    UnsupportedEventError,
)
from app.services.billing.synchronizer import StateSynchronizer

logger = logging.getLogger(__name__)

PROVIDER = "stripe"


@dataclass(frozen=True)
class WebhookOutcome:
    event_id: str | None
    event_type: str
    customer_id: str
    snapshot: CustomerSnapshot


def extract_customer_id(event: dict[str, Any]) -> str:
    """Return ``data.object.customer`` as a string id.

    The field may be a bare id or an expanded customer object.
    """
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise MalformedEventError("Event has no data.object")
    customer = obj.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    if not isinstance(customer, str) or not customer.strip():
        raise MalformedEventError(
            "Event does not name a customer",
            details={"event_id": event.get("id")},
        )
    return customer.strip()


class WebhookEventRouter:
    def __init__(
        self,
        synchronizer: StateSynchronizer,
        secret: str,
        allowed_events: Iterable[str],
        session_factory: sessionmaker[Session] | None = None,
        tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ):
        self.synchronizer = synchronizer
        self.secret = secret
        self.allowed_events = frozenset(allowed_events)
        self.session_factory = session_factory
        self.tolerance = tolerance

    def _verify(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        if not self.secret:
            raise AuthenticationError("Webhook signing secret is not configured")
        if not signature:
            raise AuthenticationError("Missing Stripe-Signature header")
        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as exc:
            raise MalformedEventError("Event body is not UTF-8") from exc
        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.secret, self.tolerance
            )
        except stripe.SignatureVerificationError as exc:
            raise AuthenticationError() from exc
        # A correctly signed body may still be any JSON value.
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise MalformedEventError("Event body is not valid JSON") from exc
        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            raise MalformedEventError("Event has no type")
        return event

    def handle(self, payload: bytes, signature: str | None) -> WebhookOutcome:
        event: dict[str, Any] = {}
        try:
            event = self._verify(payload, signature)
            if event["type"] not in self.allowed_events:
                raise UnsupportedEventError(
                    f"Event type {event['type']} is not handled",
                    details={"event_type": event["type"]},
                )
            customer_id = extract_customer_id(event)
        except BillingError as exc:
            self._finish(event, None, WebhookEventOutcome.rejected, exc)
            raise

        try:
            snapshot = self.synchronizer.sync(customer_id)
        except Exception as exc:
            self._finish(event, customer_id, WebhookEventOutcome.failed, exc)
            raise

        self._finish(event, customer_id, WebhookEventOutcome.accepted, None)
        return WebhookOutcome(
            event_id=event.get("id"),
            event_type=event["type"],
            customer_id=customer_id,
            snapshot=snapshot,
        )

    def _finish(
        self,
        event: dict[str, Any],
        customer_id: str | None,
        outcome: WebhookEventOutcome,
        exc: Exception | None,
    ) -> None:
        reason = getattr(exc, "code", None) or ("error" if exc else None)
        WEBHOOK_EVENTS.labels(outcome.value, reason or "ok").inc()
        log = logger.info if outcome == WebhookEventOutcome.accepted else logger.warning
        log(
            "webhook_event",
            extra={
                "event_id": event.get("id"),
                "event_type": event.get("type"),
                "customer_id": customer_id,
                "outcome": outcome.value,
                "reason": reason,
            },
        )
        if self.session_factory is None:
            return
        try:
            with self.session_factory() as db, db.begin():
                db.add(
                    WebhookEventLog(
                        provider=PROVIDER,
                        event_id=event.get("id"),
                        event_type=event.get("type"),
                        customer_id=customer_id,
                        outcome=outcome,
                        reason=reason,
                        error_message=str(exc) if exc else None,
                        payload=event or None,
                    )
                )
        except SQLAlchemyError:
            logger.exception(
                "Failed to record webhook event",
                extra={"event_id": event.get("id")},
            )
