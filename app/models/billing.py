import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base, TimestampMixin

# ── Enums ────────────────────────────────────────────────


class WebhookEventOutcome(str, enum.Enum):
    accepted = "accepted"
    rejected = "rejected"
    failed = "failed"


# ── Provider-mirrored records ────────────────────────────


class PaymentRecord(TimestampMixin, Base):
    """Local mirror of one provider payment intent.

    Rows are keyed by ``provider_payment_id``; syncs update amount, currency
    and status in place and never delete.
    """

    __tablename__ = "payment_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True
    )
    provider_customer_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    provider_payment_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(40), nullable=False)


class SubscriptionRecord(TimestampMixin, Base):
    """Local mirror of one provider subscription."""

    __tablename__ = "subscription_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True
    )
    provider_customer_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    provider_subscription_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )
    price_id: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(40), nullable=False)
    current_period_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    current_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False)


# ── Webhook audit ────────────────────────────────────────


class WebhookEventLog(TimestampMixin, Base):
    __tablename__ = "webhook_event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    provider: Mapped[str] = mapped_column(String(80), nullable=False)
    event_id: Mapped[str | None] = mapped_column(String(255), index=True)
    event_type: Mapped[str | None] = mapped_column(String(120))
    customer_id: Mapped[str | None] = mapped_column(String(255))
    outcome: Mapped[WebhookEventOutcome] = mapped_column(
        Enum(WebhookEventOutcome), nullable=False
    )
    reason: Mapped[str | None] = mapped_column(String(80))
    error_message: Mapped[str | None] = mapped_column(Text)
    payload: Mapped[dict | None] = mapped_column(JSON)
