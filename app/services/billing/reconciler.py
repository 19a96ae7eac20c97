"""Idempotent upserts of provider records into the relational store.

Both upserts run inside the caller's transaction; neither commits. Conflicts
on the provider id overwrite only the mutable columns and refresh
``updated_at``.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db import utcnow
from app.models.billing import PaymentRecord, SubscriptionRecord
from app.schemas.billing import PaymentRecordUpsert, SubscriptionRecordUpsert
from app.services.billing.errors import PersistenceError

logger = logging.getLogger(__name__)

PAYMENT_MUTABLE_COLUMNS = ("amount", "currency", "status")
SUBSCRIPTION_MUTABLE_COLUMNS = (
    "price_id",
    "status",
    "current_period_start",
    "current_period_end",
    "cancel_at_period_end",
)


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise PersistenceError(f"Upsert is not supported on {dialect}")


def _upsert(
    db: Session,
    model: Any,
    conflict_column: str,
    mutable_columns: tuple[str, ...],
    values: dict[str, Any],
) -> None:
    now: datetime = utcnow()
    insert = _insert_for(db)
    stmt = insert(model).values(
        id=uuid.uuid4(), created_at=now, updated_at=now, **values
    )
    set_ = {column: stmt.excluded[column] for column in mutable_columns}
    set_["updated_at"] = now
    stmt = stmt.on_conflict_do_update(index_elements=[conflict_column], set_=set_)
    try:
        db.execute(stmt)
    except SQLAlchemyError as exc:
        logger.warning(
            "Upsert into %s failed for %s=%s: %s",
            model.__tablename__,
            conflict_column,
            values.get(conflict_column),
            exc,
        )
        raise PersistenceError(
            f"Upsert into {model.__tablename__} failed",
            details={conflict_column: values.get(conflict_column)},
        ) from exc


class PersistenceReconciler:
    @staticmethod
    def upsert_payment(db: Session, record: PaymentRecordUpsert) -> None:
        _upsert(
            db,
            PaymentRecord,
            "provider_payment_id",
            PAYMENT_MUTABLE_COLUMNS,
            record.model_dump(),
        )

    @staticmethod
    def upsert_subscription(db: Session, record: SubscriptionRecordUpsert) -> None:
        _upsert(
            db,
            SubscriptionRecord,
            "provider_subscription_id",
            SUBSCRIPTION_MUTABLE_COLUMNS,
            record.model_dump(),
        )

