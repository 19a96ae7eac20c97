"""Read access to the mirrored payment and subscription rows of an account."""
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.billing import PaymentRecord, SubscriptionRecord
from app.services.common import (
    ListResponseMixin,
    apply_ordering,
    apply_pagination,
    count_rows,
    require_uuid,
)


class AccountRecords(ListResponseMixin):
    model: Any
    order_columns: dict[str, Any]

    def list(
        self,
        db: Session,
        account_id: uuid.UUID | str,
        status: str | None = None,
        order_by: str = "created_at",
        order_dir: str = "desc",
        *,
        limit: int,
        offset: int,
    ) -> tuple[list, int]:
        stmt = select(self.model).where(self.model.account_id == require_uuid(account_id))
        if status:
            stmt = stmt.where(self.model.status == status)
        total = count_rows(db, stmt)
        stmt = apply_ordering(stmt, order_by, order_dir, self.order_columns)
        items = list(db.scalars(apply_pagination(stmt, limit, offset)).all())
        return items, total


class PaymentRecords(AccountRecords):
    model = PaymentRecord
    order_columns = {
        "created_at": PaymentRecord.created_at,
        "updated_at": PaymentRecord.updated_at,
        "amount": PaymentRecord.amount,
    }


class SubscriptionRecords(AccountRecords):
    model = SubscriptionRecord
    order_columns = {
        "created_at": SubscriptionRecord.created_at,
        "updated_at": SubscriptionRecord.updated_at,
        "current_period_end": SubscriptionRecord.current_period_end,
    }


payment_records = PaymentRecords()
subscription_records = SubscriptionRecords()
