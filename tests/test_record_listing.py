"""Tests for record listing and the shared ordering/pagination helpers."""

from __future__ import annotations

import uuid

import pytest
from fastapi import HTTPException

from app.schemas.billing import PaymentRecordUpsert, SubscriptionRecordUpsert
from app.services.billing.reconciler import PersistenceReconciler
from app.services.billing.records import payment_records, subscription_records
from app.services.common import coerce_uuid, require_uuid


@pytest.fixture
def payments(session_factory, account):
    with session_factory() as db, db.begin():
        for i in range(12):
            PersistenceReconciler.upsert_payment(
                db,
                PaymentRecordUpsert(
                    account_id=account.id,
                    provider_customer_id="cus_1",
                    provider_payment_id=f"pi_{i:02d}",
                    amount=100 * (i + 1),
                    currency="usd",
                    status="succeeded" if i % 3 else "canceled",
                ),
            )
    return account


class TestCoerceUuid:
    def test_none_returns_none(self) -> None:
        assert coerce_uuid(None) is None

    def test_uuid_passthrough(self) -> None:
        u = uuid.uuid4()
        assert coerce_uuid(u) is u

    def test_string_to_uuid(self) -> None:
        s = "12345678-1234-5678-1234-567812345678"
        assert str(coerce_uuid(s)) == s

    def test_invalid_string_raises(self) -> None:
        with pytest.raises(ValueError):
            coerce_uuid("not-a-uuid")

    def test_require_uuid_rejects_none(self) -> None:
        with pytest.raises(ValueError):
            require_uuid(None)


class TestPaymentRecords:
    def test_list_counts_total_across_pages(self, db_session, payments) -> None:
        items, total = payment_records.list(
            db_session, payments.id, None, "amount", "asc", limit=5, offset=0
        )
        assert total == 12
        assert [p.amount for p in items] == [100, 200, 300, 400, 500]

    def test_offset_past_end(self, db_session, payments) -> None:
        items, total = payment_records.list(
            db_session, payments.id, None, "created_at", "desc", limit=10, offset=50
        )
        assert items == []
        assert total == 12

    def test_status_filter(self, db_session, payments) -> None:
        items, total = payment_records.list(
            db_session, payments.id, "canceled", "amount", "desc", limit=50, offset=0
        )
        assert total == 4
        assert items[0].amount == 1000

    def test_other_account_sees_nothing(self, db_session, payments, unlinked_account) -> None:
        items, total = payment_records.list(
            db_session, unlinked_account.id, None, "created_at", "desc", limit=50, offset=0
        )
        assert (items, total) == ([], 0)

    def test_invalid_order_by(self, db_session, payments) -> None:
        with pytest.raises(HTTPException) as exc_info:
            payment_records.list(
                db_session, payments.id, None, "status", "asc", limit=5, offset=0
            )
        assert exc_info.value.status_code == 400

    def test_list_response_envelope(self, db_session, payments) -> None:
        response = payment_records.list_response(
            db_session, payments.id, None, "amount", "asc", limit=5, offset=5
        )
        assert response["count"] == 5
        assert response["total"] == 12
        assert response["limit"] == 5
        assert response["offset"] == 5
        assert response["items"][0].amount == 600


class TestSubscriptionRecords:
    def test_order_by_period_end(self, session_factory, db_session, account) -> None:
        with session_factory() as db, db.begin():
            for i, status in enumerate(["active", "canceled"]):
                PersistenceReconciler.upsert_subscription(
                    db,
                    SubscriptionRecordUpsert(
                        account_id=account.id,
                        provider_customer_id="cus_1",
                        provider_subscription_id=f"sub_{i}",
                        status=status,
                    ),
                )

        items, total = subscription_records.list(
            db_session, account.id, "active", "current_period_end", "asc", limit=10, offset=0
        )

        assert total == 1
        assert items[0].provider_subscription_id == "sub_0"
