from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_billing, get_db
from app.schemas.billing import (
    CustomerSnapshot,
    LinkCustomerRead,
    LinkCustomerRequest,
    ListResponse,
    PaymentRecordRead,
    SubscriptionRecordRead,
    SubscriptionStatusRead,
    SyncTaskRead,
)
from app.services.billing.container import BillingServices
from app.services.billing.records import payment_records, subscription_records

router = APIRouter(prefix="/billing", tags=["billing"])


# ── Customer state ───────────────────────────────────────


@router.get("/customers/{customer_id}/state", response_model=CustomerSnapshot)
def get_customer_state(
    customer_id: str, billing: BillingServices = Depends(get_billing)
):
    return billing.accessor.get_customer_state(customer_id)


@router.post("/customers/{customer_id}/sync", response_model=CustomerSnapshot)
def sync_customer(customer_id: str, billing: BillingServices = Depends(get_billing)):
    return billing.synchronizer.sync(customer_id)


# ── Accounts ─────────────────────────────────────────────


@router.get(
    "/accounts/{account_id}/subscription-status",
    response_model=SubscriptionStatusRead,
)
def get_subscription_status(
    account_id: UUID, billing: BillingServices = Depends(get_billing)
):
    return billing.accounts.subscription_status(account_id)


@router.post(
    "/accounts/{account_id}/customer",
    response_model=LinkCustomerRead,
    status_code=status.HTTP_201_CREATED,
)
def link_account_customer(
    account_id: UUID,
    payload: LinkCustomerRequest | None = None,
    billing: BillingServices = Depends(get_billing),
):
    if payload is not None and payload.customer_id:
        return billing.accounts.link_customer(account_id, payload.customer_id)
    return billing.accounts.create_customer(account_id)


@router.post(
    "/accounts/{account_id}/resync",
    response_model=SyncTaskRead,
    status_code=status.HTTP_202_ACCEPTED,
)
def resync_account(account_id: UUID, billing: BillingServices = Depends(get_billing)):
    return billing.accounts.resync(account_id)


@router.get(
    "/accounts/{account_id}/payments",
    response_model=ListResponse[PaymentRecordRead],
)
def list_account_payments(
    account_id: UUID,
    status: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return payment_records.list_response(
        db, account_id, status, order_by, order_dir, limit=limit, offset=offset
    )


@router.get(
    "/accounts/{account_id}/subscriptions",
    response_model=ListResponse[SubscriptionRecordRead],
)
def list_account_subscriptions(
    account_id: UUID,
    status: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return subscription_records.list_response(
        db, account_id, status, order_by, order_dir, limit=limit, offset=offset
    )
