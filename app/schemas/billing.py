from datetime import datetime
from typing import Generic, Literal, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

# ── Relational upserts ───────────────────────────────────


class PaymentRecordUpsert(BaseModel):
    account_id: UUID
    provider_customer_id: str = Field(min_length=1, max_length=255)
    provider_payment_id: str = Field(min_length=1, max_length=255)
    amount: int = 0
    currency: str = Field(min_length=3, max_length=3)
    status: str = Field(min_length=1, max_length=40)


class SubscriptionRecordUpsert(BaseModel):
    account_id: UUID
    provider_customer_id: str = Field(min_length=1, max_length=255)
    provider_subscription_id: str = Field(min_length=1, max_length=255)
    price_id: str | None = Field(default=None, max_length=255)
    status: str = Field(min_length=1, max_length=40)
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False


class ListResponse(BaseModel, Generic[T]):
    items: list[T]
    count: int
    limit: int
    offset: int
    total: int


class PaymentRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    account_id: UUID
    provider_customer_id: str
    provider_payment_id: str
    amount: int
    currency: str
    status: str
    created_at: datetime
    updated_at: datetime


class SubscriptionRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    account_id: UUID
    provider_customer_id: str
    provider_subscription_id: str
    price_id: str | None = None
    status: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool
    created_at: datetime
    updated_at: datetime


# ── Customer snapshot (cache read model) ─────────────────


class CustomerAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")
    city: str | None = None
    country: str | None = None
    line1: str | None = None
    line2: str | None = None
    postal_code: str | None = None
    state: str | None = None


class CustomerTaxLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")
    country: str | None = None
    source: str | None = None
    state: str | None = None


class CustomerTax(BaseModel):
    model_config = ConfigDict(extra="ignore")
    automatic_tax: str | None = None
    ip_address: str | None = None
    location: CustomerTaxLocation | None = None


class CustomerDiscount(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str | None = None
    coupon_id: str | None = None
    percent_off: float | None = None
    amount_off: int | None = None
    start: int | None = None
    end: int | None = None


class CustomerInvoiceSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")
    default_payment_method: str | None = None
    footer: str | None = None


class CustomerProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    description: str | None = None
    address: CustomerAddress | None = None
    balance: int = 0
    currency: str | None = None
    created: int | None = None
    delinquent: bool | None = None
    deleted: bool = False
    livemode: bool = False
    metadata: dict[str, str] = Field(default_factory=dict)
    invoice_prefix: str | None = None
    preferred_locales: list[str] = Field(default_factory=list)
    tax_exempt: str | None = None
    tax: CustomerTax | None = None
    discount: CustomerDiscount | None = None
    invoice_settings: CustomerInvoiceSettings | None = None


class PaymentMethodSummary(BaseModel):
    brand: str | None = None
    last4: str | None = None


class SubscriptionView(BaseModel):
    subscription_id: str
    status: str
    price_id: str | None = None
    cancel_at_period_end: bool = False
    current_period_end: datetime | None = None
    payment_method: PaymentMethodSummary | None = None


class PaymentView(BaseModel):
    payment_id: str
    status: str
    amount: int | None = None
    currency: str | None = None


class CustomerSnapshot(BaseModel):
    customer: CustomerProfile
    subscriptions: list[SubscriptionView] = Field(default_factory=list)
    payments: list[PaymentView] = Field(default_factory=list)
    synced_at: datetime


# ── API payloads ─────────────────────────────────────────


class SubscriptionStatusRead(BaseModel):
    has_access: bool
    status: str
    cancel_at_period_end: bool = False
    subscription_id: str | None = None
    price_id: str | None = None


class LinkCustomerRequest(BaseModel):
    customer_id: str | None = Field(default=None, min_length=1, max_length=255)


class LinkCustomerRead(BaseModel):
    account_id: UUID
    customer_id: str
    task_id: str | None = None


class SyncTaskRead(BaseModel):
    queued: bool
    task_id: str | None = None
    customer_id: str | None = None


class WebhookAck(BaseModel):
    status: Literal["ok"] = "ok"
    event_id: str | None = None
    event_type: str
    customer_id: str
