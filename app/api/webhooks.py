"""Provider webhook endpoint."""

import logging

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_billing
from app.schemas.billing import WebhookAck
from app.services.billing.container import BillingServices

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request, billing: BillingServices = Depends(get_billing)
) -> WebhookAck:
    """Verify, filter and apply a Stripe event. No auth; the signature is the
    credential. Rejections answer with the error envelope so Stripe retries."""
    body = await request.body()
    signature = request.headers.get("stripe-signature")
    outcome = await run_in_threadpool(billing.webhooks.handle, body, signature)
    return WebhookAck(
        event_id=outcome.event_id,
        event_type=outcome.event_type,
        customer_id=outcome.customer_id,
    )
