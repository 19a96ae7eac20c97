import logging

from app.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.billing.sync_customer_state")
def sync_customer_state(customer_id: str) -> dict:
    from app.services.billing.container import get_billing_services

    try:
        snapshot = get_billing_services().synchronizer.sync(customer_id)
    except Exception:
        logger.exception(
            "Background customer sync failed", extra={"customer_id": customer_id}
        )
        raise
    return {
        "customer_id": customer_id,
        "subscriptions": len(snapshot.subscriptions),
        "payments": len(snapshot.payments),
    }
