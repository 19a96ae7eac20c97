import logging

from celery import Task
from celery.result import AsyncResult
from kombu.exceptions import OperationalError

logger = logging.getLogger(__name__)


class BackgroundSyncDispatcher:
    """Submits customer syncs to the Celery worker pool.

    ``submit`` never raises: a broker outage is logged and reported as
    ``None`` so the caller's response path is not affected.
    """

    def __init__(self, task: Task):
        self.task = task

    def submit(self, customer_id: str) -> AsyncResult | None:
        try:
            result = self.task.delay(customer_id)
        except OperationalError:
            logger.exception(
                "Could not queue background sync", extra={"customer_id": customer_id}
            )
            return None
        logger.info(
            "Queued background sync",
            extra={"customer_id": customer_id, "task_id": str(result.id)},
        )
        return result
