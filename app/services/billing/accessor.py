import logging

from app.schemas.billing import CustomerSnapshot
from app.services.billing.errors import (
    BillingError,
    CacheError,
    NotFoundError,
    SyncIncompleteError,
    UnresolvedAccountError,
)
from app.services.billing.snapshots import SnapshotCache
from app.services.billing.synchronizer import StateSynchronizer
from app.services.cache import MISSING

logger = logging.getLogger(__name__)


class ReadThroughAccessor:
    """Consumer-facing read path for customer state.

    A cache miss triggers exactly one sync followed by one re-read; a miss
    after that is ``SyncIncompleteError``. ``NotFoundError`` and
    ``UnresolvedAccountError`` pass through unchanged so callers can tell
    "no such customer" apart from "sync failed".
    """

    def __init__(self, snapshots: SnapshotCache, synchronizer: StateSynchronizer):
        self.snapshots = snapshots
        self.synchronizer = synchronizer

    def get_customer_state(self, customer_id: str) -> CustomerSnapshot:
        try:
            snapshot = self.snapshots.read_snapshot(customer_id)
        except CacheError:
            logger.warning(
                "Snapshot read failed, resyncing",
                extra={"customer_id": customer_id},
            )
            snapshot = MISSING
        if snapshot is not MISSING:
            return snapshot

        try:
            self.synchronizer.sync(customer_id)
        except (NotFoundError, UnresolvedAccountError):
            raise
        except BillingError as exc:
            raise SyncIncompleteError(
                f"Sync for {customer_id} failed: {exc.message}",
                reason="sync_failed",
                details={"reason": "sync_failed", "cause": exc.code},
            ) from exc

        try:
            snapshot = self.snapshots.read_snapshot(customer_id)
        except BillingError as exc:
            raise SyncIncompleteError(
                f"Snapshot for {customer_id} unreadable after sync",
                reason="sync_failed",
                details={"reason": "sync_failed", "cause": exc.code},
            ) from exc
        if snapshot is MISSING:
            raise SyncIncompleteError(
                f"Snapshot for {customer_id} still missing after sync",
                reason="still_missing",
            )
        return snapshot
