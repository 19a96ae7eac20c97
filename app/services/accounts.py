"""Account lookups and the account-facing billing flows.

``AccountDirectory`` is the relational side of the identity index and has no
billing dependencies. ``Accounts`` is built on top of the finished billing
engine and owns customer creation, linking and the sign-in resync hook.
"""
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from celery.result import AsyncResult
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.models.account import Account
from app.schemas.billing import (
    LinkCustomerRead,
    SubscriptionStatusRead,
    SyncTaskRead,
)
from app.services.billing.errors import (
    CacheError,
    IdentityConflictError,
    NotFoundError,
    PersistenceError,
)
from app.services.common import require_uuid

if TYPE_CHECKING:
    from app.services.billing.accessor import ReadThroughAccessor
    from app.services.billing.dispatch import BackgroundSyncDispatcher
    from app.services.billing.identity import IdentityIndex
    from app.services.billing.provider import ProviderClient

logger = logging.getLogger(__name__)

ACCESS_STATUSES = frozenset({"active", "trialing"})


class AccountDirectory:
    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def get(self, account_id: uuid.UUID | str) -> Account | None:
        try:
            with self.session_factory() as db:
                return db.get(Account, require_uuid(account_id))
        except SQLAlchemyError as exc:
            raise PersistenceError("Account lookup failed") from exc

    def get_by_customer_id(self, customer_id: str) -> Account | None:
        try:
            with self.session_factory() as db:
                return db.scalars(
                    select(Account).where(Account.provider_customer_id == customer_id)
                ).first()
        except SQLAlchemyError as exc:
            raise PersistenceError("Account lookup failed") from exc

    def set_customer_id(self, account_id: uuid.UUID | str, customer_id: str) -> Account:
        """Store the provider customer id on the account row.

        Setting the same id again is a no-op; replacing a different id raises
        ``IdentityConflictError``.
        """
        account_id = require_uuid(account_id)
        try:
            with self.session_factory() as db, db.begin():
                account = db.get(Account, account_id)
                if account is None:
                    raise NotFoundError(
                        f"Account {account_id} not found",
                        details={"account_id": str(account_id)},
                    )
                if account.provider_customer_id == customer_id:
                    return account
                if account.provider_customer_id:
                    raise IdentityConflictError(
                        details={
                            "account_id": str(account_id),
                            "customer_id": account.provider_customer_id,
                        }
                    )
                owner = db.scalars(
                    select(Account).where(Account.provider_customer_id == customer_id)
                ).first()
                if owner is not None:
                    raise IdentityConflictError(
                        "Customer is already linked to another account",
                        details={"customer_id": customer_id},
                    )
                account.provider_customer_id = customer_id
            return account
        except IntegrityError as exc:
            raise IdentityConflictError(
                "Customer is already linked to another account",
                details={"customer_id": customer_id},
            ) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("Account update failed") from exc


class Accounts:
    def __init__(
        self,
        directory: AccountDirectory,
        identity: IdentityIndex,
        provider: ProviderClient,
        accessor: ReadThroughAccessor,
        dispatcher: BackgroundSyncDispatcher,
    ):
        self.directory = directory
        self.identity = identity
        self.provider = provider
        self.accessor = accessor
        self.dispatcher = dispatcher

    def _require(self, account_id: uuid.UUID | str) -> Account:
        account = self.directory.get(account_id)
        if account is None:
            raise NotFoundError(
                f"Account {account_id} not found",
                details={"account_id": str(account_id)},
            )
        return account

    def _linked(self, account: Account, customer_id: str) -> LinkCustomerRead:
        try:
            self.identity.record_mapping(account.id, customer_id)
        except CacheError:
            logger.warning(
                "Identity cache write failed, accounts table still holds the link",
                extra={"account_id": str(account.id), "customer_id": customer_id},
            )
        result = self.dispatcher.submit(customer_id)
        logger.info(
            "Linked provider customer",
            extra={"account_id": str(account.id), "customer_id": customer_id},
        )
        return LinkCustomerRead(
            account_id=account.id,
            customer_id=customer_id,
            task_id=str(result.id) if result is not None else None,
        )

    def create_customer(self, account_id: uuid.UUID | str) -> LinkCustomerRead:
        """Create the provider customer for an account and link it.

        An account that already has a customer is returned as-is; no second
        provider customer is created.
        """
        account = self._require(account_id)
        if account.provider_customer_id:
            return self._linked(account, account.provider_customer_id)
        customer = self.provider.create_customer(account.email, str(account.id))
        account = self.directory.set_customer_id(account.id, customer["id"])
        return self._linked(account, customer["id"])

    def link_customer(
        self, account_id: uuid.UUID | str, customer_id: str
    ) -> LinkCustomerRead:
        account = self.directory.set_customer_id(account_id, customer_id)
        return self._linked(account, customer_id)

    def _signed_in_customer(self, account_id: uuid.UUID | str) -> str | None:
        try:
            return self.identity.resolve_customer_id(account_id)
        except NotFoundError:
            logger.info(
                "Signed-in account has no provider customer",
                extra={"account_id": str(account_id)},
            )
            return None

    def on_signed_in(self, account_id: uuid.UUID | str) -> AsyncResult | None:
        """Queue a resync for the account's customer, if it has one."""
        customer_id = self._signed_in_customer(account_id)
        if customer_id is None:
            return None
        return self.dispatcher.submit(customer_id)

    def resync(self, account_id: uuid.UUID | str) -> SyncTaskRead:
        customer_id = self._signed_in_customer(account_id)
        if customer_id is None:
            return SyncTaskRead(queued=False)
        result = self.dispatcher.submit(customer_id)
        return SyncTaskRead(
            queued=result is not None,
            task_id=str(result.id) if result is not None else None,
            customer_id=customer_id,
        )

    def subscription_status(self, account_id: uuid.UUID | str) -> SubscriptionStatusRead:
        self._require(account_id)
        try:
            customer_id = self.identity.resolve_customer_id(account_id)
        except NotFoundError:
            return SubscriptionStatusRead(has_access=False, status="none")
        snapshot = self.accessor.get_customer_state(customer_id)
        if not snapshot.subscriptions:
            return SubscriptionStatusRead(has_access=False, status="none")
        current = next(
            (
                sub
                for sub in snapshot.subscriptions
                if sub.status in ACCESS_STATUSES
            ),
            snapshot.subscriptions[0],
        )
        return SubscriptionStatusRead(
            has_access=current.status in ACCESS_STATUSES,
            status=current.status,
            cancel_at_period_end=current.cancel_at_period_end,
            subscription_id=current.subscription_id,
            price_id=current.price_id,
        )
