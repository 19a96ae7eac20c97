"""Billing error taxonomy.

Each error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. ``app.errors`` renders them into the standard envelope.
"""
from __future__ import annotations


class BillingError(Exception):
    code = "billing_error"
    status_code = 500
    default_message = "Billing operation failed"

    def __init__(self, message: str | None = None, *, details: object = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class NotFoundError(BillingError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class UnresolvedAccountError(BillingError):
    code = "unresolved_account"
    status_code = 409
    default_message = "Customer is not linked to any account"


class IdentityConflictError(BillingError):
    code = "identity_conflict"
    status_code = 409
    default_message = "Account is already linked to a different customer"


class PersistenceError(BillingError):
    code = "persistence_error"
    status_code = 503
    default_message = "Relational store write failed"


class SerializationError(BillingError):
    code = "serialization_error"
    status_code = 500
    default_message = "Snapshot could not be encoded or decoded"


class CacheError(BillingError):
    code = "cache_unavailable"
    status_code = 503
    default_message = "Cache store unavailable"


class ProviderError(BillingError):
    code = "provider_unavailable"
    status_code = 502
    default_message = "Payment provider request failed"


class SyncInProgressError(BillingError):
    code = "sync_in_progress"
    status_code = 409
    default_message = "A sync for this customer is already running"


class SyncIncompleteError(BillingError):
    code = "sync_incomplete"
    status_code = 503
    default_message = "Customer state is not available yet"

    def __init__(
        self,
        message: str | None = None,
        *,
        reason: str = "still_missing",
        details: object = None,
    ):
        self.reason = reason
        if details is None:
            details = {"reason": reason}
        super().__init__(message, details=details)


class AuthenticationError(BillingError):
    code = "authentication_failed"
    status_code = 400
    default_message = "Webhook signature verification failed"


class UnsupportedEventError(BillingError):
    code = "unsupported_event"
    status_code = 400
    default_message = "Event type is not handled"


class MalformedEventError(BillingError):
    code = "malformed_event"
    status_code = 400
    default_message = "Event payload is malformed"
