from app.models.account import Account  # noqa: F401
from app.models.billing import (  # noqa: F401
    PaymentRecord,
    SubscriptionRecord,
    WebhookEventLog,
    WebhookEventOutcome,
)
