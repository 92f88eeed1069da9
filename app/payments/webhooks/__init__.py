"""
Stripe webhook processing.

Importing this package registers every handler module with the registry.

Modules:
- registry: register_handler, dispatch_webhook, process_webhook_event
- checkout: checkout.session.*
- payment: payment_intent.*, charge.refunded, charge.dispute.created
- connect: account.*, payout.paid, payout.failed
- identity: identity.verification_session.*
- views: the three signed endpoints
"""

from payments.webhooks import checkout, connect, identity, payment  # noqa: F401
from payments.webhooks.registry import (
    WEBHOOK_HANDLERS,
    dispatch_webhook,
    process_webhook_event,
    register_handler,
)

__all__ = [
    "WEBHOOK_HANDLERS",
    "dispatch_webhook",
    "process_webhook_event",
    "register_handler",
]
