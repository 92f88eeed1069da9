"""
Payment domain models.

This module contains all settlement-related models:
- PaymentTransfer: Pending-transfer ledger row for an expert's share
- ConnectedAccount: Stripe Connect account of an expert
- WebhookEvent: Stripe webhook event tracking for idempotent processing
"""

from payments.models.connected_account import ConnectedAccount
from payments.models.payment_transfer import PaymentTransfer, PaymentTransferQuerySet
from payments.models.webhook_event import WebhookEvent, WebhookSource

__all__ = [
    "ConnectedAccount",
    "PaymentTransfer",
    "PaymentTransferQuerySet",
    "WebhookEvent",
    "WebhookSource",
]
