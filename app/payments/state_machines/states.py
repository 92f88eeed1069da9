"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

PaymentTransfer States:
    pending → completed → paid_out (no approval required)
    pending → approved → completed → paid_out (approval required)
    pending/approved → failed (retry budget spent)
    any non-paid_out → refunded
    any → disputed
"""

from django.db import models


class TransferStatus(models.TextChoices):
    """
    States for the PaymentTransfer ledger row.

    Terminal states: PAID_OUT, FAILED (manual intervention only),
    REFUNDED, DISPUTED

    State Flow:
        PENDING → COMPLETED → PAID_OUT
        PENDING → APPROVED → COMPLETED → PAID_OUT

    Failure Flow:
        PENDING/APPROVED → FAILED

    Reversal Flow:
        any non-PAID_OUT → REFUNDED
        any → DISPUTED
    """

    PENDING = "PENDING", "Pending"
    APPROVED = "APPROVED", "Approved"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    PAID_OUT = "PAID_OUT", "Paid Out"
    REFUNDED = "REFUNDED", "Refunded"
    DISPUTED = "DISPUTED", "Disputed"


class OnboardingStatus(models.TextChoices):
    """
    Stripe Connect onboarding status for ConnectedAccount.

    Reflects the state of the expert's Stripe Connect onboarding process.
    COMPLETE is reached when charges, payouts and details are all enabled.
    """

    NOT_STARTED = "not_started", "Not Started"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETE = "complete", "Complete"
    REJECTED = "rejected", "Rejected"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can be replayed)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


__all__ = [
    "TransferStatus",
    "OnboardingStatus",
    "WebhookEventStatus",
]
