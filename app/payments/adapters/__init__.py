"""
Payment adapters for external services.

All Stripe calls made by the settlement pipeline go through these adapters
to ensure consistent error handling, timeouts, idempotency, and
observability.

Usage:
    from payments.adapters import StripeAdapter

    available = StripeAdapter.retrieve_available_balance("acct_123", "eur")
"""

from payments.adapters.stripe_adapter import (
    PaymentIntentResult,
    PayoutResult,
    StripeAdapter,
    TransferResult,
    is_retryable_stripe_error,
)

__all__ = [
    "PaymentIntentResult",
    "PayoutResult",
    "StripeAdapter",
    "TransferResult",
    "is_retryable_stripe_error",
]
