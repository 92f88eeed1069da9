"""
Payment-specific exceptions for settlement operations.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentValidationError - Missing/invalid webhook metadata
    ├── PayoutIneligibleError - Permanent business-rule failures for a payout
    │   └── NoAvailableBalanceError - Connect balance is zero or absent
    └── PaymentProcessingError - Payment processing failures
        └── StripeError - Base for all Stripe errors
            ├── StripeCardDeclinedError - Card declined (permanent)
            ├── StripeInsufficientFundsError - Insufficient funds (permanent)
            ├── StripeInvalidAccountError - Invalid Stripe account (permanent)
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            ├── StripeRateLimitError - Rate limited (transient)
            ├── StripeAPIUnavailableError - API unavailable (transient)
            └── StripeTimeoutError - Request timeout (transient)

Every StripeError carries two classification attributes:
    is_retryable: whether a retry with backoff may succeed
    category: failure bucket reported in job summaries
        (payment_method_issue, rate_limit, invalid_request, api_connection)

Usage:
    from payments.exceptions import StripeError, NoAvailableBalanceError

    try:
        StripeAdapter.create_payout(...)
    except StripeError as e:
        transfer.record_provider_error(e.stripe_code, e.message)
        summary["details"].append({"error_category": e.category})
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """Base exception for all payment operations."""

    default_error_code: str = "PAYMENT_ERROR"


class PaymentValidationError(PaymentError):
    """
    Raised when payment data fails validation.

    Use for webhook objects missing the metadata needed to settle them
    (event id, expert account, amount). These are never retried.
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class PayoutIneligibleError(PaymentError):
    """
    A payout cannot be made for business reasons.

    Recorded as a failed outcome in the job summary and left for human
    follow-up; never retried automatically.
    """

    default_error_code: str = "PAYOUT_INELIGIBLE"
    category: str = "business_rule"


class NoAvailableBalanceError(PayoutIneligibleError):
    """The expert's connected account has nothing available in the currency."""

    default_error_code: str = "NO_AVAILABLE_BALANCE"


class PaymentProcessingError(PaymentError):
    """Raised when a call to the payment provider fails."""

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(PaymentProcessingError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        decline_code: Card decline code (if applicable)
        is_retryable: True for transient errors
        category: Failure bucket used in job summaries
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False
    category: str = "unknown"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    default_error_code: str = "CARD_DECLINED"
    category: str = "payment_method_issue"


class StripeInsufficientFundsError(StripeError):
    """
    Insufficient funds on the payment method or platform balance.

    Transfers fail with this when the platform balance cannot cover the
    expert share yet; the transfer job will try again on its next run
    until the retry budget is spent.
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"
    category: str = "payment_method_issue"


class StripeInvalidAccountError(StripeError):
    """
    Invalid Stripe Connect account.

    The destination account is missing, restricted, or cannot receive
    payouts. Requires the expert to fix their onboarding.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"
    category: str = "invalid_request"


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Also raised for webhook signature failures and authentication errors.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    category: str = "invalid_request"


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True
    category: str = "rate_limit"


class StripeAPIUnavailableError(StripeError):
    """Network failure or 5xx from Stripe."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True
    category: str = "api_connection"


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    The operation may have succeeded on Stripe's side, so retries must
    reuse the same idempotency key.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True
    category: str = "api_connection"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    "PaymentValidationError",
    "PayoutIneligibleError",
    "NoAvailableBalanceError",
    "PaymentProcessingError",
    # Stripe-specific
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
]
