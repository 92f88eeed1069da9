"""
Stripe API adapter for settlement operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API calls made by the settlement pipeline. All Stripe calls go
through this adapter to get consistent error translation, timeouts,
idempotency and timing logs.

Operations:
- retrieve_payment_intent: live PaymentIntent (voucher details, metadata)
- create_transfer: platform -> expert connected account
- retrieve_available_balance: connected account balance in one currency
- create_payout: connected account -> expert bank account
- verify_webhook_signature: parse and verify a webhook payload

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)

Usage:
    from payments.adapters import StripeAdapter

    available = StripeAdapter.retrieve_available_balance("acct_123", "eur")
    payout = StripeAdapter.create_payout(
        account_id="acct_123",
        amount_cents=min(available, transfer.amount),
        currency="eur",
        idempotency_key=f"payout:{transfer.id}",
    )
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class PaymentIntentResult:
    """
    Result from Stripe PaymentIntent retrieval.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        status: Current status (requires_action, succeeded, etc.)
        amount_cents: Amount in cents
        currency: Currency code
        metadata: Attached metadata
        raw_response: Full Stripe response dict, including expanded objects
    """

    id: str
    status: str
    amount_cents: int
    currency: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def next_action(self) -> dict[str, Any]:
        return self.raw_response.get("next_action") or {}

    @property
    def multibanco_details(self) -> dict[str, Any]:
        """Voucher details for a Multibanco intent awaiting payment, else {}."""
        return self.next_action.get("multibanco_display_details") or {}

    @property
    def customer(self) -> dict[str, Any]:
        """Expanded customer object, or {} when not expanded/absent."""
        customer = self.raw_response.get("customer")
        return customer if isinstance(customer, dict) else {}

    @property
    def payment_method(self) -> dict[str, Any]:
        payment_method = self.raw_response.get("payment_method")
        return payment_method if isinstance(payment_method, dict) else {}


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount_cents: Amount transferred in cents
        currency: Currency code
        destination_account: Destination Stripe account ID
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PayoutResult:
    """
    Result from Stripe Payout operations on a connected account.

    Attributes:
        id: Payout ID (po_xxx)
        amount_cents: Amount paid out in cents
        currency: Currency code
        status: Payout status (pending, in_transit, paid, ...)
        account_id: Connected account the payout was made from
        arrival_date: Expected arrival (unix timestamp) if reported
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    account_id: str
    arrival_date: int | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


def is_retryable_stripe_error(error: Exception) -> bool:
    """
    Check if an error is a transient Stripe error.

    Used as the ``retry_if`` predicate of core.retry.retry_with_backoff.
    """
    if isinstance(error, StripeError):
        return getattr(error, "is_retryable", False)
    return False


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Safe to call from worker threads: every call passes its own
    idempotency key and connected-account id.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Payment Intents
    # =========================================================================

    @classmethod
    def retrieve_payment_intent(
        cls,
        payment_intent_id: str,
        expand: list[str] | None = None,
    ) -> PaymentIntentResult:
        """
        Retrieve a PaymentIntent by ID.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
            expand: Related objects to expand (e.g. ["customer", "payment_method"])

        Raises:
            StripeInvalidRequestError: PaymentIntent not found
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_payment_intent",
            "payment_intent_id": payment_intent_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            params: dict[str, Any] = {}
            if expand:
                params["expand"] = expand
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, **params)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "status": intent.status,
                    "duration_ms": duration_ms,
                },
            )

            return PaymentIntentResult(
                id=intent.id,
                status=intent.status,
                amount_cents=intent.amount,
                currency=intent.currency,
                metadata=dict(intent.metadata or {}),
                raw_response=intent.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Transfers
    # =========================================================================

    @classmethod
    def create_transfer(
        cls,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "eur",
        metadata: dict[str, str] | None = None,
        description: str | None = None,
        source_transaction: str | None = None,
    ) -> TransferResult:
        """
        Create a transfer to a connected Stripe account.

        Args:
            amount_cents: Amount to transfer in cents
            destination_account: Stripe Connect account ID (acct_xxx)
            idempotency_key: Stable per ledger row (e.g. "transfer:{id}"), reused
                on every retry so a timed-out call cannot transfer twice
            currency: Currency code (default: 'eur')
            metadata: Optional metadata dict
            description: Optional description shown in the dashboard
            source_transaction: Optional charge id (ch_xxx / py_xxx), ties
                the transfer to the funds of that charge. Not a PaymentIntent id

        Raises:
            StripeInvalidAccountError: Invalid destination account
            StripeInsufficientFundsError: Insufficient platform balance
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_transfer",
            "amount_cents": amount_cents,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer_params: dict[str, Any] = {
                "amount": amount_cents,
                "currency": currency,
                "destination": destination_account,
                "metadata": metadata or {},
            }
            if description:
                transfer_params["description"] = description
            if source_transaction:
                transfer_params["source_transaction"] = source_transaction

            transfer = stripe.Transfer.create(
                idempotency_key=idempotency_key,
                **transfer_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "transfer_id": transfer.id,
                    "duration_ms": duration_ms,
                },
            )

            return TransferResult(
                id=transfer.id,
                amount_cents=transfer.amount,
                currency=transfer.currency,
                destination_account=transfer.destination,
                metadata=dict(transfer.metadata or {}),
                raw_response=transfer.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Connected Account Balance & Payouts
    # =========================================================================

    @classmethod
    def retrieve_available_balance(cls, account_id: str, currency: str) -> int:
        """
        Available balance of a connected account in one currency.

        Returns:
            Sum of the ``available`` entries in ``currency`` (0 when none)
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_available_balance",
            "account_id": account_id,
            "currency": currency,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            balance = stripe.Balance.retrieve(stripe_account=account_id)

            available = sum(
                entry["amount"]
                for entry in (balance.to_dict().get("available") or [])
                if entry.get("currency", "").lower() == currency.lower()
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "available": available,
                    "duration_ms": duration_ms,
                },
            )
            return available

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def create_payout(
        cls,
        account_id: str,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
        description: str | None = None,
    ) -> PayoutResult:
        """
        Pay out funds from a connected account to its external bank account.

        Args:
            account_id: Connected account (acct_xxx) the funds leave from
            amount_cents: Amount in cents
            currency: Currency code
            idempotency_key: Unique key for idempotent payout
            metadata: Optional metadata dict
            description: Optional description shown on the payout

        Raises:
            StripeInvalidRequestError: Amount exceeds balance, no bank account
            StripeInvalidAccountError: Account cannot receive payouts
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_payout",
            "account_id": account_id,
            "amount_cents": amount_cents,
            "currency": currency,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            payout_params: dict[str, Any] = {
                "amount": amount_cents,
                "currency": currency,
                "metadata": metadata or {},
            }
            if description:
                payout_params["description"] = description

            payout = stripe.Payout.create(
                stripe_account=account_id,
                idempotency_key=idempotency_key,
                **payout_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payout_id": payout.id,
                    "status": payout.status,
                    "duration_ms": duration_ms,
                },
            )

            return PayoutResult(
                id=payout.id,
                amount_cents=payout.amount,
                currency=payout.currency,
                status=payout.status,
                account_id=account_id,
                arrival_date=getattr(payout, "arrival_date", None),
                raw_response=payout.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
        secret: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value
            secret: Signing secret of the endpoint that received the event

        Returns:
            Parsed event data dict

        Raises:
            StripeInvalidRequestError: Invalid signature or payload
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
            return event.to_dict()
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            )
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook payload",
                stripe_code="invalid_payload",
                details={"error": str(e)},
            )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to domain exceptions.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Insufficient funds
            StripeInvalidAccountError: Invalid Connect account
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: API unavailable
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, StripeError):
            raise error

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )

            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                )

            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            )

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )

            if error.code == "balance_insufficient":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                )

            if "account" in str(error).lower():
                raise StripeInvalidAccountError(
                    str(error),
                    stripe_code=error.code,
                )

            raise StripeInvalidRequestError(
                str(error),
                stripe_code=error.code,
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                logger.error("Stripe request timed out", extra=log_context)
                raise StripeTimeoutError(
                    "Stripe request timed out. Retry with the same idempotency key.",
                    stripe_code="timeout",
                )

            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            )


__all__ = [
    "PaymentIntentResult",
    "PayoutResult",
    "StripeAdapter",
    "TransferResult",
    "is_retryable_stripe_error",
]
