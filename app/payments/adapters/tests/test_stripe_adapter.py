"""
Tests for Stripe adapter.

Tests cover:
- Error translation for each exception type
- Successful API operations (intents, transfers, balance, payouts)
- Webhook signature verification
"""

import pytest
import stripe
from django.test import override_settings

from payments.adapters import (
    PaymentIntentResult,
    PayoutResult,
    StripeAdapter,
    TransferResult,
    is_retryable_stripe_error,
)
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# Helper Function Tests
# =============================================================================


class TestIsRetryableStripeError:
    """Tests for is_retryable_stripe_error helper."""

    def test_retryable_errors(self):
        assert is_retryable_stripe_error(StripeRateLimitError("Rate limited")) is True
        assert (
            is_retryable_stripe_error(StripeAPIUnavailableError("Unavailable")) is True
        )
        assert is_retryable_stripe_error(StripeTimeoutError("Timeout")) is True

    def test_non_retryable_errors(self):
        assert is_retryable_stripe_error(StripeCardDeclinedError("Declined")) is False
        assert (
            is_retryable_stripe_error(StripeInvalidAccountError("Bad account")) is False
        )
        assert (
            is_retryable_stripe_error(StripeInvalidRequestError("Bad request")) is False
        )

    def test_non_stripe_errors(self):
        assert is_retryable_stripe_error(ValueError("test")) is False
        assert is_retryable_stripe_error(RuntimeError("test")) is False


# =============================================================================
# StripeAdapter Error Translation Tests
# =============================================================================


class TestStripeAdapterErrorTranslation:
    """Tests for Stripe error translation to domain exceptions."""

    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        pass

    def test_card_declined_error(self, mock_stripe_transfer, card_error):
        mock_stripe_transfer.create.side_effect = card_error()

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            StripeAdapter.create_transfer(
                amount_cents=8500,
                destination_account="acct_dest",
                idempotency_key="test-key",
            )

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.category == "payment_method_issue"

    def test_insufficient_platform_balance(
        self, mock_stripe_transfer, invalid_request_error
    ):
        """Should translate balance_insufficient to StripeInsufficientFundsError."""
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="Insufficient funds in Stripe balance",
            code="balance_insufficient",
        )

        with pytest.raises(StripeInsufficientFundsError) as exc_info:
            StripeAdapter.create_transfer(
                amount_cents=8500,
                destination_account="acct_dest",
                idempotency_key="test-key",
            )

        assert exc_info.value.is_retryable is False

    def test_invalid_account_error(self, mock_stripe_payout, invalid_request_error):
        """Should translate account-related InvalidRequestError to StripeInvalidAccountError."""
        mock_stripe_payout.create.side_effect = invalid_request_error(
            message="No such account: acct_invalid",
            code="account_invalid",
        )

        with pytest.raises(StripeInvalidAccountError) as exc_info:
            StripeAdapter.create_payout(
                account_id="acct_invalid",
                amount_cents=5000,
                currency="eur",
                idempotency_key="payout:abc",
            )

        assert exc_info.value.category == "invalid_request"

    def test_invalid_request_error(
        self, mock_stripe_payment_intent, invalid_request_error
    ):
        mock_stripe_payment_intent.retrieve.side_effect = invalid_request_error()

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.retrieve_payment_intent("pi_missing")

        assert exc_info.value.stripe_code == "resource_missing"

    def test_rate_limit_error(self, mock_stripe_balance, rate_limit_error):
        mock_stripe_balance.retrieve.side_effect = rate_limit_error

        with pytest.raises(StripeRateLimitError) as exc_info:
            StripeAdapter.retrieve_available_balance("acct_123", "eur")

        assert exc_info.value.is_retryable is True
        assert exc_info.value.category == "rate_limit"

    def test_api_connection_error(self, mock_stripe_transfer, api_connection_error):
        mock_stripe_transfer.create.side_effect = api_connection_error

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            StripeAdapter.create_transfer(
                amount_cents=8500,
                destination_account="acct_dest",
                idempotency_key="test-key",
            )

        assert exc_info.value.category == "api_connection"

    def test_timeout_error(self, mock_stripe_payout, timeout_error):
        """A timed-out connection is reported as StripeTimeoutError."""
        mock_stripe_payout.create.side_effect = timeout_error

        with pytest.raises(StripeTimeoutError) as exc_info:
            StripeAdapter.create_payout(
                account_id="acct_123",
                amount_cents=5000,
                currency="eur",
                idempotency_key="payout:abc",
            )

        assert exc_info.value.is_retryable is True

    def test_api_error(self, mock_stripe_payment_intent, api_error):
        mock_stripe_payment_intent.retrieve.side_effect = api_error

        with pytest.raises(StripeAPIUnavailableError):
            StripeAdapter.retrieve_payment_intent("pi_123")

    def test_authentication_error(
        self, mock_stripe_payment_intent, authentication_error
    ):
        mock_stripe_payment_intent.retrieve.side_effect = authentication_error

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.retrieve_payment_intent("pi_123")

        # Auth errors are permanent, not retryable
        assert exc_info.value.is_retryable is False

    def test_unknown_error(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.retrieve.side_effect = RuntimeError("Unexpected")

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            StripeAdapter.retrieve_payment_intent("pi_123")

        assert "Unexpected" in str(exc_info.value)


# =============================================================================
# StripeAdapter API Operation Tests
# =============================================================================


class TestStripeAdapterRetrievePaymentIntent:
    """Tests for StripeAdapter.retrieve_payment_intent."""

    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        pass

    def test_retrieve_with_expand(
        self, mock_stripe_payment_intent, mock_payment_intent
    ):
        """
        Given a Multibanco intent awaiting payment
        When it is retrieved with customer and payment_method expanded
        Then voucher details and the expanded customer are exposed
        """
        # Arrange
        mock_stripe_payment_intent.retrieve.return_value = mock_payment_intent(
            id="pi_mb",
            next_action={
                "type": "multibanco_display_details",
                "multibanco_display_details": {
                    "entity": "12345",
                    "reference": "123456789",
                    "expires_at": 1714608000,
                    "hosted_voucher_url": "https://payments.stripe.com/voucher",
                },
            },
            customer={"id": "cus_1", "name": "Ana Silva"},
        )

        # Act
        result = StripeAdapter.retrieve_payment_intent(
            "pi_mb", expand=["payment_method", "customer"]
        )

        # Assert
        assert isinstance(result, PaymentIntentResult)
        assert result.multibanco_details["entity"] == "12345"
        assert result.customer["name"] == "Ana Silva"
        assert result.payment_method == {}
        mock_stripe_payment_intent.retrieve.assert_called_once_with(
            "pi_mb", expand=["payment_method", "customer"]
        )

    def test_retrieve_without_expand(
        self, mock_stripe_payment_intent, mock_payment_intent
    ):
        mock_stripe_payment_intent.retrieve.return_value = mock_payment_intent(
            status="succeeded", customer="cus_1"
        )

        result = StripeAdapter.retrieve_payment_intent("pi_test123456")

        assert result.status == "succeeded"
        assert result.customer == {}
        assert result.multibanco_details == {}
        mock_stripe_payment_intent.retrieve.assert_called_once_with("pi_test123456")


class TestStripeAdapterCreateTransfer:
    """Tests for StripeAdapter.create_transfer."""

    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        pass

    def test_create_transfer_success(self, mock_stripe_transfer, mock_transfer):
        mock_stripe_transfer.create.return_value = mock_transfer(
            id="tr_test123",
            amount=8500,
            destination="acct_dest123",
        )

        result = StripeAdapter.create_transfer(
            amount_cents=8500,
            destination_account="acct_dest123",
            idempotency_key="transfer:abc",
            metadata={"paymentIntentId": "pi_1"},
            description="Expert payout for session 42",
        )

        assert isinstance(result, TransferResult)
        assert result.id == "tr_test123"
        assert result.amount_cents == 8500
        call_kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert call_kwargs["idempotency_key"] == "transfer:abc"
        assert call_kwargs["destination"] == "acct_dest123"
        assert call_kwargs["description"] == "Expert payout for session 42"
        assert "source_transaction" not in call_kwargs

    def test_create_transfer_with_source_transaction(
        self, mock_stripe_transfer, mock_transfer
    ):
        StripeAdapter.create_transfer(
            amount_cents=8500,
            destination_account="acct_dest",
            idempotency_key="transfer-key",
            source_transaction="ch_source123",
        )

        call_kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert call_kwargs["source_transaction"] == "ch_source123"


class TestStripeAdapterBalance:
    """Tests for StripeAdapter.retrieve_available_balance."""

    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        pass

    def test_sums_entries_in_currency(self, mock_stripe_balance, mock_balance):
        mock_stripe_balance.retrieve.return_value = mock_balance(
            (3000, "eur"), (2000, "EUR"), (9999, "usd")
        )

        available = StripeAdapter.retrieve_available_balance("acct_123", "eur")

        assert available == 5000
        mock_stripe_balance.retrieve.assert_called_once_with(stripe_account="acct_123")

    def test_no_entries_is_zero(self, mock_stripe_balance, mock_balance):
        mock_stripe_balance.retrieve.return_value = mock_balance()

        assert StripeAdapter.retrieve_available_balance("acct_123", "eur") == 0


class TestStripeAdapterCreatePayout:
    """Tests for StripeAdapter.create_payout."""

    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        pass

    def test_create_payout_on_connected_account(
        self, mock_stripe_payout, mock_payout
    ):
        mock_stripe_payout.create.return_value = mock_payout(id="po_1", amount=5000)

        result = StripeAdapter.create_payout(
            account_id="acct_123",
            amount_cents=5000,
            currency="eur",
            idempotency_key="payout:abc",
            metadata={"transferId": "abc"},
        )

        assert isinstance(result, PayoutResult)
        assert result.id == "po_1"
        assert result.amount_cents == 5000
        assert result.account_id == "acct_123"
        mock_stripe_payout.create.assert_called_once_with(
            stripe_account="acct_123",
            idempotency_key="payout:abc",
            amount=5000,
            currency="eur",
            metadata={"transferId": "abc"},
        )


class TestStripeAdapterVerifyWebhookSignature:
    """Tests for StripeAdapter.verify_webhook_signature."""

    def test_verify_webhook_signature_success(self, mock_stripe_webhook):
        result = StripeAdapter.verify_webhook_signature(
            payload=b'{"id": "evt_test"}',
            signature="test_signature",
            secret="whsec_test",
        )

        assert result["id"] == "evt_test123"
        mock_stripe_webhook.construct_event.assert_called_once_with(
            b'{"id": "evt_test"}', "test_signature", "whsec_test"
        )

    def test_verify_webhook_signature_invalid(
        self, mock_stripe_webhook, signature_verification_error
    ):
        mock_stripe_webhook.construct_event.side_effect = signature_verification_error

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(
                payload=b"tampered",
                signature="bad_signature",
                secret="whsec_test",
            )

        assert "signature" in str(exc_info.value).lower()

    def test_verify_webhook_invalid_payload(self, mock_stripe_webhook):
        mock_stripe_webhook.construct_event.side_effect = ValueError("bad json")

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(
                payload=b"not-json",
                signature="sig",
                secret="whsec_test",
            )

        assert exc_info.value.stripe_code == "invalid_payload"


# =============================================================================
# Configuration Tests
# =============================================================================


class TestStripeAdapterConfiguration:
    """Tests for Stripe adapter configuration."""

    @override_settings(STRIPE_SECRET_KEY="sk_test_custom")
    def test_uses_settings_api_key(
        self, mock_stripe_http_client, mock_stripe_payment_intent
    ):
        StripeAdapter.retrieve_payment_intent("pi_1")

        assert stripe.api_key == "sk_test_custom"

    @override_settings(STRIPE_API_TIMEOUT_SECONDS=30)
    def test_uses_settings_timeout(
        self, mock_stripe_http_client, mock_stripe_payment_intent
    ):
        StripeAdapter.retrieve_payment_intent("pi_1")

        mock_stripe_http_client.assert_called_with(timeout=30)
