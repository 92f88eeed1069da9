"""
Tests for CheckoutSettlementService and checkout metadata parsing.
"""

import json
import logging
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone

import pytest
from django.utils import timezone

from bookings.models import Meeting, PaymentStatus
from core.settlement import SettlementConfig
from payments.exceptions import PaymentValidationError, StripeAPIUnavailableError
from payments.models import PaymentTransfer
from payments.services import CheckoutBooking, CheckoutSettlementService, parse_timestamp
from payments.state_machines import TransferStatus, WebhookEventStatus
from payments.tests.factories import WebhookEventFactory


@pytest.fixture
def start_time():
    return (timezone.now() + timedelta(days=5)).replace(microsecond=0)


@pytest.fixture
def checkout_session(expert_event, start_time):
    """A paid 100.00 EUR checkout session for the expert's event."""
    return {
        "id": "cs_test_settle",
        "payment_intent": "pi_test_settle",
        "payment_status": "paid",
        "amount_total": 10000,
        "currency": "EUR",
        "customer_details": {"email": "guest@example.pt"},
        "metadata": {
            "eventId": str(expert_event.id),
            "expertConnectAccountId": "acct_expert_pt",
            "meetingData": json.dumps(
                {
                    "startTime": start_time.isoformat(),
                    "guestEmail": "guest@example.pt",
                    "guestName": "Rui Guest",
                    "timezone": "Europe/Lisbon",
                    "guestNotes": "First session",
                    "locale": "pt",
                }
            ),
        },
    }


class TestCheckoutBooking:
    """Metadata parsing; no database."""

    def test_reads_meeting_data_json(self, start_time):
        booking = CheckoutBooking.from_metadata(
            {
                "eventId": "evt-1",
                "meetingData": json.dumps(
                    {"startTime": start_time.isoformat(), "guestEmail": "a@b.pt"}
                ),
            }
        )

        assert booking.event_id == "evt-1"
        assert booking.start_time == start_time
        assert booking.guest_email == "a@b.pt"
        assert booking.timezone == "UTC"

    def test_falls_back_to_flat_keys_on_invalid_json(self, start_time):
        booking = CheckoutBooking.from_metadata(
            {
                "eventId": "evt-1",
                "meetingData": "{not json",
                "startTime": start_time.isoformat(),
                "guestEmail": "flat@b.pt",
                "guestName": "Flat Name",
            }
        )

        assert booking.guest_email == "flat@b.pt"
        assert booking.guest_name == "Flat Name"

    def test_uses_customer_email_when_metadata_has_none(self, start_time):
        booking = CheckoutBooking.from_metadata(
            {"eventId": "evt-1", "startTime": start_time.isoformat()},
            customer_email="payer@b.pt",
        )

        assert booking.guest_email == "payer@b.pt"

    def test_missing_fields_raise_validation_error(self):
        with pytest.raises(PaymentValidationError) as exc_info:
            CheckoutBooking.from_metadata({"eventId": "evt-1"})

        assert exc_info.value.error_code == "MISSING_METADATA"
        assert exc_info.value.details["missing"] == ["startTime", "guestEmail"]


class TestParseTimestamp:
    def test_unix_seconds(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=dt_timezone.utc)

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("2026-03-01T10:00:00") == datetime(
            2026, 3, 1, 10, tzinfo=dt_timezone.utc
        )

    def test_empty_and_garbage(self):
        assert parse_timestamp("") is None
        assert parse_timestamp("tomorrow") is None


@pytest.mark.django_db
class TestSettle:
    """Tests for the full settlement sequence."""

    def test_paid_session_records_transfer_and_meeting(
        self, settlement_config, checkout_session, start_time, mock_create_transfer
    ):
        """
        Given a paid 10000 checkout session and a 15% platform fee
        When it is settled
        Then 8500 is transferred to the expert and the meeting is booked
        """
        # Act
        result = CheckoutSettlementService(config=settlement_config).settle(
            checkout_session
        )

        # Assert
        assert result.success
        transfer = PaymentTransfer.objects.get(payment_intent_id="pi_test_settle")
        assert transfer.amount == 8500
        assert transfer.platform_fee == 1500
        assert transfer.currency == "eur"
        assert transfer.status == TransferStatus.COMPLETED
        assert transfer.transfer_id == "tr_test_created"
        assert transfer.scheduled_transfer_time == start_time
        assert mock_create_transfer.call_args.kwargs["idempotency_key"] == (
            f"transfer:{transfer.id}"
        )

        meeting = Meeting.objects.get(id=result.data["meetingId"])
        assert meeting.guest_email == "guest@example.pt"
        assert meeting.guest_name == "Rui Guest"
        assert meeting.timezone == "Europe/Lisbon"
        assert meeting.locale == "pt"
        assert meeting.stripe_amount == 10000
        assert meeting.stripe_payment_status == PaymentStatus.SUCCEEDED
        assert result.data["paymentTransferId"] == str(transfer.id)

    def test_redelivery_is_idempotent(
        self, settlement_config, checkout_session, mock_create_transfer
    ):
        service = CheckoutSettlementService(config=settlement_config)

        service.settle(checkout_session)
        service.settle(checkout_session)

        assert PaymentTransfer.objects.count() == 1
        assert Meeting.objects.count() == 1
        assert mock_create_transfer.call_count == 1

    def test_large_payment_waits_for_approval(self, checkout_session, mock_create_transfer):
        """
        Given an approval threshold of 5000
        When a 10000 session is settled
        Then the ledger row is held PENDING and no transfer is made
        """
        # Arrange
        service = CheckoutSettlementService(
            config=SettlementConfig(transfer_approval_threshold=5000)
        )

        # Act
        result = service.settle(checkout_session)

        # Assert
        transfer = PaymentTransfer.objects.get()
        assert result.success
        assert transfer.requires_approval is True
        assert transfer.status == TransferStatus.PENDING
        mock_create_transfer.assert_not_called()
        assert Meeting.objects.count() == 1

    def test_account_falls_back_to_event_owner(
        self, settlement_config, checkout_session, expert_account, mock_create_transfer
    ):
        checkout_session["metadata"].pop("expertConnectAccountId")

        CheckoutSettlementService(config=settlement_config).settle(checkout_session)

        transfer = PaymentTransfer.objects.get()
        assert transfer.expert_connect_account_id == expert_account.stripe_account_id

    def test_unpaid_session_books_nothing(
        self, settlement_config, checkout_session, mock_create_transfer
    ):
        """Multibanco sessions complete before payment; the intent settles later."""
        checkout_session["payment_status"] = "unpaid"

        result = CheckoutSettlementService(config=settlement_config).settle(
            checkout_session
        )

        assert result.success
        assert PaymentTransfer.objects.count() == 0
        assert Meeting.objects.count() == 0

    def test_settle_payment_intent_uses_same_sequence(
        self, settlement_config, checkout_session, mock_create_transfer
    ):
        payment_intent = {
            "id": "pi_delayed",
            "amount": 10000,
            "amount_received": 10000,
            "currency": "eur",
            "metadata": checkout_session["metadata"],
        }

        result = CheckoutSettlementService(config=settlement_config).settle_payment_intent(
            payment_intent
        )

        assert result.success
        assert PaymentTransfer.objects.get().payment_intent_id == "pi_delayed"
        assert Meeting.objects.get().stripe_payment_intent_id == "pi_delayed"

    def test_intent_charge_funds_the_transfer(
        self, settlement_config, checkout_session, mock_create_transfer
    ):
        payment_intent = {
            "id": "pi_delayed",
            "amount_received": 10000,
            "currency": "eur",
            "latest_charge": "ch_multibanco",
            "metadata": checkout_session["metadata"],
        }

        CheckoutSettlementService(config=settlement_config).settle_payment_intent(
            payment_intent
        )

        assert PaymentTransfer.objects.get().source_charge_id == "ch_multibanco"
        assert mock_create_transfer.call_args.kwargs["source_transaction"] == "ch_multibanco"

    def test_expert_without_connected_account_still_gets_the_booking(
        self, settlement_config, checkout_session, mock_create_transfer
    ):
        """
        Given a paid session whose expert has not onboarded to Connect
        When it is settled
        Then the meeting is booked and the ledger row waits with a blank
            account for the transfer job
        """
        # Arrange
        checkout_session["metadata"].pop("expertConnectAccountId")

        # Act
        result = CheckoutSettlementService(config=settlement_config).settle(
            checkout_session
        )

        # Assert
        transfer = PaymentTransfer.objects.get()
        assert result.success
        assert Meeting.objects.count() == 1
        assert transfer.expert_connect_account_id == ""
        assert transfer.status == TransferStatus.PENDING
        assert transfer.stripe_error_code == "NO_CONNECTED_ACCOUNT"
        mock_create_transfer.assert_not_called()


@pytest.mark.django_db
class TestSettleFailures:
    """Tests for retries and dead-letter handling."""

    def test_transient_error_is_retried(
        self, settlement_config, checkout_session, mock_create_transfer, no_backoff_sleep
    ):
        """
        Given Stripe is unavailable on the first transfer attempt
        When the session is settled
        Then the second attempt succeeds after one backoff pause
        """
        # Arrange
        succeed = mock_create_transfer.side_effect
        calls = {"n": 0}

        def flaky(**kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StripeAPIUnavailableError("Stripe is down")
            return succeed(**kwargs)

        mock_create_transfer.side_effect = flaky

        # Act
        result = CheckoutSettlementService(config=settlement_config).settle(
            checkout_session
        )

        # Assert
        assert result.success
        assert no_backoff_sleep.call_count == 1
        assert PaymentTransfer.objects.get().status == TransferStatus.COMPLETED
        keys = {c.kwargs["idempotency_key"] for c in mock_create_transfer.call_args_list}
        assert keys == {f"transfer:{PaymentTransfer.objects.get().id}"}

    def test_exhausted_retries_mark_event_failed(
        self, settlement_config, checkout_session, mock_create_transfer,
        no_backoff_sleep, caplog,
    ):
        """
        Given Stripe stays unavailable
        When the session is settled with its webhook event
        Then three attempts are made, the event is FAILED and a critical
            reconciliation record is logged
        """
        # Arrange
        webhook_event = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        mock_create_transfer.side_effect = StripeAPIUnavailableError("Stripe is down")

        # Act
        with caplog.at_level(logging.CRITICAL):
            result = CheckoutSettlementService(config=settlement_config).settle(
                checkout_session, webhook_event
            )

        # Assert
        webhook_event.refresh_from_db()
        assert not result.success
        assert mock_create_transfer.call_count == 3
        assert webhook_event.status == WebhookEventStatus.FAILED
        assert "needs manual reconciliation" in caplog.text
        assert Meeting.objects.count() == 0

    def test_validation_error_is_not_retried(
        self, settlement_config, no_backoff_sleep
    ):
        webhook_event = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)

        result = CheckoutSettlementService(config=settlement_config).settle(
            {"id": "cs_bad", "payment_status": "paid", "metadata": {}},
            webhook_event,
        )

        webhook_event.refresh_from_db()
        assert result.error_code == "MISSING_METADATA"
        no_backoff_sleep.assert_not_called()
        assert webhook_event.status == WebhookEventStatus.FAILED

    def test_unknown_event_fails(self, settlement_config, checkout_session, no_backoff_sleep):
        checkout_session["metadata"]["eventId"] = "not-a-uuid"

        result = CheckoutSettlementService(config=settlement_config).settle(
            checkout_session
        )

        assert result.error_code == "EVENT_NOT_FOUND"
