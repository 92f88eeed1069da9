"""
Tests for individual webhook handlers.

Handlers are called directly with a stored WebhookEvent.
"""

import logging
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import OperationalError
from django.utils import timezone

from authentication.models import IdentityVerificationStatus
from authentication.tests.factories import UserFactory
from bookings.models import PaymentStatus
from bookings.tests.factories import MeetingFactory, SlotReservationFactory
from core.services import ServiceResult
from notifications.services import Workflows
from payments.models import ConnectedAccount
from payments.state_machines import OnboardingStatus, TransferStatus
from payments.tests.factories import (
    ConnectedAccountFactory,
    PaymentTransferFactory,
    WebhookEventFactory,
)
from payments.webhooks.connect import (
    handle_account_deauthorized,
    handle_account_updated,
    handle_external_account,
    handle_payout_failed,
    handle_payout_paid,
)
from payments.webhooks.identity import handle_verification_session
from payments.webhooks.payment import (
    handle_charge_refunded,
    handle_dispute_created,
    handle_payment_intent_failed,
    handle_payment_intent_requires_action,
    handle_payment_intent_succeeded,
)


def make_event(event_type, obj, **extra):
    return WebhookEventFactory(
        event_type=event_type,
        payload={"id": "evt_handler", "type": event_type, "data": {"object": obj}, **extra},
    )


# =============================================================================
# Payment Intent / Charge Handlers
# =============================================================================


@pytest.mark.django_db
class TestPaymentIntentHandlers:
    def test_succeeded_without_booking_metadata_updates_meeting(self):
        meeting = MeetingFactory(
            stripe_payment_intent_id="pi_plain",
            stripe_payment_status=PaymentStatus.PROCESSING,
        )
        webhook_event = make_event("payment_intent.succeeded", {"id": "pi_plain"})

        result = handle_payment_intent_succeeded(webhook_event)

        meeting.refresh_from_db()
        assert result.success
        assert meeting.stripe_payment_status == PaymentStatus.SUCCEEDED

    def test_succeeded_with_metadata_settles(self):
        webhook_event = make_event(
            "payment_intent.succeeded",
            {"id": "pi_delayed", "metadata": {"eventId": "evt-1"}},
        )

        with patch(
            "payments.webhooks.payment.CheckoutSettlementService.settle_payment_intent"
        ) as mock_settle:
            handle_payment_intent_succeeded(webhook_event)

        assert mock_settle.call_args.args[0]["id"] == "pi_delayed"

    def test_payment_failed_marks_meeting_failed(self, caplog, mock_notifications):
        meeting = MeetingFactory(stripe_payment_intent_id="pi_fail")
        webhook_event = make_event(
            "payment_intent.payment_failed",
            {
                "id": "pi_fail",
                "amount": 6000,
                "currency": "eur",
                "last_payment_error": {"message": "Card declined"},
            },
        )

        with caplog.at_level(logging.WARNING):
            result = handle_payment_intent_failed(webhook_event)

        meeting.refresh_from_db()
        assert result.success
        assert meeting.stripe_payment_status == PaymentStatus.FAILED
        assert "Card declined" in caplog.text

        call = mock_notifications.call_args
        assert call.args[0] == Workflows.PAYMENT_UNIVERSAL
        assert call.args[1]["subscriberId"] == meeting.expert.notification_subscriber_id
        assert call.kwargs["payload"]["eventType"] == "failed"
        assert call.kwargs["payload"]["amount"] == "60.00"
        assert call.kwargs["payload"]["failureReason"] == "Card declined"
        assert call.kwargs["transaction_id"] == "payment-failed-pi_fail"

    def test_payment_failed_for_unknown_intent_notifies_nobody(self, mock_notifications):
        webhook_event = make_event("payment_intent.payment_failed", {"id": "pi_nobody"})

        result = handle_payment_intent_failed(webhook_event)

        assert result.success
        mock_notifications.assert_not_called()

    def test_multibanco_voucher_after_session_start_is_flagged(self, caplog):
        """
        Given a reservation starting in 2 days
        When a Multibanco voucher expiring in 5 days is issued
        Then a high-risk warning is logged
        """
        # Arrange
        reservation = SlotReservationFactory(
            stripe_payment_intent_id="pi_mb",
            start_time=timezone.now() + timedelta(days=2),
        )
        expires_at = int((timezone.now() + timedelta(days=5)).timestamp())
        webhook_event = make_event(
            "payment_intent.requires_action",
            {
                "id": "pi_mb",
                "next_action": {
                    "type": "multibanco_display_details",
                    "multibanco_display_details": {"expires_at": expires_at},
                },
            },
        )

        # Act
        with caplog.at_level(logging.WARNING):
            handle_payment_intent_requires_action(webhook_event)

        # Assert
        flagged = [r for r in caplog.records if getattr(r, "audit_event", None)]
        assert len(flagged) == 1
        assert flagged[0].audit_event == "MULTIBANCO_EXPIRY_RISK"
        assert flagged[0].booking_id == str(reservation.id)

    def test_multibanco_voucher_before_session_start_is_fine(self, caplog):
        SlotReservationFactory(
            stripe_payment_intent_id="pi_mb_ok",
            start_time=timezone.now() + timedelta(days=10),
        )
        expires_at = int((timezone.now() + timedelta(days=3)).timestamp())
        webhook_event = make_event(
            "payment_intent.requires_action",
            {
                "id": "pi_mb_ok",
                "next_action": {
                    "type": "multibanco_display_details",
                    "multibanco_display_details": {"expires_at": expires_at},
                },
            },
        )

        with caplog.at_level(logging.WARNING):
            handle_payment_intent_requires_action(webhook_event)

        assert not [r for r in caplog.records if getattr(r, "audit_event", None)]


@pytest.mark.django_db
class TestChargeHandlers:
    def test_refund_moves_transfer_to_refunded(self, mock_notifications):
        """
        Given a completed booking whose charge is refunded
        When the refund webhook is handled
        Then the ledger row is REFUNDED and the expert is told once it is
        """
        # Arrange
        transfer = PaymentTransferFactory(payment_intent_id="pi_refund")
        meeting = MeetingFactory(stripe_payment_intent_id="pi_refund")
        webhook_event = make_event(
            "charge.refunded",
            {
                "id": "ch_1",
                "payment_intent": "pi_refund",
                "amount_refunded": 10000,
                "currency": "eur",
            },
        )

        # Act

        result = handle_charge_refunded(webhook_event)

        # Assert
        transfer.refresh_from_db()
        meeting.refresh_from_db()
        assert result.success
        assert transfer.status == TransferStatus.REFUNDED
        assert meeting.stripe_payment_status == PaymentStatus.REFUNDED
        call = mock_notifications.call_args
        assert call.args[0] == Workflows.PAYMENT_UNIVERSAL
        assert call.args[1]["subscriberId"] == transfer.expert.notification_subscriber_id
        assert call.kwargs["payload"]["eventType"] == "refund"
        assert call.kwargs["payload"]["amount"] == "100.00"
        assert call.kwargs["payload"]["paymentTransferId"] == str(transfer.id)
        assert call.kwargs["transaction_id"] == "payment-refunded-ch_1"

    def test_refund_after_payout_is_only_logged(self, caplog, mock_notifications):
        """
        Given a transfer that was already paid out
        When the charge is refunded
        Then the row stays PAID_OUT and an error is logged
        """
        # Arrange
        transfer = PaymentTransferFactory(
            payment_intent_id="pi_paid_out",
            status=TransferStatus.PAID_OUT,
            transfer_id="tr_1",
            payout_id="po_1",
        )
        webhook_event = make_event(
            "charge.refunded", {"id": "ch_2", "payment_intent": "pi_paid_out"}
        )

        # Act
        with caplog.at_level(logging.ERROR):
            handle_charge_refunded(webhook_event)

        # Assert
        transfer.refresh_from_db()
        assert transfer.status == TransferStatus.PAID_OUT
        assert "Refund received" in caplog.text
        mock_notifications.assert_not_called()

    def test_refund_without_payment_intent_fails(self):
        webhook_event = make_event("charge.refunded", {"id": "ch_3"})

        result = handle_charge_refunded(webhook_event)

        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"

    def test_dispute_marks_transfer_disputed(self, mock_notifications):
        transfer = PaymentTransferFactory(
            payment_intent_id="pi_dispute",
            status=TransferStatus.COMPLETED,
            transfer_id="tr_d",
        )
        webhook_event = make_event(
            "charge.dispute.created",
            {"id": "dp_1", "payment_intent": "pi_dispute", "reason": "fraudulent", "amount": 4200},
        )

        handle_dispute_created(webhook_event)

        transfer.refresh_from_db()
        assert transfer.status == TransferStatus.DISPUTED
        payload = mock_notifications.call_args.kwargs["payload"]
        assert mock_notifications.call_args.args[0] == Workflows.PAYMENT_UNIVERSAL
        assert payload["eventType"] == "dispute"
        assert payload["amount"] == "42.00"
        assert payload["disputeReason"] == "fraudulent"
        assert mock_notifications.call_args.kwargs["transaction_id"] == "payment-disputed-dp_1"

    def test_notification_failure_does_not_fail_the_dispute_webhook(self, mock_notifications):
        transfer = PaymentTransferFactory(payment_intent_id="pi_dispute_2")
        mock_notifications.return_value = ServiceResult.failure("novu down")
        webhook_event = make_event(
            "charge.dispute.created", {"id": "dp_2", "payment_intent": "pi_dispute_2"}
        )

        result = handle_dispute_created(webhook_event)

        transfer.refresh_from_db()
        assert result.success
        assert transfer.status == TransferStatus.DISPUTED


# =============================================================================
# Connect Handlers
# =============================================================================


@pytest.mark.django_db
class TestConnectHandlers:
    def test_account_updated_creates_account_for_known_user(self, mock_notifications):
        """
        Given a Connect account whose metadata names a known user
        When account.updated reports it fully enabled
        Then a COMPLETE local account is created and the expert is told
        """
        # Arrange
        user = UserFactory(external_id="user_connect_1")
        webhook_event = make_event(
            "account.updated",
            {
                "id": "acct_new",
                "object": "account",
                "charges_enabled": True,
                "payouts_enabled": True,
                "details_submitted": True,
                "metadata": {"userId": "user_connect_1"},
            },
        )

        # Act
        result = handle_account_updated(webhook_event)

        # Assert
        account = ConnectedAccount.objects.get(stripe_account_id="acct_new")
        assert result.success
        assert account.user == user
        assert account.onboarding_status == OnboardingStatus.COMPLETE
        call = mock_notifications.call_args
        assert call.args[0] == Workflows.CONNECT_ACCOUNT_UPDATE
        assert call.kwargs["transaction_id"] == "connect-complete-acct_new"

    def test_account_updated_partial_onboarding(self, mock_notifications):
        account = ConnectedAccountFactory(
            onboarding_status=OnboardingStatus.NOT_STARTED,
            charges_enabled=False,
            payouts_enabled=False,
            details_submitted=False,
        )
        webhook_event = make_event(
            "account.updated",
            {
                "id": account.stripe_account_id,
                "charges_enabled": False,
                "payouts_enabled": False,
                "details_submitted": True,
            },
        )

        handle_account_updated(webhook_event)

        account.refresh_from_db()
        assert account.onboarding_status == OnboardingStatus.IN_PROGRESS
        mock_notifications.assert_not_called()

    def test_account_updated_for_unknown_user_is_ignored(self, mock_notifications):
        webhook_event = make_event(
            "account.updated", {"id": "acct_orphan", "metadata": {"userId": "nobody"}}
        )

        result = handle_account_updated(webhook_event)

        assert result.success
        assert not ConnectedAccount.objects.filter(stripe_account_id="acct_orphan").exists()

    def test_deauthorized_removes_account(self):
        account = ConnectedAccountFactory()
        webhook_event = make_event(
            "account.application.deauthorized",
            {"id": "ca_1", "object": "application"},
            account=account.stripe_account_id,
        )

        handle_account_deauthorized(webhook_event)

        assert not ConnectedAccount.objects.filter(pk=account.pk).exists()

    def test_external_account_created_and_deleted(self):
        account = ConnectedAccountFactory()
        created = make_event(
            "account.external_account.created",
            {"id": "ba_1", "object": "bank_account", "last4": "4321", "bank_name": "CGD"},
            account=account.stripe_account_id,
        )
        deleted = make_event(
            "account.external_account.deleted",
            {"id": "ba_1", "object": "bank_account"},
            account=account.stripe_account_id,
        )

        handle_external_account(created)
        account.refresh_from_db()
        assert (account.bank_last4, account.bank_name) == ("4321", "CGD")

        handle_external_account(deleted)
        account.refresh_from_db()
        assert (account.bank_last4, account.bank_name) == ("", "")

    def test_payout_paid_notifies_expert(self, mock_notifications):
        account = ConnectedAccountFactory()
        webhook_event = make_event(
            "payout.paid",
            {"id": "po_paid", "amount": 8500, "currency": "eur"},
            account=account.stripe_account_id,
        )

        handle_payout_paid(webhook_event)

        call = mock_notifications.call_args
        assert call.args[0] == Workflows.PAYOUT_COMPLETED
        assert call.kwargs["payload"]["amount"] == "85.00"
        assert call.kwargs["transaction_id"] == "payout-paid-po_paid"

    def test_payout_failed_disables_payouts(self, mock_notifications):
        account = ConnectedAccountFactory()
        webhook_event = make_event(
            "payout.failed",
            {"id": "po_fail", "amount": 8500, "failure_message": "Account closed"},
            account=account.stripe_account_id,
        )

        handle_payout_failed(webhook_event)

        account.refresh_from_db()
        assert account.payouts_enabled is False
        call = mock_notifications.call_args
        assert call.args[0] == Workflows.PAYOUT_FAILED
        assert call.kwargs["payload"]["errorMessage"] == "Account closed"


# =============================================================================
# Identity Handlers
# =============================================================================


def verification_event(user, status, session_id="vs_123", **session):
    return make_event(
        f"identity.verification_session.{status}",
        {
            "id": session_id,
            "object": "identity.verification_session",
            "status": status,
            "client_reference_id": user.external_id,
            **session,
        },
    )


@pytest.mark.django_db
class TestIdentityHandlers:
    def test_verified_updates_user_and_notifies_once(self, mock_notifications):
        """
        Given a verified session for a known user
        When the event is delivered twice
        Then the user is verified and exactly one notification is sent
        """
        # Arrange
        user = UserFactory()
        webhook_event = verification_event(user, IdentityVerificationStatus.VERIFIED)

        # Act
        first = handle_verification_session(webhook_event)
        handle_verification_session(webhook_event)

        # Assert
        user.refresh_from_db()
        assert first.success
        assert user.identity_verified is True
        assert user.identity_verification_id == "vs_123"
        assert user.identity_verification_last_checked is not None
        assert user.setup_progress.get("identity") is True
        assert mock_notifications.call_count == 1
        call = mock_notifications.call_args
        assert call.args[0] == Workflows.IDENTITY_VERIFICATION
        assert call.kwargs["payload"]["title"] == "Identity Verification Complete"
        assert call.kwargs["transaction_id"] == "identity-verified-vs_123"

    def test_requires_input_asks_for_attention(self, mock_notifications):
        user = UserFactory()
        webhook_event = verification_event(
            user,
            IdentityVerificationStatus.REQUIRES_INPUT,
            last_error={"reason": "Document expired"},
        )

        handle_verification_session(webhook_event)

        user.refresh_from_db()
        assert user.identity_verified is False
        payload = mock_notifications.call_args.kwargs["payload"]
        assert payload["title"] == "Identity Verification Needs Attention"
        assert payload["message"] == "Document expired"

    def test_user_resolved_by_stored_session_id(self, mock_notifications):
        user = UserFactory(identity_verification_id="vs_stored")
        webhook_event = make_event(
            "identity.verification_session.processing",
            {"id": "vs_stored", "status": "processing", "metadata": {}},
        )

        result = handle_verification_session(webhook_event)

        user.refresh_from_db()
        assert result.success
        assert user.identity_verification_status == "processing"

    def test_unknown_user_fails(self, mock_notifications):
        webhook_event = make_event(
            "identity.verification_session.verified",
            {"id": "vs_none", "status": "verified"},
        )

        result = handle_verification_session(webhook_event)

        assert result.error_code == "USER_NOT_FOUND"
        mock_notifications.assert_not_called()

    def test_exhausted_retries_skip_notification(
        self, mock_notifications, no_backoff_sleep, caplog
    ):
        """
        Given the user update fails on every attempt
        When a verified event is handled
        Then no notification is sent and a critical record is logged
        """
        # Arrange
        user = UserFactory()
        webhook_event = verification_event(user, IdentityVerificationStatus.VERIFIED)

        # Act
        with patch(
            "payments.webhooks.identity.apply_verification_status",
            side_effect=OperationalError("connection lost"),
        ) as mock_apply:
            with caplog.at_level(logging.CRITICAL):
                result = handle_verification_session(webhook_event)

        # Assert
        assert not result.success
        assert mock_apply.call_count == 3
        assert no_backoff_sleep.call_count == 2
        mock_notifications.assert_not_called()
        assert "needs manual intervention" in caplog.text
