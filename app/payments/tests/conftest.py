"""
Pytest fixtures for settlement tests.

Stripe, Novu and BetterStack are always mocked. The adapter mocks patch
StripeAdapter on the class, so every service sees them.

Usage:
    def test_payout(completed_transfer, mock_balance, mock_create_payout):
        mock_balance.return_value = 8500
        ...
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from authentication.tests.factories import UserFactory
from bookings.tests.factories import EventFactory
from core.services import ServiceResult
from payments.adapters import PayoutResult, TransferResult
from payments.state_machines import TransferStatus
from payments.tests.factories import ConnectedAccountFactory, PaymentTransferFactory


# =============================================================================
# Expert Fixtures
# =============================================================================


@pytest.fixture
def expert(db):
    """Portuguese expert (7 day payout delay)."""
    return UserFactory(first_name="Ana", last_name="Costa", country="PT")


@pytest.fixture
def expert_account(expert):
    return ConnectedAccountFactory(user=expert, stripe_account_id="acct_expert_pt")


@pytest.fixture
def expert_event(expert):
    return EventFactory(owner=expert, name="Therapy Session", duration_minutes=45)


@pytest.fixture
def completed_transfer(expert_event, expert_account):
    """COMPLETED transfer whose payout clock started 7 days ago."""
    return PaymentTransferFactory(
        event=expert_event,
        expert_connect_account_id=expert_account.stripe_account_id,
        status=TransferStatus.COMPLETED,
        transfer_id="tr_completed",
        amount=10000,
        aged_by=timedelta(days=7),
    )


# =============================================================================
# Provider Mocks
# =============================================================================


@pytest.fixture
def mock_notifications():
    """Every Novu trigger succeeds."""
    with patch("notifications.services.NotificationService.trigger_workflow") as mock_trigger:
        mock_trigger.return_value = ServiceResult.success({"acknowledged": True})
        yield mock_trigger


@pytest.fixture
def mock_heartbeat():
    with (
        patch("payments.services.payout_processing.send_heartbeat") as payout_heartbeat,
        patch("payments.services.expert_transfers.send_heartbeat") as transfer_heartbeat,
    ):
        payout_heartbeat.return_value = True
        transfer_heartbeat.return_value = True
        yield {"payouts": payout_heartbeat, "transfers": transfer_heartbeat}


@pytest.fixture
def mock_balance():
    with patch("payments.adapters.StripeAdapter.retrieve_available_balance") as mock_retrieve:
        yield mock_retrieve


@pytest.fixture
def mock_create_payout():
    """create_payout echoing the requested amount back."""

    def _payout(**kwargs):
        return PayoutResult(
            id=f"po_{kwargs['metadata']['paymentTransferId'][:8]}",
            amount_cents=kwargs["amount_cents"],
            currency=kwargs["currency"],
            status="pending",
            account_id=kwargs["account_id"],
        )

    with patch("payments.adapters.StripeAdapter.create_payout") as mock_create:
        mock_create.side_effect = _payout
        yield mock_create


@pytest.fixture
def mock_create_transfer():
    """create_transfer returning a fixed transfer id."""

    def _transfer(**kwargs):
        return TransferResult(
            id="tr_test_created",
            amount_cents=kwargs["amount_cents"],
            currency=kwargs.get("currency", "eur"),
            destination_account=kwargs["destination_account"],
            metadata=kwargs.get("metadata") or {},
        )

    with patch("payments.adapters.StripeAdapter.create_transfer") as mock_create:
        mock_create.side_effect = _transfer
        yield mock_create


@pytest.fixture
def no_backoff_sleep():
    with patch("core.retry.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def scheduler_headers(settings):
    settings.CRON_API_KEY = "cron-test-key"
    return {"HTTP_X_API_KEY": "cron-test-key"}
