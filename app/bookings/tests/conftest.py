"""
Pytest fixtures for booking tests.

Usage:
    def test_cleanup(expert_event, mock_notifications, settlement_config):
        ...
"""

from unittest.mock import patch

import pytest

from authentication.tests.factories import UserFactory
from bookings.tests.factories import EventFactory
from core.services import ServiceResult


@pytest.fixture
def expert(db):
    return UserFactory(first_name="Ana", last_name="Costa", country="PT")


@pytest.fixture
def expert_event(expert):
    return EventFactory(owner=expert, name="Therapy Session", duration_minutes=45)


@pytest.fixture
def mock_notifications():
    """Patch Novu dispatch for booking services; every trigger succeeds."""
    with patch("bookings.services.NotificationService.trigger_workflow") as mock_trigger:
        mock_trigger.return_value = ServiceResult.success({"acknowledged": True})
        yield mock_trigger


@pytest.fixture
def mock_heartbeat():
    with patch("bookings.services.send_heartbeat") as mock_send:
        mock_send.return_value = True
        yield mock_send


@pytest.fixture
def mock_retrieve_payment_intent():
    with patch("bookings.services.StripeAdapter.retrieve_payment_intent") as mock_retrieve:
        yield mock_retrieve


@pytest.fixture
def scheduler_headers(settings):
    """Headers that pass scheduler authentication via the API key check."""
    settings.CRON_API_KEY = "cron-test-key"
    return {"HTTP_X_API_KEY": "cron-test-key"}
