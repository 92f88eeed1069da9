"""Tests for the beat-driven reservation tasks."""

from unittest.mock import patch

from bookings.tasks import cleanup_expired_reservations, send_payment_reminders


class TestReservationTasks:
    def test_cleanup_task_runs_service(self):
        summary = {"totalCleaned": 2, "expiredCleaned": 2}

        with patch("bookings.tasks.ReservationCleanupService") as mock_service:
            mock_service.return_value.cleanup.return_value = summary
            result = cleanup_expired_reservations.apply().get()

        assert result == summary
        mock_service.return_value.cleanup.assert_called_once_with()

    def test_reminder_task_runs_service(self):
        with patch("bookings.tasks.PaymentReminderService") as mock_service:
            mock_service.return_value.send_reminders.return_value = {
                "totalRemindersSent": 0,
                "stages": [],
            }
            result = send_payment_reminders.apply().get()

        assert result["totalRemindersSent"] == 0
