"""
Celery tasks for reservation housekeeping.

Tasks:
- cleanup_expired_reservations: Delete expired and duplicate reservations
- send_payment_reminders: Staged Multibanco payment reminders

Both tasks are the beat-driven twins of the /cron endpoints and run the
same services. The periodic schedules are created disabled by migration
0002 and are switched on in the admin when beat replaces the external
scheduler.

Usage:
    from bookings.tasks import cleanup_expired_reservations

    cleanup_expired_reservations.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from bookings.services import PaymentReminderService, ReservationCleanupService

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def cleanup_expired_reservations(self) -> dict:
    """
    Run the reservation cleanup job.

    Returns:
        The cleanup summary (expiredCleaned, duplicatesCleaned, ...)
    """
    logger.info("Starting reservation cleanup")
    summary = ReservationCleanupService().cleanup()
    logger.info(
        f"Reservation cleanup complete: removed {summary['totalCleaned']} reservations",
        extra={"total_cleaned": summary["totalCleaned"]},
    )
    return summary


@shared_task(bind=True)
def send_payment_reminders(self) -> dict:
    """Run the Multibanco payment reminder job."""
    logger.info("Starting Multibanco payment reminders job")
    return PaymentReminderService().send_reminders()
