"""
Cron endpoints for reservation housekeeping.

Endpoints:
    GET|POST /cron/cleanup-expired-reservations
    POST     /cron/send-payment-reminders

Only the external scheduler may call these (see core.scheduler_auth).
A failing run answers 500 {error, details}; the job has already reported
the failure to its heartbeat.
"""

from __future__ import annotations

import logging

from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import (
    api_view,
    authentication_classes,
    permission_classes,
)
from rest_framework.response import Response

from core.scheduler_auth import IsScheduler

from bookings.services import PaymentReminderService, ReservationCleanupService

logger = logging.getLogger(__name__)


@api_view(["GET", "POST"])
@authentication_classes([])
@permission_classes([IsScheduler])
def cleanup_expired_reservations(request):
    """
    Delete expired reservations and duplicate holds.

    Example Response:
        {
            "success": true,
            "expiredCleaned": 3,
            "duplicatesCleaned": 1,
            "totalCleaned": 4,
            "duplicateGroups": 1,
            "duplicateDetails": [...],
            "timestamp": "2024-05-01T10:00:00+00:00"
        }
    """
    now = timezone.now()
    try:
        summary = ReservationCleanupService().cleanup(now=now)
    except Exception as e:
        logger.exception("Reservation cleanup endpoint failed")
        return Response(
            {"error": "Failed to cleanup reservations", "details": str(e)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return Response({"success": True, **summary, "timestamp": now.isoformat()})


@api_view(["POST"])
@authentication_classes([])
@permission_classes([IsScheduler])
def send_payment_reminders(request):
    """Send the gentle and urgent Multibanco reminders that are due."""
    now = timezone.now()
    try:
        summary = PaymentReminderService().send_reminders(now=now)
    except Exception as e:
        logger.exception("Payment reminders endpoint failed")
        return Response(
            {"error": "Failed to process payment reminders", "details": str(e)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return Response({"success": True, **summary, "timestamp": now.isoformat()})
