"""
Cron endpoints for the settlement jobs.

Endpoints:
    GET|POST /cron/process-pending-payouts
    GET|POST /cron/process-expert-transfers

Only the external scheduler may call these (see core.scheduler_auth).
Both answer {"success": true, "summary": {...}}, or 500 {error, details}
when the run fails before producing a summary.
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.decorators import (
    api_view,
    authentication_classes,
    permission_classes,
)
from rest_framework.response import Response

from core.scheduler_auth import IsScheduler

from payments.services import ExpertTransferService, PayoutProcessingService

logger = logging.getLogger(__name__)


@api_view(["GET", "POST"])
@authentication_classes([])
@permission_classes([IsScheduler])
def process_pending_payouts(request):
    """
    Pay out completed transfers whose country delay has elapsed.

    Example Response:
        {
            "success": true,
            "summary": {
                "total": 2,
                "successful": 1,
                "failed": 1,
                "totalAmountPaidOut": 8500,
                "details": [...]
            }
        }
    """
    try:
        summary = PayoutProcessingService().process_pending_payouts()
    except Exception as e:
        logger.exception("Pending payouts endpoint failed")
        return Response(
            {"error": "Failed to process pending payouts", "details": str(e)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return Response({"success": True, "summary": summary})


@api_view(["GET", "POST"])
@authentication_classes([])
@permission_classes([IsScheduler])
def process_expert_transfers(request):
    """Transfer due and approved expert shares to their Connect accounts."""
    try:
        summary = ExpertTransferService().process_transfers()
    except Exception as e:
        logger.exception("Expert transfers endpoint failed")
        return Response(
            {"error": "Failed to process expert transfers", "details": str(e)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return Response({"success": True, "summary": summary})
