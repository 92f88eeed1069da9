"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the settlement domain but
are needed to operate it, such as the health check polled by the
scheduler and uptime monitors.
"""

import logging
import time

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

logger = logging.getLogger(__name__)

PROCESS_STARTED_AT = time.monotonic()


@csrf_exempt
@require_http_methods(["GET", "POST"])
def healthcheck(request):
    """
    Health check endpoint for monitoring and the cron scheduler.

    POST is accepted so the scheduler can use the same URL as a
    connectivity check.

    HTTP Status Codes:
        200: All systems operational
        503: Database unreachable

    Example Response:
        {
            "status": "healthy",
            "timestamp": "2024-05-01T10:00:00+00:00",
            "source": "qstash",
            "uptime": 3600.5,
            "environment": "production",
            "database": "connected"
        }
    """
    user_agent = request.headers.get("User-Agent", "").lower()
    health_status = {
        "status": "healthy",
        "timestamp": timezone.now().isoformat(),
        "source": "qstash" if "qstash" in user_agent or "upstash" in user_agent else "direct",
        "uptime": round(time.monotonic() - PROCESS_STARTED_AT, 3),
        "environment": settings.APP_ENV,
        "database": "unknown",
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError as e:
        logger.error(f"Health check database query failed: {e}")
        health_status["database"] = "error"
        health_status["status"] = "unhealthy"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JsonResponse(health_status, status=status_code)
