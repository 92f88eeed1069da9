"""
Job heartbeats for external uptime monitoring (BetterStack).

Each scheduled job pings its heartbeat URL when it finishes: a plain POST
on success, a POST to ``<url>/fail`` with an error body on failure. A
monitoring outage must never fail the job itself, so send_heartbeat only
reports whether the ping was delivered.
"""

from __future__ import annotations

import logging

import httpx
from django.utils import timezone

logger = logging.getLogger(__name__)

HEARTBEAT_TIMEOUT_SECONDS = 5.0


def send_heartbeat(
    url: str,
    success: bool,
    job_name: str,
    error: str | Exception | None = None,
) -> bool:
    """
    Ping a job's heartbeat URL.

    Args:
        url: Heartbeat URL; an empty value disables the ping
        success: Whether the job run succeeded
        job_name: Job label sent with failure reports
        error: Failure reason (only used when success is False)

    Returns:
        True if the monitoring endpoint accepted the ping
    """
    if not url:
        logger.debug(f"No heartbeat URL configured for {job_name}")
        return False

    try:
        if success:
            response = httpx.post(url, timeout=HEARTBEAT_TIMEOUT_SECONDS)
        else:
            response = httpx.post(
                f"{url.rstrip('/')}/fail",
                json={
                    "error": str(error) if error else "Unknown error",
                    "timestamp": timezone.now().isoformat(),
                    "jobName": job_name,
                },
                timeout=HEARTBEAT_TIMEOUT_SECONDS,
            )
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(
            f"Failed to send heartbeat for {job_name}: {e}",
            extra={"job_name": job_name, "heartbeat_success": success},
        )
        return False

    logger.debug(
        f"Heartbeat sent for {job_name}",
        extra={"job_name": job_name, "heartbeat_success": success},
    )
    return True


__all__ = ["send_heartbeat"]
