"""
Celery tasks for webhook replay.

Webhook events are processed synchronously by the endpoints. Events that
ended FAILED (for example a checkout that exhausted its settlement
retries) keep their payload and can be replayed here, from the admin or
a shell.

Usage:
    from payments.tasks import reprocess_webhook_event

    reprocess_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from payments.models import WebhookEvent

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = 5


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def reprocess_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Replay a stored webhook event through its handler.

    Args:
        webhook_event_id: UUID of the WebhookEvent to replay

    Returns:
        Dict with the replay status

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    from payments.webhooks import process_webhook_event

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
    if webhook_event is None:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        return {
            "status": "already_processed",
            "webhook_event_id": str(webhook_event_id),
        }

    logger.info(
        f"Replaying webhook: {webhook_event.event_type}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
            "retry_count": webhook_event.retry_count,
        },
    )

    result = process_webhook_event(webhook_event)
    if result:
        return {
            "status": "processed",
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
        }
    return {
        "status": "handler_failed",
        "webhook_event_id": str(webhook_event_id),
        "error": result.error,
    }
