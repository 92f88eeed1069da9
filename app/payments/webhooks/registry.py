"""
Webhook handler registry and event processing.

Handlers are plain functions registered per Stripe event type. They take
the stored WebhookEvent and return a ServiceResult; a failure result marks
the event FAILED so it can be replayed.

Usage:
    from payments.webhooks.registry import register_handler

    @register_handler("payout.paid")
    def handle_payout_paid(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = process_webhook_event(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from payments.models import WebhookEvent

logger = logging.getLogger(__name__)


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(*event_types: str) -> Callable:
    """
    Decorator to register a webhook event handler for one or more types.

    Usage:
        @register_handler("charge.refunded")
        def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        for event_type in event_types:
            WEBHOOK_HANDLERS[event_type] = func
            logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Unknown event types are acknowledged as successful.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"Unhandled event type {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return handler(webhook_event)


def process_webhook_event(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Run a stored event through its handler and record the outcome.

    PROCESSED events are skipped. Exceptions from the handler mark the
    event FAILED and propagate to the caller.
    """
    if webhook_event.is_processed:
        logger.info(
            "Webhook already processed, skipping",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    webhook_event.mark_processing()
    webhook_event.save()

    try:
        result = dispatch_webhook(webhook_event)
    except Exception as e:
        webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        webhook_event.save()
        raise

    if result:
        webhook_event.mark_processed()
    else:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "event_type": webhook_event.event_type,
                "error_code": result.error_code,
            },
        )
    webhook_event.save()
    return result
