"""Checkout Session webhook handlers."""

from __future__ import annotations

import logging

from core.services import ServiceResult

from payments.models import WebhookEvent
from payments.services import CheckoutSettlementService
from payments.webhooks.registry import register_handler

logger = logging.getLogger(__name__)


@register_handler("checkout.session.completed")
def handle_checkout_session_completed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Settle a completed checkout: ledger row, transfer and meeting.

    Failures after the retry budget are returned as a failure result; the
    endpoint still acknowledges the event.
    """
    session = webhook_event.get_object()
    logger.info(
        f"Processing checkout session {session.get('id')}",
        extra={
            "checkout_session_id": session.get("id"),
            "payment_status": session.get("payment_status"),
        },
    )
    return CheckoutSettlementService().settle(session, webhook_event)


@register_handler("checkout.session.expired")
def handle_checkout_session_expired(webhook_event: WebhookEvent) -> ServiceResult:
    logger.info(f"Checkout session expired: {webhook_event.get_object_id()}")
    return ServiceResult.success(None)
