"""
Webhook endpoint views for Stripe.

Endpoints (each with its own signing secret):
    POST /webhooks/stripe            STRIPE_WEBHOOK_SECRET
    POST /webhooks/stripe-connect    STRIPE_CONNECT_WEBHOOK_SECRET
    POST /webhooks/stripe-identity   STRIPE_IDENTITY_WEBHOOK_SECRET

Each view:
1. Verifies the webhook signature
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Acknowledges already processed events without doing work
4. Runs the registered handler synchronously
5. Returns 200 once the signature verified

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import StripeAdapter
from payments.exceptions import StripeInvalidRequestError
from payments.models import WebhookEvent, WebhookSource
from payments.webhooks.registry import process_webhook_event

logger = logging.getLogger(__name__)


def _verify(request: HttpRequest, secret: str) -> tuple[dict | None, JsonResponse | None]:
    """Return (event, None) or (None, error response)."""
    signature = request.headers.get("Stripe-Signature", "")
    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return None, JsonResponse({"error": "Missing stripe-signature header"}, status=400)

    try:
        event = StripeAdapter.verify_webhook_signature(request.body, signature, secret)
    except StripeInvalidRequestError as e:
        logger.warning("Webhook signature verification failed", extra={"error": str(e)})
        return None, JsonResponse(
            {"error": "Webhook signature verification failed"}, status=400
        )

    if not event.get("id") or not event.get("type"):
        logger.warning("Webhook missing required fields")
        return None, JsonResponse({"error": "Invalid event"}, status=400)
    return event, None


def _record(event: dict, source: str) -> WebhookEvent:
    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=event["id"],
        defaults={
            "event_type": event["type"],
            "source": source,
            "payload": event,
        },
    )
    logger.info(
        f"Received Stripe webhook: {event['type']}",
        extra={
            "stripe_event_id": event["id"],
            "event_type": event["type"],
            "source": source,
            "duplicate": not created,
        },
    )
    return webhook_event


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """
    Checkout, payment intent, refund and dispute events.

    Returns:
        400 on a missing header, missing secret or bad signature,
        otherwise 200 {"received": true}
    """
    secret = settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured")
        return JsonResponse({"error": "Webhook secret not configured"}, status=400)

    event, error_response = _verify(request, secret)
    if error_response:
        return error_response

    webhook_event = _record(event, WebhookSource.STRIPE)
    try:
        process_webhook_event(webhook_event)
    except Exception:
        logger.exception(
            f"Error processing {event['type']}",
            extra={"stripe_event_id": event["id"]},
        )
    return JsonResponse({"received": True})


@csrf_exempt
@require_POST
def stripe_connect_webhook(request: HttpRequest) -> JsonResponse:
    """
    Connected account and payout events.

    Returns:
        200 {"received": true, "status": "success"}, or 500 {"error"} when
        the handler raises
    """
    secret = settings.STRIPE_CONNECT_WEBHOOK_SECRET
    if not secret:
        logger.error("STRIPE_CONNECT_WEBHOOK_SECRET is not configured")
        return JsonResponse({"error": "Webhook secret not configured"}, status=500)

    event, error_response = _verify(request, secret)
    if error_response:
        return error_response

    webhook_event = _record(event, WebhookSource.STRIPE_CONNECT)
    try:
        process_webhook_event(webhook_event)
    except Exception:
        logger.exception(
            "Error in Stripe Connect webhook",
            extra={"stripe_event_id": event["id"], "event_type": event["type"]},
        )
        return JsonResponse(
            {"error": "Internal server error processing webhook"}, status=500
        )
    return JsonResponse({"received": True, "status": "success"})


@csrf_exempt
@require_POST
def stripe_identity_webhook(request: HttpRequest) -> JsonResponse:
    """Identity verification session events. Always 200 once verified."""
    secret = settings.STRIPE_IDENTITY_WEBHOOK_SECRET
    if not secret:
        logger.error("STRIPE_IDENTITY_WEBHOOK_SECRET is not configured")
        return JsonResponse({"error": "Webhook secret not configured"}, status=500)

    event, error_response = _verify(request, secret)
    if error_response:
        return error_response

    webhook_event = _record(event, WebhookSource.STRIPE_IDENTITY)
    try:
        process_webhook_event(webhook_event)
    except Exception:
        logger.exception(
            "Error handling verification session event",
            extra={"stripe_event_id": event["id"]},
        )
    return JsonResponse({"received": True})
