"""
PaymentIntent, refund and dispute webhook handlers.

Handlers:
    payment_intent.succeeded: Settle delayed payments and confirm meetings
    payment_intent.payment_failed: Flag the meeting, log the reason, tell the expert
    payment_intent.requires_action: Warn when a Multibanco voucher outlives
        the session start
    charge.refunded: Ledger row -> REFUNDED, tell the expert
    charge.dispute.created: Ledger row -> DISPUTED, tell the expert

Expert notices go through the payment-universal workflow with an eventType
of failed, refund or dispute. They are best-effort: a Novu failure is logged
by NotificationService and never fails the webhook.
"""

from __future__ import annotations

import logging
from datetime import datetime
from datetime import timezone as dt_timezone

from django_fsm import can_proceed

from core.services import ServiceResult

from bookings.models import Meeting, PaymentStatus, SlotReservation
from notifications.services import NotificationService, Workflows
from payments.models import PaymentTransfer, WebhookEvent
from payments.services import CheckoutSettlementService
from payments.state_machines import TransferStatus
from payments.webhooks.registry import register_handler

logger = logging.getLogger(__name__)

MULTIBANCO_ACTION = "multibanco_display_details"

_INTENT_FIELDS = {
    Meeting: "stripe_payment_intent_id",
    SlotReservation: "stripe_payment_intent_id",
    PaymentTransfer: "payment_intent_id",
}


def _payment_intent_id(obj: dict) -> str | None:
    payment_intent = obj.get("payment_intent")
    if isinstance(payment_intent, dict):
        return payment_intent.get("id")
    return payment_intent


def _notify_expert(
    expert,
    event_type: str,
    amount: int | None,
    currency: str | None,
    reference_id: str,
    transaction_id: str,
    **extra,
) -> None:
    NotificationService.notify_user(
        Workflows.PAYMENT_UNIVERSAL,
        expert,
        payload={
            "eventType": event_type,
            "amount": f"{(amount or 0) / 100:.2f}",
            "currency": (currency or "eur").upper(),
            "transactionId": reference_id,
            **extra,
        },
        transaction_id=transaction_id,
    )


def _booking_expert(payment_intent_id: str):
    """Expert behind a payment, from its meeting, reservation or ledger row."""
    for model in (Meeting, SlotReservation, PaymentTransfer):
        row = (
            model.objects.select_related("expert")
            .filter(**{_INTENT_FIELDS[model]: payment_intent_id})
            .first()
        )
        if row is not None:
            return row.expert
    return None


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Confirm the meeting for a payment that settled after checkout.

    Intents carrying booking metadata are settled like a paid checkout
    session; otherwise only existing meetings are marked succeeded.
    """
    payment_intent = webhook_event.get_object()
    payment_intent_id = payment_intent.get("id")
    if not payment_intent_id:
        return ServiceResult.failure(
            "Could not extract payment_intent_id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    updated = (
        Meeting.objects.filter(stripe_payment_intent_id=payment_intent_id)
        .exclude(stripe_payment_status=PaymentStatus.SUCCEEDED)
        .update(stripe_payment_status=PaymentStatus.SUCCEEDED)
    )
    if updated:
        logger.info(f"Meeting status updated to succeeded for {payment_intent_id}")

    metadata = payment_intent.get("metadata") or {}
    if not (metadata.get("meetingData") or metadata.get("eventId")):
        logger.info(
            f"Payment intent {payment_intent_id} carries no booking metadata",
            extra={"payment_intent_id": payment_intent_id},
        )
        return ServiceResult.success(None)

    return CheckoutSettlementService().settle_payment_intent(payment_intent, webhook_event)


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    payment_intent = webhook_event.get_object()
    payment_intent_id = payment_intent.get("id")
    reason = (payment_intent.get("last_payment_error") or {}).get("message") or "Unknown reason"

    updated = Meeting.objects.filter(stripe_payment_intent_id=payment_intent_id).update(
        stripe_payment_status=PaymentStatus.FAILED
    )
    logger.warning(
        f"Payment failed for {payment_intent_id}: {reason}",
        extra={
            "payment_intent_id": payment_intent_id,
            "failure_reason": reason,
            "meetings_updated": updated,
            "stripe_event_id": webhook_event.stripe_event_id,
        },
    )

    expert = _booking_expert(payment_intent_id) if payment_intent_id else None
    if expert is not None:
        _notify_expert(
            expert,
            "failed",
            payment_intent.get("amount"),
            payment_intent.get("currency"),
            payment_intent_id,
            f"payment-failed-{payment_intent_id}",
            failureReason=reason,
        )
    return ServiceResult.success(None)


@register_handler("payment_intent.requires_action")
def handle_payment_intent_requires_action(webhook_event: WebhookEvent) -> ServiceResult:
    """Flag Multibanco vouchers that expire after the booked session starts."""
    payment_intent = webhook_event.get_object()
    payment_intent_id = payment_intent.get("id")
    next_action = payment_intent.get("next_action") or {}

    if next_action.get("type") != MULTIBANCO_ACTION:
        return ServiceResult.success(None)

    expires_at = (next_action.get(MULTIBANCO_ACTION) or {}).get("expires_at")
    if not expires_at:
        return ServiceResult.success(None)
    voucher_expires_at = datetime.fromtimestamp(expires_at, tz=dt_timezone.utc)

    booking = (
        Meeting.objects.filter(stripe_payment_intent_id=payment_intent_id).first()
        or SlotReservation.objects.filter(stripe_payment_intent_id=payment_intent_id).first()
    )
    if booking is None:
        logger.warning(
            f"No meeting or reservation found for Multibanco payment intent {payment_intent_id}"
        )
        return ServiceResult.success(None)

    if voucher_expires_at > booking.start_time:
        logger.warning(
            f"Multibanco voucher for {payment_intent_id} expires at "
            f"{voucher_expires_at.isoformat()}, after the session start "
            f"{booking.start_time.isoformat()}",
            extra={
                "audit_event": "MULTIBANCO_EXPIRY_RISK",
                "payment_intent_id": payment_intent_id,
                "booking_id": str(booking.id),
                "voucher_expires_at": voucher_expires_at.isoformat(),
                "session_start_time": booking.start_time.isoformat(),
                "expert_id": (payment_intent.get("metadata") or {}).get("expertClerkUserId"),
                "risk_level": "HIGH",
                "requires_manual_review": True,
            },
        )
    return ServiceResult.success(None)


@register_handler("charge.refunded")
def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
    charge = webhook_event.get_object()
    payment_intent_id = _payment_intent_id(charge)
    if not payment_intent_id:
        return ServiceResult.failure(
            "Charge has no payment intent", error_code="INVALID_WEBHOOK_PAYLOAD"
        )

    Meeting.objects.filter(stripe_payment_intent_id=payment_intent_id).update(
        stripe_payment_status=PaymentStatus.REFUNDED
    )

    transfer = PaymentTransfer.objects.filter(payment_intent_id=payment_intent_id).first()
    if transfer is None:
        logger.warning(f"No transfer record found for refunded payment {payment_intent_id}")
        return ServiceResult.success(None)

    if not can_proceed(transfer.mark_refunded):
        logger.error(
            f"Refund received for transfer {transfer.id} in status {transfer.status}",
            extra={
                "payment_transfer_id": str(transfer.id),
                "status": transfer.status,
                "charge_id": charge.get("id"),
            },
        )
        return ServiceResult.success(None)

    transfer.mark_refunded()
    transfer.save()
    logger.info(f"Transfer {transfer.id} marked refunded for charge {charge.get('id')}")
    _notify_expert(
        transfer.expert,
        "refund",
        charge.get("amount_refunded") or charge.get("amount") or transfer.amount,
        charge.get("currency") or transfer.currency,
        payment_intent_id,
        f"payment-refunded-{charge.get('id') or payment_intent_id}",
        paymentTransferId=str(transfer.id),
    )
    return ServiceResult.success(transfer)


@register_handler("charge.dispute.created")
def handle_dispute_created(webhook_event: WebhookEvent) -> ServiceResult:
    dispute = webhook_event.get_object()
    payment_intent_id = _payment_intent_id(dispute)

    transfer = PaymentTransfer.objects.filter(payment_intent_id=payment_intent_id).first()
    if transfer is None:
        logger.error(f"No transfer record found for disputed payment {payment_intent_id}")
        return ServiceResult.success(None)

    if transfer.status != TransferStatus.DISPUTED:
        transfer.mark_disputed()
        transfer.save()

    logger.warning(
        f"Dispute {dispute.get('id')} opened for transfer {transfer.id}",
        extra={
            "payment_transfer_id": str(transfer.id),
            "dispute_reason": dispute.get("reason"),
            "amount": dispute.get("amount"),
        },
    )
    _notify_expert(
        transfer.expert,
        "dispute",
        dispute.get("amount") or transfer.amount,
        dispute.get("currency") or transfer.currency,
        payment_intent_id,
        f"payment-disputed-{dispute.get('id') or payment_intent_id}",
        paymentTransferId=str(transfer.id),
        disputeReason=dispute.get("reason"),
    )
    return ServiceResult.success(transfer)
