"""
Checkout settlement.

Turns a completed Stripe Checkout Session into
    - a PaymentTransfer ledger row holding the expert's share,
    - an immediate transfer to the expert when no approval is needed,
    - a confirmed Meeting for the guest.

The sequence is idempotent (get_or_create on the payment intent, a fixed
idempotency key per ledger row, MeetingService dedupe) and runs inside
retry_with_backoff. When the retries run out the webhook event is marked
FAILED for replay and a reconciliation record is logged; the provider is
still acknowledged.

An expert without a connected account does not block the booking: the
ledger row is recorded with a blank account and NO_CONNECTED_ACCOUNT, the
meeting is confirmed, and the transfer job picks the row up once the
expert has onboarded.

Checkout metadata:
    eventId                 Booked Event id
    expertConnectAccountId  Destination Connect account (optional)
    expertClerkUserId       Expert's identity-provider id (optional)
    meetingData             JSON {startTime, guestEmail, guestName,
                            timezone, guestNotes, locale}
    scheduledTransferTime   ISO timestamp (optional, defaults to start)

Flat keys (startTime, guestEmail, ...) are read when meetingData is
missing or does not carry a value.

Usage:
    from payments.services import CheckoutSettlementService

    result = CheckoutSettlementService().settle(session, webhook_event)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from datetime import timezone as dt_timezone
from typing import TYPE_CHECKING, Any

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import InterfaceError, OperationalError
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.retry import retry_with_backoff
from core.services import BaseService, ServiceResult
from core.settlement import SettlementConfig, get_settlement_config

from bookings.models import Event, PaymentStatus
from bookings.services import MeetingService
from payments.adapters import StripeAdapter, is_retryable_stripe_error
from payments.exceptions import PaymentValidationError
from payments.models import ConnectedAccount, PaymentTransfer
from payments.state_machines import TransferStatus

if TYPE_CHECKING:
    from payments.models import WebhookEvent

logger = logging.getLogger(__name__)

SETTLEMENT_MAX_ATTEMPTS = 3
SETTLEMENT_BASE_DELAY_MS = 1000
NO_CONNECTED_ACCOUNT = "NO_CONNECTED_ACCOUNT"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO string or unix seconds into an aware datetime."""
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=dt_timezone.utc)

    parsed = parse_datetime(str(value))
    if parsed is None:
        return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def is_transient_error(error: Exception) -> bool:
    """Retry predicate: provider hiccups and lost database connections."""
    return is_retryable_stripe_error(error) or isinstance(
        error, (OperationalError, InterfaceError)
    )


@dataclass
class CheckoutBooking:
    """Booking details carried in checkout session metadata."""

    event_id: str
    start_time: datetime
    guest_email: str
    guest_name: str = ""
    timezone: str = "UTC"
    guest_notes: str = ""
    locale: str = "en"
    expert_connect_account_id: str = ""
    expert_user_id: str = ""
    scheduled_transfer_time: datetime | None = None

    @classmethod
    def from_metadata(
        cls, metadata: dict[str, Any], customer_email: str | None = None
    ) -> CheckoutBooking:
        """
        Build the booking from checkout metadata.

        Raises:
            PaymentValidationError: eventId, start time or guest email missing
        """
        metadata = metadata or {}
        meeting_data: dict[str, Any] = {}
        raw = metadata.get("meetingData")
        if raw:
            try:
                meeting_data = json.loads(raw) if isinstance(raw, str) else dict(raw)
            except (TypeError, ValueError):
                logger.warning("Checkout meetingData is not valid JSON, using flat keys")

        def pick(key: str, default: str = "") -> str:
            return meeting_data.get(key) or metadata.get(key) or default

        event_id = metadata.get("eventId") or meeting_data.get("eventId")
        start_time = parse_timestamp(pick("startTime"))
        guest_email = pick("guestEmail") or customer_email or ""

        missing = [
            name
            for name, value in (
                ("eventId", event_id),
                ("startTime", start_time),
                ("guestEmail", guest_email),
            )
            if not value
        ]
        if missing:
            raise PaymentValidationError(
                "Checkout session is missing booking metadata",
                error_code="MISSING_METADATA",
                details={"missing": missing},
            )

        return cls(
            event_id=str(event_id),
            start_time=start_time,
            guest_email=guest_email,
            guest_name=pick("guestName"),
            timezone=pick("timezone", "UTC"),
            guest_notes=pick("guestNotes"),
            locale=pick("locale", "en"),
            expert_connect_account_id=metadata.get("expertConnectAccountId") or "",
            expert_user_id=metadata.get("expertClerkUserId")
            or meeting_data.get("clerkUserId")
            or "",
            scheduled_transfer_time=parse_timestamp(metadata.get("scheduledTransferTime")),
        )


class CheckoutSettlementService(BaseService):
    """
    Settles completed checkout sessions.

    Methods:
        settle: Retry-wrapped settlement with dead-letter handling
        settle_once: One attempt; raises on any failure
    """

    def __init__(self, config: SettlementConfig | None = None):
        self.config = config or get_settlement_config()

    def settle(
        self,
        session: dict[str, Any],
        webhook_event: WebhookEvent | None = None,
    ) -> ServiceResult[dict]:
        """
        Settle a checkout session, retrying transient failures.

        Returns:
            ServiceResult with {paymentTransferId, transferId, meetingId} or
            the last error. A failure has already been logged for manual
            reconciliation and recorded on the webhook event.
        """
        session_id = session.get("id")
        result = retry_with_backoff(
            lambda: self.settle_once(session),
            max_attempts=SETTLEMENT_MAX_ATTEMPTS,
            base_delay_ms=SETTLEMENT_BASE_DELAY_MS,
            retry_if=is_transient_error,
            operation_name="checkout_settlement",
        )
        if result:
            return result

        self.get_logger().critical(
            f"Checkout session {session_id} needs manual reconciliation: {result.error}",
            extra={
                "checkout_session_id": session_id,
                "payment_intent_id": self._payment_intent_id(session),
                "error_code": result.error_code,
                "stripe_event_id": webhook_event.stripe_event_id if webhook_event else None,
            },
        )
        if webhook_event is not None:
            webhook_event.mark_failed(f"{result.error_code}: {result.error}")
            webhook_event.save()
        return result

    def settle_payment_intent(
        self,
        payment_intent: dict[str, Any],
        webhook_event: WebhookEvent | None = None,
    ) -> ServiceResult[dict]:
        """
        Settle a delayed payment (e.g. Multibanco) from its succeeded intent.

        The intent carries the same booking metadata as its checkout
        session, so it goes through the same idempotent settlement.
        """
        session = {
            "id": None,
            "payment_intent": payment_intent,
            "payment_status": "paid",
            "amount_total": payment_intent.get("amount_received")
            or payment_intent.get("amount"),
            "currency": payment_intent.get("currency"),
            "metadata": payment_intent.get("metadata") or {},
            "customer_details": {"email": payment_intent.get("receipt_email")},
        }
        return self.settle(session, webhook_event)

    def settle_once(self, session: dict[str, Any]) -> dict[str, Any]:
        log = self.get_logger()
        customer_email = (session.get("customer_details") or {}).get("email")
        booking = CheckoutBooking.from_metadata(session.get("metadata") or {}, customer_email)

        try:
            event = Event.objects.select_related("owner").filter(pk=booking.event_id).first()
        except (ValueError, DjangoValidationError):
            event = None
        if event is None:
            raise PaymentValidationError(
                "Booked event does not exist",
                error_code="EVENT_NOT_FOUND",
                details={"event_id": booking.event_id},
            )

        payment_intent_id = self._payment_intent_id(session)
        amount = session.get("amount_total") or 0
        paid = bool(payment_intent_id) and session.get("payment_status") == "paid"

        transfer = None
        if paid and amount > 0:
            transfer = self._record_transfer(session, booking, event, payment_intent_id, amount)
        elif not paid:
            log.info(
                f"Checkout session {session.get('id')} completed without payment "
                f"(status {session.get('payment_status')}), waiting for the payment intent",
                extra={"checkout_session_id": session.get("id")},
            )
            return {"paymentTransferId": None, "transferId": None, "meetingId": None}

        meeting_result = MeetingService.create_meeting(
            event_id=event.id,
            guest_email=booking.guest_email,
            start_time=booking.start_time,
            guest_name=booking.guest_name,
            timezone_name=booking.timezone,
            guest_notes=booking.guest_notes,
            locale=booking.locale,
            stripe_payment_intent_id=payment_intent_id,
            stripe_session_id=session.get("id"),
            stripe_payment_status=PaymentStatus.SUCCEEDED,
            stripe_amount=amount or None,
        )
        if not meeting_result:
            raise PaymentValidationError(
                f"Meeting could not be created: {meeting_result.error}",
                error_code=meeting_result.error_code,
                details={"checkout_session_id": session.get("id")},
            )

        return {
            "paymentTransferId": str(transfer.id) if transfer else None,
            "transferId": transfer.transfer_id if transfer else None,
            "meetingId": str(meeting_result.data.id),
        }

    def _record_transfer(
        self,
        session: dict[str, Any],
        booking: CheckoutBooking,
        event: Event,
        payment_intent_id: str,
        amount: int,
    ) -> PaymentTransfer:
        log = self.get_logger()
        account_id = booking.expert_connect_account_id or self._owner_account_id(event)

        platform_fee = self.config.platform_fee(amount)
        with self.atomic():
            transfer, created = PaymentTransfer.objects.get_or_create(
                payment_intent_id=payment_intent_id,
                defaults={
                    "checkout_session_id": session.get("id") or "",
                    "event": event,
                    "expert": event.owner,
                    "expert_connect_account_id": account_id,
                    "source_charge_id": self._charge_id(session),
                    "amount": amount - platform_fee,
                    "platform_fee": platform_fee,
                    "currency": (session.get("currency") or "eur").lower(),
                    "session_start_time": booking.start_time,
                    "scheduled_transfer_time": booking.scheduled_transfer_time
                    or booking.start_time,
                    "requires_approval": self.config.requires_approval(amount),
                    "stripe_error_code": None if account_id else NO_CONNECTED_ACCOUNT,
                    "stripe_error_message": None
                    if account_id
                    else "Expert has no connected account",
                },
            )
            if not created and account_id and not transfer.expert_connect_account_id:
                transfer.expert_connect_account_id = account_id
                transfer.stripe_error_code = None
                transfer.stripe_error_message = None
                transfer.save()

        if created:
            log.info(
                f"Recorded transfer {transfer.id} of {transfer.amount} for payment {payment_intent_id}",
                extra={
                    "payment_transfer_id": str(transfer.id),
                    "platform_fee": platform_fee,
                    "requires_approval": transfer.requires_approval,
                },
            )

        if not transfer.expert_connect_account_id:
            log.error(
                f"Expert {event.owner_id} has no connected account, "
                f"transfer {transfer.id} left PENDING for the transfer job",
                extra={
                    "payment_transfer_id": str(transfer.id),
                    "event_id": str(event.id),
                    "expert_id": str(event.owner_id),
                },
            )
            return transfer

        if (
            transfer.requires_approval
            or transfer.transfer_id
            or transfer.status != TransferStatus.PENDING
        ):
            return transfer

        result = StripeAdapter.create_transfer(
            amount_cents=transfer.amount,
            destination_account=transfer.expert_connect_account_id,
            idempotency_key=transfer.transfer_idempotency_key,
            currency=transfer.currency,
            metadata={
                "paymentTransferId": str(transfer.id),
                "eventId": str(event.id),
                "expert": str(event.owner_id),
                "sessionStartTime": transfer.session_start_time.isoformat(),
            },
            description=f"Expert payout for session {event.id}",
            source_transaction=transfer.source_charge_id or None,
        )
        with self.atomic():
            transfer.complete_transfer(transfer_id=result.id)
            transfer.save()

        log.info(
            f"Transferred {transfer.amount} {transfer.currency} to {transfer.expert_connect_account_id}",
            extra={"payment_transfer_id": str(transfer.id), "transfer_id": result.id},
        )
        return transfer

    @staticmethod
    def _owner_account_id(event: Event) -> str:
        account = ConnectedAccount.objects.filter(user_id=event.owner_id).first()
        return account.stripe_account_id if account else ""

    @staticmethod
    def _payment_intent_id(session: dict[str, Any]) -> str | None:
        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, dict):
            return payment_intent.get("id")
        return payment_intent or None

    @staticmethod
    def _charge_id(session: dict[str, Any]) -> str:
        """Charge id from an expanded payment intent, else blank."""
        payment_intent = session.get("payment_intent")
        if not isinstance(payment_intent, dict):
            return ""
        charge = payment_intent.get("latest_charge")
        if isinstance(charge, dict):
            return charge.get("id") or ""
        return charge or ""
