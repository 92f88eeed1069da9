"""
Booking services.

Services:
    MeetingService: Promote a paid reservation into a confirmed Meeting
    ReservationCleanupService: Delete expired and duplicate reservations
    PaymentReminderService: Staged Multibanco voucher reminders

The two job services are instantiated with a SettlementConfig (defaulting
to the process-wide one) and report to their monitoring heartbeat on every
run, successful or not.

Usage:
    from bookings.services import ReservationCleanupService

    summary = ReservationCleanupService().cleanup()
    logger.info("Removed %s reservations", summary["totalCleaned"])
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Count, Q
from django.utils import timezone

from core.monitoring import send_heartbeat
from core.services import BaseService, ServiceResult
from core.settlement import SettlementConfig, get_settlement_config

from bookings.models import Event, Meeting, PaymentStatus, SlotReservation
from notifications.services import (
    NotificationService,
    Workflows,
    locale_from_email,
    normalize_locale,
    subscriber_for_user,
)
from payments.adapters import StripeAdapter
from payments.exceptions import StripeError

if TYPE_CHECKING:
    from payments.adapters import PaymentIntentResult

logger = logging.getLogger(__name__)


def _zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def format_appointment(start_time: datetime, tz_name: str | None) -> tuple[str, str]:
    """Return ("Monday, March 3, 2025", "02:30 PM") in the given timezone."""
    local = start_time.astimezone(_zone(tz_name))
    return (
        f"{local:%A}, {local:%B} {local.day}, {local.year}",
        local.strftime("%I:%M %p"),
    )


def days_remaining(expires_at: datetime, now: datetime) -> int:
    """Whole days left before expires_at, rounded up; 0 once it has passed."""
    return max(0, math.ceil((expires_at - now).total_seconds() / 86400))


def name_from_email(email: str) -> str:
    """Title-cased local part: maria.silva@x.pt -> Maria Silva."""
    local_part = (email or "").split("@")[0]
    for separator in "._-":
        local_part = local_part.replace(separator, " ")
    return local_part.strip().title()


# =============================================================================
# Meeting promotion
# =============================================================================


class MeetingService(BaseService):
    """
    Creates confirmed meetings from paid bookings.

    Methods:
        create_meeting: Idempotent promotion of a reservation into a Meeting
    """

    @classmethod
    def create_meeting(
        cls,
        event_id,
        guest_email: str,
        start_time: datetime,
        guest_name: str = "",
        timezone_name: str = "UTC",
        guest_notes: str = "",
        locale: str = "en",
        stripe_payment_intent_id: str | None = None,
        stripe_session_id: str | None = None,
        stripe_payment_status: str = PaymentStatus.PENDING,
        stripe_amount: int | None = None,
    ) -> ServiceResult[Meeting]:
        """
        Create the meeting for a paid booking and release its reservation.

        A meeting that already exists for the same payment intent, checkout
        session or (event, start_time, guest) is returned unchanged, so
        webhook redeliveries are harmless.

        Returns:
            ServiceResult with the Meeting, or a failure with one of
            EVENT_NOT_FOUND, EVENT_INACTIVE, SLOT_ALREADY_BOOKED,
            SLOT_TEMPORARILY_RESERVED
        """
        log = cls.get_logger()

        validation = cls.validate_required(
            event_id=event_id, guest_email=guest_email, start_time=start_time
        )
        if validation:
            return validation

        try:
            event = Event.objects.select_related("owner").filter(pk=event_id).first()
        except (ValueError, DjangoValidationError):
            event = None
        if event is None:
            return ServiceResult.failure("Event not found", error_code="EVENT_NOT_FOUND")
        if not event.is_active:
            return ServiceResult.failure(
                "Event is not active", error_code="EVENT_INACTIVE"
            )

        same_booking = Q(event=event, start_time=start_time, guest_email__iexact=guest_email)
        if stripe_payment_intent_id:
            same_booking |= Q(stripe_payment_intent_id=stripe_payment_intent_id)
        if stripe_session_id:
            same_booking |= Q(stripe_session_id=stripe_session_id)

        existing = Meeting.objects.filter(same_booking).first()
        if existing is not None:
            log.info(
                f"Meeting {existing.id} already exists, skipping creation",
                extra={"meeting_id": str(existing.id), "event_id": str(event.id)},
            )
            return ServiceResult.success(existing)

        slot_taken = (
            Meeting.objects.filter(event=event, start_time=start_time)
            .exclude(guest_email__iexact=guest_email)
            .exists()
        )
        if slot_taken:
            return ServiceResult.failure(
                "Time slot is already booked", error_code="SLOT_ALREADY_BOOKED"
            )

        slot_held = (
            SlotReservation.objects.active(timezone.now())
            .filter(event=event, start_time=start_time)
            .exclude(guest_email__iexact=guest_email)
            .exists()
        )
        if slot_held:
            return ServiceResult.failure(
                "Time slot is temporarily reserved by another guest",
                error_code="SLOT_TEMPORARILY_RESERVED",
            )

        with cls.atomic():
            meeting = Meeting.objects.create(
                event=event,
                expert=event.owner,
                guest_email=guest_email,
                guest_name=guest_name or "",
                guest_notes=guest_notes or "",
                start_time=start_time,
                end_time=start_time + timedelta(minutes=event.duration_minutes),
                timezone=timezone_name or "UTC",
                locale=locale or "en",
                stripe_payment_intent_id=stripe_payment_intent_id,
                stripe_session_id=stripe_session_id,
                stripe_payment_status=stripe_payment_status,
                stripe_amount=stripe_amount,
            )

            released = Q(event=event, start_time=start_time, guest_email__iexact=guest_email)
            if stripe_payment_intent_id:
                released |= Q(stripe_payment_intent_id=stripe_payment_intent_id)
            deleted, _ = SlotReservation.objects.filter(released).delete()

        log.info(
            f"Created meeting {meeting.id} for event {event.id}",
            extra={
                "meeting_id": str(meeting.id),
                "event_id": str(event.id),
                "reservations_released": deleted,
            },
        )
        return ServiceResult.success(meeting)


# =============================================================================
# Reservation cleanup job
# =============================================================================


class ReservationCleanupService(BaseService):
    """
    Removes reservations that can no longer turn into meetings.

    1. Expired reservations (expires_at < now): the expert is told, then
       the rows are deleted.
    2. Duplicates of (event, start_time, guest_email): the newest row of
       each group survives.

    Re-running the job on the same data deletes nothing further.
    """

    JOB_NAME = "reservations"

    def __init__(self, config: SettlementConfig | None = None):
        self.config = config or get_settlement_config()

    def cleanup(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Run one cleanup pass.

        Returns:
            {expiredCleaned, duplicatesCleaned, totalCleaned, notificationsSent,
            duplicateGroups, duplicateDetails}

        Raises:
            Any database error; the heartbeat is reported as failed first.
        """
        now = now or timezone.now()
        heartbeat_url = self.config.heartbeat_url(self.JOB_NAME)

        try:
            expired_details, notifications_sent = self._delete_expired(now)
            duplicate_details = self._delete_duplicates()
        except Exception as e:
            self.get_logger().exception("Error during slot reservations cleanup")
            send_heartbeat(heartbeat_url, success=False, job_name=self.JOB_NAME, error=e)
            raise

        duplicates_cleaned = sum(len(group["deleted"]) for group in duplicate_details)
        summary = {
            "expiredCleaned": len(expired_details),
            "duplicatesCleaned": duplicates_cleaned,
            "totalCleaned": len(expired_details) + duplicates_cleaned,
            "notificationsSent": notifications_sent,
            "duplicateGroups": len(duplicate_details),
            "duplicateDetails": duplicate_details,
        }
        self.get_logger().info(
            "Cleanup completed successfully",
            extra={
                "expired_deleted": summary["expiredCleaned"],
                "duplicates_deleted": duplicates_cleaned,
                "deleted_reservations": expired_details,
            },
        )
        send_heartbeat(heartbeat_url, success=True, job_name=self.JOB_NAME)
        return summary

    def _delete_expired(self, now: datetime) -> tuple[list[dict], int]:
        expired = list(
            SlotReservation.objects.expired(now).select_related("event", "expert")
        )
        self.get_logger().info(f"Found {len(expired)} expired reservations to process")

        notifications_sent = 0
        for reservation in expired:
            notifications_sent += self._notify_guest(reservation)
            notifications_sent += self._notify_expert(reservation)

        details = [
            {
                "id": str(reservation.id),
                "guestEmail": reservation.guest_email,
                "startTime": reservation.start_time.isoformat(),
                "expiresAt": reservation.expires_at.isoformat(),
                "minutesExpired": round(
                    (now - reservation.expires_at).total_seconds() / 60, 1
                ),
            }
            for reservation in expired
        ]
        if expired:
            SlotReservation.objects.filter(pk__in=[r.pk for r in expired]).delete()
        return details, notifications_sent

    @staticmethod
    def schedule_timezone(reservation: SlotReservation) -> str:
        """The expert's schedule timezone, else the one the guest booked in."""
        return reservation.expert.timezone or reservation.timezone or "UTC"

    def _notify_guest(self, reservation: SlotReservation) -> bool:
        tz_name = self.schedule_timezone(reservation)
        locale = locale_from_email(reservation.guest_email)
        guest_name = reservation.guest_name or name_from_email(reservation.guest_email)
        appointment_date, appointment_time = format_appointment(reservation.start_time, tz_name)
        result = NotificationService.trigger_workflow(
            Workflows.RESERVATION_EXPIRED,
            {
                "subscriberId": reservation.guest_email,
                "email": reservation.guest_email,
                "firstName": guest_name,
                "data": {"locale": locale},
            },
            payload={
                "recipientType": "guest",
                "recipientName": guest_name or "Guest",
                "expertName": reservation.expert.get_full_name() or "Expert",
                "serviceName": reservation.event.name,
                "appointmentDate": appointment_date,
                "appointmentTime": appointment_time,
                "timezone": tz_name,
                "locale": locale,
            },
            transaction_id=f"reservation-expired-guest-{reservation.id}",
        )
        return result.success

    def _notify_expert(self, reservation: SlotReservation) -> bool:
        expert = reservation.expert
        tz_name = self.schedule_timezone(reservation)
        appointment_date, appointment_time = format_appointment(reservation.start_time, tz_name)
        result = NotificationService.trigger_workflow(
            Workflows.RESERVATION_EXPIRED,
            subscriber_for_user(expert),
            payload={
                "expertName": expert.get_full_name() or "Expert",
                "clientName": name_from_email(reservation.guest_email) or "Client",
                "serviceName": reservation.event.name,
                "appointmentDate": appointment_date,
                "appointmentTime": appointment_time,
                "timezone": tz_name,
                "locale": locale_from_email(reservation.guest_email),
            },
            transaction_id=f"reservation-expired-{reservation.id}",
        )
        return result.success

    def _delete_duplicates(self) -> list[dict]:
        groups = (
            SlotReservation.objects.values("event_id", "start_time", "guest_email")
            .annotate(duplicate_count=Count("id"))
            .filter(duplicate_count__gt=1)
            .order_by()
        )

        details = []
        for group in groups:
            ids = list(
                SlotReservation.objects.filter(
                    event_id=group["event_id"],
                    start_time=group["start_time"],
                    guest_email=group["guest_email"],
                )
                .order_by("-created_at", "-id")
                .values_list("id", flat=True)
            )
            keep_id, delete_ids = ids[0], ids[1:]
            if not delete_ids:
                continue

            SlotReservation.objects.filter(pk__in=delete_ids).delete()
            details.append(
                {
                    "eventId": str(group["event_id"]),
                    "startTime": group["start_time"].isoformat(),
                    "guestEmail": group["guest_email"],
                    "originalCount": group["duplicate_count"],
                    "kept": str(keep_id),
                    "deleted": [str(pk) for pk in delete_ids],
                }
            )
            self.get_logger().info(
                f"Cleaned up {len(delete_ids)} duplicates for slot (kept: {keep_id})"
            )
        return details


# =============================================================================
# Payment reminder job
# =============================================================================


@dataclass(frozen=True)
class ReminderStage:
    """
    One reminder stage.

    A reservation qualifies when its expiry lies in
    [now + window_start, now + window_end] and it is at least min_age old.
    """

    name: str
    description: str
    window_start: timedelta
    window_end: timedelta
    min_age: timedelta
    tracking_field: str


REMINDER_STAGES = (
    ReminderStage(
        name="gentle",
        description="Gentle reminder (Day 3)",
        window_start=timedelta(days=3.5),
        window_end=timedelta(days=4.5),
        min_age=timedelta(hours=48),
        tracking_field="gentle_reminder_sent_at",
    ),
    ReminderStage(
        name="urgent",
        description="Urgent reminder (Day 6)",
        window_start=timedelta(days=0.5),
        window_end=timedelta(days=1.5),
        min_age=timedelta(hours=120),
        tracking_field="urgent_reminder_sent_at",
    ),
)


class PaymentReminderService(BaseService):
    """
    Reminds guests with an unpaid Multibanco voucher before it expires.

    The stage's tracking timestamp is written only after Novu accepted the
    trigger. A run that dies between the two re-sends on the next run, and
    the per-stage transactionId lets Novu drop the repeat.
    """

    JOB_NAME = "payment_reminders"

    def __init__(
        self,
        config: SettlementConfig | None = None,
        stages: tuple[ReminderStage, ...] = REMINDER_STAGES,
    ):
        self.config = config or get_settlement_config()
        self.stages = stages

    def send_reminders(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Run every reminder stage once.

        Returns:
            {totalRemindersSent, stages: [{stage, found, sent}]}
        """
        now = now or timezone.now()
        heartbeat_url = self.config.heartbeat_url(self.JOB_NAME)

        try:
            stage_results = [self._run_stage(stage, now) for stage in self.stages]
        except Exception as e:
            self.get_logger().exception("Error during payment reminders job")
            send_heartbeat(heartbeat_url, success=False, job_name=self.JOB_NAME, error=e)
            raise

        summary = {
            "totalRemindersSent": sum(result["sent"] for result in stage_results),
            "stages": stage_results,
        }
        self.get_logger().info("Payment reminders job completed", extra=summary)
        send_heartbeat(heartbeat_url, success=True, job_name=self.JOB_NAME)
        return summary

    def due_reservations(self, stage: ReminderStage, now: datetime):
        return SlotReservation.objects.filter(
            **{f"{stage.tracking_field}__isnull": True},
            stripe_payment_intent_id__isnull=False,
            expires_at__gte=now + stage.window_start,
            expires_at__lte=now + stage.window_end,
            created_at__lte=now - stage.min_age,
        ).select_related("event", "expert")

    def _run_stage(self, stage: ReminderStage, now: datetime) -> dict[str, Any]:
        log = self.get_logger()
        reservations = list(self.due_reservations(stage, now))
        log.info(f"Found {len(reservations)} reservations for {stage.description}")

        sent = 0
        for reservation in reservations:
            try:
                if self._send_one(stage, reservation, now):
                    sent += 1
            except Exception:
                log.exception(
                    f"Error sending reminder for reservation {reservation.id}",
                    extra={"reservation_id": str(reservation.id), "stage": stage.name},
                )

        return {"stage": stage.name, "found": len(reservations), "sent": sent}

    def _send_one(self, stage: ReminderStage, reservation: SlotReservation, now: datetime) -> bool:
        log = self.get_logger()
        payment_intent = self._retrieve_payment_intent(reservation)

        first_name, last_name = self.customer_name(payment_intent, reservation)
        locale = self.customer_locale(payment_intent, reservation)
        voucher = self.voucher_details(payment_intent)
        appointment_date, appointment_time = format_appointment(
            reservation.start_time, reservation.timezone
        )

        result = NotificationService.trigger_workflow(
            Workflows.MULTIBANCO_PAYMENT_REMINDER,
            {
                "subscriberId": reservation.guest_email,
                "email": reservation.guest_email,
                "firstName": first_name,
                "lastName": last_name,
                "data": {"locale": locale},
            },
            payload={
                "customerName": f"{first_name} {last_name}".strip(),
                "expertName": reservation.expert.get_full_name() or "Expert",
                "serviceName": reservation.event.name,
                "appointmentDate": appointment_date,
                "appointmentTime": appointment_time,
                "timezone": reservation.timezone,
                "duration": reservation.event.duration_minutes,
                "multibancoEntity": voucher["entity"],
                "multibancoReference": voucher["reference"],
                "multibancoAmount": voucher["amount"],
                "voucherExpiresAt": voucher["expiresAt"]
                or reservation.expires_at.isoformat(),
                "hostedVoucherUrl": voucher["hostedVoucherUrl"],
                "reminderType": stage.name,
                "daysRemaining": days_remaining(reservation.expires_at, now),
                "locale": locale,
            },
            transaction_id=f"multibanco-reminder-{stage.name}-{reservation.id}",
        )
        if not result:
            log.error(
                f"Failed to trigger workflow for {stage.description} to {reservation.guest_email}"
            )
            return False

        setattr(reservation, stage.tracking_field, now)
        reservation.save(update_fields=[stage.tracking_field, "updated_at"])
        log.info(
            f"{stage.description} sent for reservation {reservation.id}",
            extra={"reservation_id": str(reservation.id), "stage": stage.name},
        )
        return True

    def _retrieve_payment_intent(self, reservation: SlotReservation) -> PaymentIntentResult | None:
        try:
            return StripeAdapter.retrieve_payment_intent(
                reservation.stripe_payment_intent_id,
                expand=["payment_method", "customer"],
            )
        except StripeError as e:
            # Reminder still goes out, with placeholder voucher values
            self.get_logger().error(
                f"Failed to fetch Stripe payment intent for reservation {reservation.id}: {e}",
                extra={"reservation_id": str(reservation.id)},
            )
            return None
        finally:
            time.sleep(self.config.reminder_provider_delay_ms / 1000)

    @staticmethod
    def customer_name(
        payment_intent: PaymentIntentResult | None, reservation: SlotReservation
    ) -> tuple[str, str]:
        """
        Resolve the guest's name as (first, last).

        Order: metadata customerName, metadata guestName, Stripe customer
        name, reservation guest_name, email local part, "Customer".
        """
        metadata = payment_intent.metadata if payment_intent else {}
        customer = payment_intent.customer if payment_intent else {}
        candidates = (
            metadata.get("customerName"),
            metadata.get("guestName"),
            customer.get("name"),
            reservation.guest_name,
            name_from_email(reservation.guest_email),
        )
        full_name = next((c.strip() for c in candidates if c and c.strip()), "Customer")
        first_name, _, last_name = full_name.partition(" ")
        return first_name, last_name.strip()

    @staticmethod
    def customer_locale(
        payment_intent: PaymentIntentResult | None, reservation: SlotReservation
    ) -> str:
        metadata = payment_intent.metadata if payment_intent else {}
        return normalize_locale(metadata.get("locale")) or locale_from_email(
            reservation.guest_email
        )

    @staticmethod
    def voucher_details(payment_intent: PaymentIntentResult | None) -> dict[str, str]:
        if payment_intent is None:
            return {
                "entity": "",
                "reference": "",
                "amount": "0.00",
                "expiresAt": "",
                "hostedVoucherUrl": "",
            }

        details = payment_intent.multibanco_details
        if not details:
            logger.warning(
                f"Multibanco details not found for payment intent {payment_intent.id}"
            )
        expires_at = details.get("expires_at")
        return {
            "entity": str(details.get("entity") or ""),
            "reference": str(details.get("reference") or ""),
            "amount": f"{payment_intent.amount_cents / 100:.2f}",
            "expiresAt": (
                datetime.fromtimestamp(expires_at, tz=dt_timezone.utc).isoformat()
                if expires_at
                else ""
            ),
            "hostedVoucherUrl": details.get("hosted_voucher_url") or "",
        }


__all__ = [
    "MeetingService",
    "PaymentReminderService",
    "REMINDER_STAGES",
    "ReminderStage",
    "ReservationCleanupService",
    "format_appointment",
    "name_from_email",
]
