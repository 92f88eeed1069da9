"""
Booking models.

- Event: a bookable paid session offered by an expert
- SlotReservation: a slot held while the guest's payment is pending
- Meeting: a confirmed booking, created once the payment succeeds

A reservation lives until its payment succeeds (promoted into a Meeting
by MeetingService.create_meeting) or until it expires (deleted by the
reservation cleanup job).
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class Event(UUIDPrimaryKeyMixin, BaseModel):
    """
    A bookable service offered by an expert.

    Fields:
        owner: The expert selling the session
        name / slug: Display name and URL slug
        duration_minutes: Session length, used for the meeting end time
        is_active: Inactive events cannot be booked
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="events",
    )
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255)
    duration_minutes = models.PositiveIntegerField(default=60)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["owner", "slug"],
                name="unique_event_slug_per_owner",
            ),
        ]

    def __str__(self) -> str:
        return self.name


class SlotReservationQuerySet(models.QuerySet):
    def expired(self, now):
        return self.filter(expires_at__lt=now)

    def active(self, now):
        return self.filter(expires_at__gte=now)


class SlotReservation(UUIDPrimaryKeyMixin, BaseModel):
    """
    A time slot held for a guest whose payment has not cleared yet.

    Delayed payment methods (Multibanco vouchers) can take days to clear,
    so a reservation may live for up to a week before it expires.

    Note:
        At most one active reservation should exist per
        (event, start_time, guest_email). Duplicates are not blocked on
        write; the cleanup job keeps the newest row of each group.

    Fields:
        event / expert: What is booked and with whom
        guest_email / guest_name: Who holds the slot
        start_time / end_time / timezone: The slot
        expires_at: When the hold lapses
        stripe_payment_intent_id / stripe_session_id: Pending payment
        gentle_reminder_sent_at / urgent_reminder_sent_at: Reminder guards
    """

    event = models.ForeignKey(
        Event,
        on_delete=models.CASCADE,
        related_name="reservations",
    )
    expert = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="slot_reservations",
    )

    guest_email = models.EmailField()
    guest_name = models.CharField(max_length=255, blank=True, default="")

    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    timezone = models.CharField(max_length=64, default="UTC")

    expires_at = models.DateTimeField(db_index=True)

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )
    stripe_session_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )

    # Reminder tracking; a set timestamp means the stage was sent
    gentle_reminder_sent_at = models.DateTimeField(null=True, blank=True)
    urgent_reminder_sent_at = models.DateTimeField(null=True, blank=True)

    objects = SlotReservationQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["event", "start_time", "guest_email"],
                name="bookings_sl_event_i_4c1f0e_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"SlotReservation({self.guest_email}, {self.start_time.isoformat()})"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class Meeting(UUIDPrimaryKeyMixin, BaseModel):
    """
    A confirmed booking between an expert and a guest.

    Fields:
        event / expert: What was booked and with whom
        guest_email / guest_name / guest_notes: Guest details
        start_time / end_time / timezone: When
        locale: Guest language for notifications
        stripe_payment_intent_id: Unique per paid meeting
        stripe_session_id: Checkout Session that paid for it
        stripe_payment_status: Mirror of the PaymentIntent outcome
        stripe_amount: Amount the guest paid, in minor units
    """

    event = models.ForeignKey(
        Event,
        on_delete=models.CASCADE,
        related_name="meetings",
    )
    expert = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="meetings",
    )

    guest_email = models.EmailField()
    guest_name = models.CharField(max_length=255, blank=True, default="")
    guest_notes = models.TextField(blank=True, default="")

    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    timezone = models.CharField(max_length=64, default="UTC")
    locale = models.CharField(max_length=10, default="en")

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )
    stripe_session_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )
    stripe_payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    stripe_amount = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["-start_time"]
        indexes = [
            models.Index(
                fields=["event", "start_time"],
                name="bookings_me_event_i_8a2d3b_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Meeting({self.guest_email}, {self.start_time.isoformat()})"
