"""Admin registrations for bookings."""

from django.contrib import admin

from bookings.models import Event, Meeting, SlotReservation


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ["name", "owner", "duration_minutes", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["name", "slug", "owner__email"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(SlotReservation)
class SlotReservationAdmin(admin.ModelAdmin):
    """
    Pending reservations.

    Read-mostly: rows are created by the booking flow and removed by the
    cleanup job or by meeting creation.
    """

    list_display = [
        "id",
        "event",
        "guest_email",
        "start_time",
        "expires_at",
        "gentle_reminder_sent_at",
        "urgent_reminder_sent_at",
    ]
    list_filter = ["event"]
    search_fields = ["guest_email", "stripe_payment_intent_id", "stripe_session_id"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(Meeting)
class MeetingAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "event",
        "expert",
        "guest_email",
        "start_time",
        "stripe_payment_status",
    ]
    list_filter = ["stripe_payment_status"]
    search_fields = ["guest_email", "stripe_payment_intent_id", "expert__email"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-start_time"]
