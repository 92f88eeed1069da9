"""
Payment admin configuration.

Registers the settlement models with the Django admin. Ledger rows are
changed only through their transitions: the approve_transfers action is
the manual path from PENDING to APPROVED for transfers held for review.
"""

from django.contrib import admin
from django_fsm import can_proceed

from payments.models import ConnectedAccount, PaymentTransfer, WebhookEvent
from payments.state_machines import TransferStatus, WebhookEventStatus

__all__ = [
    "ConnectedAccountAdmin",
    "PaymentTransferAdmin",
    "WebhookEventAdmin",
]


@admin.register(ConnectedAccount)
class ConnectedAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for ConnectedAccount.

    Provides visibility into Stripe Connect account status.
    """

    list_display = [
        "id",
        "user",
        "stripe_account_id",
        "onboarding_status",
        "payouts_enabled",
        "charges_enabled",
        "created_at",
    ]
    list_filter = ["onboarding_status", "payouts_enabled", "charges_enabled"]
    search_fields = ["id", "stripe_account_id", "user__email"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "user", "stripe_account_id"),
            },
        ),
        (
            "Status",
            {
                "fields": (
                    "onboarding_status",
                    "details_submitted",
                    "payouts_enabled",
                    "charges_enabled",
                ),
            },
        ),
        (
            "Bank Account",
            {
                "fields": ("bank_name", "bank_last4"),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata",),
                "classes": ("collapse",),
            },
        ),
    )


@admin.register(PaymentTransfer)
class PaymentTransferAdmin(admin.ModelAdmin):
    """
    Admin configuration for PaymentTransfer.

    Status and provider ids are read-only; approval goes through the
    approve_transfers action so the FSM guards apply.
    """

    list_display = [
        "id",
        "payment_intent_id",
        "expert",
        "amount_display",
        "status",
        "requires_approval",
        "scheduled_transfer_time",
        "retry_count",
    ]
    list_filter = ["status", "requires_approval", "currency"]
    search_fields = [
        "id",
        "payment_intent_id",
        "checkout_session_id",
        "transfer_id",
        "payout_id",
        "expert__email",
    ]
    readonly_fields = [
        "id",
        "status",
        "payment_intent_id",
        "checkout_session_id",
        "source_charge_id",
        "transfer_id",
        "payout_id",
        "stripe_error_code",
        "stripe_error_message",
        "retry_count",
        "admin_user",
        "notified_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["approve_transfers"]

    def amount_display(self, obj: PaymentTransfer) -> str:
        return f"{obj.amount / 100:.2f} {obj.currency.upper()}"

    amount_display.short_description = "Amount"

    @admin.action(description="Approve selected transfers")
    def approve_transfers(self, request, queryset):
        """Approve PENDING transfers that are held for review."""
        approved = 0
        for transfer in queryset.filter(
            status=TransferStatus.PENDING, requires_approval=True
        ):
            if not can_proceed(transfer.approve):
                continue
            transfer.approve(admin_user=request.user)
            transfer.save()
            approved += 1
        self.message_user(request, f"Approved {approved} transfers.")

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for ledger rows (audit trail)."""
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received; FAILED events can be
    replayed with the replay action.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "source",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "source", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "stripe_event_id",
        "event_type",
        "source",
        "payload",
        "processed_at",
        "retry_count",
        "error_message",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["replay_events"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "stripe_event_id", "event_type", "source", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed_at", "retry_count"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    @admin.action(description="Replay selected failed events")
    def replay_events(self, request, queryset):
        from payments.tasks import reprocess_webhook_event

        count = 0
        for event_id in queryset.filter(status=WebhookEventStatus.FAILED).values_list(
            "id", flat=True
        ):
            reprocess_webhook_event.delay(str(event_id))
            count += 1
        self.message_user(request, f"Queued {count} events for replay.")

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False
