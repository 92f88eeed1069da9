"""
PaymentTransfer model: the pending-transfer ledger.

One row per paid booking. The row records the expert's share of the
guest's payment and follows it from the checkout webhook, through the
Stripe transfer to the expert's connected account, to the eventual
payout to the expert's bank.

Usage:
    from payments.models import PaymentTransfer

    transfer, created = PaymentTransfer.objects.get_or_create(
        payment_intent_id="pi_123",
        defaults={...},
    )

    # After Stripe transfer succeeds
    transfer.complete_transfer(transfer_id="tr_123")
    transfer.save()

    # After the payout delay, from the payout job only
    transfer.mark_paid_out(payout_id="po_123")
    transfer.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import TransferStatus


def _approval_satisfied(instance: PaymentTransfer) -> bool:
    return not instance.requires_approval or instance.status == TransferStatus.APPROVED


def _payout_not_recorded(instance: PaymentTransfer) -> bool:
    return not instance.payout_id


class PaymentTransferQuerySet(models.QuerySet):
    def awaiting_payout(self):
        """Transfers that reached the connected account but were not paid out."""
        return self.filter(status=TransferStatus.COMPLETED, payout_id__isnull=True)

    def due_for_transfer(self, now):
        """
        Transfers the expert transfer job should move to Stripe.

        PENDING rows whose scheduled time has passed and that need no
        approval, plus every APPROVED row. Rows with a transfer id are
        never selected again.
        """
        return self.filter(
            models.Q(
                status=TransferStatus.PENDING,
                scheduled_transfer_time__lte=now,
                requires_approval=False,
            )
            | models.Q(status=TransferStatus.APPROVED),
            transfer_id__isnull=True,
        )


class PaymentTransfer(UUIDPrimaryKeyMixin, BaseModel):
    """
    Ledger row for an expert's share of a guest payment.

    State Flow:
        PENDING -> COMPLETED -> PAID_OUT
        PENDING -> APPROVED -> COMPLETED -> PAID_OUT (requires approval)
        PENDING/APPROVED -> FAILED (retry budget exhausted)
        non-PAID_OUT -> REFUNDED (charge.refunded)
        any -> DISPUTED (charge.dispute.created)

    Invariants:
        - payout_id is written once, together with PAID_OUT
        - a row that requires approval reaches COMPLETED only via APPROVED
        - FAILED rows are only moved again by hand

    Fields:
        payment_intent_id: Guest PaymentIntent (unique per booking)
        checkout_session_id: Checkout Session that produced the payment
        event / expert: Booked service and the expert who owns it
        expert_connect_account_id: Destination Connect account (acct_xxx),
            blank when the expert had not onboarded at checkout
        source_charge_id: Charge the transfer is funded from
        amount: Expert share in minor units
        platform_fee: Platform share in minor units
        session_start_time: Start of the booked session
        scheduled_transfer_time: Earliest time the transfer job may run
        transfer_id / payout_id: Stripe ids written by the jobs
        stripe_error_code / stripe_error_message: Last provider failure
        retry_count: Failed transfer attempts
        requires_approval / admin_user / admin_notes: Manual approval
        notified_at: When the expert was told about the transfer
    """

    # ==========================================================================
    # Payment Identity
    # ==========================================================================

    payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    checkout_session_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Checkout Session ID (cs_xxx)",
    )

    event = models.ForeignKey(
        "bookings.Event",
        on_delete=models.PROTECT,
        related_name="payment_transfers",
    )

    expert = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payment_transfers",
    )

    expert_connect_account_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Destination Stripe Connect account (acct_xxx), blank until onboarded",
    )

    source_charge_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Charge the transfer draws from (ch_xxx / py_xxx), when known",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.PositiveBigIntegerField(
        help_text="Expert share in smallest currency unit",
    )

    platform_fee = models.PositiveBigIntegerField(
        default=0,
        help_text="Platform fee in smallest currency unit",
    )

    currency = models.CharField(max_length=3, default="eur")

    # ==========================================================================
    # Scheduling
    # ==========================================================================

    session_start_time = models.DateTimeField()

    scheduled_transfer_time = models.DateTimeField(db_index=True)

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=TransferStatus.PENDING,
        choices=TransferStatus.choices,
        db_index=True,
        help_text="Current ledger status (managed by FSM)",
    )

    transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Transfer ID (tr_xxx)",
    )

    payout_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Payout ID (po_xxx), written once",
    )

    # ==========================================================================
    # Failure Tracking
    # ==========================================================================

    stripe_error_code = models.CharField(max_length=100, null=True, blank=True)
    stripe_error_message = models.TextField(null=True, blank=True)
    retry_count = models.PositiveSmallIntegerField(default=0)

    # ==========================================================================
    # Manual Approval
    # ==========================================================================

    requires_approval = models.BooleanField(default=False)

    admin_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_transfers",
    )

    admin_notes = models.TextField(null=True, blank=True)

    notified_at = models.DateTimeField(null=True, blank=True)

    objects = PaymentTransferQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Transfer"
        verbose_name_plural = "Payment Transfers"
        indexes = [
            models.Index(
                fields=["status", "scheduled_transfer_time"],
                name="payments_tr_status_sched_idx",
            ),
            models.Index(
                fields=["status", "payout_id"],
                name="payments_tr_status_payout_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_transfer_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount / 100:.2f} {self.currency.upper()}"
        return f"PaymentTransfer({self.payment_intent_id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=TransferStatus.PENDING,
        target=TransferStatus.APPROVED,
    )
    def approve(self, admin_user=None, notes: str | None = None):
        """
        Approve a transfer held for review.

        Transition: PENDING -> APPROVED
        """
        self.admin_user = admin_user
        if notes:
            self.admin_notes = notes

    @transition(
        field=status,
        source=[TransferStatus.PENDING, TransferStatus.APPROVED],
        target=TransferStatus.COMPLETED,
        conditions=[_approval_satisfied],
    )
    def complete_transfer(self, transfer_id: str):
        """
        Record the Stripe transfer to the expert's connected account.

        Transition: PENDING/APPROVED -> COMPLETED

        Blocked while the row requires approval and is not APPROVED.
        """
        self.transfer_id = transfer_id
        self.stripe_error_code = None
        self.stripe_error_message = None

    @transition(
        field=status,
        source=[TransferStatus.PENDING, TransferStatus.APPROVED],
        target=TransferStatus.FAILED,
    )
    def mark_failed(self, error_code: str | None = None, error_message: str | None = None):
        """
        Give up on the transfer after the retry budget is spent.

        Transition: PENDING/APPROVED -> FAILED
        """
        self.stripe_error_code = error_code
        self.stripe_error_message = error_message

    @transition(
        field=status,
        source=TransferStatus.COMPLETED,
        target=TransferStatus.PAID_OUT,
        conditions=[_payout_not_recorded],
    )
    def mark_paid_out(self, payout_id: str):
        """
        Record the payout to the expert's bank account.

        Transition: COMPLETED -> PAID_OUT

        Only the payout job calls this.
        """
        self.payout_id = payout_id
        self.stripe_error_code = None
        self.stripe_error_message = None

    @transition(
        field=status,
        source=[
            TransferStatus.PENDING,
            TransferStatus.APPROVED,
            TransferStatus.COMPLETED,
            TransferStatus.FAILED,
            TransferStatus.DISPUTED,
        ],
        target=TransferStatus.REFUNDED,
    )
    def mark_refunded(self):
        """Transition: any non-PAID_OUT -> REFUNDED."""

    @transition(field=status, source="*", target=TransferStatus.DISPUTED)
    def mark_disputed(self):
        """Transition: any -> DISPUTED."""

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def record_provider_error(self, error_code: str | None, error_message: str) -> None:
        """
        Store the last provider failure without touching status or updated_at.

        updated_at is the start of the payout delay clock, so a failed
        payout attempt must not push the next one further out.
        """
        type(self).objects.filter(pk=self.pk).update(
            stripe_error_code=error_code or "unknown_error",
            stripe_error_message=error_message,
        )
        self.stripe_error_code = error_code or "unknown_error"
        self.stripe_error_message = error_message

    @property
    def transfer_idempotency_key(self) -> str:
        """
        Stripe idempotency key for this row's transfer.

        Stable across attempts and callers (checkout webhook and transfer
        job): a retry after a timeout returns the transfer Stripe already made.
        """
        return f"transfer:{self.id}"

    @property
    def delay_reference_time(self):
        """When the payout delay started counting."""
        return self.updated_at or self.created_at

    @property
    def is_paid_out(self) -> bool:
        return self.status == TransferStatus.PAID_OUT

    def mark_notified(self) -> None:
        """
        Note: Does not save - caller must save after calling.
        """
        self.notified_at = timezone.now()
