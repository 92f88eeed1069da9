"""
Expert transfer job.

Moves the expert's share of a paid booking from the platform balance to
the expert's connected account once the transfer is due.

A transfer is due when it is
    - PENDING, scheduled_transfer_time <= now, no approval required, and
      the payment has aged past the expert's country delay, or
    - APPROVED by an admin (aging is not re-checked)
and has no transfer id yet.

Failures increment retry_count. The row stays where it was until the
retry budget is spent, then moves to FAILED and the expert is told.

Usage:
    from payments.services import ExpertTransferService

    summary = ExpertTransferService().process_transfers()
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.monitoring import send_heartbeat
from core.services import BaseService
from core.settlement import SettlementConfig, days_between, get_settlement_config

from notifications.services import NotificationService, Workflows
from payments.adapters import StripeAdapter
from payments.models import ConnectedAccount, PaymentTransfer
from payments.state_machines import TransferStatus


class ExpertTransferService(BaseService):
    """
    Creates Stripe transfers for due PaymentTransfer rows.

    Methods:
        process_transfers: Run one pass and return the summary
        is_payment_aged: Whether a PENDING row passed its country delay
    """

    JOB_NAME = "expert_transfers"

    def __init__(self, config: SettlementConfig | None = None):
        self.config = config or get_settlement_config()

    def process_transfers(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Run one transfer pass.

        Returns:
            {total, successful, failed, details}
        """
        now = now or timezone.now()
        heartbeat_url = self.config.heartbeat_url(self.JOB_NAME)

        try:
            summary = self._process(now)
        except Exception as e:
            self.get_logger().exception("Error processing expert transfers")
            send_heartbeat(heartbeat_url, success=False, job_name=self.JOB_NAME, error=e)
            raise

        send_heartbeat(heartbeat_url, success=True, job_name=self.JOB_NAME)
        return summary

    def is_payment_aged(self, transfer: PaymentTransfer, now: datetime) -> bool:
        if transfer.status == TransferStatus.APPROVED:
            return True
        required_days = self.config.payout_delay_days_for(transfer.expert.country)
        return days_between(transfer.created_at, now) >= required_days

    def _process(self, now: datetime) -> dict[str, Any]:
        log = self.get_logger()
        candidates = PaymentTransfer.objects.due_for_transfer(now).select_related(
            "expert", "event"
        )
        eligible = [t for t in candidates if self.is_payment_aged(t, now)]
        log.info(
            f"Found {len(eligible)} transfers eligible for processing after payment aging check"
        )

        details = [self._transfer_one(transfer) for transfer in eligible]
        successful = sum(1 for d in details if d["success"])
        return {
            "total": len(details),
            "successful": successful,
            "failed": len(details) - successful,
            "details": details,
        }

    def _transfer_one(self, transfer: PaymentTransfer) -> dict[str, Any]:
        log = self.get_logger()
        log.info(f"Processing transfer for payment intent: {transfer.payment_intent_id}")

        destination = self._resolve_destination(transfer)
        if not destination:
            log.warning(
                f"Expert {transfer.expert_id} has no connected account, "
                f"transfer {transfer.id} stays {transfer.status}",
                extra={"payment_transfer_id": str(transfer.id)},
            )
            return {
                "success": False,
                "paymentTransferId": str(transfer.id),
                "error": "No connected account",
                "retryCount": transfer.retry_count,
                "status": transfer.status,
            }

        try:
            result = StripeAdapter.create_transfer(
                amount_cents=transfer.amount,
                destination_account=destination,
                idempotency_key=transfer.transfer_idempotency_key,
                currency=transfer.currency,
                metadata={
                    "paymentTransferId": str(transfer.id),
                    "eventId": str(transfer.event_id),
                    "expert": str(transfer.expert_id),
                    "sessionStartTime": transfer.session_start_time.isoformat(),
                    "scheduledTransferTime": transfer.scheduled_transfer_time.isoformat(),
                },
                description=f"Expert payout for session {transfer.event_id}",
                source_transaction=transfer.source_charge_id or None,
            )
        except Exception as e:
            return self._record_failure(transfer, e)

        try:
            with self.atomic():
                transfer.complete_transfer(transfer_id=result.id)
                transfer.save()
        except TransitionNotAllowed:
            log.error(
                f"Transfer {result.id} created but row {transfer.id} could not be completed",
                extra={"payment_transfer_id": str(transfer.id), "transfer_id": result.id},
            )
            return {
                "success": False,
                "paymentTransferId": str(transfer.id),
                "error": "Transfer state changed during processing",
                "retryCount": transfer.retry_count,
                "status": transfer.status,
            }

        log.info(
            f"Successfully transferred {transfer.amount / 100} {transfer.currency} "
            f"to expert {transfer.expert_id}",
            extra={"payment_transfer_id": str(transfer.id), "transfer_id": result.id},
        )

        notified = NotificationService.notify_user(
            Workflows.PAYOUT_COMPLETED,
            transfer.expert,
            payload={
                "amount": f"{transfer.amount / 100:.2f}",
                "currency": transfer.currency.upper(),
                "eventId": str(transfer.event_id),
                "transferId": result.id,
            },
            transaction_id=f"transfer-completed-{transfer.id}",
        )
        if notified:
            transfer.mark_notified()
            transfer.save(update_fields=["notified_at", "updated_at"])

        return {
            "success": True,
            "transferId": result.id,
            "paymentTransferId": str(transfer.id),
        }

    def _record_failure(self, transfer: PaymentTransfer, error: Exception) -> dict[str, Any]:
        log = self.get_logger()
        error_code = getattr(error, "stripe_code", None) or "unknown_error"
        message = getattr(error, "message", None) or str(error) or "Unknown error occurred"

        transfer.retry_count += 1
        exhausted = transfer.retry_count >= self.config.max_transfer_retries

        with self.atomic():
            if exhausted:
                transfer.mark_failed(error_code=error_code, error_message=message)
            else:
                transfer.stripe_error_code = error_code
                transfer.stripe_error_message = message
            transfer.save()

        log.error(
            f"Error creating Stripe transfer for {transfer.id}: {message}",
            extra={
                "payment_transfer_id": str(transfer.id),
                "error_code": error_code,
                "retry_count": transfer.retry_count,
                "status": transfer.status,
            },
        )

        if exhausted:
            NotificationService.notify_user(
                Workflows.PAYOUT_FAILED,
                transfer.expert,
                payload={
                    "amount": f"{transfer.amount / 100:.2f}",
                    "currency": transfer.currency.upper(),
                    "eventId": str(transfer.event_id),
                    "errorMessage": message,
                },
                transaction_id=f"payout-failed-{transfer.id}",
            )

        return {
            "success": False,
            "paymentTransferId": str(transfer.id),
            "error": message,
            "retryCount": transfer.retry_count,
            "status": transfer.status,
        }

    def _resolve_destination(self, transfer: PaymentTransfer) -> str:
        """
        Connect account the transfer goes to.

        Rows recorded before the expert onboarded carry a blank account;
        it is filled from the expert's ConnectedAccount once one exists.
        """
        if transfer.expert_connect_account_id:
            return transfer.expert_connect_account_id

        account = ConnectedAccount.objects.filter(user_id=transfer.expert_id).first()
        if account is None:
            return ""

        transfer.expert_connect_account_id = account.stripe_account_id
        transfer.stripe_error_code = None
        transfer.stripe_error_message = None
        transfer.save(
            update_fields=[
                "expert_connect_account_id",
                "stripe_error_code",
                "stripe_error_message",
                "updated_at",
            ]
        )
        return account.stripe_account_id
