"""
Payout processing job.

Moves funds that already reached an expert's connected account out to the
expert's bank, once the country-specific holding period has passed.

Flow:
    1. Select COMPLETED transfers without a payout id
    2. Resolve the expert's connected account and check the delay
    3. Fan the provider calls (balance, payout) out to a thread pool
    4. Record each outcome on the calling thread
    5. Notify the expert after the ledger row is committed

Only the provider calls run in worker threads. Every ORM read and write
happens on the calling thread, so the job never shares a database
connection across threads.

Usage:
    from payments.services import PayoutProcessingService

    summary = PayoutProcessingService().process_pending_payouts()
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.monitoring import send_heartbeat
from core.services import BaseService
from core.settlement import SettlementConfig, days_between, get_settlement_config

from notifications.services import NotificationService, Workflows
from payments.adapters import PayoutResult, StripeAdapter
from payments.exceptions import NoAvailableBalanceError, StripeError
from payments.models import ConnectedAccount, PaymentTransfer


@dataclass
class PayoutAttempt:
    """Outcome of the provider calls for one transfer."""

    transfer: PaymentTransfer
    account_id: str
    payout: PayoutResult | None = None
    error: Exception | None = None


class PayoutProcessingService(BaseService):
    """
    Pays out completed transfers whose holding period has elapsed.

    A transfer is eligible when
        days_between(updated_at or created_at, now) >= payout delay for
        the expert's country

    The payout amount is min(available balance, transfer amount), so an
    account that received a partial refund is still paid what it holds.
    """

    JOB_NAME = "pending_payouts"

    def __init__(self, config: SettlementConfig | None = None):
        self.config = config or get_settlement_config()

    def process_pending_payouts(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Run one payout pass.

        Returns:
            {total, successful, failed, totalAmountPaidOut, details}

        Raises:
            Any database error; the heartbeat is reported as failed first.
        """
        now = now or timezone.now()
        heartbeat_url = self.config.heartbeat_url(self.JOB_NAME)

        try:
            summary = self._process(now)
        except Exception as e:
            self.get_logger().exception("Error processing pending payouts")
            send_heartbeat(heartbeat_url, success=False, job_name=self.JOB_NAME, error=e)
            raise

        self.get_logger().info(
            "Payout processing summary",
            extra={
                "total": summary["total"],
                "successful": summary["successful"],
                "failed": summary["failed"],
                "total_amount_paid_out": summary["totalAmountPaidOut"],
            },
        )
        send_heartbeat(heartbeat_url, success=True, job_name=self.JOB_NAME)
        return summary

    def _process(self, now: datetime) -> dict[str, Any]:
        log = self.get_logger()
        transfers = list(
            PaymentTransfer.objects.awaiting_payout().select_related("expert", "event")
        )
        log.info(f"Found {len(transfers)} completed transfers to evaluate for payout")

        details: list[dict[str, Any]] = []
        eligible: list[tuple[PaymentTransfer, str]] = []

        for transfer in transfers:
            account = ConnectedAccount.objects.filter(user=transfer.expert).first()
            account_id = (
                account.stripe_account_id if account else transfer.expert_connect_account_id
            )
            if not account_id:
                log.error(
                    f"Expert {transfer.expert_id} has no Connect account for transfer {transfer.id}",
                    extra={"payment_transfer_id": str(transfer.id)},
                )
                details.append(self._failure_detail(transfer, "unknown", "No connected account"))
                continue

            required_days = self.config.payout_delay_days_for(transfer.expert.country)
            days_since = days_between(transfer.delay_reference_time, now)
            if days_since < required_days:
                log.debug(
                    f"Transfer {transfer.id} not ready for payout ({days_since}/{required_days} days)"
                )
                continue

            eligible.append((transfer, account_id))

        log.info(f"Found {len(eligible)} transfers eligible for payout creation")

        if eligible:
            with ThreadPoolExecutor(max_workers=self.config.payout_max_workers) as pool:
                attempts = list(
                    pool.map(lambda item: self._create_payout(*item), eligible)
                )
            details.extend(self._record(attempt) for attempt in attempts)

        successful = [d for d in details if d["success"]]
        return {
            "total": len(details),
            "successful": len(successful),
            "failed": len(details) - len(successful),
            "totalAmountPaidOut": sum(d["amount"] for d in successful),
            "details": details,
        }

    def _create_payout(self, transfer: PaymentTransfer, account_id: str) -> PayoutAttempt:
        """Provider calls only; runs in a worker thread."""
        attempt = PayoutAttempt(transfer=transfer, account_id=account_id)
        try:
            available = StripeAdapter.retrieve_available_balance(
                account_id, transfer.currency
            )
            if available <= 0:
                raise NoAvailableBalanceError(
                    "No available balance",
                    details={"account_id": account_id, "currency": transfer.currency},
                )

            attempt.payout = StripeAdapter.create_payout(
                account_id=account_id,
                amount_cents=min(available, transfer.amount),
                currency=transfer.currency,
                idempotency_key=f"payout:{transfer.id}",
                metadata={
                    "paymentTransferId": str(transfer.id),
                    "eventId": str(transfer.event_id),
                    "expertId": str(transfer.expert_id),
                    "originalTransferAmount": str(transfer.amount),
                },
                description=f"Expert payout for session {transfer.event_id}",
            )
        except Exception as e:
            attempt.error = e
        return attempt

    def _record(self, attempt: PayoutAttempt) -> dict[str, Any]:
        transfer = attempt.transfer
        log = self.get_logger()

        if attempt.error is not None:
            error = attempt.error
            category = getattr(error, "category", "unknown")
            message = getattr(error, "message", None) or str(error)

            if isinstance(error, StripeError):
                log.error(
                    f"Payout creation failed for transfer {transfer.id}: {message}",
                    extra={
                        "payment_transfer_id": str(transfer.id),
                        "error_code": error.stripe_code or error.error_code,
                        "error_category": category,
                        "should_retry": error.is_retryable,
                    },
                )
                transfer.record_provider_error(error.stripe_code or error.error_code, message)
            elif isinstance(error, NoAvailableBalanceError):
                log.info(
                    f"No available balance for {transfer.currency} in account {attempt.account_id}"
                )
            else:
                log.error(
                    f"Unexpected error creating payout for transfer {transfer.id}",
                    exc_info=error,
                )
            return self._failure_detail(transfer, attempt.account_id, message, category)

        payout = attempt.payout
        try:
            with self.atomic():
                transfer.mark_paid_out(payout_id=payout.id)
                transfer.save()
        except TransitionNotAllowed:
            log.warning(
                f"Transfer {transfer.id} changed state before payout {payout.id} was recorded",
                extra={"payment_transfer_id": str(transfer.id), "payout_id": payout.id},
            )
            return self._failure_detail(
                transfer, attempt.account_id, "Transfer state changed during payout"
            )

        log.info(
            f"Successfully created payout {payout.id} for {payout.amount_cents / 100} "
            f"{transfer.currency} to expert {transfer.expert_id}",
            extra={
                "payout_id": payout.id,
                "payment_transfer_id": str(transfer.id),
                "amount": payout.amount_cents,
                "destination": attempt.account_id,
            },
        )

        NotificationService.notify_user(
            Workflows.PAYOUT_COMPLETED,
            transfer.expert,
            payload={
                "amount": f"{payout.amount_cents / 100:.2f}",
                "currency": transfer.currency.upper(),
                "eventId": str(transfer.event_id),
                "payoutId": payout.id,
            },
            transaction_id=f"payout-completed-{transfer.id}",
        )

        return {
            "success": True,
            "payoutId": payout.id,
            "paymentTransferId": str(transfer.id),
            "amount": payout.amount_cents,
            "currency": transfer.currency,
        }

    @staticmethod
    def _failure_detail(
        transfer: PaymentTransfer,
        account_id: str,
        error: str,
        category: str | None = None,
    ) -> dict[str, Any]:
        detail = {
            "success": False,
            "paymentTransferId": str(transfer.id),
            "error": error,
            "retryCount": 0,
            "accountId": account_id,
        }
        if category:
            detail["errorCategory"] = category
        return detail
