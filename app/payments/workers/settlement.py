"""
Settlement workers.

Tasks:
- process_expert_transfers: Platform -> connected account transfers
- process_pending_payouts: Connected account -> bank payouts

Both are the beat-driven twins of the /cron endpoints. Task names are
fixed so the schedules created by migration 0002 keep resolving.

Usage:
    from payments.workers import process_pending_payouts

    process_pending_payouts.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from payments.services import ExpertTransferService, PayoutProcessingService

logger = logging.getLogger(__name__)


@shared_task(bind=True, name="payments.workers.process_expert_transfers")
def process_expert_transfers(self) -> dict:
    """
    Run the expert transfer job.

    Returns:
        {total, successful, failed, details}
    """
    logger.info("Starting expert transfer processing")
    summary = ExpertTransferService().process_transfers()
    logger.info(
        f"Expert transfers complete: {summary['successful']}/{summary['total']} succeeded",
        extra={"successful": summary["successful"], "failed": summary["failed"]},
    )
    return summary


@shared_task(bind=True, name="payments.workers.process_pending_payouts")
def process_pending_payouts(self) -> dict:
    """Run the payout job; returns the payout summary."""
    logger.info("Starting pending payout processing")
    return PayoutProcessingService().process_pending_payouts()
