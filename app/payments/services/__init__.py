"""
Settlement services.

This package provides:
- CheckoutSettlementService: Ledger row, immediate transfer and meeting
  for a completed checkout session
- ExpertTransferService: Platform -> connected account transfers
- PayoutProcessingService: Connected account -> bank payouts

Usage:
    from payments.services import PayoutProcessingService

    summary = PayoutProcessingService().process_pending_payouts()
    logger.info("Paid out %s transfers", summary["successful"])
"""

from payments.services.checkout_settlement import (
    CheckoutBooking,
    CheckoutSettlementService,
    is_transient_error,
    parse_timestamp,
)
from payments.services.expert_transfers import ExpertTransferService
from payments.services.payout_processing import PayoutAttempt, PayoutProcessingService

__all__ = [
    "CheckoutBooking",
    "CheckoutSettlementService",
    "ExpertTransferService",
    "PayoutAttempt",
    "PayoutProcessingService",
    "is_transient_error",
    "parse_timestamp",
]
