"""
Workers for background settlement processing.

This module contains the Celery tasks driven by celery-beat:
- process_expert_transfers: Moves due transfers to connected accounts
- process_pending_payouts: Pays out completed transfers past their delay

Usage:
    from payments.workers import process_expert_transfers, process_pending_payouts

    # Trigger manual processing
    process_pending_payouts.delay()
"""

from payments.workers.settlement import (
    process_expert_transfers,
    process_pending_payouts,
)

__all__ = [
    "process_expert_transfers",
    "process_pending_payouts",
]
