"""
Payments app for deferred settlement through Stripe Connect.

This app handles:
- The PaymentTransfer ledger (one row per paid booking)
- Checkout settlement: ledger row, transfer and meeting
- Expert transfer and payout jobs
- Stripe, Connect and Identity webhooks

Related apps:
    - bookings: Events, reservations and meetings
    - notifications: Novu workflows for payout and identity updates

Usage:
    from payments.services import ExpertTransferService, PayoutProcessingService

    ExpertTransferService().process_transfers()
    PayoutProcessingService().process_pending_payouts()
"""
