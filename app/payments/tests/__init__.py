"""
Tests for payments app.

This package contains test modules for:
- test_models.py / test_state_transitions.py: Ledger, account and event models
- test_payout_service.py: Payout job
- test_transfer_service.py: Expert transfer job
- test_checkout_settlement.py: Checkout settlement and metadata parsing
- test_webhooks.py / test_handlers.py: Endpoints, registry and handlers
- test_views.py: Cron endpoints
- test_tasks.py: Replay task and beat workers
- test_admin.py: Admin actions

Usage:
    pytest payments/tests/
    pytest payments/tests/test_payout_service.py
"""
