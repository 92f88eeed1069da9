"""
Payments app configuration.

This app provides the settlement pipeline:
- PaymentTransfer ledger with django-fsm transitions
- Stripe adapter, Connect accounts and webhook processing
- Expert transfer and payout jobs
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
