"""
URL configuration for the payments app.

Routes:
    cron_urlpatterns (mounted under /cron/):
        - process-pending-payouts
        - process-expert-transfers
    webhook_urlpatterns (mounted under /webhooks/):
        - stripe
        - stripe-connect
        - stripe-identity

Usage:
    # In config/urls.py
    path("cron/", include((cron_urlpatterns, "payments_cron"))),
    path("webhooks/", include((webhook_urlpatterns, "webhooks"))),
"""

from django.urls import path

from payments import views
from payments.webhooks.views import (
    stripe_connect_webhook,
    stripe_identity_webhook,
    stripe_webhook,
)

cron_urlpatterns = [
    path(
        "process-pending-payouts",
        views.process_pending_payouts,
        name="process-pending-payouts",
    ),
    path(
        "process-expert-transfers",
        views.process_expert_transfers,
        name="process-expert-transfers",
    ),
]

webhook_urlpatterns = [
    path("stripe", stripe_webhook, name="stripe"),
    path("stripe-connect", stripe_connect_webhook, name="stripe-connect"),
    path("stripe-identity", stripe_identity_webhook, name="stripe-identity"),
]
