"""
URL configuration for the settlement service.

URL Structure:
    /admin/                                 - Django admin interface
    /healthcheck                            - Health check (load balancers, QStash)
    /cron/                                  - Scheduler-triggered jobs (QStash, cron)
        cleanup-expired-reservations        - Release expired booking holds
        send-payment-reminders              - Multibanco voucher reminders
        process-pending-payouts             - Pay out aged expert transfers
        process-expert-transfers            - Create scheduled expert transfers
    /webhooks/                              - Stripe webhook endpoints (POST)
        stripe                              - Platform payment events
        stripe-connect                      - Connected account events
        stripe-identity                     - Identity verification events
"""

from django.contrib import admin
from django.urls import include, path

from core.views import healthcheck
from payments.urls import cron_urlpatterns, webhook_urlpatterns

urlpatterns = [
    path("admin/", admin.site.urls),
    path("healthcheck", healthcheck, name="healthcheck"),
    path("cron/", include("bookings.urls")),
    path("cron/", include((cron_urlpatterns, "payments_cron"))),
    path("webhooks/", include((webhook_urlpatterns, "webhooks"))),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Settlement Admin"
admin.site.site_title = "Settlement Admin"
admin.site.index_title = "Payments, transfers and payouts"
