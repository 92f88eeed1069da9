"""
URL configuration for booking cron endpoints.

Mounted under /cron/ by config.urls.
"""

from django.urls import path

from bookings import views

app_name = "bookings"

urlpatterns = [
    path(
        "cleanup-expired-reservations",
        views.cleanup_expired_reservations,
        name="cleanup-expired-reservations",
    ),
    path(
        "send-payment-reminders",
        views.send_payment_reminders,
        name="send-payment-reminders",
    ),
]
