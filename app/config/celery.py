"""
Celery configuration for the settlement service.

Celery runs the settlement jobs when they are driven by django-celery-beat
instead of the external scheduler, and replays failed webhook events.
Periodic tasks are stored in the database (DatabaseScheduler) and seeded,
disabled, by the bookings and payments migrations.

Usage:
    # Run a job by hand:
    from payments.workers.settlement import process_pending_payouts
    process_pending_payouts.delay()

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# payments.workers is not a tasks.py module, so it is listed explicitly
app.autodiscover_tasks()
app.autodiscover_tasks(["payments.workers"], related_name="settlement")
