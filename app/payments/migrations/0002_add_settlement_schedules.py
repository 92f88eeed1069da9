"""
Add celery-beat schedules for the settlement jobs.

The external scheduler is the primary trigger for these jobs, so the
periodic tasks are created disabled. Enable them in the admin to let
celery-beat drive the jobs instead.

Schedules:
    process_expert_transfers: every 2 hours
    process_pending_payouts: daily at 06:00 UTC
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "Process Expert Transfers",
        "task": "payments.workers.process_expert_transfers",
        "crontab": {"minute": "0", "hour": "*/2"},
        "description": (
            "Moves due and approved PaymentTransfers to the expert's "
            "Stripe Connect account."
        ),
    },
    {
        "name": "Process Pending Payouts",
        "task": "payments.workers.process_pending_payouts",
        "crontab": {"minute": "0", "hour": "6"},
        "description": (
            "Pays out COMPLETED transfers whose country payout delay has "
            "elapsed from the Connect balance to the expert's bank."
        ),
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the disabled periodic tasks for the settlement jobs."""
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in SCHEDULES:
        schedule, _ = CrontabSchedule.objects.get_or_create(
            day_of_week="*",
            day_of_month="*",
            month_of_year="*",
            **entry["crontab"],
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "crontab": schedule,
                "enabled": False,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in SCHEDULES],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
