"""
Add celery-beat schedules for the reservation jobs.

Created disabled; the external scheduler triggers the cron endpoints.

Schedules:
    cleanup_expired_reservations: every 15 minutes
    send_payment_reminders: every 6 hours
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "Cleanup Expired Reservations",
        "task": "bookings.tasks.cleanup_expired_reservations",
        "crontab": {"minute": "*/15", "hour": "*"},
        "description": (
            "Deletes expired slot reservations and duplicate reservations "
            "for the same guest and slot."
        ),
    },
    {
        "name": "Send Payment Reminders",
        "task": "bookings.tasks.send_payment_reminders",
        "crontab": {"minute": "0", "hour": "*/6"},
        "description": (
            "Sends the gentle and urgent Multibanco voucher reminders "
            "for pending reservations."
        ),
    },
]


def create_periodic_tasks(apps, schema_editor):
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
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in SCHEDULES],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("bookings", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
