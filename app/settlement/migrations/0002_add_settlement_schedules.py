"""
Add celery-beat schedules for settlement background work.

- Sweep payouts stuck in processing after an ambiguous dispatch (every 15 minutes)
- Replay failed webhook events (every 10 minutes)
- Release webhook events stuck in processing (every 30 minutes)
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "Sweep Stuck Payouts",
        "task": "settlement.tasks.sweep_stuck_payouts",
        "every": 15,
        "description": (
            "Checks payouts left in processing without a transfer id against "
            "Stripe and completes or fails them."
        ),
    },
    {
        "name": "Retry Failed Webhooks",
        "task": "settlement.tasks.retry_failed_webhooks",
        "every": 10,
        "description": "Requeues failed webhook events below the retry limit.",
    },
    {
        "name": "Reset Stuck Webhooks",
        "task": "settlement.tasks.cleanup_stuck_webhooks",
        "every": 30,
        "description": "Marks webhook events stuck in processing as failed so they are replayed.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for the settlement sweeps."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in SCHEDULES:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
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
        ("settlement", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
