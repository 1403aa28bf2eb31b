"""
Celery configuration for the settlement service.

Background work handled by Celery:
- Replaying webhook events whose handlers failed
- Sweeping payouts stuck in processing after an ambiguous gateway timeout
- Creating payouts for orders marked paid by a webhook

Redis is both the message broker and the result backend. Periodic tasks are
stored in the database by django-celery-beat. Tasks are auto-discovered from
all installed Django apps.

Usage:
    from settlement.tasks import sweep_stuck_payouts

    sweep_stuck_payouts.delay()

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

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
