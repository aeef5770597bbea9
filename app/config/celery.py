"""
Celery configuration for the settlement service.

Celery runs the background side of the service:
- Scheduled escrow release sweeps (the automatic payout path)
- The stuck-release reaper
- Retries of webhook events whose processing failed

Periodic schedules are declared in settings.CELERY_BEAT_SCHEDULE and run by
`celery -A config beat`.

Usage:
    # Define a task in any app's tasks.py:
    from celery import shared_task

    @shared_task
    def release_due_escrows(limit=None):
        ...

    # Call the task asynchronously:
    release_due_escrows.delay()

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

# Celery looks for a tasks.py module in each installed app
app.autodiscover_tasks()
