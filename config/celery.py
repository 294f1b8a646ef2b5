"""
config/celery.py
================
Celery app for batch jobs (stale-message cleanup). Tasks are discovered from
each installed app's tasks.py.

    celery -A config worker -l info
    celery -A config call apps.chat.tasks.cleanup_stale_messages
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("chatpulse")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
