"""
apps/chat/tasks.py
==================
Celery tasks for the API side. Schedule with celery beat or trigger by hand:

    celery -A config call apps.chat.tasks.cleanup_stale_messages
"""

import logging

from celery import shared_task

from . import maintenance

logger = logging.getLogger(__name__)


@shared_task(name="apps.chat.tasks.cleanup_stale_messages")
def cleanup_stale_messages():
    deleted = maintenance.cleanup_stale_messages()
    logger.info("cleanup_stale_messages finished: %d row(s) deleted", deleted)
    return deleted
