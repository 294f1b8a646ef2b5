"""
apps/chat/maintenance.py
========================
One-shot cleanup: a tenant only ever sees chat from after it registered.
Rows stamped earlier than the tenant's `date_joined` (for example after a
clock skew, or data imported by hand) are deleted.
"""

import logging

from django.db.models import F

from .models import ChatMessage

logger = logging.getLogger(__name__)


def cleanup_stale_messages() -> int:
    """Delete messages older than their tenant's account. Returns the count."""
    deleted, _ = (
        ChatMessage.objects
        .filter(timestamp__lt=F("tenant__date_joined"))
        .delete()
    )
    if deleted:
        logger.info("Cleaned %d stale message(s)", deleted)
    else:
        logger.info("No stale messages to clean")
    return deleted
