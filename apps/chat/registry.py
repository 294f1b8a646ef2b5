"""
apps/chat/registry.py
=====================
Channel registry: which Twitch channels each tenant follows.

Every mutation rewrites the tenant's whole list (and `updated_at`) inside a
transaction that holds the tenant's row lock, so two concurrent requests
from the same tenant cannot both append the same name.

The chat listener never calls into this module; it reads the same
`tracked_channels` table with raw SQL (chat_listener/processing/db_writer.py).
`all_required_channels()` is the ORM twin of that read, used by the admin
and the tests.
"""

import logging

from django.db import transaction

from .exceptions import AlreadyTracked, NotTracked, ValidationError
from .models import TrackedChannelSet

logger = logging.getLogger(__name__)


def normalize_channel_name(raw) -> str:
    """'  #SomeStreamer ' -> 'somestreamer'"""
    if raw is None:
        return ""
    return str(raw).strip().lstrip("#").strip().lower()


def _require_name(raw) -> str:
    name = normalize_channel_name(raw)
    if not name:
        raise ValidationError("Channel name is required")
    return name


def tracked_channels(tenant) -> set[str]:
    row = TrackedChannelSet.objects.filter(tenant=tenant).values_list("channels", flat=True).first()
    return set(row or [])


def add_channel(tenant, raw) -> set[str]:
    name = _require_name(raw)
    with transaction.atomic():
        entry, _ = TrackedChannelSet.objects.select_for_update().get_or_create(tenant=tenant)
        channels = list(entry.channels or [])
        if name in channels:
            raise AlreadyTracked(f"Channel already being tracked: {name}")
        channels.append(name)
        entry.channels = channels
        entry.save(update_fields=["channels", "updated_at"])

    logger.info("Tenant %s now tracks #%s (%d channel(s))", tenant.pk, name, len(channels))
    return set(channels)


def remove_channel(tenant, raw) -> set[str]:
    name = _require_name(raw)
    with transaction.atomic():
        entry = TrackedChannelSet.objects.select_for_update().filter(tenant=tenant).first()
        channels = list(entry.channels or []) if entry else []
        if name not in channels:
            raise NotTracked(f"Channel not tracked: {name}")
        channels.remove(name)
        entry.channels = channels
        entry.save(update_fields=["channels", "updated_at"])

    logger.info("Tenant %s stopped tracking #%s (%d channel(s))", tenant.pk, name, len(channels))
    return set(channels)


def all_required_channels() -> set[str]:
    required = set()
    for channels in TrackedChannelSet.objects.values_list("channels", flat=True):
        required.update(channels or [])
    return required
