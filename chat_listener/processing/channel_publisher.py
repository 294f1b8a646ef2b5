"""
processing/channel_publisher.py
===============================
Pushes freshly stored chat messages to the dashboard's WebSocket feed.

Every tenant's browser sockets join the Channels group
`chat_feed_<tenant_id>` (see apps.chat.consumers.MessageFeedConsumer). After
the fan-out pipeline writes a tenant's row it calls `publish_chat_message()`,
which does a `group_send` on the same Redis channel layer the API service
uses. The listener only needs `channels_redis`; Django settings are never
configured here.

Publishing is best effort: a Redis outage must never cost us a stored
message, so every failure is logged and swallowed.
"""

import logging
import os

from channels_redis.core import RedisChannelLayer

logger = logging.getLogger(__name__)

# Redis DB 2 is reserved for the channel layer (see config/settings.py)
CHANNEL_LAYER_URL = os.environ.get("CHANNEL_LAYER_URL", "redis://redis:6379/2")
FEED_GROUP_PREFIX = "chat_feed_"
MESSAGE_TYPE = "chat.message"

_FEED_FIELDS = (
    "channel", "username", "message_text", "sentiment_label",
    "sentiment_score", "badges", "color",
)

_layer: RedisChannelLayer | None = None


def feed_group(tenant_id: int) -> str:
    return f"{FEED_GROUP_PREFIX}{tenant_id}"


def _get_layer() -> RedisChannelLayer:
    global _layer
    if _layer is None:
        _layer = RedisChannelLayer(hosts=[CHANNEL_LAYER_URL])
    return _layer


def _feed_payload(record: dict) -> dict:
    payload = {k: record.get(k) for k in _FEED_FIELDS}
    payload["timestamp"] = record["timestamp"].isoformat()
    return payload


async def publish_chat_message(record: dict) -> None:
    """Send one stored record to its tenant's live feed group."""
    try:
        await _get_layer().group_send(
            feed_group(record["tenant_id"]),
            {"type": MESSAGE_TYPE, "data": _feed_payload(record)},
        )
    except Exception as exc:
        logger.warning("Live feed publish failed for tenant %s (non-fatal): %s",
                       record.get("tenant_id"), exc)
