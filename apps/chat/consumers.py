"""
apps/chat/consumers.py
======================
Django Channels WebSocket consumer for a tenant's live chat feed.

  1. The dashboard opens ws://host/ws/messages/?token=<JWT access token>
     (resolved by config/ws_auth.py).
  2. Anonymous sockets are closed; authenticated ones join the tenant's group
     chat_feed_<user id>.
  3. The chat listener, after storing a row, calls
       channel_layer.group_send("chat_feed_<id>", {"type": "chat.message", "data": {...}})
     (chat_listener/processing/channel_publisher.py).
  4. `chat_message` forwards the payload to the browser as JSON.
"""

import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)


def feed_group(tenant_id) -> str:
    return f"chat_feed_{tenant_id}"


class MessageFeedConsumer(AsyncJsonWebsocketConsumer):
    """Push newly stored chat messages to the tenant that owns them."""

    group_name = None

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self.close(code=4401)
            return
        self.group_name = feed_group(user.pk)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        logger.info("WebSocket connected: %s (%s)", self.channel_name, self.group_name)

    async def disconnect(self, close_code):
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
        logger.info("WebSocket disconnected: %s (code=%s)", self.channel_name, close_code)

    async def receive_json(self, content, **kwargs):
        """Read-only feed; incoming frames are ignored."""

    # ── Messages from the channel layer (sent by the chat listener) ───────────

    async def chat_message(self, event):
        await self.send_json(event["data"])
