"""
config/routing.py
=================
ASGI entry point: plain Django for HTTP, Channels for the live message feed.

WebSocket endpoint:
  ws://host/ws/messages/?token=<JWT access token>
    → apps.chat.consumers.MessageFeedConsumer

Sockets authenticate with the same SimpleJWT access token as the REST API
(config/ws_auth.py); a Django admin session also works. Each authenticated
socket joins its tenant's `chat_feed_<user id>` group. The chat listener
group_sends every row it stores for that tenant.
"""

import os
from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from django.urls import re_path

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Import consumers and auth after Django setup
django_asgi_app = get_asgi_application()

from apps.chat.consumers import MessageFeedConsumer  # noqa: E402
from config.ws_auth import JWTAuthMiddlewareStack  # noqa: E402

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        "websocket": JWTAuthMiddlewareStack(
            URLRouter(
                [
                    re_path(r"^ws/messages/$", MessageFeedConsumer.as_asgi()),
                ]
            )
        ),
    }
)
