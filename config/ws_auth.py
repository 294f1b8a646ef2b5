"""
config/ws_auth.py
=================
JWT authentication for WebSocket connections.

Browsers can't set headers on `new WebSocket(...)`, so the dashboard passes
its SimpleJWT access token in the query string:

    ws://host/ws/messages/?token=<access>

Non-browser clients may send `Authorization: Bearer <access>` instead. A
valid token replaces `scope["user"]`; a missing or invalid one leaves
whatever the session middleware resolved (usually AnonymousUser), and the
consumer closes anonymous sockets.

Import this module only after Django setup (see config/routing.py).
"""

import logging
from urllib.parse import parse_qs

from channels.auth import AuthMiddlewareStack
from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

logger = logging.getLogger(__name__)


def token_from_scope(scope) -> str | None:
    query = parse_qs(scope.get("query_string", b"").decode("latin-1"))
    if query.get("token"):
        return query["token"][0]

    for name, value in scope.get("headers", []):
        if name.lower() == b"authorization":
            kind, _, token = value.decode("latin-1").partition(" ")
            if kind.lower() == "bearer" and token:
                return token.strip()
    return None


@database_sync_to_async
def user_for_token(raw_token: str):
    auth = JWTAuthentication()
    try:
        return auth.get_user(auth.get_validated_token(raw_token))
    except (InvalidToken, TokenError, AuthenticationFailed) as exc:
        logger.info("Rejected WebSocket token: %s", exc)
        return None


class JWTAuthMiddleware(BaseMiddleware):
    async def __call__(self, scope, receive, send):
        raw_token = token_from_scope(scope)
        if raw_token:
            user = await user_for_token(raw_token)
            if user is not None:
                scope = dict(scope, user=user)
        return await super().__call__(scope, receive, send)


def JWTAuthMiddlewareStack(inner):
    """Session auth first, then a JWT token (if any) overrides the user."""
    return AuthMiddlewareStack(JWTAuthMiddleware(inner))
