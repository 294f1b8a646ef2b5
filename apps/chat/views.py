"""
apps/chat/views.py
==================
JSON API for the dashboard.

Every response uses the envelope the frontend expects:
    {"success": true,  "data": ...}
    {"success": false, "error": "..."}

Auth is JWT Bearer (settings.REST_FRAMEWORK). The four analytics endpoints
also answer anonymous requests when called with ?global=true; those
aggregate over every tenant's rows and are cached for ANALYTICS_CACHE_TTL
seconds. Per-tenant analytics are never cached.
"""

import logging

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, BasePermission
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken

from . import analytics, registry
from .exceptions import RegistryError
from .models import ChatMessage
from .serializers import ChatMessageSerializer, ChatMessageUpdateSerializer, RegisterSerializer

logger = logging.getLogger(__name__)

ANALYTICS_CACHE_TTL = getattr(settings, "ANALYTICS_CACHE_TTL", 30)


def _ok(data, http_status=status.HTTP_200_OK, **extra):
    return Response({"success": True, "data": data, **extra}, status=http_status)


def _fail(error, http_status):
    return Response({"success": False, "error": str(error)}, status=http_status)


def _is_global(request) -> bool:
    return request.query_params.get("global", "").lower() == "true"


class IsAuthenticatedUnlessGlobal(BasePermission):
    """Anonymous access is allowed only for ?global=true."""

    def has_permission(self, request, view):
        if _is_global(request):
            return True
        return bool(request.user and request.user.is_authenticated)


# ── Unauthenticated endpoints ─────────────────────────────────────────────────

@api_view(["GET"])
@permission_classes([AllowAny])
def health(request):
    """Health-check for Docker / load-balancer probes. No DB query."""
    return Response({"status": "ok"})


@api_view(["POST"])
@permission_classes([AllowAny])
def register(request):
    serializer = RegisterSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"success": False, "error": "Invalid registration data", "details": serializer.errors},
            status=status.HTTP_400_BAD_REQUEST,
        )
    try:
        user = serializer.save()
    except DatabaseError as exc:
        logger.exception("Registration failed")
        return _fail(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)

    refresh = RefreshToken.for_user(user)
    logger.info("Registered tenant %s (%s)", user.pk, user.username)
    return _ok(
        {
            "user":    {"id": user.pk, "username": user.username, "email": user.email},
            "access":  str(refresh.access_token),
            "refresh": str(refresh),
        },
        http_status=status.HTTP_201_CREATED,
    )


# ── Channel registry ──────────────────────────────────────────────────────────

@api_view(["GET", "POST"])
def channels(request):
    """GET lists the tenant's channels; POST {"channel": name} adds one."""
    if request.method == "POST":
        return _channel_add(request)
    try:
        tracked = registry.tracked_channels(request.user)
    except DatabaseError as exc:
        logger.exception("Could not read channels for tenant %s", request.user.pk)
        return _fail(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return _ok({"channels": sorted(tracked)})


def _channel_add(request):
    raw = request.data.get("channel") or request.data.get("channelName")
    try:
        tracked = registry.add_channel(request.user, raw)
    except RegistryError as exc:
        return _fail(exc, exc.status_code)
    except DatabaseError as exc:
        logger.exception("Could not add channel for tenant %s", request.user.pk)
        return _fail(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)

    name = registry.normalize_channel_name(raw)
    return _ok({"channels": sorted(tracked)}, message=f"Added channel: {name}")


@api_view(["DELETE"])
def channel_remove(request, name):
    try:
        tracked = registry.remove_channel(request.user, name)
    except RegistryError as exc:
        return _fail(exc, exc.status_code)
    except DatabaseError as exc:
        logger.exception("Could not remove channel for tenant %s", request.user.pk)
        return _fail(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)

    name = registry.normalize_channel_name(name)
    return _ok({"channels": sorted(tracked)}, message=f"Removed channel: {name}")


# ── Messages ──────────────────────────────────────────────────────────────────

@api_view(["GET"])
def message_list(request):
    """The tenant's latest messages, newest first (max 100)."""
    try:
        messages = list(analytics.recent_messages(request.user))
    except DatabaseError as exc:
        logger.exception("Could not read messages for tenant %s", request.user.pk)
        return _fail(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return _ok(ChatMessageSerializer(messages, many=True).data)


@api_view(["GET"])
def messages_by_channel(request):
    """The tenant's latest 200 messages grouped by channel, busiest-recent first."""
    try:
        groups = analytics.messages_by_channel(request.user)
    except DatabaseError as exc:
        logger.exception("Could not group messages for tenant %s", request.user.pk)
        return _fail(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return _ok(groups)


@api_view(["GET", "PUT", "PATCH", "DELETE"])
def message_detail(request, pk):
    """
    One of the tenant's messages. PUT / PATCH edit the text, label or score
    (partial updates); other tenants' rows answer 404.
    """
    try:
        message = ChatMessage.objects.filter(pk=pk, tenant=request.user).first()
        if message is None:
            return _fail("Message not found", status.HTTP_404_NOT_FOUND)

        if request.method == "GET":
            return _ok(ChatMessageSerializer(message).data)

        if request.method == "DELETE":
            message.delete()
            return Response({"success": True, "message": "Message deleted successfully"})

        serializer = ChatMessageUpdateSerializer(message, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(
                {"success": False, "error": "Invalid message data", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        serializer.save()
    except DatabaseError as exc:
        logger.exception("Could not %s message %s", request.method, pk)
        return _fail(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info("Tenant %s edited message %s", request.user.pk, pk)
    return _ok(ChatMessageSerializer(message).data, message="Message updated successfully")


# ── Analytics ─────────────────────────────────────────────────────────────────

def _analytics_response(request, name, compute):
    """
    Run one aggregation, scoped to the caller or global.
    Global results are cached under analytics:<name>:global.
    """
    if not _is_global(request):
        try:
            return _ok(compute(request.user))
        except DatabaseError as exc:
            logger.exception("%s failed for tenant %s", name, request.user.pk)
            return _fail(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)

    cache_key = f"analytics:{name}:global"
    cached = cache.get(cache_key)
    if cached is not None:
        logger.debug("Cache hit for %s", cache_key)
        return _ok(cached)

    try:
        data = compute(None)
    except DatabaseError as exc:
        logger.exception("Global %s failed", name)
        return _fail(exc, status.HTTP_500_INTERNAL_SERVER_ERROR)

    cache.set(cache_key, data, timeout=ANALYTICS_CACHE_TTL)
    logger.debug("Cache set for %s (TTL=%ds)", cache_key, ANALYTICS_CACHE_TTL)
    return _ok(data)


@api_view(["GET"])
@permission_classes([IsAuthenticatedUnlessGlobal])
def leaderboard(request):
    return _analytics_response(request, "leaderboard", analytics.leaderboard)


@api_view(["GET"])
@permission_classes([IsAuthenticatedUnlessGlobal])
def scatterplot(request):
    return _analytics_response(request, "scatterplot", analytics.scatter_data)


@api_view(["GET"])
@permission_classes([IsAuthenticatedUnlessGlobal])
def channel_activity(request):
    return _analytics_response(request, "channel-activity", analytics.channel_activity)


@api_view(["GET"])
@permission_classes([IsAuthenticatedUnlessGlobal])
def sentiment_distribution(request):
    return _analytics_response(request, "sentiment-distribution", analytics.sentiment_distribution)
