"""
apps/chat/analytics.py
======================
Read-side aggregations over chat_messages for the dashboard.

Every function takes an optional `tenant`. With a tenant the aggregation only
sees that tenant's rows; with None it runs over every row in the table (the
"global" dashboard). Because rows are denormalized per tenant, a line seen by
three tenants counts three times globally; that is the stored truth and is
not deduplicated here.

All functions return plain JSON-ready structures and never fail on an empty
table: empty lists, zero buckets or zero counts.
"""

from datetime import timedelta

from django.db.models import Avg, Count, Max
from django.db.models.functions import TruncHour
from django.utils import timezone

from .models import ChatMessage

LEADERBOARD_SIZE = 10
LEADERBOARD_ACTIVITY_DIVISOR = 100

SCATTER_SIZE = 50
SCATTER_ACTIVITY_DIVISOR = 50

HIGH_RISK_BELOW = -0.5
MEDIUM_RISK_BELOW = -0.2

ACTIVITY_HOURS = 24
RECENT_MESSAGES_LIMIT = 100
GROUPED_MESSAGES_LIMIT = 200

SENTIMENT_LABELS = ("positive", "negative", "neutral")


def _scoped(tenant=None):
    qs = ChatMessage.objects.all()
    if tenant is not None:
        qs = qs.filter(tenant=tenant)
    return qs


def _per_user(tenant=None):
    return (
        _scoped(tenant)
        .values("username")
        .annotate(
            total_messages=Count("id"),
            avg_score=Avg("sentiment_score"),
            channel_count=Count("channel", distinct=True),
            last_message=Max("timestamp"),
        )
        .order_by("-total_messages", "username")
    )


def activity_rate(count: int, divisor: int) -> float:
    return min(count * 100 / divisor, 100)


def risk_level(avg_sentiment: float) -> str:
    if avg_sentiment < HIGH_RISK_BELOW:
        return "high"
    if avg_sentiment < MEDIUM_RISK_BELOW:
        return "medium"
    return "low"


# ── Leaderboard ───────────────────────────────────────────────────────────────

def leaderboard(tenant=None) -> list[dict]:
    """Top chatters by message count, with a risk level from mean sentiment."""
    rows = []
    for user in _per_user(tenant)[:LEADERBOARD_SIZE]:
        avg = round(user["avg_score"] or 0, 2)
        rows.append({
            "username":      user["username"],
            "totalMessages": user["total_messages"],
            "avgSentiment":  avg,
            "activityRate":  activity_rate(user["total_messages"], LEADERBOARD_ACTIVITY_DIVISOR),
            "channelCount":  user["channel_count"],
            "lastMessage":   user["last_message"].isoformat() if user["last_message"] else None,
            "riskLevel":     risk_level(avg),
        })
    return rows


# ── Scatterplot ───────────────────────────────────────────────────────────────

def scatter_data(tenant=None) -> list[dict]:
    """Activity vs sentiment points for the 50 busiest chatters."""
    return [
        {
            "username":      user["username"],
            "activityRate":  activity_rate(user["total_messages"], SCATTER_ACTIVITY_DIVISOR),
            "avgSentiment":  round(user["avg_score"] or 0, 2),
            "totalMessages": user["total_messages"],
        }
        for user in _per_user(tenant)[:SCATTER_SIZE]
    ]


# ── Channel activity ──────────────────────────────────────────────────────────

def channel_activity(tenant=None, now=None) -> list[dict]:
    """
    Message counts for each of the last 24 clock hours (UTC), oldest first.
    The current, partial hour is the last bucket.
    """
    now = now or timezone.now()
    current_hour = now.replace(minute=0, second=0, microsecond=0)
    buckets = [current_hour - timedelta(hours=i) for i in range(ACTIVITY_HOURS - 1, -1, -1)]

    counts = {
        row["hour"]: row["count"]
        for row in (
            _scoped(tenant)
            .filter(timestamp__gte=buckets[0], timestamp__lte=now)
            .annotate(hour=TruncHour("timestamp"))
            .values("hour")
            .annotate(count=Count("id"))
        )
    }

    return [
        {"hour": f"{bucket.hour}:00", "count": counts.get(bucket, 0)}
        for bucket in buckets
    ]


# ── Sentiment distribution ────────────────────────────────────────────────────

def sentiment_distribution(tenant=None) -> dict:
    distribution = dict.fromkeys(SENTIMENT_LABELS, 0)
    for row in _scoped(tenant).values("sentiment_label").annotate(count=Count("id")):
        distribution[row["sentiment_label"]] = row["count"]
    return distribution


# ── Recent messages ───────────────────────────────────────────────────────────

def recent_messages(tenant=None, limit: int = RECENT_MESSAGES_LIMIT):
    return _scoped(tenant).order_by("-timestamp", "-id")[:limit]


# ── Messages by channel ───────────────────────────────────────────────────────

def messages_by_channel(tenant=None, limit: int = GROUPED_MESSAGES_LIMIT) -> list[dict]:
    """
    The latest `limit` messages grouped by channel. Groups are ordered by
    their newest message, and messages inside a group are newest first.
    """
    rows = (
        _scoped(tenant)
        .order_by("-timestamp", "-id")
        .values(
            "id", "channel", "username", "external_user_id", "message_text",
            "sentiment_label", "sentiment_score", "timestamp", "badges", "color",
        )[:limit]
    )

    groups = {}
    for row in rows:
        channel = row.pop("channel")
        row["timestamp"] = row["timestamp"].isoformat()
        group = groups.setdefault(channel, {
            "channel":     channel,
            "count":       0,
            "lastMessage": row["timestamp"],
            "messages":    [],
        })
        group["count"] += 1
        group["messages"].append(row)

    # rows arrive newest first, so insertion order is already lastMessage desc
    return list(groups.values())
