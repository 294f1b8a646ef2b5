"""
apps/chat/models.py
===================
Both tables are owned by Django (migrations live in apps/chat/migrations) and
are also read and written with raw SQL by the chat listener
(chat_listener/processing/db_writer.py). Keep the db_table names and column
names in sync with that module.
"""

from django.conf import settings
from django.db import models


# ── TrackedChannelSet ─────────────────────────────────────────────────────────

class TrackedChannelSet(models.Model):
    """
    The channels one tenant follows.

    `channels` is a JSON list of normalized names (lowercase, no leading '#',
    no duplicates). It is always rewritten whole; see apps/chat/registry.py.
    The listener unions these lists to decide which channels to join and
    queries them with `channels @> '["name"]'` to find a message's tenants.
    """

    tenant = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="tracked_channels",
    )
    channels = models.JSONField(default=list, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tracked_channels"
        verbose_name = "Tracked channel set"

    def __str__(self):
        return f"{self.tenant} ({len(self.channels)} channels)"


# ── ChatMessage ───────────────────────────────────────────────────────────────

class ChatMessage(models.Model):
    """
    One chat line as seen by one tenant. The listener inserts one row per
    tenant tracking the channel, so identical lines exist once per tenant.
    """

    SENTIMENT_CHOICES = [
        ("positive", "Positive"),
        ("negative", "Negative"),
        ("neutral",  "Neutral"),
    ]

    tenant = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_messages",
    )
    channel = models.CharField(max_length=100)
    username = models.CharField(max_length=100)
    external_user_id = models.CharField(max_length=50, null=True, blank=True)
    message_text = models.TextField()
    sentiment_label = models.CharField(max_length=10, choices=SENTIMENT_CHOICES)
    sentiment_score = models.FloatField()
    timestamp = models.DateTimeField()
    badges = models.JSONField(default=dict, blank=True)
    color = models.CharField(max_length=16, default="#ffffff")

    class Meta:
        db_table = "chat_messages"
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["tenant", "timestamp"], name="chat_msg_tenant_ts_idx"),
            models.Index(fields=["timestamp"], name="chat_msg_ts_idx"),
            models.Index(fields=["username"], name="chat_msg_username_idx"),
        ]

    def __str__(self):
        return f"[{self.channel}] {self.username}: {self.message_text[:40]}"
