"""
apps/chat/admin.py
==================
Ops can inspect and edit tenants' channel lists here. Edits are picked up by
the chat listener on its next reconcile pass (RECONCILE_INTERVAL_S, default
30 s), or immediately after `kill -HUP <listener pid>`.
"""

from django.contrib import admin

from .models import ChatMessage, TrackedChannelSet


@admin.register(TrackedChannelSet)
class TrackedChannelSetAdmin(admin.ModelAdmin):
    list_display    = ("tenant", "channel_count", "updated_at")
    search_fields   = ("tenant__username",)
    readonly_fields = ("updated_at",)

    @admin.display(description="Channels")
    def channel_count(self, obj):
        return len(obj.channels or [])


@admin.register(ChatMessage)
class ChatMessageAdmin(admin.ModelAdmin):
    list_display    = ("timestamp", "tenant", "channel", "username", "sentiment_label", "sentiment_score")
    list_filter     = ("sentiment_label", "channel")
    search_fields   = ("username", "message_text")
    readonly_fields = ("timestamp",)
    date_hierarchy  = "timestamp"
