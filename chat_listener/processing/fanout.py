"""
processing/fanout.py
====================
Message fan-out: one inbound chat line → one stored row per interested tenant.

Rows are denormalized per tenant. If tenants 7, 12 and 31 all track
#somechannel, a single line in that channel is written three times, each copy
stamped with its own tenant_id. Each tenant can then read, delete and clean
up its own history without touching anyone else's.

Tenant resolution happens per event, against the live `tracked_channels`
table, not against the channel set the connection happens to be joined to.
The connection can lag a just-removed channel by up to one reconcile
interval; lines that arrive for a channel nobody tracks any more are simply
dropped.

Per-tenant writes run concurrently in worker threads and are isolated: a
failed insert for one tenant is logged and counted, and the other tenants'
rows are still attempted.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from chat_listener.ingestion.irc import ChatEvent
from chat_listener.processing import db_writer
from chat_listener.processing.channel_publisher import publish_chat_message
from chat_listener.processing.db_writer import StorageError
from chat_listener.processing.metrics import inc_counter, timed
from chat_listener.processing.sentiment import analyze_sentiment

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_channel(name: str) -> str:
    return name.strip().lstrip("#").strip().lower()


def build_record(event: ChatEvent, tenant_id: int, score: float, label: str,
                 timestamp: datetime) -> dict:
    return {
        "tenant_id":        tenant_id,
        "channel":          normalize_channel(event.channel),
        "username":         event.username,
        "external_user_id": event.external_user_id,
        "message_text":     event.text,
        "sentiment_label":  label,
        "sentiment_score":  score,
        "timestamp":        timestamp,
        "badges":           dict(event.badges),
        "color":            event.color,
    }


class MessageFanout:
    def __init__(
        self,
        find_tenants: Callable[[str], list[int]] = db_writer.fetch_tenants_tracking,
        insert: Callable[[dict], None] = db_writer.insert_chat_message,
        scorer: Callable[[str], tuple[float, str]] = analyze_sentiment,
        publish: Callable[[dict], Awaitable[None]] | None = publish_chat_message,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._find_tenants = find_tenants
        self._insert = insert
        self._scorer = scorer
        self._publish = publish
        self._clock = clock

    async def handle(self, event: ChatEvent) -> int:
        """Process one chat event. Returns the number of rows written."""
        if event.is_self:
            inc_counter("chat_listener_events_total", labels={"outcome": "self"})
            return 0

        with timed("chat_listener_fanout_seconds"):
            score, label = self._scorer(event.text)
            channel = normalize_channel(event.channel)

            try:
                tenants = await asyncio.to_thread(self._find_tenants, channel)
            except StorageError as exc:
                inc_counter("chat_listener_events_total", labels={"outcome": "lookup_failed"})
                logger.warning("Tenant lookup failed for #%s, event skipped: %s", channel, exc)
                return 0

            if not tenants:
                inc_counter("chat_listener_events_total", labels={"outcome": "unclaimed"})
                logger.debug("No tenant tracks #%s; message dropped.", channel)
                return 0

            now = self._clock()
            records = [build_record(event, tenant_id, score, label, now) for tenant_id in tenants]
            results = await asyncio.gather(*(self._write(r) for r in records))

        written = sum(results)
        inc_counter("chat_listener_events_total", labels={"outcome": "fanned_out"})
        logger.debug(
            "[%s] in #%s → %d/%d tenant(s) | %s (%.2f)",
            event.username, channel, written, len(records), label, score,
        )
        return written

    async def _write(self, record: dict) -> bool:
        try:
            await asyncio.to_thread(self._insert, record)
        except Exception:
            inc_counter("chat_listener_records_total", labels={"status": "error"})
            logger.exception(
                "Failed to store message for tenant %s in #%s",
                record["tenant_id"], record["channel"],
            )
            return False

        inc_counter("chat_listener_records_total", labels={"status": "ok"})
        if self._publish is not None:
            try:
                await self._publish(record)
            except Exception as exc:
                logger.warning("Live feed publish failed for tenant %s: %s", record["tenant_id"], exc)
        return True
