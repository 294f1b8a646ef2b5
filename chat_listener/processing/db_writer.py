"""
processing/db_writer.py
=======================
PostgreSQL access for the chat listener.

The listener never imports Django. It reads and writes the tables owned by
the `apps.chat` Django app (`tracked_channels`, `chat_messages`) with plain
SQL through a psycopg2 ThreadedConnectionPool:

  - connections are borrowed per operation and returned immediately, so the
    per-tenant fan-out writes (run via asyncio.to_thread) proceed in parallel
    up to POOL_MAX connections;
  - pool creation retries with exponential back-off; if Postgres never comes
    up the listener refuses to start;
  - every psycopg2 failure is re-raised as StorageError so callers only deal
    with one exception type.
"""

import json
import logging
import os
import time
from contextlib import suppress

import psycopg2
from psycopg2 import pool
from psycopg2.extras import Json

logger = logging.getLogger(__name__)

DSN = (
    f"dbname={os.environ.get('POSTGRES_DB', 'chatpulse')} "
    f"user={os.environ.get('POSTGRES_USER', 'chatpulse')} "
    f"password={os.environ.get('POSTGRES_PASSWORD', 'chatpulse')} "
    f"host={os.environ.get('POSTGRES_HOST', 'postgres')} "
    f"port={os.environ.get('POSTGRES_PORT', '5432')}"
)

POOL_MIN = int(os.environ.get("POSTGRES_POOL_MIN", "2"))
POOL_MAX = int(os.environ.get("POSTGRES_POOL_MAX", "20"))
CONNECT_ATTEMPTS = 10

_pool: pool.ThreadedConnectionPool | None = None


class StorageError(RuntimeError):
    """Raised when a read or write against Postgres fails."""


def get_pool() -> pool.ThreadedConnectionPool:
    """Return the shared pool, creating it with back-off on first use."""
    global _pool
    if _pool is not None:
        return _pool

    delay = 2.0
    for attempt in range(1, CONNECT_ATTEMPTS + 1):
        try:
            _pool = pool.ThreadedConnectionPool(minconn=POOL_MIN, maxconn=POOL_MAX, dsn=DSN)
            logger.info("Postgres connection pool created (min=%d, max=%d).", POOL_MIN, POOL_MAX)
            return _pool
        except psycopg2.OperationalError as exc:
            logger.warning(
                "Postgres not ready (attempt %d/%d): %s — retrying in %.0fs.",
                attempt, CONNECT_ATTEMPTS, exc, delay,
            )
            time.sleep(delay)
            delay = min(delay * 2, 60.0)

    raise RuntimeError(f"Cannot connect to Postgres after {CONNECT_ATTEMPTS} attempts.")


def close_pool() -> None:
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
        logger.info("Postgres connection pool closed.")


def _run(query: str, params: tuple = (), fetch: bool = True) -> list[tuple]:
    """Execute one statement in its own transaction."""
    p = get_pool()
    try:
        conn = p.getconn()
    except psycopg2.Error as exc:
        raise StorageError(f"no connection available: {exc}") from exc

    try:
        with conn.cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall() if fetch else []
        conn.commit()
        return rows
    except psycopg2.Error as exc:
        # A dropped connection fails the rollback too
        with suppress(psycopg2.Error):
            conn.rollback()
        raise StorageError(str(exc)) from exc
    finally:
        # Broken connections are discarded instead of going back into the pool
        p.putconn(conn, close=conn.closed != 0)


# ── Registry reads ────────────────────────────────────────────────────────────

def fetch_required_channels() -> set[str]:
    """Union of every tenant's tracked channels."""
    rows = _run(
        "SELECT DISTINCT jsonb_array_elements_text(channels) FROM tracked_channels"
    )
    return {r[0] for r in rows}


def fetch_tenants_tracking(channel: str) -> list[int]:
    """Ids of every tenant whose tracked set contains `channel`."""
    rows = _run(
        "SELECT tenant_id FROM tracked_channels WHERE channels @> %s::jsonb ORDER BY tenant_id",
        (json.dumps([channel]),),
    )
    return [r[0] for r in rows]


# ── Message writes ────────────────────────────────────────────────────────────

def insert_chat_message(record: dict) -> None:
    """Insert one per-tenant chat message row."""
    _run(
        """
        INSERT INTO chat_messages (
            tenant_id, channel, username, external_user_id, message_text,
            sentiment_label, sentiment_score, timestamp, badges, color
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """,
        (
            record["tenant_id"],
            record["channel"],
            record["username"],
            record["external_user_id"],
            record["message_text"],
            record["sentiment_label"],
            record["sentiment_score"],
            record["timestamp"],
            Json(record.get("badges") or {}),
            record["color"],
        ),
        fetch=False,
    )
    logger.debug("Stored message for tenant %s in #%s.", record["tenant_id"], record["channel"])
