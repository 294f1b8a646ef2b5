"""
ingestion/reconciler.py
=======================
Keeps the single Twitch chat connection joined to exactly the channels that
tenants are tracking.

State machine
-------------
    DISCONNECTED ──start/reconcile──▶ CONNECTING ──001 welcome──▶ CONNECTED
         ▲                                                          │
         └──── teardown (set changed / close) ◀── RECONNECTING ◀────┘
                                                 (transport drop; the
                                                  transport retries itself)

How a pass works
----------------
Every RECONCILE_INTERVAL_S seconds (or immediately after `notify_changed()`)
the reconciler reads the union of all tracked channels and compares it, as a
set, with the channels the live connection was opened for. Equal sets are a
no-op. Any difference tears the old connection down and opens a new one for
the new set: a full reconnect rather than incremental JOIN/PART, accepting a
short gap in coverage.

The connection handle lives on the instance and is only touched while
holding `_lock`, so two passes can never race to create two live
connections. A registry read failure skips the pass and keeps the current
connection; a teardown failure is logged and the replacement is still
opened. The only fatal path is `start()`: if the registry cannot be read at
startup the exception propagates and the listener exits.
"""

import asyncio
import enum
import logging
import os
from typing import Callable, Iterable

from chat_listener.processing import db_writer
from chat_listener.processing.db_writer import StorageError
from chat_listener.processing.metrics import inc_counter, set_gauge

logger = logging.getLogger(__name__)

RECONCILE_INTERVAL_S = float(os.environ.get("RECONCILE_INTERVAL_S", "30"))


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


# transport lifecycle event → reconciler state
_TRANSPORT_STATES = {
    "connected":    ConnectionState.CONNECTED,
    "disconnected": ConnectionState.RECONNECTING,
    "reconnecting": ConnectionState.RECONNECTING,
}


class ConnectionReconciler:
    def __init__(
        self,
        connection_factory: Callable,
        read_required: Callable[[], Iterable[str]] = db_writer.fetch_required_channels,
        interval: float = RECONCILE_INTERVAL_S,
    ):
        """
        connection_factory(channels, on_state) must return an object with
        async start() / close(); on_state receives transport lifecycle
        strings ("connected", "disconnected", "reconnecting").
        """
        self._factory = connection_factory
        self._read_required = read_required
        self._interval = interval

        self._lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._stopped = asyncio.Event()

        self._connection = None
        self._generation = 0
        self._channels: frozenset[str] = frozenset()
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def channels(self) -> frozenset[str]:
        return self._channels

    @property
    def connection(self):
        return self._connection

    @property
    def interval(self) -> float:
        return self._interval

    # ── Public API ────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Open the initial connection. Registry errors propagate."""
        async with self._lock:
            required = await self._fetch_required()
            logger.info("Starting with %d required channel(s).", len(required))
            await self._open(required)

    async def reconcile(self) -> bool:
        """Run one pass. Returns True if the connection was replaced."""
        async with self._lock:
            try:
                required = await self._fetch_required()
            except StorageError as exc:
                inc_counter("chat_listener_reconcile_passes_total", labels={"result": "skipped"})
                logger.warning("Could not read tracked channels, keeping current connection: %s", exc)
                return False

            if required == self._channels:
                inc_counter("chat_listener_reconcile_passes_total", labels={"result": "noop"})
                return False

            logger.info(
                "Tracked channels changed (+%s / -%s); reconnecting.",
                sorted(required - self._channels),
                sorted(self._channels - required),
            )
            await self._teardown()
            await self._open(required)
            inc_counter("chat_listener_reconcile_passes_total", labels={"result": "reconnect"})
            return True

    def stop(self) -> None:
        """Make run() return after the current pass. Safe from signal handlers."""
        self._stopped.set()
        self._wake.set()

    def notify_changed(self) -> None:
        """Wake the periodic loop for an immediate pass."""
        self._wake.set()

    async def run(self) -> None:
        """Periodic loop; returns once close() has been called."""
        while not self._stopped.is_set():
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            if self._stopped.is_set():
                break
            try:
                await self.reconcile()
            except Exception:
                logger.exception("Reconcile pass failed unexpectedly")

    async def close(self) -> None:
        """Stop the periodic loop and close the live connection."""
        self.stop()
        async with self._lock:
            await self._teardown()
            self._channels = frozenset()
            set_gauge("chat_listener_subscribed_channels", 0)
        logger.info("Reconciler stopped.")

    # ── Internals (caller holds _lock) ────────────────────────────────────────

    async def _fetch_required(self) -> frozenset[str]:
        return frozenset(await asyncio.to_thread(self._read_required))

    async def _open(self, channels: frozenset[str]) -> None:
        self._generation += 1
        self._channels = channels
        set_gauge("chat_listener_subscribed_channels", len(channels))

        if not channels:
            self._state = ConnectionState.DISCONNECTED
            logger.info("No channels are tracked; staying disconnected.")
            return

        self._state = ConnectionState.CONNECTING
        conn = self._factory(channels, self._state_listener(self._generation))
        try:
            await conn.start()
        except Exception:
            logger.exception("Could not start chat connection for %d channel(s)", len(channels))
            # Forget the set so the next pass retries.
            self._channels = frozenset()
            self._state = ConnectionState.DISCONNECTED
            return
        self._connection = conn

    async def _teardown(self) -> None:
        conn, self._connection = self._connection, None
        self._generation += 1
        self._state = ConnectionState.DISCONNECTED
        if conn is None:
            return
        try:
            await conn.close()
        except Exception:
            logger.exception("Error while closing the old chat connection (ignored)")

    def _state_listener(self, generation: int) -> Callable[[str], None]:
        def on_state(event: str) -> None:
            inc_counter("chat_listener_connection_events_total", labels={"event": event})
            if generation != self._generation:
                return  # event from a connection we already replaced
            new_state = _TRANSPORT_STATES.get(event)
            if new_state is not None:
                self._state = new_state
        return on_state
