"""
ingestion/twitch_client.py
==========================
One live Twitch chat connection (IRC over WebSocket).

A `TwitchChatConnection` is created for a fixed set of channels and never
changes that set: when the tracked channels change, the reconciler throws the
whole connection away and builds a new one. What this class owns is the
transport-level behaviour:

  - handshake: CAP REQ for tags/commands, PASS/NICK, then JOIN in batches
    once the server's 001 welcome arrives;
  - keepalive: answers server PINGs;
  - auto-reconnect: on a dropped socket, a network error or a server
    RECONNECT notice it reconnects with exponential back-off plus jitter and
    re-joins the same channels;
  - lifecycle reporting: "connected" / "disconnected" / "reconnecting" are
    logged and passed to `on_state`.

Without credentials the client logs in anonymously (justinfan*), which is
read-only and is all the listener needs.
"""

import asyncio
import logging
import os
import random
from contextlib import suppress
from typing import Callable, Iterable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from chat_listener.ingestion.irc import ChatEvent, parse_line, to_chat_event

logger = logging.getLogger(__name__)

TWITCH_IRC_URL = os.environ.get("TWITCH_IRC_URL", "wss://irc-ws.chat.twitch.tv:443")
ANONYMOUS_LOGIN = "justinfan12345"
ANONYMOUS_PASSWORD = "SCHMOOPIIE"   # ignored by Twitch for justinfan logins

JOIN_BATCH_SIZE = 20
BACKOFF_BASE_S = 1.0
BACKOFF_MAX_S = 60.0

CONNECTED = "connected"
DISCONNECTED = "disconnected"
RECONNECTING = "reconnecting"


class ServerReconnectRequested(Exception):
    """Twitch sent RECONNECT; the socket is about to be dropped."""


class TwitchChatConnection:
    def __init__(
        self,
        channels: Iterable[str],
        on_message: Callable[[ChatEvent], None],
        on_state: Callable[[str], None] | None = None,
        username: str | None = None,
        oauth_token: str | None = None,
        url: str = TWITCH_IRC_URL,
        connect=websockets.connect,
    ):
        self.channels = frozenset(channels)
        self.login = (username or ANONYMOUS_LOGIN).lower()
        self._password = oauth_token or ANONYMOUS_PASSWORD
        self._on_message = on_message
        self._on_state = on_state or (lambda state: None)
        self._url = url
        self._connect = connect

        self._task: asyncio.Task | None = None
        self._ws = None
        self._running = False
        self._failures = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Begin connecting in the background; returns immediately."""
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name="twitch-chat")
        logger.info("Twitch connection starting for %d channel(s).", len(self.channels))

    async def close(self) -> None:
        """Stop reconnecting and close the socket."""
        self._running = False
        ws = self._ws
        if ws is not None:
            with suppress(Exception):
                await ws.close()
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Twitch connection closed (%d channel(s)).", len(self.channels))

    # ── Connection loop ───────────────────────────────────────────────────────

    async def _run(self) -> None:
        while self._running:
            try:
                async with self._connect(
                    self._url,
                    open_timeout=15,
                    ping_interval=30,
                    ping_timeout=20,
                    close_timeout=5,
                ) as ws:
                    self._ws = ws
                    await self._login(ws)
                    async for frame in ws:
                        for line in frame.split("\r\n"):
                            await self._handle_line(ws, line)
                if self._running:
                    logger.warning("Twitch closed the chat socket.")

            except ServerReconnectRequested:
                logger.info("Twitch requested a reconnect.")
            except (ConnectionClosed, WebSocketException, OSError, asyncio.TimeoutError) as exc:
                logger.warning("Twitch chat connection error: %s", exc)
            finally:
                self._ws = None

            if not self._running:
                break
            self._set_state(DISCONNECTED)
            await self._backoff()

    async def _login(self, ws) -> None:
        await ws.send("CAP REQ :twitch.tv/tags twitch.tv/commands")
        await ws.send(f"PASS {self._password}")
        await ws.send(f"NICK {self.login}")

    async def _join_all(self, ws) -> None:
        names = sorted(self.channels)
        for i in range(0, len(names), JOIN_BATCH_SIZE):
            batch = names[i:i + JOIN_BATCH_SIZE]
            await ws.send("JOIN " + ",".join(f"#{name}" for name in batch))

    async def _handle_line(self, ws, line: str) -> None:
        msg = parse_line(line)
        if msg is None:
            return

        if msg.command == "PING":
            await ws.send(f"PONG :{msg.trailing}")
        elif msg.command == "001":
            self._failures = 0
            await self._join_all(ws)
            self._set_state(CONNECTED)
        elif msg.command == "RECONNECT":
            raise ServerReconnectRequested()
        elif msg.command == "NOTICE" and "authentication failed" in msg.trailing.lower():
            logger.error("Twitch rejected the chat login for %s.", self.login)
        elif msg.command == "PRIVMSG":
            event = to_chat_event(msg, own_login=self.login)
            if event is None:
                return
            try:
                self._on_message(event)
            except Exception:
                logger.exception("Chat message handler failed for #%s", event.channel)

    async def _backoff(self) -> None:
        self._failures += 1
        delay = min(BACKOFF_BASE_S * 2 ** (self._failures - 1), BACKOFF_MAX_S)
        delay += random.uniform(0, delay / 4)
        self._set_state(RECONNECTING)
        logger.info("Reconnecting to Twitch chat in %.1fs (attempt %d).", delay, self._failures)
        await asyncio.sleep(delay)

    def _set_state(self, state: str) -> None:
        if state == CONNECTED:
            logger.info("Connected to Twitch chat (%d channel(s)).", len(self.channels))
        elif state == DISCONNECTED:
            logger.warning("Disconnected from Twitch chat.")
        try:
            self._on_state(state)
        except Exception:
            logger.exception("Connection state callback failed (%s)", state)
