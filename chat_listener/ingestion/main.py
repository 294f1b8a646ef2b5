"""
ingestion/main.py
=================
Chat listener entry point.

    python -m chat_listener.ingestion.main      (or the `chat-listener` script)

Startup order matters: the Postgres pool is created first and the initial
registry read happens inside `reconciler.start()`. Either failing aborts the
process. After that nothing in the listener is fatal.

Shutdown (SIGINT / SIGTERM): the signal only stops the reconcile loop. The
`finally` block of `_run()` then closes the live Twitch connection and lets
in-flight fan-out tasks finish before the pool is closed.
"""

import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv

from chat_listener.ingestion.irc import ChatEvent
from chat_listener.ingestion.reconciler import ConnectionReconciler
from chat_listener.ingestion.twitch_client import TwitchChatConnection
from chat_listener.processing import db_writer
from chat_listener.processing.fanout import MessageFanout
from chat_listener.processing.metrics import start_metrics_server

load_dotenv()

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

TWITCH_USERNAME = os.environ.get("TWITCH_USERNAME") or None
TWITCH_OAUTH = os.environ.get("TWITCH_OAUTH") or None


class FanoutDispatcher:
    """Runs one fan-out task per inbound message and tracks them for shutdown."""

    def __init__(self, fanout: MessageFanout):
        self._fanout = fanout
        self._pending: set[asyncio.Task] = set()

    def __call__(self, event: ChatEvent) -> None:
        task = asyncio.create_task(self._fanout.handle(event))
        self._pending.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Fan-out task crashed", exc_info=task.exception())

    async def drain(self) -> None:
        if self._pending:
            logger.info("Waiting for %d in-flight message write(s)…", len(self._pending))
            await asyncio.gather(*self._pending, return_exceptions=True)


async def _run() -> None:
    await asyncio.to_thread(db_writer.get_pool)
    start_metrics_server()

    dispatcher = FanoutDispatcher(MessageFanout())

    def connection_factory(channels, on_state):
        return TwitchChatConnection(
            channels,
            on_message=dispatcher,
            on_state=on_state,
            username=TWITCH_USERNAME,
            oauth_token=TWITCH_OAUTH,
        )

    reconciler = ConnectionReconciler(connection_factory)
    await reconciler.start()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, reconciler.stop)
    # SIGHUP forces an immediate reconcile pass
    loop.add_signal_handler(signal.SIGHUP, reconciler.notify_changed)

    logger.info("Chat listener running (reconcile every %.0fs).", reconciler.interval)
    try:
        await reconciler.run()
    finally:
        await reconciler.close()
        await dispatcher.drain()
        db_writer.close_pool()
        logger.info("Chat listener shut down cleanly.")


def run_listener() -> None:
    """Synchronous entry point."""
    asyncio.run(_run())


if __name__ == "__main__":
    run_listener()
