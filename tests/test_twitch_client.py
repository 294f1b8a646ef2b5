import asyncio

import pytest

from chat_listener.ingestion import twitch_client
from chat_listener.ingestion.twitch_client import (
    ANONYMOUS_LOGIN,
    CONNECTED,
    ServerReconnectRequested,
    TwitchChatConnection,
)


class FakeWebSocket:
    def __init__(self, frames=()):
        self.sent = []
        self._frames = list(frames)
        self._closed = asyncio.Event()

    async def send(self, data):
        self.sent.append(data)

    async def close(self):
        self._closed.set()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._frames:
            return self._frames.pop(0)
        await self._closed.wait()
        raise StopAsyncIteration


class FakeConnect:
    """Stands in for websockets.connect; hands out one FakeWebSocket per call."""

    def __init__(self, ws):
        self.ws = ws
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self

    async def __aenter__(self):
        return self.ws

    async def __aexit__(self, *exc):
        return False


def _connection(channels=("a",), **kwargs):
    received, states = [], []
    conn = TwitchChatConnection(
        channels,
        on_message=received.append,
        on_state=states.append,
        **kwargs,
    )
    return conn, received, states


@pytest.mark.asyncio
async def test_anonymous_login_handshake():
    conn, _, _ = _connection()
    ws = FakeWebSocket()
    await conn._login(ws)
    assert ws.sent == [
        "CAP REQ :twitch.tv/tags twitch.tv/commands",
        "PASS SCHMOOPIIE",
        f"NICK {ANONYMOUS_LOGIN}",
    ]


@pytest.mark.asyncio
async def test_credentials_are_used_when_given():
    conn, _, _ = _connection(username="MyBot", oauth_token="oauth:abc")
    ws = FakeWebSocket()
    await conn._login(ws)
    assert "PASS oauth:abc" in ws.sent
    assert "NICK mybot" in ws.sent


@pytest.mark.asyncio
async def test_ping_is_answered():
    conn, _, _ = _connection()
    ws = FakeWebSocket()
    await conn._handle_line(ws, "PING :tmi.twitch.tv")
    assert ws.sent == ["PONG :tmi.twitch.tv"]


@pytest.mark.asyncio
async def test_welcome_joins_channels_in_batches(monkeypatch):
    monkeypatch.setattr(twitch_client, "JOIN_BATCH_SIZE", 2)
    conn, _, states = _connection(channels=["c", "a", "b"])
    ws = FakeWebSocket()
    await conn._handle_line(ws, ":tmi.twitch.tv 001 justinfan12345 :Welcome, GLHF!")
    assert ws.sent == ["JOIN #a,#b", "JOIN #c"]
    assert states == [CONNECTED]


@pytest.mark.asyncio
async def test_reconnect_notice_raises():
    conn, _, _ = _connection()
    with pytest.raises(ServerReconnectRequested):
        await conn._handle_line(FakeWebSocket(), ":tmi.twitch.tv RECONNECT")


@pytest.mark.asyncio
async def test_privmsg_reaches_handler():
    conn, received, _ = _connection()
    await conn._handle_line(
        FakeWebSocket(),
        "@display-name=Viewer;user-id=7 :viewer!viewer@viewer.tmi.twitch.tv PRIVMSG #a :gg",
    )
    assert len(received) == 1
    assert received[0].channel == "a"
    assert received[0].text == "gg"


@pytest.mark.asyncio
async def test_handler_errors_do_not_escape():
    def broken(event):
        raise RuntimeError("boom")

    conn = TwitchChatConnection(["a"], on_message=broken)
    await conn._handle_line(FakeWebSocket(), ":v!v@v PRIVMSG #a :hi")


@pytest.mark.asyncio
async def test_run_loop_delivers_messages_and_closes():
    ws = FakeWebSocket(frames=[
        ":tmi.twitch.tv 001 justinfan12345 :Welcome\r\n",
        ":v!v@v PRIVMSG #a :first\r\n:w!w@w PRIVMSG #a :second",
    ])
    connect = FakeConnect(ws)
    conn, received, states = _connection(url="wss://example.invalid", connect=connect)

    await conn.start()
    for _ in range(100):
        if len(received) == 2:
            break
        await asyncio.sleep(0.01)
    await conn.close()

    assert [e.text for e in received] == ["first", "second"]
    assert states == [CONNECTED]
    assert connect.calls[0][0] == "wss://example.invalid"
    assert "JOIN #a" in ws.sent
    assert conn.is_running is False
