from datetime import datetime, timezone

import psycopg2
import pytest
from psycopg2.extras import Json
from psycopg2.pool import PoolError

from chat_listener.ingestion.irc import ChatEvent
from chat_listener.processing import db_writer
from chat_listener.processing.db_writer import StorageError
from chat_listener.processing.fanout import MessageFanout
from chat_listener.processing.metrics import get_counter


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, params):
        self.conn.executed.append((" ".join(query.split()), params))
        if self.conn.execute_error is not None:
            raise self.conn.execute_error

    def fetchall(self):
        self.conn.fetched = True
        return list(self.conn.rows)


class FakeConnection:
    def __init__(self, rows=(), execute_error=None, rollback_error=None):
        self.rows = rows
        self.execute_error = execute_error
        self.rollback_error = rollback_error
        self.executed = []
        self.fetched = False
        self.calls = []
        self.closed = 0

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.calls.append("commit")

    def rollback(self):
        self.calls.append("rollback")
        if self.rollback_error is not None:
            self.closed = 2
            raise self.rollback_error


class FakePool:
    def __init__(self, conn=None, getconn_error=None):
        self.conn = conn
        self.getconn_error = getconn_error
        self.returned = []

    def getconn(self):
        if self.getconn_error is not None:
            raise self.getconn_error
        return self.conn

    def putconn(self, conn, close=False):
        self.returned.append((conn, close))


@pytest.fixture
def use_pool(monkeypatch):
    def _install(conn=None, **kwargs):
        fake = FakePool(conn, **kwargs)
        monkeypatch.setattr(db_writer, "_pool", fake)
        return fake
    return _install


def _record(**overrides):
    record = {
        "tenant_id": 7,
        "channel": "foo",
        "username": "Viewer",
        "external_user_id": "42",
        "message_text": "gg",
        "sentiment_label": "neutral",
        "sentiment_score": 0.0,
        "timestamp": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        "badges": {"subscriber": "3"},
        "color": "#00FF00",
    }
    record.update(overrides)
    return record


def test_required_channels_union_query(use_pool):
    conn = FakeConnection(rows=[("a",), ("b",)])
    pool = use_pool(conn)

    assert db_writer.fetch_required_channels() == {"a", "b"}
    query, params = conn.executed[0]
    assert "jsonb_array_elements_text(channels)" in query
    assert "FROM tracked_channels" in query
    assert params == ()
    assert conn.calls == ["commit"]
    assert pool.returned == [(conn, False)]


def test_tenant_lookup_uses_jsonb_containment(use_pool):
    conn = FakeConnection(rows=[(3,), (9,)])
    use_pool(conn)

    assert db_writer.fetch_tenants_tracking("foo") == [3, 9]
    query, params = conn.executed[0]
    assert "channels @> %s::jsonb" in query
    assert "ORDER BY tenant_id" in query
    assert params == ('["foo"]',)


def test_insert_writes_all_columns_without_fetch(use_pool):
    conn = FakeConnection()
    pool = use_pool(conn)

    db_writer.insert_chat_message(_record())

    query, params = conn.executed[0]
    assert query.startswith("INSERT INTO chat_messages")
    assert params[:8] == (
        7, "foo", "Viewer", "42", "gg", "neutral", 0.0,
        datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )
    assert isinstance(params[8], Json)
    assert params[8].adapted == {"subscriber": "3"}
    assert params[9] == "#00FF00"
    assert conn.fetched is False
    assert conn.calls == ["commit"]
    assert pool.returned == [(conn, False)]


def test_missing_badges_are_stored_as_empty_object(use_pool):
    conn = FakeConnection()
    use_pool(conn)
    db_writer.insert_chat_message(_record(badges=None))
    assert conn.executed[0][1][8].adapted == {}


def test_query_error_rolls_back_and_raises_storage_error(use_pool):
    conn = FakeConnection(execute_error=psycopg2.OperationalError("deadlock detected"))
    pool = use_pool(conn)

    with pytest.raises(StorageError, match="deadlock"):
        db_writer.fetch_required_channels()
    assert conn.calls == ["rollback"]
    assert pool.returned == [(conn, False)]


def test_dropped_connection_still_raises_storage_error(use_pool):
    conn = FakeConnection(
        execute_error=psycopg2.OperationalError("server closed the connection unexpectedly"),
        rollback_error=psycopg2.InterfaceError("connection already closed"),
    )
    pool = use_pool(conn)

    with pytest.raises(StorageError, match="server closed"):
        db_writer.fetch_tenants_tracking("foo")
    assert pool.returned == [(conn, True)]


def test_exhausted_pool_raises_storage_error(use_pool):
    use_pool(getconn_error=PoolError("connection pool exhausted"))
    with pytest.raises(StorageError, match="no connection available"):
        db_writer.insert_chat_message(_record())


def test_pool_creation_gives_up_after_retries(monkeypatch):
    def refuse(**kwargs):
        raise psycopg2.OperationalError("could not connect")

    monkeypatch.setattr(db_writer, "_pool", None)
    monkeypatch.setattr(db_writer.pool, "ThreadedConnectionPool", refuse)
    monkeypatch.setattr(db_writer.time, "sleep", lambda s: None)
    monkeypatch.setattr(db_writer, "CONNECT_ATTEMPTS", 3)

    with pytest.raises(RuntimeError, match="after 3 attempts"):
        db_writer.get_pool()


@pytest.mark.asyncio
async def test_fanout_counts_lookup_failure_on_dropped_connection(use_pool):
    use_pool(FakeConnection(
        execute_error=psycopg2.OperationalError("server closed the connection unexpectedly"),
        rollback_error=psycopg2.InterfaceError("connection already closed"),
    ))
    fanout = MessageFanout(scorer=lambda text: (0.0, "neutral"), publish=None)

    written = await fanout.handle(ChatEvent(channel="foo", username="v", text="hi"))

    assert written == 0
    assert get_counter("chat_listener_events_total", {"outcome": "lookup_failed"}) == 1
