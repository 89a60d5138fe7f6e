"""Tests for the driver clients."""

from __future__ import annotations

from typing import Any

import pytest

from pgdesk.connections import (
    AsyncpgDriverClient,
    DemoDriverClient,
    DriverClient,
    DriverConnectionError,
    DriverError,
    quote_ident,
)
from pgdesk.models import DatabaseInfo, SSLMode, TableInfo


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FakeConnection:
    def __init__(self, rows: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.rows = rows or {}
        self.executed: list[str] = []
        self.closed = False
        self.fail_with: Exception | None = None

    async def fetch(self, query: str) -> list[dict[str, Any]]:
        if self.fail_with is not None:
            raise self.fail_with
        for marker, rows in self.rows.items():
            if marker in query:
                return rows
        return []

    async def execute(self, statement: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.executed.append(statement)
        return "OK"

    async def close(self) -> None:
        self.closed = True


class _FakeAsyncpg:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.connections: list[_FakeConnection] = []
        self.error: Exception | None = None

    async def connect(self, **kwargs: Any) -> _FakeConnection:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        conn = _FakeConnection(
            {
                "pg_database": [{"oid": 5, "datname": "postgres"}, {"oid": 16384, "datname": "sales"}],
                "information_schema.tables": [{"table_schema": "public", "table_name": "orders"}],
            }
        )
        self.connections.append(conn)
        return conn


@pytest.fixture
def fake_asyncpg(monkeypatch: pytest.MonkeyPatch) -> _FakeAsyncpg:
    fake = _FakeAsyncpg()
    monkeypatch.setattr("pgdesk.connections.asyncpg.connect", fake.connect)
    return fake


def test_quote_ident_escapes_quotes() -> None:
    assert quote_ident("sales") == '"sales"'
    assert quote_ident('we"ird') == '"we""ird"'


def test_clients_satisfy_protocol() -> None:
    assert isinstance(AsyncpgDriverClient(), DriverClient)
    assert isinstance(DemoDriverClient(), DriverClient)


@pytest.mark.anyio
async def test_asyncpg_connect_passes_parameters(fake_asyncpg: _FakeAsyncpg) -> None:
    client = AsyncpgDriverClient(connect_timeout=2.5)

    await client.connect("db", 6543, "alice", "secret", "sales", SSLMode.REQUIRE)

    assert fake_asyncpg.calls == [
        {
            "host": "db",
            "port": 6543,
            "user": "alice",
            "database": "sales",
            "ssl": "require",
            "timeout": 2.5,
            "password": "secret",
        }
    ]
    assert client.connected


@pytest.mark.anyio
async def test_asyncpg_connect_omits_empty_password(fake_asyncpg: _FakeAsyncpg) -> None:
    client = AsyncpgDriverClient()

    await client.connect("localhost", 5432, "postgres", "", "postgres")

    assert "password" not in fake_asyncpg.calls[0]
    assert fake_asyncpg.calls[0]["ssl"] == "prefer"


@pytest.mark.anyio
async def test_asyncpg_connect_replaces_previous_connection(fake_asyncpg: _FakeAsyncpg) -> None:
    client = AsyncpgDriverClient()

    await client.connect("localhost", 5432, "postgres", "", "postgres")
    await client.connect("localhost", 5432, "postgres", "", "sales")

    first, second = fake_asyncpg.connections
    assert first.closed is True
    assert second.closed is False


@pytest.mark.anyio
async def test_asyncpg_connect_failure_raises_connection_error(fake_asyncpg: _FakeAsyncpg) -> None:
    fake_asyncpg.error = OSError("connection refused")
    client = AsyncpgDriverClient()

    with pytest.raises(DriverConnectionError, match="connection refused"):
        await client.connect("localhost", 5432, "postgres", "", "postgres")

    assert client.connected is False


@pytest.mark.anyio
async def test_asyncpg_fetches_databases_and_tables(fake_asyncpg: _FakeAsyncpg) -> None:
    client = AsyncpgDriverClient()
    await client.connect("localhost", 5432, "postgres", "", "sales")

    databases = await client.fetch_databases()
    tables = await client.fetch_tables("sales")

    assert databases == (DatabaseInfo(id="5", name="postgres"), DatabaseInfo(id="16384", name="sales"))
    assert tables == (TableInfo(schema="public", name="orders"),)


@pytest.mark.anyio
async def test_asyncpg_fetch_tables_requires_matching_database(fake_asyncpg: _FakeAsyncpg) -> None:
    client = AsyncpgDriverClient()
    await client.connect("localhost", 5432, "postgres", "", "postgres")

    with pytest.raises(DriverError):
        await client.fetch_tables("sales")


@pytest.mark.anyio
async def test_asyncpg_requires_connection() -> None:
    client = AsyncpgDriverClient()

    with pytest.raises(DriverError, match="Not connected"):
        await client.fetch_databases()


@pytest.mark.anyio
async def test_asyncpg_ddl_quotes_identifiers(fake_asyncpg: _FakeAsyncpg) -> None:
    client = AsyncpgDriverClient()
    await client.connect("localhost", 5432, "postgres", "", "postgres")

    await client.create_database('we"ird')
    await client.delete_database("old")

    assert fake_asyncpg.connections[0].executed == ['CREATE DATABASE "we""ird"', 'DROP DATABASE "old"']


@pytest.mark.anyio
async def test_asyncpg_wraps_statement_errors(fake_asyncpg: _FakeAsyncpg) -> None:
    client = AsyncpgDriverClient()
    await client.connect("localhost", 5432, "postgres", "", "postgres")
    fake_asyncpg.connections[0].fail_with = RuntimeError('database "sales" already exists')

    with pytest.raises(DriverError, match="already exists"):
        await client.create_database("sales")


@pytest.mark.anyio
async def test_asyncpg_disconnect_is_idempotent(fake_asyncpg: _FakeAsyncpg) -> None:
    client = AsyncpgDriverClient()
    await client.connect("localhost", 5432, "postgres", "", "postgres")

    await client.disconnect()
    await client.disconnect()

    assert fake_asyncpg.connections[0].closed is True
    assert client.connected is False


@pytest.mark.anyio
async def test_asyncpg_test_connection_closes_its_connection(fake_asyncpg: _FakeAsyncpg) -> None:
    client = AsyncpgDriverClient()

    assert await client.test_connection("localhost", 5432, "postgres", "pw", "postgres") is True

    assert fake_asyncpg.connections[0].closed is True
    assert client.connected is False


@pytest.mark.anyio
async def test_demo_client_lists_catalog() -> None:
    client = DemoDriverClient()
    await client.connect("localhost", 5432, "postgres", "", "demo")

    databases = await client.fetch_databases()
    tables = await client.fetch_tables("demo")

    assert [database.name for database in databases] == ["analytics", "demo", "postgres"]
    assert len({database.id for database in databases}) == 3
    assert [table.qualified_name for table in tables] == [
        "public.accounts",
        "public.orders",
        "public.payments",
    ]


@pytest.mark.anyio
async def test_demo_client_checks_password_and_database() -> None:
    client = DemoDriverClient(password="secret")

    with pytest.raises(DriverConnectionError, match="password authentication failed"):
        await client.connect("localhost", 5432, "postgres", "wrong", "demo")
    with pytest.raises(DriverConnectionError, match="does not exist"):
        await client.connect("localhost", 5432, "postgres", "secret", "missing")

    assert client.connected is False
    assert await client.test_connection("localhost", 5432, "postgres", "secret", "demo") is True


@pytest.mark.anyio
async def test_demo_client_creates_and_drops_databases() -> None:
    client = DemoDriverClient({"postgres": ()})
    await client.connect("localhost", 5432, "postgres", "", "postgres")

    await client.create_database("reports")
    with pytest.raises(DriverError, match="already exists"):
        await client.create_database("reports")
    with pytest.raises(DriverError, match="currently open"):
        await client.delete_database("postgres")
    await client.delete_database("reports")

    assert [database.name for database in await client.fetch_databases()] == ["postgres"]
