"""Driver clients performing the actual PostgreSQL I/O for the session manager."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

import asyncpg

from .models import DatabaseInfo, SSLMode, TableInfo

LOG = logging.getLogger(__name__)


class DriverConnectionError(RuntimeError):
    """Raised when the server refuses a connection or cannot be reached."""


class DriverError(RuntimeError):
    """Raised when an operation on an established connection fails."""


@runtime_checkable
class DriverClient(Protocol):
    """Protocol implemented by driver clients."""

    async def connect(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        sslmode: SSLMode = SSLMode.PREFER,
    ) -> None:
        """Open the session connection, replacing any existing one."""

    async def disconnect(self) -> None:
        """Close the session connection, if any."""

    async def fetch_databases(self) -> Sequence[DatabaseInfo]:
        """List databases visible on the connected server."""

    async def fetch_tables(self, database: str) -> Sequence[TableInfo]:
        """List user tables of the connected database."""

    async def create_database(self, name: str) -> None:
        """Create a database on the connected server."""

    async def delete_database(self, name: str) -> None:
        """Drop a database on the connected server."""

    async def test_connection(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        sslmode: SSLMode = SSLMode.PREFER,
    ) -> bool:
        """Connect and immediately disconnect without touching the session connection."""


def quote_ident(name: str) -> str:
    """Quote an identifier for interpolation into DDL."""

    return '"' + name.replace('"', '""') + '"'


class AsyncpgDriverClient:
    """Driver client that talks to PostgreSQL via asyncpg."""

    _DATABASES_QUERY = """
        SELECT oid, datname
        FROM pg_database
        WHERE NOT datistemplate
        ORDER BY datname
    """

    _TABLES_QUERY = """
        SELECT table_schema, table_name
        FROM information_schema.tables
        WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
          AND table_type = 'BASE TABLE'
        ORDER BY table_schema, table_name
    """

    def __init__(self, *, connect_timeout: float = 5.0) -> None:
        self._connect_timeout = connect_timeout
        self._conn: Any | None = None
        self._database: str | None = None

    @property
    def connected(self) -> bool:
        return self._conn is not None

    async def connect(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        sslmode: SSLMode = SSLMode.PREFER,
    ) -> None:
        try:
            await self.disconnect()
        except DriverError:
            LOG.warning("Previous connection did not close cleanly", exc_info=True)
        self._conn = await self._open(host, port, user, password, database, sslmode, self._connect_timeout)
        self._database = database

    async def disconnect(self) -> None:
        conn, self._conn = self._conn, None
        self._database = None
        if conn is None:
            return
        try:
            await conn.close()
        except Exception as exc:
            raise DriverError(f"Failed to close connection: {exc}") from exc

    async def fetch_databases(self) -> tuple[DatabaseInfo, ...]:
        rows = await self._fetch(self._DATABASES_QUERY)
        return tuple(DatabaseInfo(id=str(row["oid"]), name=str(row["datname"])) for row in rows)

    async def fetch_tables(self, database: str) -> tuple[TableInfo, ...]:
        if database != self._database:
            raise DriverError(f"Connected to '{self._database}', not '{database}'.")
        rows = await self._fetch(self._TABLES_QUERY)
        return tuple(TableInfo(schema=str(row["table_schema"]), name=str(row["table_name"])) for row in rows)

    async def create_database(self, name: str) -> None:
        await self._execute(f"CREATE DATABASE {quote_ident(name)}")

    async def delete_database(self, name: str) -> None:
        await self._execute(f"DROP DATABASE {quote_ident(name)}")

    @staticmethod
    async def test_connection(
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        sslmode: SSLMode = SSLMode.PREFER,
        *,
        timeout: float = 5.0,
    ) -> bool:
        conn = await AsyncpgDriverClient._open(host, port, user, password, database, sslmode, timeout)
        try:
            await conn.close()
        except Exception:  # pragma: no cover - best effort
            LOG.debug("Test connection did not close cleanly", extra={"host": host})
        return True

    @staticmethod
    async def _open(
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        sslmode: SSLMode,
        timeout: float,
    ) -> Any:
        kwargs: dict[str, object] = {
            "host": host,
            "port": port,
            "user": user,
            "database": database,
            "ssl": SSLMode(sslmode).value,
            "timeout": timeout,
        }
        if password:
            kwargs["password"] = password
        try:
            return await asyncpg.connect(**kwargs)
        except Exception as exc:
            raise DriverConnectionError(f"Failed to connect to {host}:{port}/{database}: {exc}") from exc

    async def _fetch(self, query: str) -> list[Any]:
        conn = self._require_connection()
        try:
            return list(await conn.fetch(query))
        except Exception as exc:
            raise DriverError(str(exc)) from exc

    async def _execute(self, statement: str) -> None:
        conn = self._require_connection()
        try:
            await conn.execute(statement)
        except Exception as exc:
            raise DriverError(str(exc)) from exc

    def _require_connection(self) -> Any:
        if self._conn is None:
            raise DriverError("Not connected to a server.")
        return self._conn


DEMO_CATALOG: Mapping[str, Sequence[str]] = {
    "postgres": (),
    "demo": ("public.accounts", "public.orders", "public.payments"),
    "analytics": ("analytics.events", "analytics.sessions"),
}


class DemoDriverClient:
    """In-memory stand-in for a PostgreSQL server.

    ``catalog`` maps database names to ``schema.table`` names. When
    ``password`` is set, connects with any other password are refused.
    """

    def __init__(
        self,
        catalog: Mapping[str, Sequence[str]] | None = None,
        *,
        password: str | None = None,
    ) -> None:
        source = DEMO_CATALOG if catalog is None else catalog
        self._catalog: dict[str, list[TableInfo]] = {
            name: [self._table(entry) for entry in tables] for name, tables in source.items()
        }
        self._oids: dict[str, int] = {}
        self._next_oid = 16384
        for name in self._catalog:
            self._assign_oid(name)
        self._password = password
        self._database: str | None = None
        self.connect_calls: list[dict[str, object]] = []

    @property
    def connected(self) -> bool:
        return self._database is not None

    @property
    def database(self) -> str | None:
        return self._database

    async def connect(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        sslmode: SSLMode = SSLMode.PREFER,
    ) -> None:
        self.connect_calls.append(
            {"host": host, "port": port, "user": user, "database": database, "sslmode": sslmode}
        )
        self._database = None
        self._check(password, database)
        self._database = database

    async def disconnect(self) -> None:
        self._database = None

    async def fetch_databases(self) -> tuple[DatabaseInfo, ...]:
        self._require_connection()
        return tuple(
            DatabaseInfo(id=str(self._oids[name]), name=name) for name in sorted(self._catalog)
        )

    async def fetch_tables(self, database: str) -> tuple[TableInfo, ...]:
        self._require_connection()
        if database != self._database:
            raise DriverError(f"Connected to '{self._database}', not '{database}'.")
        return tuple(sorted(self._catalog[database], key=lambda table: (table.schema, table.name)))

    async def create_database(self, name: str) -> None:
        self._require_connection()
        if name in self._catalog:
            raise DriverError(f'database "{name}" already exists')
        self._catalog[name] = []
        self._assign_oid(name)

    async def delete_database(self, name: str) -> None:
        self._require_connection()
        if name not in self._catalog:
            raise DriverError(f'database "{name}" does not exist')
        if name == self._database:
            raise DriverError("cannot drop the currently open database")
        del self._catalog[name]

    async def test_connection(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        sslmode: SSLMode = SSLMode.PREFER,
    ) -> bool:
        self._check(password, database)
        return True

    def _check(self, password: str, database: str) -> None:
        if self._password is not None and password != self._password:
            raise DriverConnectionError("password authentication failed")
        if database not in self._catalog:
            raise DriverConnectionError(f'database "{database}" does not exist')

    def _require_connection(self) -> None:
        if self._database is None:
            raise DriverError("Not connected to a server.")

    def _assign_oid(self, name: str) -> None:
        self._oids[name] = self._next_oid
        self._next_oid += 1

    @staticmethod
    def _table(entry: str) -> TableInfo:
        if "." in entry:
            schema, name = entry.split(".", 1)
        else:
            schema, name = "public", entry
        return TableInfo(schema=schema, name=name)


__all__ = [
    "AsyncpgDriverClient",
    "DEMO_CATALOG",
    "DemoDriverClient",
    "DriverClient",
    "DriverConnectionError",
    "DriverError",
    "quote_ident",
]
