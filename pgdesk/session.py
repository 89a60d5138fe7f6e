"""Session lifecycle: the single active connection and the state scoped to it.

State is layered by scope, and a change at one level clears everything
below it::

    connection -> databases / selected database
               -> tables / selected table
               -> query state

``SessionManager`` is the only writer. Slow steps run as coroutines; each
carries the connect token (and, for table loads, a generation number) it
started with, and its result is dropped if a newer operation has begun.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable

from .connections import DriverClient, DriverConnectionError, DriverError
from .credentials import CredentialResolver
from .models import ConnectionProfile, DatabaseInfo, TableInfo
from .preferences import LAST_CONNECTION_ID, LAST_DATABASE_NAME, PreferenceStore
from .profiles import ProfileRepository

LOG = logging.getLogger(__name__)

RESTORE_GRACE_PERIOD = 0.1

SessionListener = Callable[["SessionState"], None]


class ConnectionStatus(str, Enum):
    """Lifecycle of the session connection."""

    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    FAILED = "Failed"


class UnknownDatabaseError(LookupError):
    """Raised when selecting a database that is not in the current list."""


class UnknownTableError(LookupError):
    """Raised when selecting a table that is not in the current list."""


class EmptyDatabaseNameError(ValueError):
    """Raised when creating a database with a blank name."""


@dataclass(frozen=True, slots=True)
class QueryState:
    """Query editor/result state; reset whenever the table or database changes."""

    text: str = ""
    columns: tuple[str, ...] | None = None
    rows: tuple[tuple[object, ...], ...] = ()
    error: str | None = None
    elapsed_ms: int | None = None
    show_results: bool = False


@dataclass(frozen=True, slots=True)
class SessionState:
    """Current session snapshot handed to listeners."""

    profile: ConnectionProfile | None
    status: ConnectionStatus
    error: str | None = None
    databases: tuple[DatabaseInfo, ...] = ()
    selected_database: DatabaseInfo | None = None
    tables: tuple[TableInfo, ...] = ()
    selected_table: TableInfo | None = None
    loading_tables: bool = False
    query: QueryState = field(default_factory=QueryState)
    last_error: str | None = None

    @property
    def connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED


class SessionManager:
    """Drives connect/reconnect/disconnect and keeps scoped state consistent."""

    def __init__(
        self,
        driver: DriverClient,
        *,
        credentials: CredentialResolver,
        profiles: ProfileRepository,
        preferences: PreferenceStore,
        restore_grace_period: float = RESTORE_GRACE_PERIOD,
    ) -> None:
        self._driver = driver
        self._credentials = credentials
        self._profiles = profiles
        self._preferences = preferences
        self._restore_grace_period = restore_grace_period
        self._listeners: set[SessionListener] = set()

        self._profile: ConnectionProfile | None = None
        self._override_password: str | None = None
        self._status = ConnectionStatus.DISCONNECTED
        self._error: str | None = None
        self._last_error: str | None = None
        self._databases: tuple[DatabaseInfo, ...] = ()
        self._databases_owner: str | None = None
        self._selected_database: DatabaseInfo | None = None
        self._tables: tuple[TableInfo, ...] = ()
        self._selected_table: TableInfo | None = None
        self._loading_tables = False
        self._query = QueryState()

        self._attempt = 0
        self._table_generation = 0
        self._table_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._driver_lock = asyncio.Lock()
        self._restored = False

        self._state = self._snapshot()
        self._profiles_unsubscribe = profiles.subscribe(self._handle_profiles_changed)

    @property
    def state(self) -> SessionState:
        """Current session state."""

        return self._state

    @property
    def current_profile(self) -> ConnectionProfile | None:
        return self._profile

    @property
    def profiles(self) -> tuple[ConnectionProfile, ...]:
        """Profiles available in the repository, ordered by name."""

        return self._profiles.list()

    @property
    def driver(self) -> DriverClient:
        return self._driver

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to session updates; returns an unsubscribe handle."""

        self._listeners.add(listener)
        listener(self._state)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    # -- connection scope -------------------------------------------------

    async def select_profile(self, profile: ConnectionProfile) -> SessionState:
        """Make ``profile`` current and connect to it."""

        return await self.connect(profile)

    async def connect(self, profile: ConnectionProfile, override_password: str | None = None) -> SessionState:
        """Connect to ``profile``, superseding any attempt still in flight.

        Raises ``DriverConnectionError`` when the server refuses; the session
        is then ``FAILED`` with no current profile.
        """

        self._attempt += 1
        token = self._attempt
        switching = self._profile is not None and self._profile.id != profile.id
        self._clear_database_selection()
        if switching:
            self._preferences.clear(LAST_DATABASE_NAME)
        self._profile = profile
        self._override_password = override_password or None
        self._status = ConnectionStatus.CONNECTING
        self._error = None
        self._last_error = None
        self._publish()

        password = self._credentials.resolve(override_password, profile.id)
        LOG.info(
            "Connecting",
            extra={"profile": profile.name, "host": profile.host, "port": profile.port, "attempt": token},
        )
        try:
            async with self._driver_lock:
                if token != self._attempt:
                    LOG.debug("Connect superseded before start", extra={"attempt": token})
                    return self._state
                await self._driver.connect(
                    profile.host,
                    profile.port,
                    profile.user,
                    password,
                    profile.database,
                    profile.sslmode,
                )
        except (DriverConnectionError, DriverError) as exc:
            if token != self._attempt:
                LOG.debug("Discarding stale connect failure", extra={"attempt": token})
                return self._state
            LOG.warning("Connect failed", extra={"profile": profile.name, "error": str(exc)})
            self._fail(str(exc))
            if isinstance(exc, DriverConnectionError):
                raise
            raise DriverConnectionError(str(exc)) from exc
        except asyncio.CancelledError:
            if token == self._attempt:
                self._reset_connection_scope()
                self._publish()
            raise

        if token != self._attempt:
            LOG.debug("Discarding stale connect result", extra={"attempt": token})
            return self._state
        if self._databases_owner != profile.id:
            # A list fetched through another profile describes another server.
            self._databases = ()
            self._databases_owner = None
        self._status = ConnectionStatus.CONNECTED
        self._preferences.set(LAST_CONNECTION_ID, profile.id)
        self._publish()
        LOG.info("Connected", extra={"profile": profile.name, "attempt": token})

        try:
            await self.refresh_databases()
        except DriverError:
            pass  # recorded in last_error; the connection itself stays up
        return self._state

    async def disconnect(self) -> None:
        """Drop the connection; the session ends up ``DISCONNECTED`` even if the driver errors."""

        self._attempt += 1
        self._reset_connection_scope()
        self._publish()
        await self._close_driver()

    async def restore_last_connection(self, grace_period: float | None = None) -> SessionState | None:
        """Reconnect to the profile used last, once per session.

        Waits once for the repository to populate, then gives up quietly if
        there are no profiles or the remembered profile no longer exists.
        """

        if self._restored or self._profile is not None:
            return None
        delay = self._restore_grace_period if grace_period is None else grace_period
        await asyncio.sleep(delay)
        if self._profile is not None:
            return None
        if not len(self._profiles):
            return None
        self._restored = True
        last_id = self._preferences.get(LAST_CONNECTION_ID)
        if not last_id:
            return None
        profile = self._profiles.get(last_id)
        if profile is None:
            LOG.info("Forgetting unknown last connection", extra={"profile_id": last_id})
            self._preferences.clear(LAST_CONNECTION_ID)
            return None
        return await self.connect(profile)

    # -- database scope ---------------------------------------------------

    async def refresh_databases(self) -> tuple[DatabaseInfo, ...]:
        """Reload the database list, then try to restore the last selected database.

        A ``DriverError`` is recorded in ``last_error`` and re-raised; the
        previous list is kept.
        """

        token = self._attempt
        try:
            async with self._driver_lock:
                databases = tuple(await self._driver.fetch_databases())
        except DriverError as exc:
            if token == self._attempt:
                self._last_error = f"Failed to load databases: {exc}"
                self._publish()
            LOG.warning("Failed to load databases", extra={"error": str(exc)})
            raise
        if token != self._attempt:
            LOG.debug("Discarding stale database list", extra={"attempt": token})
            return self._databases

        self._databases = databases
        self._databases_owner = self._profile.id if self._profile is not None else None
        if self._selected_database is not None and self._selected_database not in databases:
            self._clear_database_selection()
        self._publish()
        await self.restore_last_database()
        return self._databases

    async def restore_last_database(self) -> DatabaseInfo | None:
        """Re-select the database remembered by name, waiting for its tables."""

        if self._selected_database is not None or not self._databases:
            return None
        name = self._preferences.get(LAST_DATABASE_NAME)
        if not name:
            return None
        database = next((db for db in self._databases if db.name == name), None)
        if database is None:
            self._preferences.clear(LAST_DATABASE_NAME)
            return None
        task = self._select(database)
        await asyncio.wait({task})
        return database

    def select_database(self, database_id: str | None) -> asyncio.Task[None] | None:
        """Select a database by id, or clear the selection with ``None``.

        Dependent state is cleared before this returns; the reconnect and
        table fetch run in the returned task.
        """

        if database_id is None:
            self._clear_database_selection()
            self._preferences.clear(LAST_DATABASE_NAME)
            self._publish()
            return None
        if self._status is not ConnectionStatus.CONNECTED:
            status = self._status.value.lower()
            raise UnknownDatabaseError(f"Database '{database_id}' cannot be selected while {status}.")
        database = next((db for db in self._databases if db.id == database_id), None)
        if database is None:
            raise UnknownDatabaseError(f"Database '{database_id}' is not in the current list.")
        return self._select(database)

    async def create_database(self, name: str) -> tuple[DatabaseInfo, ...]:
        cleaned = name.strip()
        if not cleaned:
            raise EmptyDatabaseNameError("Database name cannot be empty")
        async with self._driver_lock:
            await self._driver.create_database(cleaned)
        LOG.info("Created database", extra={"database": cleaned})
        return await self.refresh_databases()

    async def delete_database(self, database: DatabaseInfo) -> None:
        """Drop ``database``; state only changes once the server confirms."""

        selected = self._selected_database is not None and self._selected_database.id == database.id
        profile = self._profile
        async with self._driver_lock:
            stepped_back = selected and profile is not None and profile.database != database.name
            if stepped_back:
                # The open database cannot be dropped; step back to the profile's default first.
                await self._reconnect_to(profile.database)
            try:
                await self._driver.delete_database(database.name)
            except DriverError:
                if stepped_back:
                    await self._return_to(database.name)
                raise
        LOG.info("Deleted database", extra={"database": database.name})
        self._databases = tuple(db for db in self._databases if db.id != database.id)
        if selected:
            self.select_database(None)
        else:
            self._publish()

    # -- table scope ------------------------------------------------------

    def select_table(self, table: TableInfo | None) -> None:
        if table is not None and table not in self._tables:
            raise UnknownTableError(f"Table '{table.qualified_name}' is not in the current list.")
        self._selected_table = table
        self._query = QueryState()
        self._publish()

    def update_query(self, **changes: Any) -> QueryState:
        """Apply query component changes through the session's single writer."""

        self._query = replace(self._query, **changes)
        self._publish()
        return self._query

    def close(self) -> None:
        """Detach from the repository and cancel background work."""

        self._profiles_unsubscribe()
        self._cancel_table_load()
        for task in tuple(self._background):
            task.cancel()

    # -- internals --------------------------------------------------------

    def _select(self, database: DatabaseInfo) -> asyncio.Task[None]:
        self._cancel_table_load()
        self._table_generation += 1
        generation = self._table_generation
        self._selected_database = database
        self._preferences.set(LAST_DATABASE_NAME, database.name)
        self._tables = ()
        self._selected_table = None
        self._query = QueryState()
        self._loading_tables = True
        self._publish()
        task = asyncio.get_running_loop().create_task(self._load_tables(database, generation, self._attempt))
        self._table_task = task
        return task

    async def _load_tables(self, database: DatabaseInfo, generation: int, token: int) -> None:
        profile = self._profile
        tables: tuple[TableInfo, ...] = ()
        if profile is not None:
            password = self._credentials.resolve(self._override_password, profile.id)
            try:
                async with self._driver_lock:
                    if self._is_stale_load(generation, token):
                        return
                    # PostgreSQL connections are bound to one database.
                    await self._driver.connect(
                        profile.host,
                        profile.port,
                        profile.user,
                        password,
                        database.name,
                        profile.sslmode,
                    )
                    tables = tuple(await self._driver.fetch_tables(database.name))
            except (DriverConnectionError, DriverError) as exc:
                LOG.warning("Failed to load tables", extra={"database": database.name, "error": str(exc)})
                tables = ()
        if self._is_stale_load(generation, token):
            LOG.debug("Discarding stale table list", extra={"database": database.name})
            return
        self._tables = tables
        self._loading_tables = False
        self._publish()

    async def _reconnect_to(self, database_name: str) -> None:
        """Point the driver at another database of the current profile; caller holds the lock."""

        profile = self._profile
        if profile is None:
            raise DriverError("Not connected to a server.")
        password = self._credentials.resolve(self._override_password, profile.id)
        try:
            await self._driver.connect(
                profile.host,
                profile.port,
                profile.user,
                password,
                database_name,
                profile.sslmode,
            )
        except DriverConnectionError as exc:
            raise DriverError(str(exc)) from exc

    async def _return_to(self, database_name: str) -> None:
        try:
            await self._reconnect_to(database_name)
        except DriverError:
            LOG.warning("Could not return to the selected database", extra={"database": database_name}, exc_info=True)

    def _is_stale_load(self, generation: int, token: int) -> bool:
        return generation != self._table_generation or token != self._attempt

    def _cancel_table_load(self) -> None:
        task, self._table_task = self._table_task, None
        if task is not None and not task.done():
            task.cancel()

    def _clear_database_selection(self) -> None:
        self._cancel_table_load()
        self._table_generation += 1
        self._selected_database = None
        self._tables = ()
        self._selected_table = None
        self._loading_tables = False
        self._query = QueryState()

    def _reset_connection_scope(self) -> None:
        self._clear_database_selection()
        self._profile = None
        self._override_password = None
        self._status = ConnectionStatus.DISCONNECTED
        self._error = None
        self._last_error = None
        self._databases = ()
        self._databases_owner = None

    def _fail(self, message: str) -> None:
        # The database list is left stale; FAILED marks it invalid.
        self._clear_database_selection()
        self._profile = None
        self._override_password = None
        self._status = ConnectionStatus.FAILED
        self._error = message
        self._publish()

    async def _close_driver(self) -> None:
        try:
            async with self._driver_lock:
                await self._driver.disconnect()
        except Exception:
            LOG.warning("Driver disconnect failed", exc_info=True)

    def _handle_profiles_changed(self, profiles: tuple[ConnectionProfile, ...]) -> None:
        if self._profile is None:
            return
        current = next((profile for profile in profiles if profile.id == self._profile.id), None)
        if current is not None:
            if current != self._profile:
                self._profile = current
                self._publish()
            return
        LOG.info("Current profile was deleted; disconnecting", extra={"profile_id": self._profile.id})
        self._attempt += 1
        self._reset_connection_scope()
        self._publish()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._close_driver())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _snapshot(self) -> SessionState:
        return SessionState(
            profile=self._profile,
            status=self._status,
            error=self._error,
            databases=self._databases,
            selected_database=self._selected_database,
            tables=self._tables,
            selected_table=self._selected_table,
            loading_tables=self._loading_tables,
            query=self._query,
            last_error=self._last_error,
        )

    def _publish(self) -> None:
        self._state = self._snapshot()
        for listener in tuple(self._listeners):
            listener(self._state)


__all__ = [
    "ConnectionStatus",
    "EmptyDatabaseNameError",
    "QueryState",
    "RESTORE_GRACE_PERIOD",
    "SessionListener",
    "SessionManager",
    "SessionState",
    "UnknownDatabaseError",
    "UnknownTableError",
]
