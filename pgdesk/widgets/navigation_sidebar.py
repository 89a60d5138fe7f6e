"""Sidebar listing connections, databases and tables of the session."""

from __future__ import annotations

from typing import Callable

from textual import events, on
from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import Label, ListItem, ListView, Static

from pgdesk.models import ConnectionProfile, DatabaseInfo, TableInfo
from pgdesk.session import ConnectionStatus, SessionManager, SessionState, UnknownTableError


class NavigationSidebar(Container):
    """Mirrors the session manager: profiles, then databases, then tables."""

    DEFAULT_CSS = """
    NavigationSidebar {
        width: 32;
        min-width: 22;
        border-right: solid $surface-darken-1;
        padding: 1;
        height: 1fr;
        background: $surface-darken-2;
    }

    NavigationSidebar .sidebar-heading {
        text-style: bold;
        margin-top: 1;
    }

    NavigationSidebar ListView {
        height: auto;
        max-height: 10;
        border: round $primary 30%;
    }

    NavigationSidebar .active {
        text-style: bold;
    }

    NavigationSidebar .placeholder {
        color: $text-muted;
        text-style: italic;
    }
    """

    def __init__(self, session_manager: SessionManager, *, initial_width: int | None = None) -> None:
        super().__init__(id="nav-sidebar")
        self._session_manager = session_manager
        self._initial_width = initial_width
        self._profile_list = ListView(id="profile-list")
        self._database_list = ListView(id="database-list")
        self._table_list = ListView(id="table-list")
        self._database_hint = Static("No databases", classes="placeholder")
        self._table_hint = Static("", classes="placeholder")
        self._rendered_profiles: tuple[ConnectionProfile, ...] | None = None
        self._rendered_databases: tuple[DatabaseInfo, ...] | None = None
        self._rendered_tables: tuple[TableInfo, ...] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        if self._initial_width:
            self.styles.width = self._initial_width
        yield Static("Connection", classes="sidebar-heading")
        yield self._profile_list
        yield Static("Databases", classes="sidebar-heading")
        yield self._database_list
        yield self._database_hint
        yield Static("Tables", classes="sidebar-heading")
        yield self._table_list
        yield self._table_hint

    async def on_mount(self) -> None:
        self._unsubscribe = self._session_manager.subscribe(self._handle_session_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    async def on_resize(self, event: events.Resize) -> None:
        self._report_width(event.size.width)

    def _handle_session_update(self, state: SessionState) -> None:
        self.call_later(self._render_state, state)

    async def _render_state(self, state: SessionState) -> None:
        await self._render_profiles(state)
        await self._render_databases(state)
        await self._render_tables(state)

    async def _render_profiles(self, state: SessionState) -> None:
        profiles = self._session_manager.profiles
        if profiles != self._rendered_profiles:
            await self._profile_list.clear()
            await self._profile_list.extend(_ProfileListItem(profile) for profile in profiles)
            self._rendered_profiles = profiles
        active_id = state.profile.id if state.profile else None
        for index, item in enumerate(self._profile_list.query(_ProfileListItem)):
            item.set_class(item.profile_id == active_id, "active")
            if item.profile_id == active_id:
                self._profile_list.index = index

    async def _render_databases(self, state: SessionState) -> None:
        databases = state.databases if state.status is ConnectionStatus.CONNECTED else ()
        if databases != self._rendered_databases:
            await self._database_list.clear()
            await self._database_list.extend(_DatabaseListItem(database) for database in databases)
            self._rendered_databases = databases
        self._database_hint.display = not databases
        selected_id = state.selected_database.id if state.selected_database else None
        for item in self._database_list.query(_DatabaseListItem):
            item.set_class(item.database.id == selected_id, "active")

    async def _render_tables(self, state: SessionState) -> None:
        if state.tables != self._rendered_tables:
            await self._table_list.clear()
            await self._table_list.extend(_TableListItem(table) for table in state.tables)
            self._rendered_tables = state.tables
        if state.loading_tables:
            hint = "Loading tables…"
        elif state.selected_database is None:
            hint = "Select a database"
        elif not state.tables:
            hint = "No tables"
        else:
            hint = ""
        self._table_hint.update(hint)
        self._table_hint.display = bool(hint)
        for item in self._table_list.query(_TableListItem):
            item.set_class(item.table == state.selected_table, "active")

    @on(ListView.Selected)
    def _handle_selected(self, event: ListView.Selected) -> None:
        item = event.item
        if isinstance(item, _ProfileListItem):
            switcher = getattr(self.app, "switch_profile", None)
            if switcher is not None:
                switcher(item.profile_id)
        elif isinstance(item, _DatabaseListItem):
            selector = getattr(self.app, "select_database", None)
            if selector is not None:
                selector(item.database.id)
        elif isinstance(item, _TableListItem):
            try:
                self._session_manager.select_table(item.table)
            except UnknownTableError as exc:
                self.notify(str(exc), severity="error")
        event.stop()

    def _report_width(self, width: int) -> None:
        remember = getattr(self.app, "remember_sidebar_width", None)
        if remember is None:
            return
        if width > 0:
            remember(width)


class _ProfileListItem(ListItem):
    def __init__(self, profile: ConnectionProfile) -> None:
        label = f"★ {profile.name}" if profile.favorite else profile.name
        super().__init__(Label(label))
        self.profile_id = profile.id


class _DatabaseListItem(ListItem):
    def __init__(self, database: DatabaseInfo) -> None:
        super().__init__(Label(database.name))
        self.database = database


class _TableListItem(ListItem):
    def __init__(self, table: TableInfo) -> None:
        super().__init__(Label(table.qualified_name))
        self.table = table


__all__ = ["NavigationSidebar"]
