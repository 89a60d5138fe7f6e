"""Textual application entry point for pgdesk."""

from __future__ import annotations

import logging
from typing import Callable

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import Footer, Header, Static

from .config import AppConfig, ConfigStore, load_config
from .connections import AsyncpgDriverClient, DemoDriverClient, DriverClient, DriverConnectionError, DriverError
from .credentials import CredentialResolver, CredentialStore, CredentialStoreError, KeyringCredentialStore
from .forms import ConnectionForm
from .models import ConnectionProfile, DatabaseInfo
from .preferences import ConfigPreferenceStore
from .profiles import ProfileRepository
from .providers import ProfileSwitchProvider, SessionCommandsProvider
from .session import ConnectionStatus, EmptyDatabaseNameError, SessionManager, SessionState, UnknownDatabaseError
from .widgets import ConfirmScreen, ConnectionFormScreen, NavigationSidebar, StatusBar, TextPromptScreen

LOG = logging.getLogger(__name__)


def _load_app_config() -> AppConfig:
    """Load configuration with a small wrapper for future overrides."""

    return load_config()


def _create_driver(config: AppConfig) -> DriverClient:
    if config.driver == "demo":
        return DemoDriverClient()
    return AsyncpgDriverClient(connect_timeout=config.connect_timeout)


class PgDeskApp(App[None]):
    """Terminal client showing connections, databases and tables."""

    COMMANDS = App.COMMANDS | {ProfileSwitchProvider, SessionCommandsProvider}
    CSS = """
    Screen {
        layout: vertical;
    }
    #content {
        layout: horizontal;
        height: 1fr;
    }
    #main-column {
        layout: vertical;
        padding: 1 2;
        height: 1fr;
        border-left: solid $surface-darken-1;
    }
    NavigationSidebar {
        width: 32;
        min-width: 22;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+r", "refresh", "Refresh Databases"),
        ("ctrl+d", "disconnect", "Disconnect"),
        ("ctrl+n", "new_connection", "New Connection"),
        ("ctrl+e", "edit_connection", "Edit Connection"),
        ("ctrl+p", "command_palette", "Command Palette"),
    ]

    def __init__(
        self,
        *,
        driver: DriverClient | None = None,
        credential_store: CredentialStore | None = None,
        config_store: ConfigStore | None = None,
    ) -> None:
        super().__init__()
        self._config_store = config_store or ConfigStore(_load_app_config())
        config = self._config_store.config
        store = credential_store or KeyringCredentialStore()
        self._credentials = CredentialResolver(store)
        self._profiles = ProfileRepository.from_config(self._config_store, credentials=store)
        self._preferences = ConfigPreferenceStore(self._config_store)
        self._driver_client = driver or _create_driver(config)
        self._session_manager = SessionManager(
            self._driver_client,
            credentials=self._credentials,
            profiles=self._profiles,
            preferences=self._preferences,
            restore_grace_period=config.restore_grace_period,
        )
        self._session_unsubscribe: Callable[[], None] | None = None
        self._last_session_state: SessionState | None = None
        self._details: Static | None = None

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        yield Header(show_clock=True)
        self._details = Static("Select a connection to get started.", id="details")
        sidebar = NavigationSidebar(
            self._session_manager,
            initial_width=self._config_store.config.layout.sidebar_width,
        )
        yield Horizontal(sidebar, Container(self._details, id="main-column"), id="content")
        yield StatusBar(self._session_manager)
        yield Footer()

    async def on_mount(self) -> None:
        self._session_unsubscribe = self._session_manager.subscribe(self._handle_session_state)
        self.run_worker(self._restore_last_connection(), group="session")

    @property
    def session_manager(self) -> SessionManager:
        """Expose the session manager for tests."""

        return self._session_manager

    @property
    def profile_repository(self) -> ProfileRepository:
        return self._profiles

    @property
    def credentials(self) -> CredentialResolver:
        return self._credentials

    def switch_profile(self, profile_id: str) -> None:
        """Connect to the requested profile in the background."""

        profile = self._profiles.get(profile_id)
        if profile is None:
            self.notify(f"Profile '{profile_id}' not found.", severity="error")
            return
        self.run_worker(self._connect(profile), group="session")

    def select_database(self, database_id: str | None) -> None:
        try:
            self._session_manager.select_database(database_id)
        except UnknownDatabaseError as exc:
            LOG.exception("Database selection out of sync", extra={"database_id": database_id})
            self.notify(str(exc), severity="error")

    def delete_profile(self, profile_id: str) -> None:
        try:
            self._profiles.delete(profile_id)
        except (LookupError, CredentialStoreError) as exc:
            self.notify(str(exc), severity="error")

    def create_database(self, name: str) -> None:
        self.run_worker(self._create_database(name), group="databases")

    def remember_sidebar_width(self, width: int) -> None:
        """Persist the sidebar width when it changes."""

        config = self._config_store.config
        if config.layout.sidebar_width == width:
            return
        self._config_store.replace(config.with_layout(sidebar_width=width))

    def action_refresh(self) -> None:
        self.run_worker(self._refresh_databases(), group="databases")

    def action_disconnect(self) -> None:
        self.run_worker(self._session_manager.disconnect(), group="session")

    def connection_form(self, editing: ConnectionProfile | None = None) -> ConnectionForm:
        return ConnectionForm(
            repository=self._profiles,
            credentials=self._credentials,
            session=self._session_manager,
            driver=self._driver_client,
            editing=editing,
        )

    def action_new_connection(self) -> None:
        self.push_screen(ConnectionFormScreen(self.connection_form()))

    def action_edit_connection(self) -> None:
        profile = self._session_manager.state.profile
        if profile is None:
            self.notify("No connection selected.", severity="warning")
            return
        self.push_screen(ConnectionFormScreen(self.connection_form(profile)))

    def action_delete_connection(self) -> None:
        profile = self._session_manager.state.profile
        if profile is None:
            self.notify("No connection selected.", severity="warning")
            return

        def _confirmed(confirmed: bool | None) -> None:
            if confirmed:
                self.delete_profile(profile.id)

        message = f"Are you sure you want to delete '{profile.name}'? Its saved password is removed too."
        self.push_screen(ConfirmScreen("Delete Connection", message), _confirmed)

    def action_create_database(self) -> None:
        if not self._session_manager.state.connected:
            self.notify("Connect to a server first.", severity="warning")
            return

        def _named(name: str | None) -> None:
            if name is not None:
                self.create_database(name)

        self.push_screen(TextPromptScreen("Create Database", placeholder="Database name"), _named)

    def action_delete_database(self) -> None:
        database = self._session_manager.state.selected_database
        if database is None:
            self.notify("No database selected.", severity="warning")
            return

        def _confirmed(confirmed: bool | None) -> None:
            if confirmed:
                self.run_worker(self._delete_database(database), group="databases")

        message = f"Are you sure you want to delete '{database.name}'? This action cannot be undone."
        self.push_screen(ConfirmScreen("Delete Database", message), _confirmed)

    async def _restore_last_connection(self) -> None:
        try:
            await self._session_manager.restore_last_connection()
        except DriverConnectionError:
            pass  # surfaced through the FAILED session state

    async def _connect(self, profile: ConnectionProfile) -> None:
        try:
            await self._session_manager.select_profile(profile)
        except DriverConnectionError:
            pass  # surfaced through the FAILED session state

    async def _refresh_databases(self) -> None:
        if not self._session_manager.state.connected:
            return
        try:
            await self._session_manager.refresh_databases()
        except DriverError:
            pass  # surfaced through last_error

    async def _create_database(self, name: str) -> None:
        try:
            await self._session_manager.create_database(name)
        except (EmptyDatabaseNameError, DriverError) as exc:
            self.notify(str(exc), title="Error Creating Database", severity="error")

    async def _delete_database(self, database: DatabaseInfo) -> None:
        try:
            await self._session_manager.delete_database(database)
        except DriverError as exc:
            self.notify(str(exc), title="Error Deleting Database", severity="error")

    async def _shutdown(self) -> None:
        if self._session_unsubscribe:
            self._session_unsubscribe()
            self._session_unsubscribe = None
        self._session_manager.close()
        try:
            await self._driver_client.disconnect()
        except Exception:
            LOG.warning("Driver disconnect failed during shutdown", exc_info=True)
        await super()._shutdown()

    def _handle_session_state(self, state: SessionState) -> None:
        self._maybe_notify_state_change(state)
        self._render_details(state)
        self._last_session_state = state

    def _maybe_notify_state_change(self, state: SessionState) -> None:
        previous = self._last_session_state
        if state.status is ConnectionStatus.FAILED and (not previous or previous.status is not ConnectionStatus.FAILED):
            self.notify(state.error or "Connection failed", title="Connection Failed", severity="error")
        elif state.connected and state.profile and (not previous or not previous.connected):
            self.notify(f"Connected to {state.profile.name}", severity="information")
        if state.last_error and (not previous or previous.last_error != state.last_error):
            self.notify(state.last_error, severity="warning")

    def _render_details(self, state: SessionState) -> None:
        if self._details is None:
            return
        if state.profile is None:
            self._details.update("Select a connection to get started.")
            return
        lines = [f"Connection: {state.profile.name} ({state.profile.host}:{state.profile.port})"]
        if state.selected_database is None:
            lines.append("Select a database.")
        else:
            lines.append(f"Database: {state.selected_database.name}")
            if state.loading_tables:
                lines.append("Loading tables…")
            elif state.selected_table is not None:
                lines.append(f"Table: {state.selected_table.qualified_name}")
            else:
                lines.append(f"{len(state.tables)} table(s)")
        self._details.update("\n".join(lines))


def main() -> None:
    """Invoke the Textual application."""

    PgDeskApp().run()


if __name__ == "__main__":
    main()
