"""Status bar widget that mirrors session information."""

from __future__ import annotations

from typing import Callable

from textual.widgets import Static

from pgdesk.session import ConnectionStatus, SessionManager, SessionState


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self, session_manager: SessionManager) -> None:
        super().__init__("", id="status-bar")
        self._session_manager = session_manager
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._session_manager.subscribe(self._handle_session_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_session_update(self, state: SessionState) -> None:
        self.update(describe_state(state))


def describe_state(state: SessionState) -> str:
    """One-line summary of the session for the status bar."""

    if state.status is ConnectionStatus.FAILED:
        reason = (state.error or "unknown error").splitlines()[0][:80]
        return f"Status: Failed | Error: {reason}"
    if state.profile is None:
        return f"Status: {state.status.value}"
    parts = [
        f"Profile: {state.profile.name}",
        f"Status: {state.status.value}",
    ]
    if state.connected:
        parts.append(f"Databases: {len(state.databases)}")
    if state.selected_database is not None:
        parts.append(f"Database: {state.selected_database.name}")
        parts.append("Tables: loading" if state.loading_tables else f"Tables: {len(state.tables)}")
    if state.last_error:
        parts.append(f"Error: {state.last_error.splitlines()[0][:80]}")
    return " | ".join(parts)


__all__ = ["StatusBar", "describe_state"]
