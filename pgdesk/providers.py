"""Command palette providers for core app features."""

from __future__ import annotations

from textual.command import DiscoveryHit, Hit, Hits, Provider
from textual.types import IgnoreReturnCallbackType

from .session import SessionManager


class ProfileSwitchProvider(Provider):
    """Expose connection profiles to the command palette."""

    async def search(self, query: str) -> Hits:
        manager = self._session_manager
        if manager is None:
            return
        matcher = self.matcher(query)
        for profile in manager.profiles:
            match = matcher.match(profile.name)
            if match > 0:
                yield Hit(
                    score=match,
                    match_display=f"Connect to: {matcher.highlight(profile.name)}",
                    command=self._build_callback(profile.id),
                    help=f"{profile.user}@{profile.host}:{profile.port}/{profile.database}",
                )

    async def discover(self) -> Hits:
        manager = self._session_manager
        if manager is None:
            return
        for profile in manager.profiles:
            yield DiscoveryHit(
                display=f"Connect to: {profile.name}",
                command=self._build_callback(profile.id),
                help=f"{profile.user}@{profile.host}:{profile.port}/{profile.database}",
            )

    @property
    def _session_manager(self) -> SessionManager | None:
        manager = getattr(self.app, "session_manager", None)
        if isinstance(manager, SessionManager):
            return manager
        return None

    def _build_callback(self, profile_id: str) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            switcher = getattr(self.app, "switch_profile", None)
            if switcher is None:
                return
            switcher(profile_id)

        return _run


class SessionCommandsProvider(Provider):
    """Expose connection and database actions for the active session.

    Each command names the session condition it needs: ``always``,
    ``profile`` (a profile is current), ``connected`` or ``database``
    (a database is selected).
    """

    _COMMANDS = (
        ("New connection", "new_connection", "Create a connection profile (Ctrl+N).", "always"),
        ("Edit connection", "edit_connection", "Edit the current connection profile (Ctrl+E).", "profile"),
        ("Delete connection", "delete_connection", "Delete the current profile and its saved password.", "profile"),
        ("Refresh databases", "refresh", "Reload the database list (Ctrl+R).", "connected"),
        ("Create database", "create_database", "Create a database on the connected server.", "connected"),
        ("Delete selected database", "delete_database", "Drop the selected database.", "database"),
        ("Disconnect", "disconnect", "Close the active connection (Ctrl+D).", "connected"),
    )

    async def search(self, query: str) -> Hits:
        matcher = self.matcher(query)
        for label, action, help_text, requirement in self._COMMANDS:
            if not self._available(requirement):
                continue
            score = matcher.match(label)
            if score > 0:
                yield Hit(
                    score=score,
                    match_display=matcher.highlight(label),
                    command=self._build_callback(action),
                    help=help_text,
                )

    async def discover(self) -> Hits:
        for label, action, help_text, requirement in self._COMMANDS:
            if not self._available(requirement):
                continue
            yield DiscoveryHit(
                display=label,
                command=self._build_callback(action),
                help=help_text,
            )

    def _available(self, requirement: str) -> bool:
        if requirement == "always":
            return True
        manager = getattr(self.app, "session_manager", None)
        if not isinstance(manager, SessionManager):
            return False
        state = manager.state
        if requirement == "profile":
            return state.profile is not None
        if requirement == "connected":
            return state.connected
        return state.connected and state.selected_database is not None

    def _build_callback(self, action: str) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            handler = getattr(self.app, f"action_{action}", None)
            if handler is None:
                return
            handler()

        return _run


__all__ = ["ProfileSwitchProvider", "SessionCommandsProvider"]
