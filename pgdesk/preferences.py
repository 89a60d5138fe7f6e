"""Key/value store for the last-used connection context."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .config import ConfigStore

LAST_CONNECTION_ID = "lastConnectionId"
LAST_DATABASE_NAME = "lastDatabaseName"


@runtime_checkable
class PreferenceStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def clear(self, key: str) -> None: ...


class MemoryPreferenceStore:
    """Preferences kept in a plain dict."""

    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(values or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def clear(self, key: str) -> None:
        self.values.pop(key, None)


class ConfigPreferenceStore:
    """Preferences persisted in the ``[preferences]`` table of config.toml."""

    def __init__(self, store: ConfigStore) -> None:
        self._store = store

    def get(self, key: str) -> str | None:
        return self._store.config.preferences.get(key)

    def set(self, key: str, value: str) -> None:
        if self.get(key) == value:
            return
        self._store.replace(self._store.config.with_preference(key, value))

    def clear(self, key: str) -> None:
        if key not in self._store.config.preferences:
            return
        self._store.replace(self._store.config.with_preference(key, None))


__all__ = [
    "ConfigPreferenceStore",
    "LAST_CONNECTION_ID",
    "LAST_DATABASE_NAME",
    "MemoryPreferenceStore",
    "PreferenceStore",
]
