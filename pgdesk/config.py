"""App configuration loading helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .models import DEFAULT_DATABASE, DEFAULT_PORT, DEFAULT_USER, ConnectionProfile, SSLMode

CONFIG_FILE = Path.home() / ".config" / "pgdesk" / "config.toml"


class LayoutState(BaseModel):
    """Persisted layout hints for the TUI."""

    sidebar_width: int | None = None


class ConnectionProfileConfig(BaseModel):
    """Connection profile configuration stored in config.toml."""

    id: str
    name: str
    host: str = "localhost"
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    user: str = DEFAULT_USER
    database: str = DEFAULT_DATABASE
    sslmode: SSLMode = SSLMode.PREFER
    favorite: bool = False

    @classmethod
    def from_profile(cls, profile: ConnectionProfile) -> ConnectionProfileConfig:
        return cls(
            id=profile.id,
            name=profile.name,
            host=profile.host,
            port=profile.port,
            user=profile.user,
            database=profile.database,
            sslmode=profile.sslmode,
            favorite=profile.favorite,
        )

    def to_profile(self) -> ConnectionProfile:
        return ConnectionProfile(
            id=self.id,
            name=self.name,
            host=self.host,
            port=self.port,
            user=self.user,
            database=self.database,
            sslmode=self.sslmode,
            favorite=self.favorite,
        )


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    theme: str = "dark"
    driver: Literal["asyncpg", "demo"] = "asyncpg"
    connect_timeout: float = 5.0
    restore_grace_period: float = 0.1
    profiles: list[ConnectionProfileConfig] = Field(default_factory=lambda: list(_default_profiles()))
    preferences: dict[str, str] = Field(default_factory=dict)
    layout: LayoutState = Field(default_factory=LayoutState)

    def with_profiles(self, profiles: list[ConnectionProfileConfig]) -> AppConfig:
        """Return a copy with the profile list replaced."""

        return self.model_copy(update={"profiles": list(profiles)})

    def with_preference(self, key: str, value: str | None) -> AppConfig:
        """Return a copy with one preference set, or removed when ``value`` is None."""

        preferences = dict(self.preferences)
        if value is None:
            preferences.pop(key, None)
        else:
            preferences[key] = value
        return self.model_copy(update={"preferences": preferences})

    def with_layout(self, **updates: object) -> AppConfig:
        """Return a copy with layout state changes applied."""

        layout = self.layout.model_copy(update=updates)
        return self.model_copy(update={"layout": layout})


class ConfigStore:
    """Holds the live configuration and writes every change back to disk."""

    def __init__(self, config: AppConfig | None = None, *, path: Path | None = None, autosave: bool = True) -> None:
        self._path = path
        self._config = config if config is not None else load_config(path)
        self._autosave = autosave

    @property
    def config(self) -> AppConfig:
        return self._config

    def replace(self, config: AppConfig) -> None:
        self._config = config
        if self._autosave:
            save_config(config, self._path)


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file(path or CONFIG_FILE)
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    try:
        return AppConfig(**data)
    except ValidationError:
        return AppConfig()


def save_config(config: AppConfig, path: Path | None = None) -> None:
    """Persist configuration to disk."""

    target = path or CONFIG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f"theme = {_quote(config.theme)}",
        f"driver = {_quote(config.driver)}",
        f"connect_timeout = {config.connect_timeout}",
        f"restore_grace_period = {config.restore_grace_period}",
    ]
    if not config.profiles:
        lines.append("profiles = []")
    if config.layout.sidebar_width is not None:
        lines.append("")
        lines.append("[layout]")
        lines.append(f"sidebar_width = {config.layout.sidebar_width}")
    if config.preferences:
        lines.append("")
        lines.append("[preferences]")
        for key in sorted(config.preferences):
            lines.append(f"{key} = {_quote(config.preferences[key])}")
    if config.profiles:
        lines.append("")
        for profile in config.profiles:
            lines.append("[[profiles]]")
            lines.append(f"id = {_quote(profile.id)}")
            lines.append(f"name = {_quote(profile.name)}")
            lines.append(f"host = {_quote(profile.host)}")
            lines.append(f"port = {profile.port}")
            lines.append(f"user = {_quote(profile.user)}")
            lines.append(f"database = {_quote(profile.database)}")
            lines.append(f"sslmode = {_quote(profile.sslmode.value)}")
            lines.append(f"favorite = {str(profile.favorite).lower()}")
            lines.append("")
    target.write_text("\n".join(lines) + "\n")


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    theme = raw.get("theme")
    if isinstance(theme, str):
        data["theme"] = theme
    driver = raw.get("driver")
    if driver in ("asyncpg", "demo"):
        data["driver"] = driver
    for key in ("connect_timeout", "restore_grace_period"):
        value = raw.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
            data[key] = float(value)
    preferences = raw.get("preferences")
    if isinstance(preferences, dict):
        data["preferences"] = {
            str(key): value for key, value in preferences.items() if isinstance(value, str)
        }
    profiles = raw.get("profiles")
    if isinstance(profiles, list):
        parsed_profiles: list[ConnectionProfileConfig] = []
        for profile in profiles:
            if not isinstance(profile, dict):
                continue
            try:
                parsed_profiles.append(ConnectionProfileConfig(**profile))
            except ValidationError:
                continue
        data["profiles"] = parsed_profiles
    layout = raw.get("layout")
    if isinstance(layout, dict):
        state: dict[str, object] = {}
        sidebar_width = layout.get("sidebar_width")
        if isinstance(sidebar_width, int):
            state["sidebar_width"] = sidebar_width
        data["layout"] = LayoutState(**state)
    return data


def _default_profiles() -> tuple[ConnectionProfileConfig, ...]:
    """Default profiles shown on first run before config is customized."""

    return (ConnectionProfileConfig.from_profile(ConnectionProfile.localhost()),)


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ConfigStore",
    "ConnectionProfileConfig",
    "LayoutState",
    "load_config",
    "save_config",
]
