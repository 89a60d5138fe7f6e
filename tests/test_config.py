"""Tests for AppConfig helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from pgdesk import config as config_module
from pgdesk.config import AppConfig, ConfigStore, ConnectionProfileConfig, LayoutState, load_config, save_config
from pgdesk.models import ConnectionProfile, SSLMode


def test_default_config_includes_localhost_profile() -> None:
    config = AppConfig()

    assert [profile.id for profile in config.profiles] == ["localhost"]
    assert config.driver == "asyncpg"
    assert config.restore_grace_period == 0.1


def test_load_config_returns_defaults_when_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")

    result = load_config()

    assert result == AppConfig()


def test_load_config_reads_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
theme = "light"
driver = "demo"
connect_timeout = 3

[preferences]
lastConnectionId = "sales"
lastDatabaseName = "ledger"

[[profiles]]
id = "sales"
name = "Sales"
host = "db.internal"
port = 6543
user = "alice"
database = "ledger"
sslmode = "require"
favorite = true

[layout]
sidebar_width = 30
"""
    )
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result.theme == "light"
    assert result.driver == "demo"
    assert result.connect_timeout == 3.0
    assert result.preferences == {"lastConnectionId": "sales", "lastDatabaseName": "ledger"}
    assert result.profiles[0].to_profile() == ConnectionProfile(
        id="sales",
        name="Sales",
        host="db.internal",
        port=6543,
        user="alice",
        database="ledger",
        sslmode=SSLMode.REQUIRE,
        favorite=True,
    )
    assert result.layout.sidebar_width == 30


def test_load_config_skips_invalid_profiles(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
[[profiles]]
id = "bad-port"
name = "Broken"
port = 0

[[profiles]]
name = "No id"

[[profiles]]
id = "ok"
name = "Fine"
"""
    )

    result = load_config(config_path)

    assert [profile.id for profile in result.profiles] == ["ok"]


def test_load_config_handles_toml_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("theme = [unterminated")
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result == AppConfig()


def test_save_config_persists_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "nested" / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    save_config(
        AppConfig(
            theme="light",
            profiles=[
                ConnectionProfileConfig(
                    id="sales",
                    name='Sales "prod"',
                    host="db.internal",
                    sslmode=SSLMode.VERIFY_FULL,
                )
            ],
            preferences={"lastConnectionId": "sales"},
            layout=LayoutState(sidebar_width=32),
        )
    )

    content = config_path.read_text()
    assert 'theme = "light"' in content
    assert "[layout]" in content
    assert "sidebar_width = 32" in content
    assert "[[profiles]]" in content
    assert 'name = "Sales \\"prod\\""' in content
    assert 'sslmode = "verify-full"' in content
    assert "[preferences]" in content
    assert 'lastConnectionId = "sales"' in content


def test_save_then_load_round_trips(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config = AppConfig(
        driver="demo",
        profiles=[ConnectionProfileConfig(id="a", name="A\\B", port=7000, favorite=True)],
        preferences={"lastDatabaseName": "sales"},
        layout=LayoutState(sidebar_width=28),
    )

    save_config(config, config_path)

    assert load_config(config_path) == config


def test_save_config_keeps_empty_profile_list(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"

    save_config(AppConfig(profiles=[]), config_path)

    assert load_config(config_path).profiles == []


def test_with_preference_sets_and_removes() -> None:
    config = AppConfig()

    updated = config.with_preference("lastConnectionId", "sales")
    cleared = updated.with_preference("lastConnectionId", None)

    assert updated.preferences == {"lastConnectionId": "sales"}
    assert cleared.preferences == {}
    assert config.preferences == {}


def test_with_layout_updates_state() -> None:
    config = AppConfig()

    updated = config.with_layout(sidebar_width=40)

    assert updated.layout.sidebar_width == 40


def test_config_store_saves_on_replace(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    store = ConfigStore(AppConfig(), path=config_path)

    store.replace(store.config.with_layout(sidebar_width=44))

    assert load_config(config_path).layout.sidebar_width == 44


def test_config_store_without_autosave_leaves_disk_alone(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    store = ConfigStore(AppConfig(), path=config_path, autosave=False)

    store.replace(store.config.with_layout(sidebar_width=44))

    assert store.config.layout.sidebar_width == 44
    assert not config_path.exists()
