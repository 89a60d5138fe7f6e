"""Tests for credential storage and password resolution."""

from __future__ import annotations

import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from pgdesk.credentials import (
    CredentialNotFoundError,
    CredentialResolver,
    CredentialStoreError,
    KeyringCredentialStore,
    MemoryCredentialStore,
)


class _BrokenStore:
    def __init__(self) -> None:
        self.reads: list[str] = []

    def get(self, key: str) -> str:
        self.reads.append(key)
        raise CredentialStoreError("keychain locked")

    def set(self, key: str, secret: str) -> None:
        raise CredentialStoreError("keychain locked")

    def delete(self, key: str) -> None:
        raise CredentialStoreError("keychain locked")


def test_explicit_password_wins_over_stored_one() -> None:
    resolver = CredentialResolver(MemoryCredentialStore({"local": "stored"}))

    assert resolver.resolve("typed", "local") == "typed"


def test_stored_password_used_when_none_typed() -> None:
    resolver = CredentialResolver(MemoryCredentialStore({"local": "stored"}))

    assert resolver.resolve("", "local") == "stored"
    assert resolver.resolve(None, "local") == "stored"


def test_missing_entry_resolves_to_empty() -> None:
    resolver = CredentialResolver(MemoryCredentialStore())

    assert resolver.resolve("", "local") == ""


def test_store_read_failure_resolves_to_empty() -> None:
    store = _BrokenStore()
    resolver = CredentialResolver(store)

    assert resolver.resolve("", "local") == ""
    assert store.reads == ["local"]


def test_new_profile_does_not_consult_store() -> None:
    store = _BrokenStore()
    resolver = CredentialResolver(store)

    assert resolver.resolve("", None) == ""
    assert store.reads == []


def test_persist_skips_empty_password() -> None:
    store = MemoryCredentialStore({"local": "stored"})
    resolver = CredentialResolver(store)

    resolver.persist("local", "")
    resolver.persist("local", None)

    assert store.get("local") == "stored"


def test_persist_upserts_password() -> None:
    store = MemoryCredentialStore({"local": "old"})
    resolver = CredentialResolver(store)

    resolver.persist("local", "new")
    resolver.persist("replica", "fresh")

    assert store.get("local") == "new"
    assert store.get("replica") == "fresh"


def test_persist_failure_propagates() -> None:
    resolver = CredentialResolver(_BrokenStore())

    with pytest.raises(CredentialStoreError):
        resolver.persist("local", "secret")


def test_memory_store_delete_missing_raises_not_found() -> None:
    store = MemoryCredentialStore()

    with pytest.raises(CredentialNotFoundError):
        store.delete("ghost")


def test_keyring_store_round_trips_through_keyring(monkeypatch: pytest.MonkeyPatch) -> None:
    backend: dict[tuple[str, str], str] = {}

    def _get(service: str, key: str) -> str | None:
        return backend.get((service, key))

    def _set(service: str, key: str, secret: str) -> None:
        backend[(service, key)] = secret

    def _delete(service: str, key: str) -> None:
        if (service, key) not in backend:
            raise PasswordDeleteError("not found")
        del backend[(service, key)]

    monkeypatch.setattr("pgdesk.credentials.keyring.get_password", _get)
    monkeypatch.setattr("pgdesk.credentials.keyring.set_password", _set)
    monkeypatch.setattr("pgdesk.credentials.keyring.delete_password", _delete)
    store = KeyringCredentialStore(service="pgdesk-test")

    store.set("local", "secret")

    assert backend == {("pgdesk-test", "local"): "secret"}
    assert store.get("local") == "secret"
    store.delete("local")
    with pytest.raises(CredentialNotFoundError):
        store.get("local")
    with pytest.raises(CredentialNotFoundError):
        store.delete("local")


def test_keyring_store_wraps_backend_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*args: object) -> None:
        raise KeyringError("no backend")

    monkeypatch.setattr("pgdesk.credentials.keyring.get_password", _fail)
    monkeypatch.setattr("pgdesk.credentials.keyring.set_password", _fail)
    store = KeyringCredentialStore()

    with pytest.raises(CredentialStoreError) as excinfo:
        store.get("local")
    assert not isinstance(excinfo.value, CredentialNotFoundError)
    with pytest.raises(CredentialStoreError):
        store.set("local", "secret")
    assert CredentialResolver(store).resolve("", "local") == ""
