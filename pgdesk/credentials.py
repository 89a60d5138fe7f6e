"""Password storage and the policy deciding which password a connection uses."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

LOG = logging.getLogger(__name__)

KEYRING_SERVICE = "pgdesk"


class CredentialStoreError(RuntimeError):
    """Raised when the secure credential store cannot be read or written."""


class CredentialNotFoundError(CredentialStoreError):
    """Raised when no secret is stored under the requested key."""


@runtime_checkable
class CredentialStore(Protocol):
    """Opaque get/set/delete-by-key secret storage."""

    def get(self, key: str) -> str:
        """Return the secret for ``key`` or raise ``CredentialNotFoundError``."""

    def set(self, key: str, secret: str) -> None:
        """Create or replace the secret for ``key``."""

    def delete(self, key: str) -> None:
        """Remove the secret for ``key``."""


class KeyringCredentialStore:
    """Credential store backed by the OS keychain through ``keyring``."""

    def __init__(self, service: str = KEYRING_SERVICE) -> None:
        self._service = service

    def get(self, key: str) -> str:
        try:
            secret = keyring.get_password(self._service, key)
        except KeyringError as exc:
            raise CredentialStoreError(f"Failed to read credential '{key}': {exc}") from exc
        if secret is None:
            raise CredentialNotFoundError(f"No credential stored for '{key}'.")
        return secret

    def set(self, key: str, secret: str) -> None:
        try:
            keyring.set_password(self._service, key, secret)
        except KeyringError as exc:
            raise CredentialStoreError(f"Failed to store credential '{key}': {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            keyring.delete_password(self._service, key)
        except PasswordDeleteError as exc:
            raise CredentialNotFoundError(f"No credential stored for '{key}'.") from exc
        except KeyringError as exc:
            raise CredentialStoreError(f"Failed to delete credential '{key}': {exc}") from exc


class MemoryCredentialStore:
    """In-process credential store (tests and the demo driver)."""

    def __init__(self, secrets: dict[str, str] | None = None) -> None:
        self._secrets: dict[str, str] = dict(secrets or {})

    def get(self, key: str) -> str:
        try:
            return self._secrets[key]
        except KeyError:
            raise CredentialNotFoundError(f"No credential stored for '{key}'.") from None

    def set(self, key: str, secret: str) -> None:
        self._secrets[key] = secret

    def delete(self, key: str) -> None:
        if self._secrets.pop(key, None) is None:
            raise CredentialNotFoundError(f"No credential stored for '{key}'.")

    def __contains__(self, key: object) -> bool:
        return key in self._secrets


class CredentialResolver:
    """Decides which password to use and when to write one back.

    Reads are soft: a missing entry or a store failure resolves to an empty
    password. Writes are hard: a failed write raises ``CredentialStoreError``
    and must abort the surrounding save/connect.
    """

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def resolve(self, explicit_password: str | None, profile_id: str | None = None) -> str:
        """Typed password wins; otherwise look up the stored one for ``profile_id``."""

        if explicit_password:
            return explicit_password
        if profile_id is None:
            return ""
        try:
            return self._store.get(profile_id)
        except CredentialStoreError as exc:
            LOG.debug("No stored password available", extra={"profile_id": profile_id, "reason": str(exc)})
            return ""

    def persist(self, profile_id: str, password: str | None) -> None:
        """Store ``password`` for ``profile_id``; an empty password leaves the stored one alone."""

        if not password:
            return
        self._store.set(profile_id, password)


__all__ = [
    "CredentialNotFoundError",
    "CredentialResolver",
    "CredentialStore",
    "CredentialStoreError",
    "KEYRING_SERVICE",
    "KeyringCredentialStore",
    "MemoryCredentialStore",
]
