"""Connection profile repository with change notifications."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from .config import ConfigStore, ConnectionProfileConfig
from .credentials import CredentialNotFoundError, CredentialStore
from .models import ConnectionProfile

LOG = logging.getLogger(__name__)

ProfilesListener = Callable[[tuple[ConnectionProfile, ...]], None]


class ProfileNotFoundError(LookupError):
    """Raised when no profile has the requested id."""


class ProfileRepository:
    """Owns the connection profiles; listeners get the sorted list after every change.

    Deleting a profile also deletes its stored password so no secret outlives
    the profile it belongs to.
    """

    def __init__(
        self,
        profiles: Iterable[ConnectionProfile] = (),
        *,
        credentials: CredentialStore | None = None,
        config_store: ConfigStore | None = None,
    ) -> None:
        self._profiles: dict[str, ConnectionProfile] = {profile.id: profile for profile in profiles}
        self._credentials = credentials
        self._config_store = config_store
        self._listeners: set[ProfilesListener] = set()

    @classmethod
    def from_config(
        cls,
        config_store: ConfigStore,
        *,
        credentials: CredentialStore | None = None,
    ) -> ProfileRepository:
        profiles = (entry.to_profile() for entry in config_store.config.profiles)
        return cls(profiles, credentials=credentials, config_store=config_store)

    def list(self) -> tuple[ConnectionProfile, ...]:
        """Profiles ordered by name (ties broken by id)."""

        return tuple(sorted(self._profiles.values(), key=lambda profile: (profile.name, profile.id)))

    def get(self, profile_id: str) -> ConnectionProfile | None:
        return self._profiles.get(profile_id)

    def insert(self, profile: ConnectionProfile) -> None:
        if profile.id in self._profiles:
            raise ValueError(f"Profile '{profile.id}' already exists.")
        self._profiles[profile.id] = profile
        self._changed()

    def update(self, profile: ConnectionProfile) -> None:
        if profile.id not in self._profiles:
            raise ProfileNotFoundError(f"Profile '{profile.id}' not found.")
        self._profiles[profile.id] = profile
        self._changed()

    def delete(self, profile_id: str) -> None:
        if profile_id not in self._profiles:
            raise ProfileNotFoundError(f"Profile '{profile_id}' not found.")
        if self._credentials is not None:
            try:
                self._credentials.delete(profile_id)
            except CredentialNotFoundError:
                LOG.debug("No stored password to delete", extra={"profile_id": profile_id})
        del self._profiles[profile_id]
        self._changed()

    def subscribe(self, listener: ProfilesListener) -> Callable[[], None]:
        """Subscribe to profile list changes; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def __len__(self) -> int:
        return len(self._profiles)

    def _changed(self) -> None:
        profiles = self.list()
        if self._config_store is not None:
            entries = [ConnectionProfileConfig.from_profile(profile) for profile in profiles]
            self._config_store.replace(self._config_store.config.with_profiles(entries))
        for listener in tuple(self._listeners):
            listener(profiles)


__all__ = ["ProfileNotFoundError", "ProfileRepository", "ProfilesListener"]
