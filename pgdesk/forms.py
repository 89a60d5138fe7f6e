"""Create/edit connection form logic, independent of any widget toolkit."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from .connections import DriverClient
from .connstring import parse
from .credentials import CredentialResolver
from .models import DEFAULT_DATABASE, DEFAULT_PORT, DEFAULT_USER, ConnectionProfile, SSLMode
from .profiles import ProfileRepository
from .session import SessionManager


class InputMode(str, Enum):
    """How the user describes the server."""

    INDIVIDUAL = "individual"
    CONNECTION_STRING = "connection_string"


class FormValidationError(ValueError):
    """Raised when form input cannot be turned into connection details."""


@dataclass(slots=True)
class ConnectionDraft:
    """Raw form input, kept as text the way the user typed it."""

    name: str = ""
    mode: InputMode = InputMode.INDIVIDUAL
    host: str = "localhost"
    port: str = str(DEFAULT_PORT)
    user: str = DEFAULT_USER
    password: str = ""
    database: str = DEFAULT_DATABASE
    sslmode: SSLMode = SSLMode.PREFER
    connection_string: str = ""

    @classmethod
    def for_profile(cls, profile: ConnectionProfile) -> ConnectionDraft:
        """Prefill from an existing profile; the password is never prefilled."""

        return cls(
            name=profile.name,
            host=profile.host,
            port=str(profile.port),
            user=profile.user,
            database=profile.database,
            sslmode=profile.sslmode,
        )


@dataclass(frozen=True, slots=True)
class ConnectionDetails:
    host: str
    port: int
    user: str
    password: str
    database: str
    sslmode: SSLMode = SSLMode.PREFER
    warnings: tuple[str, ...] = ()


def connection_string_warnings(text: str) -> tuple[str, ...]:
    """Non-fatal warnings for a connection string; parse errors propagate."""

    if not text.strip():
        return ()
    unsupported = parse(text).unsupported_parameters
    if not unsupported:
        return ()
    return (f"Unsupported parameters will be ignored: {', '.join(unsupported)}",)


class ConnectionForm:
    """Backs the create/edit connection dialog.

    ``editing`` is the profile being edited, or ``None`` when creating one.
    """

    def __init__(
        self,
        *,
        repository: ProfileRepository,
        credentials: CredentialResolver,
        session: SessionManager,
        driver: DriverClient,
        editing: ConnectionProfile | None = None,
    ) -> None:
        self._repository = repository
        self._credentials = credentials
        self._session = session
        self._driver = driver
        self._editing = editing

    @property
    def editing(self) -> ConnectionProfile | None:
        return self._editing

    @property
    def title(self) -> str:
        return "Edit Connection" if self._editing else "Create New Connection"

    def resolve_details(self, draft: ConnectionDraft) -> ConnectionDetails:
        if draft.mode is InputMode.CONNECTION_STRING:
            parsed = parse(draft.connection_string)
            return ConnectionDetails(
                host=parsed.host,
                port=parsed.port,
                user=parsed.username or DEFAULT_USER,
                password=parsed.password or "",
                database=parsed.database or DEFAULT_DATABASE,
                sslmode=parsed.sslmode,
                warnings=connection_string_warnings(draft.connection_string),
            )
        try:
            port = int(draft.port.strip())
        except ValueError:
            raise FormValidationError("Invalid port number") from None
        if not 1 <= port <= 65535:
            raise FormValidationError("Invalid port number")
        editing_id = self._editing.id if self._editing else None
        return ConnectionDetails(
            host=draft.host.strip() or "localhost",
            port=port,
            user=draft.user.strip() or DEFAULT_USER,
            password=self._credentials.resolve(draft.password, editing_id),
            database=draft.database.strip() or DEFAULT_DATABASE,
            sslmode=draft.sslmode,
        )

    async def test(self, draft: ConnectionDraft) -> bool:
        """Check the server accepts these details without touching the session."""

        details = self.resolve_details(draft)
        return await self._driver.test_connection(
            details.host,
            details.port,
            details.user,
            details.password,
            details.database,
            details.sslmode,
        )

    async def save(self, draft: ConnectionDraft) -> ConnectionProfile:
        """Store the profile (and password), then connect to it.

        A failing password write aborts before anything is saved.
        """

        name = draft.name.strip()
        if not name:
            raise FormValidationError("Connection name is required")
        details = self.resolve_details(draft)

        if self._editing is not None:
            profile = replace(
                self._editing,
                name=name,
                host=details.host,
                port=details.port,
                user=details.user,
                database=details.database,
                sslmode=details.sslmode,
            )
            self._credentials.persist(profile.id, details.password)
            self._repository.update(profile)
            current = self._session.current_profile
            if current is not None and current.id == profile.id:
                await self._session.disconnect()
        else:
            profile = ConnectionProfile(
                name=name,
                host=details.host,
                port=details.port,
                user=details.user,
                database=details.database,
                sslmode=details.sslmode,
            )
            self._credentials.persist(profile.id, details.password)
            self._repository.insert(profile)

        self._editing = profile
        await self._session.connect(profile, override_password=details.password or None)
        return profile


__all__ = [
    "ConnectionDetails",
    "ConnectionDraft",
    "ConnectionForm",
    "FormValidationError",
    "InputMode",
    "connection_string_warnings",
]
