"""Shared dataclasses used across connection/session modules."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum

DEFAULT_PORT = 5432
DEFAULT_USER = "postgres"
DEFAULT_DATABASE = "postgres"


class SSLMode(str, Enum):
    """PostgreSQL SSL negotiation policy (the ``sslmode`` parameter)."""

    DISABLE = "disable"
    ALLOW = "allow"
    PREFER = "prefer"
    REQUIRE = "require"
    VERIFY_CA = "verify-ca"
    VERIFY_FULL = "verify-full"

    @classmethod
    def parse(cls, value: str | None) -> SSLMode:
        """Map a raw parameter value to a mode; unknown or missing means ``prefer``."""

        if value is None:
            return cls.PREFER
        try:
            return cls(value)
        except ValueError:
            return cls.PREFER


def new_profile_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """Named, durable set of non-secret connection parameters.

    The password is never part of a profile; it lives in the credential store
    keyed by ``id``.
    """

    name: str
    host: str = "localhost"
    port: int = DEFAULT_PORT
    user: str = DEFAULT_USER
    database: str = DEFAULT_DATABASE
    sslmode: SSLMode = SSLMode.PREFER
    favorite: bool = False
    id: str = field(default_factory=new_profile_id)

    def __post_init__(self) -> None:
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}.")

    @classmethod
    def localhost(cls) -> ConnectionProfile:
        """Default profile pointing at a local server."""

        return cls(name="localhost", id="localhost")

    @classmethod
    def from_connection_string(
        cls,
        text: str,
        name: str,
        id: str | None = None,
    ) -> tuple[ConnectionProfile, str | None]:
        """Build a profile from a connection URI; returns ``(profile, password)``."""

        from .connstring import parse

        parsed = parse(text)
        profile = cls(
            name=name,
            host=parsed.host,
            port=parsed.port,
            user=parsed.username or DEFAULT_USER,
            database=parsed.database or DEFAULT_DATABASE,
            sslmode=parsed.sslmode,
            id=id or new_profile_id(),
        )
        return profile, parsed.password

    def to_connection_string(self, password: str | None = None) -> str:
        from .connstring import build

        return build(
            username=self.user,
            password=password,
            host=self.host,
            port=self.port,
            database=self.database,
            sslmode=self.sslmode,
        )


@dataclass(frozen=True, slots=True)
class DatabaseInfo:
    """Database entry as reported by the server."""

    id: str
    name: str


@dataclass(frozen=True, slots=True)
class TableInfo:
    """Table entry as reported by the server."""

    schema: str
    name: str

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"


__all__ = [
    "ConnectionProfile",
    "DEFAULT_DATABASE",
    "DEFAULT_PORT",
    "DEFAULT_USER",
    "DatabaseInfo",
    "SSLMode",
    "TableInfo",
    "new_profile_id",
]
