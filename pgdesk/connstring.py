"""Parse and build PostgreSQL connection URIs.

Accepts the ``postgres://`` / ``postgresql://`` grammar::

    postgresql://[user[:password]@]host[:port][/database][?param=value&...]

Parsing and building are deliberately not symmetric: ``build`` elides the
default port and the default ``sslmode`` while ``parse`` fills them back in,
so ``parse(build(...))`` is stable but ``build(parse(text))`` need not
reproduce ``text``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit, urlunsplit

from .models import DEFAULT_PORT, SSLMode

SCHEMES = frozenset({"postgres", "postgresql"})
BUILD_SCHEME = "postgresql"

# Parameters libpq understands but the session layer does not act on.
UNSUPPORTED_PARAMETERS: tuple[str, ...] = (
    "connect_timeout",
    "application_name",
    "client_encoding",
    "options",
    "fallback_application_name",
    "keepalives",
    "keepalives_idle",
    "keepalives_interval",
    "keepalives_count",
    "tcp_user_timeout",
    "replication",
    "gssencmode",
    "sslcert",
    "sslkey",
    "sslrootcert",
    "sslcrl",
    "requirepeer",
    "ssl_min_protocol_version",
    "ssl_max_protocol_version",
    "krbsrvname",
    "gsslib",
    "service",
    "target_session_attrs",
)

_BAD_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")


class ConnectionStringError(ValueError):
    """Raised when a connection string cannot be parsed."""

    message = "Invalid connection string format"
    hint = "Format: postgresql://[user[:password]@][host][:port][/database][?param=value]"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class EmptyInputError(ConnectionStringError):
    """The connection string was empty after trimming."""

    message = "Connection string is empty"


class MalformedURIError(ConnectionStringError):
    message = "Malformed connection string URL"
    hint = "Check the connection string syntax and that special characters are percent-encoded"


class InvalidSchemeError(ConnectionStringError):
    message = "Invalid scheme. Use 'postgres://' or 'postgresql://'"
    hint = "Use 'postgres://' or 'postgresql://' at the start"


class InvalidPortError(ConnectionStringError):
    message = "Invalid port number in connection string"
    hint = "Port must be between 1 and 65535"


class EmptyHostError(ConnectionStringError):
    message = "Host cannot be empty in connection string"
    hint = "Provide a valid hostname or IP address"


@dataclass(frozen=True, slots=True)
class ParsedConnectionString:
    """Canonical components recovered from a connection URI."""

    scheme: str
    host: str
    port: int = DEFAULT_PORT
    username: str | None = None
    password: str | None = None
    database: str | None = None
    query_parameters: Mapping[str, str] = field(default_factory=dict)
    sslmode: SSLMode = SSLMode.PREFER

    @property
    def unsupported_parameters(self) -> tuple[str, ...]:
        return unsupported_parameters(self)


def parse(text: str) -> ParsedConnectionString:
    """Parse ``text`` into its components or raise a ``ConnectionStringError``."""

    trimmed = text.strip()
    if not trimmed:
        raise EmptyInputError()
    if _BAD_PERCENT.search(trimmed) or any(ch.isspace() or ord(ch) < 0x20 for ch in trimmed):
        raise MalformedURIError()
    try:
        parts = urlsplit(trimmed)
    except ValueError as exc:
        raise MalformedURIError(f"{MalformedURIError.message}: {exc}") from exc

    # urlsplit lowercases the scheme; the accepted schemes are case-sensitive.
    scheme = trimmed[: len(parts.scheme)] if parts.scheme else ""
    if scheme not in SCHEMES:
        raise InvalidSchemeError()

    userinfo, at, hostport = parts.netloc.rpartition("@")
    host = _host_from(hostport)
    if not host:
        raise EmptyHostError()

    try:
        port = parts.port
    except ValueError as exc:
        raise InvalidPortError() from exc
    if port is None:
        port = DEFAULT_PORT
    elif not 1 <= port <= 65535:
        raise InvalidPortError()

    username: str | None = None
    password: str | None = None
    if at:
        raw_user, colon, raw_password = userinfo.partition(":")
        username = unquote(raw_user)
        password = unquote(raw_password) if colon else None

    path = parts.path[1:] if parts.path.startswith("/") else parts.path
    database = unquote(path) or None

    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    return ParsedConnectionString(
        scheme=scheme,
        host=host,
        port=port,
        username=username,
        password=password,
        database=database,
        query_parameters=params,
        sslmode=SSLMode.parse(params.get("sslmode")),
    )


def unsupported_parameters(parsed: ParsedConnectionString) -> tuple[str, ...]:
    """Names of query parameters that will be ignored when connecting."""

    return tuple(name for name in parsed.query_parameters if name in UNSUPPORTED_PARAMETERS)


def build(
    *,
    host: str,
    port: int = DEFAULT_PORT,
    username: str | None = None,
    password: str | None = None,
    database: str | None = None,
    sslmode: SSLMode = SSLMode.PREFER,
) -> str:
    """Render a ``postgresql://`` URI, omitting every component left at its default."""

    netloc = f"[{host}]" if ":" in host else quote(host, safe="")
    if username:
        userinfo = quote(username, safe="")
        if password:
            userinfo += ":" + quote(password, safe="")
        netloc = f"{userinfo}@{netloc}"
    if port != DEFAULT_PORT:
        netloc += f":{port}"
    path = "/" + quote(database, safe="") if database else ""
    mode = SSLMode(sslmode)
    query = urlencode({"sslmode": mode.value}) if mode is not SSLMode.PREFER else ""
    return urlunsplit((BUILD_SCHEME, netloc, path, query, ""))


def _host_from(hostport: str) -> str:
    if hostport.startswith("["):
        end = hostport.find("]")
        return hostport[1:end] if end != -1 else ""
    host, _, _ = hostport.partition(":")
    return unquote(host)


__all__ = [
    "ConnectionStringError",
    "EmptyHostError",
    "EmptyInputError",
    "InvalidPortError",
    "InvalidSchemeError",
    "MalformedURIError",
    "ParsedConnectionString",
    "UNSUPPORTED_PARAMETERS",
    "build",
    "parse",
    "unsupported_parameters",
]
