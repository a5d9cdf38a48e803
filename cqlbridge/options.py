"""Connection option resolution.

Every named option is looked up in three places, first hit wins:

    properties object → last value in the URI options → built-in default

The SSL switch falls back to the ``CASS_CLIENT_ENABLE_SSL`` secret rather than
a fixed default, so an environment that provisions key material turns SSL on
without every connection string having to say so.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from cqlbridge.uri import HostSpec, Namespace, ParsedOptions, ParsedURI

if TYPE_CHECKING:
    from cqlbridge.secrets import SecretBundle

logger = logging.getLogger("cqlbridge.options")


class ConsistencyLevel(enum.IntEnum):
    """Consistency levels, numbered as on the CQL native protocol."""

    ANY = 0
    ONE = 1
    TWO = 2
    THREE = 3
    QUORUM = 4
    ALL = 5
    LOCAL_QUORUM = 6
    EACH_QUORUM = 7
    SERIAL = 8
    LOCAL_SERIAL = 9
    LOCAL_ONE = 10


# ---------------------------------------------------------------------------
# Option names and defaults
# ---------------------------------------------------------------------------

USER = "user"
PASSWORD = "password"
SSL_ENABLED = "sslenabled"
VERIFY_SERVER_CERTIFICATE = "verifyservercertificate"
CONSISTENCY_LEVEL = "consistencylevel"

_DEFAULT_VERIFY_SERVER_CERTIFICATE = "true"
DEFAULT_CONSISTENCY_LEVEL = ConsistencyLevel.LOCAL_ONE

_TRUTHY = frozenset({"true", "yes", "on", "1"})


@dataclass(frozen=True, slots=True)
class PropertyInfo:
    """Description of one recognised connection option."""

    name: str
    default: Optional[str]
    description: str
    choices: tuple[str, ...] = ()


def property_info() -> list[PropertyInfo]:
    """List the options understood in properties and URI query strings."""
    return [
        PropertyInfo(USER, None, "User name used for authentication."),
        PropertyInfo(PASSWORD, None, "Password used for authentication."),
        PropertyInfo(
            SSL_ENABLED,
            None,
            "Connect over SSL. A value given here or in the URI overrides the "
            "CASS_CLIENT_ENABLE_SSL environment variable, which is only the default.",
            ("true", "false"),
        ),
        PropertyInfo(
            VERIFY_SERVER_CERTIFICATE,
            _DEFAULT_VERIFY_SERVER_CERTIFICATE,
            "Verify the server certificate. Currently informational: a configured "
            "truststore is always applied with a trust-all strategy.",
            ("true", "false"),
        ),
        PropertyInfo(
            CONSISTENCY_LEVEL,
            DEFAULT_CONSISTENCY_LEVEL.name,
            "Default consistency level for statements. Unknown values fall back to the default.",
            tuple(level.name for level in ConsistencyLevel),
        ),
    ]


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


def parse_bool(value: Optional[str]) -> bool:
    """``true``, ``yes``, ``on`` and ``1`` (any case) are true; anything else is false."""
    return value is not None and value.strip().lower() in _TRUTHY


def parse_consistency_level(value: Optional[str]) -> Optional[ConsistencyLevel]:
    """Match *value* case-insensitively against :class:`ConsistencyLevel`; ``None`` if no match."""
    if value is None:
        return None
    return ConsistencyLevel.__members__.get(value.strip().upper())


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConnectionSettings:
    """Typed, fully resolved connection settings."""

    username: Optional[str]
    password: Optional[str]
    ssl_enabled: bool
    verify_server_cert: bool
    consistency_level: ConsistencyLevel
    hosts: tuple[HostSpec, ...]
    namespace: Namespace

    def __repr__(self) -> str:
        # Never show the password.
        return (
            f"ConnectionSettings(username={self.username!r}, "
            f"password={'***' if self.password is not None else None}, "
            f"ssl_enabled={self.ssl_enabled}, verify_server_cert={self.verify_server_cert}, "
            f"consistency_level={self.consistency_level.name}, "
            f"hosts={self.hosts!r}, namespace={self.namespace!r})"
        )


def resolve_settings(
    properties: Optional[Mapping[str, Optional[str]]],
    parsed: ParsedURI,
    secrets: SecretBundle,
) -> ConnectionSettings:
    """Merge *properties*, the URI options and the defaults into :class:`ConnectionSettings`."""
    props = _normalize_properties(properties)
    options = parsed.options

    username = _get_option(props, options, USER)
    password = _get_option(props, options, PASSWORD)

    ssl_option = _get_option(props, options, SSL_ENABLED)
    ssl_enabled = secrets.enable_ssl if ssl_option is None else parse_bool(ssl_option)

    verify_server_cert = parse_bool(
        _get_option(props, options, VERIFY_SERVER_CERTIFICATE, _DEFAULT_VERIFY_SERVER_CERTIFICATE)
    )

    level_option = _get_option(props, options, CONSISTENCY_LEVEL)
    consistency_level = parse_consistency_level(level_option)
    if consistency_level is None:
        if level_option is not None:
            logger.debug(
                "Unknown consistency level %r, using %s", level_option, DEFAULT_CONSISTENCY_LEVEL.name
            )
        consistency_level = DEFAULT_CONSISTENCY_LEVEL

    settings = ConnectionSettings(
        username=username,
        password=password,
        ssl_enabled=ssl_enabled,
        verify_server_cert=verify_server_cert,
        consistency_level=consistency_level,
        hosts=parsed.hosts,
        namespace=parsed.namespace,
    )
    logger.debug("Resolved %r", settings)
    return settings


def _normalize_properties(
    properties: Optional[Mapping[str, Optional[str]]],
) -> dict[str, str]:
    if not properties:
        return {}
    return {
        str(key).lower(): str(value)
        for key, value in properties.items()
        if value is not None
    }


def _get_option(
    props: Mapping[str, str],
    options: ParsedOptions,
    name: str,
    default: Optional[str] = None,
) -> Optional[str]:
    if name in props:
        return props[name]
    value = options.last(name)
    return default if value is None else value
