"""Connection string parsing.

Accepted form::

    jdbc:cassandra://host1[:port1][,host2[:port2]...][/[keyspace[.collection]][?options]]

Options are ``key=value`` pairs separated by ``&`` or ``;``.  Keys are
case-insensitive and may repeat; the last occurrence wins on lookup.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Optional

from cqlbridge.exceptions import MalformedURIError

logger = logging.getLogger("cqlbridge.uri")

PREFIX = "jdbc:cassandra://"

_OPTION_SEPARATOR = re.compile(r"[&;]")
_MAX_PORT = 65535


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class HostSpec:
    """One contact point token, with its inline port if it carried one."""

    host: str
    port: Optional[int] = None

    def __str__(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return host if self.port is None else f"{host}:{self.port}"


@dataclass(frozen=True, slots=True)
class Namespace:
    """Keyspace and collection addressed by the connection string."""

    keyspace: Optional[str] = None
    collection: Optional[str] = None


class ParsedOptions(Mapping[str, tuple[str, ...]]):
    """Read-only multi-valued option map keyed by lowercase option name."""

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Mapping[str, Sequence[str]]] = None) -> None:
        self._values: dict[str, tuple[str, ...]] = {}
        for key, seq in (values or {}).items():
            self._values[key.lower()] = self._values.get(key.lower(), ()) + tuple(seq)

    def __getitem__(self, key: str) -> tuple[str, ...]:
        return self._values[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParsedOptions({self._values!r})"

    def getall(self, key: str) -> tuple[str, ...]:
        """Every value given for *key*, in the order they appeared."""
        return self._values.get(key.lower(), ())

    def last(self, key: str) -> Optional[str]:
        """The last value given for *key*, or ``None``."""
        values = self.getall(key)
        return values[-1] if values else None


@dataclass(frozen=True, slots=True)
class ParsedURI:
    """Result of :func:`parse_uri`.  ``str()`` gives back the raw URI."""

    uri: str
    hosts: tuple[HostSpec, ...]
    namespace: Namespace = field(default_factory=Namespace)
    options: ParsedOptions = field(default_factory=ParsedOptions)

    @property
    def keyspace(self) -> Optional[str]:
        return self.namespace.keyspace

    @property
    def collection(self) -> Optional[str]:
        return self.namespace.collection

    def __str__(self) -> str:
        return self.uri


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def accepts_uri(raw: Optional[str]) -> bool:
    """Return ``True`` if *raw* looks like a connection string this library handles."""
    return raw is not None and raw.startswith(PREFIX)


def parse_uri(raw: str) -> ParsedURI:
    """Split a connection string into hosts, namespace and options.

    Raises
    ------
    MalformedURIError
        If the prefix is missing, options appear without a ``/`` before them,
        no host is given, or a port is not a valid number.
    """
    if not accepts_uri(raw):
        raise MalformedURIError(f"URI needs to start with {PREFIX}")

    rest = raw[len(PREFIX):]
    options = ParsedOptions()

    last_slash = rest.rfind("/")
    if last_slash < 0:
        if "?" in rest:
            raise MalformedURIError("URI contains options without trailing slash")
        server_part, ns_part = rest, None
    else:
        server_part, ns_part = rest[:last_slash], rest[last_slash + 1:]
        ns_part, question, options_part = ns_part.partition("?")
        if question:
            options = parse_options(options_part)

    hosts = parse_hosts(server_part)
    namespace = parse_namespace(ns_part)

    logger.debug(
        "Parsed URI: hosts=%s keyspace=%s collection=%s options=%s",
        [str(h) for h in hosts],
        namespace.keyspace,
        namespace.collection,
        sorted(options),
    )
    return ParsedURI(uri=raw, hosts=hosts, namespace=namespace, options=options)


def parse_options(options_part: str) -> ParsedOptions:
    """Parse ``k=v&k=v;k=v`` into a :class:`ParsedOptions`.  Pairs without ``=`` are dropped."""
    values: dict[str, list[str]] = {}
    for pair in _OPTION_SEPARATOR.split(options_part):
        key, eq, value = pair.partition("=")
        if not eq:
            continue
        values.setdefault(key.lower(), []).append(value)
    return ParsedOptions(values)


def parse_hosts(server_part: str) -> tuple[HostSpec, ...]:
    """Split the comma-separated host segment into :class:`HostSpec` entries."""
    hosts = tuple(
        _parse_host_token(token.strip())
        for token in server_part.split(",")
        if token.strip()
    )
    if not hosts:
        raise MalformedURIError("URI does not name any host")
    return hosts


def parse_namespace(ns_part: Optional[str]) -> Namespace:
    """``keyspace`` or ``keyspace.collection``; split on the first dot."""
    if not ns_part:
        return Namespace()
    keyspace, dot, collection = ns_part.partition(".")
    return Namespace(keyspace=keyspace, collection=collection if dot else None)


def _parse_host_token(token: str) -> HostSpec:
    # [v6addr] or [v6addr]:port
    if token.startswith("["):
        end = token.find("]")
        if end < 0:
            raise MalformedURIError(f"Unterminated IPv6 literal in host: {token}")
        host, rest = token[1:end], token[end + 1:]
        if not rest:
            return HostSpec(host)
        if not rest.startswith(":"):
            raise MalformedURIError(f"Unexpected text after IPv6 literal: {token}")
        return HostSpec(host, _parse_port(rest[1:], token))

    # Several bare colons can only be an IPv6 address without a port.
    if token.count(":") != 1:
        return HostSpec(token)

    host, _, port = token.partition(":")
    host = host.strip()
    if not host:
        raise MalformedURIError(f"Missing host name before port: {token}")
    return HostSpec(host, _parse_port(port, token))


def _parse_port(text: str, token: str) -> int:
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        raise MalformedURIError(f"Invalid port in host: {token}")
    port = int(text)
    if not 0 < port <= _MAX_PORT:
        raise MalformedURIError(f"Invalid port (out of range) in host: {token}")
    return port
