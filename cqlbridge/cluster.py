"""Cluster configuration handed to cassandra-driver.

``build_cluster_config`` resolves every contact point, picks the shared port,
attaches credentials and SSL material, and returns an immutable
:class:`ClusterConfig`.  ``ClusterConfig.create_cluster()`` turns it into a
native ``cassandra.cluster.Cluster`` without connecting.
"""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from cqlbridge.exceptions import ClusterError, UnknownHostError
from cqlbridge.options import ConnectionSettings, ConsistencyLevel
from cqlbridge.tls import TLSMaterial

logger = logging.getLogger("cqlbridge.cluster")

HostResolver = Callable[[str], str]


@dataclass(frozen=True, slots=True)
class Credentials:
    """Plain-text authentication credentials."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class ClusterConfig:
    """Everything the driver needs to build a ``Cluster``.

    All contact points share ``port``; ``None`` leaves the driver default.
    """

    contact_points: tuple[str, ...]
    port: Optional[int]
    credentials: Optional[Credentials]
    consistency_level: ConsistencyLevel
    tls: Optional[TLSMaterial] = None
    keyspace: Optional[str] = None

    @property
    def quoted_keyspace(self) -> Optional[str]:
        """The keyspace as a double-quoted CQL identifier."""
        if not self.keyspace:
            return None
        if len(self.keyspace) > 1 and self.keyspace.startswith('"') and self.keyspace.endswith('"'):
            return self.keyspace
        return '"' + self.keyspace.replace('"', '""') + '"'

    def cluster_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``cassandra.cluster.Cluster`` that need no driver types."""
        kwargs: dict[str, Any] = {"contact_points": list(self.contact_points)}
        if self.port is not None:
            kwargs["port"] = self.port
        if self.tls is not None:
            kwargs["ssl_context"] = self.tls.ssl_context
        return kwargs

    def create_cluster(self, **overrides: Any) -> Any:
        """Return an unconnected native ``cassandra.cluster.Cluster``.

        *overrides* are passed to the ``Cluster`` constructor last and win
        over the computed arguments.
        """
        try:
            from cassandra.auth import PlainTextAuthProvider  # type: ignore[import-untyped]
            from cassandra.cluster import (  # type: ignore[import-untyped]
                EXEC_PROFILE_DEFAULT,
                Cluster,
                ExecutionProfile,
            )
        except ImportError as exc:
            raise ClusterError(
                "cassandra-driver is required to create a Cluster. "
                "Install it with: pip install cqlbridge[cassandra]"
            ) from exc
        except Exception as exc:
            raise ClusterError(f"cassandra-driver could not be loaded: {exc}") from exc

        kwargs = self.cluster_kwargs()
        if self.credentials is not None:
            kwargs["auth_provider"] = PlainTextAuthProvider(
                username=self.credentials.username,
                password=self.credentials.password,
            )
        kwargs["execution_profiles"] = {
            EXEC_PROFILE_DEFAULT: ExecutionProfile(consistency_level=int(self.consistency_level)),
        }
        kwargs.update(overrides)

        try:
            return Cluster(**kwargs)
        except Exception as exc:
            raise ClusterError(f"Cluster creation failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def resolve_host(host: str) -> str:
    """Resolve *host* to an IP address string.

    Raises
    ------
    UnknownHostError
        If the name does not resolve.
    """
    try:
        infos = socket.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as exc:
        raise UnknownHostError(host, exc) from exc
    if not infos:
        raise UnknownHostError(host)
    return infos[0][4][0]


def build_cluster_config(
    settings: ConnectionSettings,
    tls: Optional[TLSMaterial] = None,
    *,
    resolver: HostResolver = resolve_host,
) -> ClusterConfig:
    """Assemble the :class:`ClusterConfig` for *settings*.

    The last host carrying an inline port sets the port for every contact
    point.  A single unresolvable host fails the whole build.
    """
    logger.info("Creating cluster configuration")

    contact_points: list[str] = []
    port: Optional[int] = None
    for spec in settings.hosts:
        if spec.port is not None:
            if port is not None and port != spec.port:
                logger.warning(
                    "Hosts declare different ports; %d replaces %d for all contact points",
                    spec.port,
                    port,
                )
            port = spec.port
        logger.info("Adding contact point: %s with port %s", spec.host, spec.port)
        contact_points.append(resolver(spec.host))

    if tls is not None:
        logger.info("SSL enabled with cipher suites %s", list(tls.cipher_suites))

    credentials: Optional[Credentials] = None
    if settings.username and settings.password is not None:
        credentials = Credentials(settings.username, settings.password)
        logger.info("Using authentication as user '%s'", settings.username)

    return ClusterConfig(
        contact_points=tuple(contact_points),
        port=port,
        credentials=credentials,
        consistency_level=settings.consistency_level,
        tls=tls,
        keyspace=settings.namespace.keyspace,
    )
