"""Top‑level client factory.

Provides the ``Client`` class that turns connection strings into cluster
configurations.  Secrets are read once, when the client is created, and the
same bundle is used for every connection string afterwards.

Usage::

    from cqlbridge import Client

    client = Client()

    config = client.cluster_config(
        "jdbc:cassandra://node1,node2:9042/shop?consistencyLevel=quorum",
        {"user": "app", "password": "..."},
    )
    cluster = config.create_cluster()          # native cassandra.cluster.Cluster
    session = cluster.connect(config.quoted_keyspace)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional

from cqlbridge.cluster import ClusterConfig, HostResolver, build_cluster_config, resolve_host
from cqlbridge.options import ConnectionSettings, resolve_settings
from cqlbridge.secrets import SecretBundle, SecretResolver
from cqlbridge.tls import TLSMaterial, build_tls_material
from cqlbridge.uri import ParsedURI, parse_uri

logger = logging.getLogger("cqlbridge.client")

Properties = Optional[Mapping[str, Optional[str]]]


class Client:
    """Factory that builds :class:`ClusterConfig` objects from connection strings.

    Parameters
    ----------
    secrets:
        Secret bundle to use.  Read from the environment when omitted.
    resolver:
        Host name resolver; defaults to DNS through ``socket.getaddrinfo``.
    """

    def __init__(
        self,
        secrets: Optional[SecretBundle] = None,
        *,
        resolver: HostResolver = resolve_host,
    ) -> None:
        self._secrets = secrets if secrets is not None else SecretResolver().load()
        self._resolver = resolver
        logger.debug("Client created (enable_ssl=%s)", self._secrets.enable_ssl)

    @property
    def secrets(self) -> SecretBundle:
        return self._secrets

    # -- steps -------------------------------------------------------------

    def parse(self, uri: str) -> ParsedURI:
        return parse_uri(uri)

    def settings(self, uri: str, properties: Properties = None) -> ConnectionSettings:
        """Parse *uri* and resolve its options against *properties*."""
        return resolve_settings(properties, parse_uri(uri), self._secrets)

    def tls_material(self, settings: ConnectionSettings) -> Optional[TLSMaterial]:
        """Fresh SSL material when *settings* enable SSL, else ``None``."""
        if not settings.ssl_enabled:
            return None
        return build_tls_material(self._secrets)

    # -- end to end --------------------------------------------------------

    def cluster_config(self, uri: str, properties: Properties = None) -> ClusterConfig:
        """Parse, resolve and build the :class:`ClusterConfig` for *uri*."""
        settings = self.settings(uri, properties)
        return build_cluster_config(settings, self.tls_material(settings), resolver=self._resolver)

    def create_cluster(self, uri: str, properties: Properties = None, **overrides: Any) -> Any:
        """Shortcut for ``cluster_config(uri, properties).create_cluster(**overrides)``."""
        return self.cluster_config(uri, properties).create_cluster(**overrides)
