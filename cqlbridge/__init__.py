"""cqlbridge — Cassandra connection strings to ready-to-use cluster configurations.

Quick start::

    from cqlbridge import cluster_config

    config = cluster_config("jdbc:cassandra://node1:9042/shop", {"user": "app", "password": "..."})
    cluster = config.create_cluster()   # native cassandra.cluster.Cluster

SSL key material is read from ``CASS_CLIENT_*`` environment variables; see
:class:`cqlbridge.secrets.SecretBundle`.
"""

from __future__ import annotations

from typing import Optional

from cqlbridge.client import Client, Properties
from cqlbridge.cluster import ClusterConfig, Credentials, build_cluster_config
from cqlbridge.exceptions import (
    ClusterError,
    CQLBridgeError,
    MalformedURIError,
    TLSConfigError,
    UnknownHostError,
)
from cqlbridge.options import ConnectionSettings, ConsistencyLevel, resolve_settings
from cqlbridge.secrets import SecretBundle, SecretResolver
from cqlbridge.tls import TLSMaterial, build_tls_material
from cqlbridge.uri import PREFIX, ParsedURI, accepts_uri, parse_uri


def cluster_config(
    uri: str,
    properties: Properties = None,
    *,
    secrets: Optional[SecretBundle] = None,
) -> ClusterConfig:
    """Build a :class:`ClusterConfig` for *uri* in one call.

    Parameters
    ----------
    uri : str
        ``jdbc:cassandra://`` connection string.
    properties : mapping, optional
        Option values that take precedence over the URI options.
    secrets : SecretBundle, optional
        SSL secrets; read from the environment when omitted.

    Examples
    --------
    >>> from cqlbridge import cluster_config
    >>> config = cluster_config("jdbc:cassandra://127.0.0.1/ks")
    >>> config.keyspace
    'ks'
    """
    return Client(secrets).cluster_config(uri, properties)


__all__ = [
    # Convenience functions
    "cluster_config",
    "Client",
    # Steps
    "PREFIX",
    "accepts_uri",
    "parse_uri",
    "resolve_settings",
    "build_tls_material",
    "build_cluster_config",
    # Data
    "ParsedURI",
    "Properties",
    "ConnectionSettings",
    "ConsistencyLevel",
    "SecretBundle",
    "SecretResolver",
    "TLSMaterial",
    "ClusterConfig",
    "Credentials",
    # Exceptions
    "CQLBridgeError",
    "MalformedURIError",
    "UnknownHostError",
    "TLSConfigError",
    "ClusterError",
]

__version__ = "0.1.0"
