"""Custom exceptions for cqlbridge.

All exceptions inherit from CQLBridgeError to allow catching any library error.
Secrets (keystore and truststore passwords, user passwords) are never included
in exception messages.
"""

from __future__ import annotations


class CQLBridgeError(Exception):
    """Base exception for all cqlbridge errors."""


class MalformedURIError(CQLBridgeError, ValueError):
    """Raised when a connection string lacks the prefix or has options without a namespace."""


class UnknownHostError(CQLBridgeError):
    """Raised when a contact point cannot be resolved to a network address."""

    def __init__(self, host: str, reason: object = None) -> None:
        self.host = host
        message = f"Unknown host: {host}"
        if reason is not None:
            message = f"{message} ({reason})"
        super().__init__(message)


class TLSConfigError(CQLBridgeError):
    """Raised when the TLS context cannot be built from the configured key material."""


class ClusterError(CQLBridgeError):
    """Raised when the native cassandra-driver Cluster cannot be created."""
