"""SSL context construction from the secret bundle.

``build_tls_material`` produces an :class:`ssl.SSLContext` for the client:

* truststore configured → its certificates are loaded and any server chain
  is accepted (trust-all strategy)
* keystore configured → the selected key entry is presented to the server
* cipher suites → applied explicitly; nothing outside the list is negotiated

The ``verifyservercertificate`` connection option is not consulted here.  A
configured truststore always goes in with the trust-all strategy.
"""

from __future__ import annotations

import logging
import ssl
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives.serialization import Encoding

from cqlbridge.exceptions import TLSConfigError
from cqlbridge.keystore import KeyStore, load_trusted_certificates
from cqlbridge.secrets import SecretBundle

logger = logging.getLogger("cqlbridge.tls")

CLIENT_ALIAS = "client"

# IANA (JSSE) cipher suite names → OpenSSL names.  Names missing here are
# passed to OpenSSL unchanged.
_IANA_TO_OPENSSL: dict[str, str] = {
    "TLS_RSA_WITH_AES_128_CBC_SHA": "AES128-SHA",
    "TLS_RSA_WITH_AES_256_CBC_SHA": "AES256-SHA",
    "TLS_RSA_WITH_AES_128_CBC_SHA256": "AES128-SHA256",
    "TLS_RSA_WITH_AES_256_CBC_SHA256": "AES256-SHA256",
    "TLS_RSA_WITH_AES_128_GCM_SHA256": "AES128-GCM-SHA256",
    "TLS_RSA_WITH_AES_256_GCM_SHA384": "AES256-GCM-SHA384",
    "TLS_DHE_RSA_WITH_AES_128_CBC_SHA": "DHE-RSA-AES128-SHA",
    "TLS_DHE_RSA_WITH_AES_256_CBC_SHA": "DHE-RSA-AES256-SHA",
    "TLS_DHE_RSA_WITH_AES_128_GCM_SHA256": "DHE-RSA-AES128-GCM-SHA256",
    "TLS_DHE_RSA_WITH_AES_256_GCM_SHA384": "DHE-RSA-AES256-GCM-SHA384",
    "TLS_ECDHE_RSA_WITH_AES_128_CBC_SHA": "ECDHE-RSA-AES128-SHA",
    "TLS_ECDHE_RSA_WITH_AES_256_CBC_SHA": "ECDHE-RSA-AES256-SHA",
    "TLS_ECDHE_RSA_WITH_AES_128_CBC_SHA256": "ECDHE-RSA-AES128-SHA256",
    "TLS_ECDHE_RSA_WITH_AES_256_CBC_SHA384": "ECDHE-RSA-AES256-SHA384",
    "TLS_ECDHE_RSA_WITH_AES_128_GCM_SHA256": "ECDHE-RSA-AES128-GCM-SHA256",
    "TLS_ECDHE_RSA_WITH_AES_256_GCM_SHA384": "ECDHE-RSA-AES256-GCM-SHA384",
    "TLS_ECDHE_RSA_WITH_CHACHA20_POLY1305_SHA256": "ECDHE-RSA-CHACHA20-POLY1305",
    "TLS_ECDHE_ECDSA_WITH_AES_128_CBC_SHA": "ECDHE-ECDSA-AES128-SHA",
    "TLS_ECDHE_ECDSA_WITH_AES_256_CBC_SHA": "ECDHE-ECDSA-AES256-SHA",
    "TLS_ECDHE_ECDSA_WITH_AES_128_GCM_SHA256": "ECDHE-ECDSA-AES128-GCM-SHA256",
    "TLS_ECDHE_ECDSA_WITH_AES_256_GCM_SHA384": "ECDHE-ECDSA-AES256-GCM-SHA384",
    "TLS_ECDHE_ECDSA_WITH_CHACHA20_POLY1305_SHA256": "ECDHE-ECDSA-CHACHA20-POLY1305",
}

# TLS 1.3 suites cannot be narrowed through set_ciphers(); they are all on
# whenever TLS 1.3 is.
_TLS13_SUITES = frozenset(
    {
        "TLS_AES_128_GCM_SHA256",
        "TLS_AES_256_GCM_SHA384",
        "TLS_CHACHA20_POLY1305_SHA256",
        "TLS_AES_128_CCM_SHA256",
        "TLS_AES_128_CCM_8_SHA256",
    }
)


@dataclass(frozen=True)
class TLSMaterial:
    """SSL context ready for the driver, with the cipher suites it was restricted to."""

    ssl_context: ssl.SSLContext
    cipher_suites: tuple[str, ...]
    key_alias: Optional[str] = None


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------


def select_key_alias(aliases: Sequence[str], explicit: Optional[str] = None) -> str:
    """Choose the keystore alias to present.

    Order: the *explicit* alias (must exist), then ``client``, then the first
    alias in the keystore.

    Raises
    ------
    TLSConfigError
        If *explicit* is not among *aliases*, or *aliases* is empty.
    """
    if explicit is not None:
        if explicit in aliases:
            return explicit
        raise TLSConfigError(
            f"Keystore alias was explicitly defined but not found in keystore: {explicit}"
        )
    if CLIENT_ALIAS in aliases:
        return CLIENT_ALIAS
    if not aliases:
        raise TLSConfigError("No alias found in keystore")
    return aliases[0]


def to_openssl_cipher_string(suites: Sequence[str]) -> str:
    """Join *suites* into an OpenSSL cipher list, leaving TLS 1.3 suites out."""
    return ":".join(
        _IANA_TO_OPENSSL.get(suite, suite) for suite in suites if suite not in _TLS13_SUITES
    )


def build_tls_material(secrets: SecretBundle) -> TLSMaterial:
    """Build a client SSL context from *secrets*.

    Missing truststore or keystore material is skipped with a warning; with
    neither, the context relies on the platform's default CA certificates.
    """
    logger.info("Configuring SSL")
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_REQUIRED
    context.load_default_certs()

    truststore = secrets.truststore_pair
    if truststore is not None:
        _apply_truststore(context, *truststore)
    else:
        logger.warning(
            "Truststore or its password is not defined. "
            "Truststore won't be applied to the SSL context."
        )

    key_alias: Optional[str] = None
    keystore = secrets.keystore_pair
    if keystore is not None:
        key_alias = _apply_keystore(context, *keystore, explicit_alias=secrets.key_alias)
    else:
        logger.warning(
            "Keystore or its password is not defined. "
            "Keystore won't be applied to the SSL context."
        )

    suites = tuple(secrets.cipher_suite)
    _apply_cipher_suites(context, suites)

    return TLSMaterial(ssl_context=context, cipher_suites=suites, key_alias=key_alias)


# ---------------------------------------------------------------------------
# Private
# ---------------------------------------------------------------------------


def _apply_truststore(context: ssl.SSLContext, path: Path, password: str) -> None:
    certs = load_trusted_certificates(path, password)
    if certs:
        cadata = "".join(cert.public_bytes(Encoding.PEM).decode("ascii") for cert in certs)
        try:
            context.load_verify_locations(cadata=cadata)
        except ssl.SSLError as exc:
            raise TLSConfigError(f"Cannot load truststore certificates from {path}: {exc}") from exc
    else:
        logger.warning("Truststore %s holds no certificates", path)

    # Trust-all: any server chain is accepted once a truststore is configured.
    context.verify_mode = ssl.CERT_NONE
    logger.debug("Truststore %s applied with trust-all strategy", path)


def _apply_keystore(
    context: ssl.SSLContext,
    path: Path,
    password: str,
    *,
    explicit_alias: Optional[str],
) -> str:
    store = KeyStore.load(path, password)
    alias = select_key_alias(store.aliases(), explicit_alias)
    entry = store.entry(alias)

    # ssl only loads key material from files; keep them for the call alone.
    with tempfile.TemporaryDirectory(prefix="cqlbridge-") as tmp:
        certfile = Path(tmp) / "cert.pem"
        keyfile = Path(tmp) / "key.pem"
        certfile.write_bytes(entry.certificate_chain_pem())
        keyfile.write_bytes(entry.key_pem(password))
        try:
            context.load_cert_chain(certfile, keyfile, password=password or None)
        except ssl.SSLError as exc:
            raise TLSConfigError(f"Cannot load key entry '{alias}' from {path}: {exc}") from exc

    logger.info("Using keystore alias '%s'", alias)
    return alias


def _apply_cipher_suites(context: ssl.SSLContext, suites: Sequence[str]) -> None:
    cipher_string = to_openssl_cipher_string(suites)
    allows_tls13 = any(suite in _TLS13_SUITES for suite in suites)

    if cipher_string:
        try:
            context.set_ciphers(cipher_string)
        except ssl.SSLError as exc:
            raise TLSConfigError(f"None of the configured cipher suites is available: {list(suites)}") from exc
    elif not allows_tls13:
        raise TLSConfigError("No cipher suites configured")

    if not allows_tls13:
        context.maximum_version = ssl.TLSVersion.TLSv1_2
    elif not cipher_string:
        context.minimum_version = ssl.TLSVersion.TLSv1_3
    logger.debug("Cipher suites applied: %s", list(suites))

