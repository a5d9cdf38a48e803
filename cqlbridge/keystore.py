"""Keystore and truststore loading.

Stores are PKCS#12 files, or Java JKS/JCEKS files when ``pyjks`` is
installed.  The format is detected from the file's leading bytes.

Key entries are addressed by alias.  In a PKCS#12 file every key bag is an
entry, named by the bag's friendly name (falling back to the friendly name
of its certificate, then to the entry's 1-based position).  The certificate
for a key is the one carrying the matching public key.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from asn1crypto import pkcs12 as asn1_pkcs12
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_der_private_key,
    pkcs12,
)

from cqlbridge.exceptions import TLSConfigError

logger = logging.getLogger("cqlbridge.keystore")

StorePath = Union[str, Path]

# Leading bytes of Java keystores: JKS, then JCEKS.
_JAVA_MAGIC = (b"\xfe\xed\xfe\xed", b"\xce\xce\xce\xce")


@dataclass(frozen=True)
class KeyEntry:
    """A private key with its certificate and issuing chain."""

    alias: str
    private_key: PrivateKeyTypes
    certificate: x509.Certificate
    chain: tuple[x509.Certificate, ...] = ()

    def key_pem(self, password: Optional[str] = None) -> bytes:
        """PKCS#8 PEM of the key, encrypted with *password* when one is given."""
        encryption = BestAvailableEncryption(password.encode()) if password else NoEncryption()
        return self.private_key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, encryption)

    def certificate_chain_pem(self) -> bytes:
        """Leaf certificate followed by the chain, PEM encoded."""
        return b"".join(cert.public_bytes(Encoding.PEM) for cert in (self.certificate, *self.chain))


class KeyStore:
    """Key entries of a keystore, in the order they were stored."""

    def __init__(self, entries: list[KeyEntry]) -> None:
        self._entries = {entry.alias: entry for entry in entries}

    @classmethod
    def load(cls, path: StorePath, password: str) -> KeyStore:
        """Read every key entry of the store at *path*.

        Raises
        ------
        TLSConfigError
            If the file cannot be read or decrypted with *password*.
        """
        data = _read_store(path, "keystore")
        if data[:4] in _JAVA_MAGIC:
            entries = _java_key_entries(data, password, path)
        else:
            entries = _pkcs12_key_entries(data, password, path)
        store = cls(entries)
        logger.debug("Keystore %s loaded with aliases %s", path, store.aliases())
        return store

    def aliases(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, alias: object) -> bool:
        return alias in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, alias: str) -> KeyEntry:
        try:
            return self._entries[alias]
        except KeyError:
            raise TLSConfigError(f"Alias not found in keystore: {alias}") from None


def load_trusted_certificates(path: StorePath, password: str) -> list[x509.Certificate]:
    """Every certificate held in a truststore."""
    data = _read_store(path, "truststore")
    if data[:4] in _JAVA_MAGIC:
        store = _load_java_store(data, password, path, "truststore")
        certs = [x509.load_der_x509_certificate(entry.cert) for entry in store.certs.values()]
    else:
        certs = [c.certificate for c in _pkcs12_certificates(data, password, path, "truststore")]
    logger.debug("Truststore %s holds %d certificate(s)", path, len(certs))
    return certs


# ---------------------------------------------------------------------------
# PKCS#12
# ---------------------------------------------------------------------------


def _pkcs12_key_entries(data: bytes, password: str, path: StorePath) -> list[KeyEntry]:
    # cryptography verifies the integrity MAC and decrypts the certificate
    # sections; the key bags are walked separately since it keeps one key only.
    bundle = _load_pkcs12(data, password, path, "keystore")
    certificates = _bundle_certificates(bundle)

    keys = list(_pkcs12_key_bags(data, password, path))
    if not keys and bundle.key is not None:
        keys = [(None, bundle.key)]

    pool = [c.certificate for c in certificates]
    entries: list[KeyEntry] = []
    for position, (name, key) in enumerate(keys, start=1):
        match = _certificate_for(key, certificates)
        if match is None:
            logger.warning("Key entry %s in %s has no certificate, skipping it", name or position, path)
            continue
        alias = name or _friendly_name(match) or str(position)
        entries.append(
            KeyEntry(
                alias=alias,
                private_key=key,
                certificate=match.certificate,
                chain=_issuer_chain(match.certificate, pool),
            )
        )
    return entries


def _pkcs12_certificates(
    data: bytes, password: str, path: StorePath, label: str
) -> list[pkcs12.PKCS12Certificate]:
    return _bundle_certificates(_load_pkcs12(data, password, path, label))


def _bundle_certificates(bundle: pkcs12.PKCS12KeyAndCertificates) -> list[pkcs12.PKCS12Certificate]:
    certs = list(bundle.additional_certs)
    if bundle.cert is not None:
        certs.insert(0, bundle.cert)
    return certs


def _load_pkcs12(data: bytes, password: str, path: StorePath, label: str) -> pkcs12.PKCS12KeyAndCertificates:
    try:
        return pkcs12.load_pkcs12(data, password.encode() if password else None)
    except ValueError as exc:
        raise TLSConfigError(
            f"Cannot open {label} {path}: wrong password or not a PKCS#12 file"
        ) from exc


def _pkcs12_key_bags(
    data: bytes, password: str, path: StorePath
) -> Iterator[tuple[Optional[str], PrivateKeyTypes]]:
    """Yield ``(friendly name, key)`` for each key bag in the plain safes.

    Safes encrypted as a whole hold certificates in every mainstream tool's
    output, so only unencrypted ``data`` safes are searched for keys.
    """
    try:
        safes = asn1_pkcs12.Pfx.load(data).authenticated_safe
        bags = [
            bag
            for content_info in safes
            if content_info["content_type"].native == "data"
            for bag in _walk_bags(asn1_pkcs12.SafeContents.load(content_info["content"].native))
        ]
    except (ValueError, TypeError) as exc:
        raise TLSConfigError(f"Cannot parse keystore {path}: {exc}") from exc

    secret = password.encode() if password else None
    for bag in bags:
        kind = bag["bag_id"].native
        if kind not in ("pkcs8_shrouded_key_bag", "key_bag"):
            continue
        name = _bag_friendly_name(bag)
        try:
            key = _decode_key(bag["bag_value"].untag().dump(), secret if kind != "key_bag" else None, path)
        except UnsupportedAlgorithm:
            logger.warning("Key entry %s in %s uses an unsupported encryption, skipping it", name, path)
            continue
        yield name, key


def _walk_bags(contents: Any) -> Iterator[Any]:
    for bag in contents:
        if bag["bag_id"].native == "safe_contents":
            yield from _walk_bags(bag["bag_value"])
        else:
            yield bag


def _bag_friendly_name(bag: Any) -> Optional[str]:
    for attribute in bag["bag_attributes"].native or ():
        if attribute["type"] == "friendly_name" and attribute["values"]:
            return attribute["values"][0]
    return None


def _decode_key(der: bytes, password: Optional[bytes], path: StorePath) -> PrivateKeyTypes:
    try:
        return load_der_private_key(der, password)
    except (ValueError, TypeError) as exc:
        raise TLSConfigError(f"Cannot decrypt a key entry of keystore {path}") from exc


def _friendly_name(cert: pkcs12.PKCS12Certificate) -> Optional[str]:
    if cert.friendly_name:
        return cert.friendly_name.decode("utf-8", errors="replace")
    return None


def _certificate_for(
    key: PrivateKeyTypes, certificates: list[pkcs12.PKCS12Certificate]
) -> Optional[pkcs12.PKCS12Certificate]:
    wanted = _public_der(key.public_key())
    for cert in certificates:
        if _public_der(cert.certificate.public_key()) == wanted:
            return cert
    return None


def _public_der(public_key: Any) -> bytes:
    return public_key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)


def _issuer_chain(leaf: x509.Certificate, pool: list[x509.Certificate]) -> tuple[x509.Certificate, ...]:
    chain: list[x509.Certificate] = []
    current = leaf
    while current.issuer != current.subject:
        issuer = next(
            (c for c in pool if c.subject == current.issuer and c != leaf and c not in chain),
            None,
        )
        if issuer is None:
            break
        chain.append(issuer)
        current = issuer
    return tuple(chain)


# ---------------------------------------------------------------------------
# JKS / JCEKS
# ---------------------------------------------------------------------------


def _java_key_entries(data: bytes, password: str, path: StorePath) -> list[KeyEntry]:
    store = _load_java_store(data, password, path, "keystore")
    entries: list[KeyEntry] = []
    for alias, item in store.private_keys.items():
        # Key entries share the store password.
        if not item.is_decrypted():
            raise TLSConfigError(f"Cannot decrypt key entry {alias} of keystore {path}")
        certs = [x509.load_der_x509_certificate(der) for _, der in item.cert_chain]
        if not certs:
            logger.warning("Key entry %s in %s has no certificate, skipping it", alias, path)
            continue
        entries.append(
            KeyEntry(
                alias=alias,
                private_key=_decode_key(item.pkey_pkcs8, None, path),
                certificate=certs[0],
                chain=tuple(certs[1:]),
            )
        )
    return entries


def _load_java_store(data: bytes, password: str, path: StorePath, label: str) -> Any:
    try:
        import jks  # type: ignore[import-untyped]
    except ImportError as exc:
        raise TLSConfigError(
            f"pyjks is required to read the JKS {label} {path}. "
            "Install it with: pip install cqlbridge[jks]"
        ) from exc

    try:
        return jks.KeyStore.loads(data, password)
    except jks.util.KeystoreException as exc:
        raise TLSConfigError(
            f"Cannot open {label} {path}: wrong password or damaged keystore"
        ) from exc


def _read_store(path: StorePath, label: str) -> bytes:
    try:
        with open(path, "rb") as fh:
            return fh.read()
    except OSError as exc:
        raise TLSConfigError(f"Cannot read {label} {path}: {exc.strerror or exc}") from exc
