"""Shared fixtures: a clean ``CASS_CLIENT_*`` environment and generated keystores."""

from __future__ import annotations

import datetime
import hashlib
import hmac
import os
from pathlib import Path
from typing import Optional

import pytest
from asn1crypto import algos as asn1_algos
from asn1crypto import cms as asn1_cms
from asn1crypto import core as asn1_core
from asn1crypto import keys as asn1_keys
from asn1crypto import pkcs12 as asn1_pkcs12
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)
from cryptography.x509.oid import NameOID

KEYSTORE_PASSWORD = "changeit"
TRUSTSTORE_PASSWORD = "trustme"


@pytest.fixture(autouse=True)
def clean_secret_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's CASS_CLIENT_* variables out of every test."""
    for key in list(os.environ):
        if key.upper().startswith("CASS_CLIENT_"):
            monkeypatch.delenv(key, raising=False)


def make_self_signed(common_name: str, ca: bool = False) -> tuple[ec.EllipticCurvePrivateKey, x509.Certificate]:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return key, cert


def write_keystore(path: Path, alias: Optional[str], password: str = KEYSTORE_PASSWORD) -> Path:
    key, cert = make_self_signed("cqlbridge-client")
    data = pkcs12.serialize_key_and_certificates(
        name=alias.encode() if alias is not None else None,
        key=key,
        cert=cert,
        cas=None,
        encryption_algorithm=BestAvailableEncryption(password.encode()),
    )
    path.write_bytes(data)
    return path


def write_truststore(path: Path, password: str = TRUSTSTORE_PASSWORD) -> Path:
    _, cert = make_self_signed("cqlbridge-ca", ca=True)
    data = pkcs12.serialize_key_and_certificates(
        name=None,
        key=None,
        cert=None,
        cas=[cert],
        encryption_algorithm=BestAvailableEncryption(password.encode()),
    )
    path.write_bytes(data)
    return path


def _pkcs12_mac_key(password: str, salt: bytes, iterations: int) -> bytes:
    """RFC 7292 appendix B key derivation for a SHA-256 integrity MAC."""
    block = 64

    def fill(data: bytes) -> bytes:
        if not data:
            return b""
        size = block * -(-len(data) // block)
        return (data * (size // len(data) + 1))[:size]

    digest = b"\x03" * block + fill(salt) + fill(password.encode("utf-16-be") + b"\x00\x00")
    for _ in range(iterations):
        digest = hashlib.sha256(digest).digest()
    return digest


def write_multi_key_keystore(path: Path, aliases: list[str], password: str = KEYSTORE_PASSWORD) -> Path:
    """PKCS#12 keystore holding one key entry per alias, subject ``cqlbridge-<alias>``."""
    bags = []
    for alias in aliases:
        key, cert = make_self_signed(f"cqlbridge-{alias}")
        attributes = asn1_pkcs12.Attributes([{"type": "friendly_name", "values": [alias]}])
        shrouded = key.private_bytes(Encoding.DER, PrivateFormat.PKCS8, BestAvailableEncryption(password.encode()))
        bags.append(
            asn1_pkcs12.SafeBag(
                {
                    "bag_id": "pkcs8_shrouded_key_bag",
                    "bag_value": asn1_keys.EncryptedPrivateKeyInfo.load(shrouded),
                    "bag_attributes": attributes,
                }
            )
        )
        bags.append(
            asn1_pkcs12.SafeBag(
                {
                    "bag_id": "cert_bag",
                    "bag_value": asn1_pkcs12.CertBag(
                        {"cert_id": "x509", "cert_value": asn1_core.ParsableOctetString(cert.public_bytes(Encoding.DER))}
                    ),
                    "bag_attributes": attributes,
                }
            )
        )

    safes = asn1_pkcs12.AuthenticatedSafe(
        [asn1_cms.ContentInfo({"content_type": "data", "content": asn1_pkcs12.SafeContents(bags).dump()})]
    )
    auth_safe = safes.dump()
    salt, iterations = os.urandom(8), 2048
    mac = hmac.new(_pkcs12_mac_key(password, salt, iterations), auth_safe, hashlib.sha256).digest()
    pfx = asn1_pkcs12.Pfx(
        {
            "version": 3,
            "auth_safe": asn1_cms.ContentInfo({"content_type": "data", "content": auth_safe}),
            "mac_data": asn1_pkcs12.MacData(
                {
                    "mac": asn1_algos.DigestInfo({"digest_algorithm": {"algorithm": "sha256"}, "digest": mac}),
                    "mac_salt": salt,
                    "iterations": iterations,
                }
            ),
        }
    )
    path.write_bytes(pfx.dump())
    return path


def write_jks_keystore(path: Path, aliases: list[str], password: str = KEYSTORE_PASSWORD) -> Path:
    """Java keystore with one key entry per alias; needs ``pyjks``."""
    jks = pytest.importorskip("jks")
    entries = []
    for alias in aliases:
        key, cert = make_self_signed(f"cqlbridge-{alias}")
        pkcs8 = key.private_bytes(Encoding.DER, PrivateFormat.PKCS8, NoEncryption())
        entries.append(jks.PrivateKeyEntry.new(alias, [cert.public_bytes(Encoding.DER)], pkcs8, "pkcs8"))
    path.write_bytes(jks.KeyStore.new("jks", entries).saves(password))
    return path


@pytest.fixture
def keystore_path(tmp_path: Path) -> Path:
    """PKCS#12 keystore with a single key entry aliased ``client``."""
    return write_keystore(tmp_path / "client.p12", "client")


@pytest.fixture
def truststore_path(tmp_path: Path) -> Path:
    """PKCS#12 truststore with one trusted certificate."""
    return write_truststore(tmp_path / "trust.p12")
