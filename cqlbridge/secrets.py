"""SSL secret material read from the environment.

``SecretBundle`` holds the keystore/truststore locations, their passwords, the
key alias and the cipher suites, all read from ``CASS_CLIENT_*`` variables.
``SecretResolver`` builds the bundle once and hands the same immutable
instance to every caller, so the environment is consulted a single time.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Annotated, Any, Optional, Union

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from cqlbridge.options import parse_bool

logger = logging.getLogger("cqlbridge.secrets")

ENV_PREFIX = "CASS_CLIENT_"

DEFAULT_CIPHER_SUITES: tuple[str, ...] = (
    "TLS_RSA_WITH_AES_128_CBC_SHA",
    "TLS_RSA_WITH_AES_256_CBC_SHA",
)


class SecretBundle(BaseSettings):
    """Immutable SSL secret configuration.

    Environment variables
    ---------------------
    CASS_CLIENT_ENABLE_SSL
        Turns SSL on when no connection option says otherwise.  Missing
        store material is only reported while this flag is set.
    CASS_CLIENT_KEYSTORE / CASS_CLIENT_KEYSTORE_PASSWORD
        PKCS#12 store holding the client key and certificate.
    CASS_CLIENT_TRUSTSTORE / CASS_CLIENT_TRUSTSTORE_PASSWORD
        PKCS#12 store holding the certificates trusted for the servers.
    CASS_CLIENT_KEY_ALIAS
        Alias of the key entry to present; optional.
    CASS_CLIENT_CIPHER_SUITE
        Comma-separated cipher suite names.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    enable_ssl: bool = False

    keystore: Optional[Path] = None
    keystore_password: Optional[SecretStr] = None

    truststore: Optional[Path] = None
    truststore_password: Optional[SecretStr] = None

    key_alias: Optional[str] = None
    cipher_suite: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_CIPHER_SUITES)
    )

    @field_validator("enable_ssl", mode="before")
    @classmethod
    def _parse_enable_ssl(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return parse_bool(None if value is None else str(value))

    @field_validator("cipher_suite", mode="before")
    @classmethod
    def _split_cipher_suite(cls, value: Any) -> list[str]:
        if value is None:
            return list(DEFAULT_CIPHER_SUITES)
        if isinstance(value, str):
            value = value.split(",")
        suites = [str(cipher).strip() for cipher in value if str(cipher).strip()]
        return suites or list(DEFAULT_CIPHER_SUITES)

    # -- derived -----------------------------------------------------------

    @property
    def keystore_pair(self) -> Optional[tuple[Path, str]]:
        """``(path, password)`` when both are configured, else ``None``."""
        if self.keystore is None or self.keystore_password is None:
            return None
        return self.keystore, self.keystore_password.get_secret_value()

    @property
    def truststore_pair(self) -> Optional[tuple[Path, str]]:
        """``(path, password)`` when both are configured, else ``None``."""
        if self.truststore is None or self.truststore_password is None:
            return None
        return self.truststore, self.truststore_password.get_secret_value()


class SecretResolver:
    """Builds the :class:`SecretBundle` once and caches it.

    Thread‑safe.  The first call to :meth:`load` reads the environment (and
    the optional ``env_file``); later calls return the same bundle.
    """

    def __init__(self, env_file: Union[str, Path, None] = None) -> None:
        self._env_file = env_file
        self._bundle: Optional[SecretBundle] = None
        self._lock = threading.Lock()

    # -- public ------------------------------------------------------------

    def load(self) -> SecretBundle:
        """Return the cached bundle, reading the environment on first use."""
        with self._lock:
            if self._bundle is None:
                self._bundle = self._read()
            return self._bundle

    # -- private -----------------------------------------------------------

    def _read(self) -> SecretBundle:
        bundle = SecretBundle(_env_file=self._env_file)

        logger.debug(
            "Secrets loaded (enable_ssl=%s, keystore=%s, truststore=%s, key_alias=%s)",
            bundle.enable_ssl,
            bundle.keystore,
            bundle.truststore,
            bundle.key_alias,
        )
        return bundle
