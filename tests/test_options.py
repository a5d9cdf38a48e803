"""Tests for cqlbridge.options - option precedence and typed settings."""

from __future__ import annotations

import logging

import pytest

from cqlbridge.options import (
    DEFAULT_CONSISTENCY_LEVEL,
    ConsistencyLevel,
    parse_bool,
    parse_consistency_level,
    property_info,
    resolve_settings,
)
from cqlbridge.secrets import SecretBundle
from cqlbridge.uri import PREFIX, parse_uri


@pytest.fixture
def secrets() -> SecretBundle:
    return SecretBundle()


def test_last_uri_value_wins(secrets: SecretBundle) -> None:
    parsed = parse_uri(PREFIX + "h1/ks?consistencyLevel=one&consistencyLevel=two")

    settings = resolve_settings(None, parsed, secrets)

    assert settings.consistency_level is ConsistencyLevel.TWO


def test_properties_take_precedence_over_uri(secrets: SecretBundle) -> None:
    parsed = parse_uri(PREFIX + "h1/ks?user=Y&password=uri-pw")

    settings = resolve_settings({"user": "X"}, parsed, secrets)

    assert settings.username == "X"
    assert settings.password == "uri-pw"


def test_property_keys_are_case_insensitive(secrets: SecretBundle) -> None:
    parsed = parse_uri(PREFIX + "h1/ks?consistencyLevel=one")

    settings = resolve_settings({"ConsistencyLevel": "quorum", "SSLEnabled": "true"}, parsed, secrets)

    assert settings.consistency_level is ConsistencyLevel.QUORUM
    assert settings.ssl_enabled is True


def test_none_property_values_fall_through_to_uri(secrets: SecretBundle) -> None:
    parsed = parse_uri(PREFIX + "h1/ks?user=Y")

    settings = resolve_settings({"user": None}, parsed, secrets)

    assert settings.username == "Y"


def test_defaults_when_nothing_is_given(secrets: SecretBundle) -> None:
    settings = resolve_settings(None, parse_uri(PREFIX + "h1"), secrets)

    assert settings.username is None
    assert settings.password is None
    assert settings.ssl_enabled is False
    assert settings.verify_server_cert is True
    assert settings.consistency_level is DEFAULT_CONSISTENCY_LEVEL
    assert settings.namespace.keyspace is None


def test_invalid_consistency_level_falls_back_silently(
    secrets: SecretBundle, caplog: pytest.LogCaptureFixture
) -> None:
    parsed = parse_uri(PREFIX + "h1/ks?consistencyLevel=most")

    with caplog.at_level(logging.DEBUG, logger="cqlbridge.options"):
        settings = resolve_settings(None, parsed, secrets)

    assert settings.consistency_level is DEFAULT_CONSISTENCY_LEVEL
    assert "Unknown consistency level" in caplog.text


def test_ssl_default_comes_from_secrets() -> None:
    parsed = parse_uri(PREFIX + "h1/ks")

    assert resolve_settings(None, parsed, SecretBundle(enable_ssl=True)).ssl_enabled is True
    assert resolve_settings(None, parsed, SecretBundle(enable_ssl=False)).ssl_enabled is False


def test_ssl_option_overrides_secrets() -> None:
    parsed = parse_uri(PREFIX + "h1/ks?sslenabled=false")

    settings = resolve_settings(None, parsed, SecretBundle(enable_ssl=True))

    assert settings.ssl_enabled is False


def test_verify_server_certificate_option(secrets: SecretBundle) -> None:
    parsed = parse_uri(PREFIX + "h1/ks?verifyServerCertificate=false")

    assert resolve_settings(None, parsed, secrets).verify_server_cert is False


def test_settings_carry_hosts_and_namespace(secrets: SecretBundle) -> None:
    parsed = parse_uri(PREFIX + "h1,h2:9142/shop.orders")

    settings = resolve_settings(None, parsed, secrets)

    assert settings.hosts == parsed.hosts
    assert settings.namespace.keyspace == "shop"
    assert settings.namespace.collection == "orders"


def test_repr_hides_password(secrets: SecretBundle) -> None:
    settings = resolve_settings({"user": "app", "password": "s3cret"}, parse_uri(PREFIX + "h1"), secrets)

    assert "s3cret" not in repr(settings)
    assert "app" in repr(settings)


@pytest.mark.parametrize("value", ["true", "TRUE", " True ", "yes", "on", "1"])
def test_parse_bool_truthy(value: str) -> None:
    assert parse_bool(value) is True


@pytest.mark.parametrize("value", [None, "", "false", "0", "no", "enabled"])
def test_parse_bool_falsy(value) -> None:
    assert parse_bool(value) is False


def test_parse_consistency_level() -> None:
    assert parse_consistency_level("local_quorum") is ConsistencyLevel.LOCAL_QUORUM
    assert parse_consistency_level(" Each_Quorum ") is ConsistencyLevel.EACH_QUORUM
    assert parse_consistency_level("bogus") is None
    assert parse_consistency_level(None) is None


def test_consistency_levels_use_protocol_codes() -> None:
    assert int(ConsistencyLevel.ONE) == 1
    assert int(ConsistencyLevel.LOCAL_ONE) == 10


def test_property_info_lists_recognised_options() -> None:
    names = [info.name for info in property_info()]

    assert names == ["user", "password", "sslenabled", "verifyservercertificate", "consistencylevel"]
    level = property_info()[-1]
    assert level.default == "LOCAL_ONE"
    assert "QUORUM" in level.choices


def test_ssl_property_info_documents_the_override() -> None:
    ssl_info = next(info for info in property_info() if info.name == "sslenabled")

    assert "overrides" in ssl_info.description
    assert "CASS_CLIENT_ENABLE_SSL" in ssl_info.description
