"""
Tests for settings normalisation.
"""

import pytest
from pydantic import ValidationError

from sqrlauth.config import Settings


def test_defaults() -> None:
    s = Settings(_env_file=None)
    assert s.SQRL_VERSION == "1"
    assert s.NUT_EXPIRATION_SECONDS == 600
    assert s.SQRL_BASE_URI == "/sqrl"
    assert s.NUT_KEY_B64 is None


def test_base_uri_normalisation() -> None:
    assert Settings(_env_file=None, SQRL_BASE_URI="sqrl/").SQRL_BASE_URI == "/sqrl"
    assert Settings(_env_file=None, SQRL_BASE_URI="/sqrl?x=1").SQRL_BASE_URI == "/sqrl"
    assert Settings(_env_file=None, SQRL_BASE_URI="https://example.com/sqrl/").SQRL_BASE_URI == "https://example.com/sqrl"


def test_origin_normalisation() -> None:
    s = Settings(_env_file=None, ORIGIN=" https://Example.COM:8443/path/ ")
    assert s.ORIGIN == "https://example.com:8443"
    with pytest.raises(ValidationError):
        Settings(_env_file=None, ORIGIN="ftp://example.com")


def test_sqrl_scheme_base() -> None:
    assert Settings(_env_file=None, ORIGIN="https://example.com").sqrl_scheme_base == "sqrl://example.com/sqrl"
    assert Settings(_env_file=None, ORIGIN="http://127.0.0.1:8080").sqrl_scheme_base == "qrl://127.0.0.1:8080/sqrl"


def test_rejects_bad_values() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, NUT_EXPIRATION_SECONDS=-1)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, SQRL_VERSION="  ")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, LOG_LEVEL="chatty")


def test_blank_nut_key_means_none() -> None:
    assert Settings(_env_file=None, NUT_KEY_B64="  ").NUT_KEY_B64 is None


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("SQRL_VERSION", "2")
    monkeypatch.setenv("NUT_EXPIRATION_SECONDS", "30")
    s = Settings(_env_file=None)
    assert s.SQRL_VERSION == "2"
    assert s.NUT_EXPIRATION_SECONDS == 30


def test_session_ttl_must_cover_nut_window() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, NUT_EXPIRATION_SECONDS=600, SESSION_TTL_SECONDS=300)
    s = Settings(_env_file=None, NUT_EXPIRATION_SECONDS=600, SESSION_TTL_SECONDS=600)
    assert s.SESSION_TTL_SECONDS == 600
