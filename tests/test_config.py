"""Tests for :mod:`tunefind.config`."""

from __future__ import annotations

import pytest

from tunefind.config import RECOGNITION_URL, SPOTIFY_SEARCH_URL, load_settings
from tunefind.errors import ConfigurationError

_VARS = (
    "RAPID_API_KEY",
    "SPOTIFY_CLIENT_ID",
    "SPOTIFY_CLIENT_SECRET",
    "TUNEFIND_HTTP_TIMEOUT",
    "TUNEFIND_AUTO_START",
    "TUNEFIND_CORS_ORIGINS",
    "TUNEFIND_STATS_DB",
    "TUNEFIND_LOG_LEVEL",
    "RAPID_API_HOST",
    "RECOGNITION_URL",
    "SPOTIFY_SEARCH_URL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment() -> None:
    settings = load_settings()

    assert settings.rapid_api_key is None
    assert settings.recognition_url == RECOGNITION_URL
    assert settings.spotify_search_url == SPOTIFY_SEARCH_URL
    assert settings.http_timeout == 30.0
    assert settings.auto_start is True
    assert settings.cors_origins == ["*"]


def test_values_are_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAPID_API_KEY", "  rapid  ")
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "cid")
    monkeypatch.setenv("SPOTIFY_CLIENT_SECRET", "secret")
    monkeypatch.setenv("TUNEFIND_HTTP_TIMEOUT", "12.5")
    monkeypatch.setenv("TUNEFIND_AUTO_START", "false")
    monkeypatch.setenv("TUNEFIND_CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("TUNEFIND_STATS_DB", "/data/stats.sqlite3")

    settings = load_settings()

    assert settings.require_rapid_api_key() == "rapid"
    assert settings.require_spotify_credentials() == ("cid", "secret")
    assert settings.http_timeout == 12.5
    assert settings.auto_start is False
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
    assert settings.stats_db_path == "/data/stats.sqlite3"


@pytest.mark.parametrize("raw", ["soon", "0", "-3"])
def test_invalid_timeout_falls_back_to_default(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("TUNEFIND_HTTP_TIMEOUT", raw)

    assert load_settings().http_timeout == 30.0


def test_missing_credentials_raise_configuration_error() -> None:
    settings = load_settings()

    with pytest.raises(ConfigurationError, match="RAPID_API_KEY is not configured"):
        settings.require_rapid_api_key()
    with pytest.raises(ConfigurationError, match="SPOTIFY_CLIENT_ID is not configured"):
        settings.require_spotify_credentials()


def test_missing_secret_is_named(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "cid")

    with pytest.raises(ConfigurationError, match="SPOTIFY_CLIENT_SECRET"):
        load_settings().require_spotify_credentials()


@pytest.mark.parametrize("raw,expected", [("debug", "DEBUG"), ("chatty", "INFO")])
def test_log_level(monkeypatch: pytest.MonkeyPatch, raw: str, expected: str) -> None:
    monkeypatch.setenv("TUNEFIND_LOG_LEVEL", raw)

    assert load_settings().log_level == expected
