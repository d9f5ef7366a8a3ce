"""Unit tests for config.py — AppConfig and load_config()."""

import os
from dataclasses import FrozenInstanceError
from unittest.mock import patch

import pytest

from remote_files.config import AppConfig, load_config

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Minimal set of required environment variables for load_config()
_REQUIRED_ENV = {
    "RF_BASE_URL": "http://nas.local:8080",
}


# ---------------------------------------------------------------------------
# AppConfig tests
# ---------------------------------------------------------------------------


class TestAppConfig:
    def test_defaults_applied(self) -> None:
        config = AppConfig(base_url="http://nas.local:8080")
        assert config.container == ""
        assert config.timeout_seconds == 30.0
        assert config.session_cookie == "session"
        assert config.download_chunk_bytes == 65536

    def test_is_frozen(self) -> None:
        config = AppConfig(base_url="http://nas.local:8080")
        with pytest.raises(FrozenInstanceError):
            config.base_url = "http://elsewhere"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# load_config tests
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_reads_base_url_from_env(self) -> None:
        with patch.dict(os.environ, _REQUIRED_ENV, clear=True):
            config = load_config()
        assert config.base_url == "http://nas.local:8080"
        assert config.container == ""

    def test_reads_optional_overrides(self) -> None:
        env = {
            **_REQUIRED_ENV,
            "RF_CONTAINER": "research",
            "RF_TIMEOUT_SECONDS": "12.5",
            "RF_SESSION_COOKIE": "sid",
            "RF_DOWNLOAD_CHUNK_BYTES": "1024",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_config()
        assert config.container == "research"
        assert config.timeout_seconds == 12.5
        assert config.session_cookie == "sid"
        assert config.download_chunk_bytes == 1024

    def test_raises_key_error_when_base_url_missing(self) -> None:
        with patch.dict(os.environ, {}, clear=True), pytest.raises(KeyError):
            load_config()

    def test_invalid_timeout_raises_value_error(self) -> None:
        env = {**_REQUIRED_ENV, "RF_TIMEOUT_SECONDS": "soon"}
        with patch.dict(os.environ, env, clear=True), pytest.raises(ValueError):
            load_config()
