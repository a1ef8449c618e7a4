# tests/core/test_config.py
"""
Tests for the Config class: secrets, list-valued settings and validation.
"""

import os
from unittest.mock import patch

import pytest

from azexporter.core.config import Config, parse_interval


class TestGetSecret:
    """Tests for the Config._get_secret method."""

    def test_get_secret_from_env_var(self):
        with patch.dict(os.environ, {"TEST_SECRET": "env_value"}):
            assert Config._get_secret("TEST_SECRET") == "env_value"

    def test_get_secret_with_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert Config._get_secret("NONEXISTENT_SECRET", default="default_value") == "default_value"

    def test_get_secret_from_file(self):
        """The mounted secret file wins over the environment and is stripped."""
        with patch.dict(os.environ, {"TEST_SECRET": "env_value"}):
            with patch("azexporter.core.config.os.path.exists") as mock_exists:
                mock_exists.return_value = True
                with patch("builtins.open", create=True) as mock_open:
                    mock_open.return_value.__enter__.return_value.read.return_value = "file_value\n"
                    assert Config._get_secret("TEST_SECRET") == "file_value"

            mock_exists.assert_called_once_with("/etc/azexporter/secrets/TEST_SECRET")

    def test_get_secret_permission_error(self):
        with patch("azexporter.core.config.os.path.exists", return_value=True):
            with patch("builtins.open", side_effect=PermissionError("Permission denied")):
                with pytest.raises(PermissionError) as exc_info:
                    Config._get_secret("TEST_SECRET")

        assert "exists but cannot be read due to permission denied" in str(exc_info.value)

    def test_get_secret_io_error(self):
        with patch("azexporter.core.config.os.path.exists", return_value=True):
            with patch("builtins.open", side_effect=OSError("Disk error")):
                with pytest.raises(IOError) as exc_info:
                    Config._get_secret("TEST_SECRET")

        assert "exists but cannot be read" in str(exc_info.value)


def test_credentials_are_read_on_init():
    config = Config()

    assert config.AZURE_TENANT_ID == "tenant-1"
    assert config.AZURE_CLIENT_ID == "client-1"
    assert config.AZURE_CLIENT_SECRET == "secret-1"


def test_list_settings_are_split_and_trimmed(monkeypatch):
    monkeypatch.setenv("AZURE_SUBSCRIPTIONS", " sub-1 , sub-2,,")
    monkeypatch.setenv("AZURE_RESOURCE_TAGS", "owner,costCenter")
    monkeypatch.setenv("COLLECTORS", "resources, iam")
    config = Config()

    assert config.AZURE_SUBSCRIPTIONS == ["sub-1", "sub-2"]
    assert config.AZURE_RESOURCE_TAGS == ["owner", "costCenter"]
    assert config.COLLECTORS == ["resources", "iam"]


def test_list_settings_defaults():
    config = Config()

    assert config.AZURE_SUBSCRIPTIONS == []
    assert config.COLLECTORS == ["resources", "iam", "database", "graph_apps"]


@pytest.mark.parametrize(
    "value, expected",
    [
        ("30s", 30),
        ("5m", 300),
        ("1h", 3600),
        (" 2M ", 120),
    ],
)
def test_parse_interval(value, expected):
    assert parse_interval(value) == expected


@pytest.mark.parametrize("value", ["", "5", "5d", "m5", "-1m", None])
def test_parse_interval_rejects_invalid_values(value):
    with pytest.raises(ValueError):
        parse_interval(value)


def test_tick_timeout_seconds():
    config = Config()

    with patch.object(Config, "TICK_TIMEOUT", ""):
        assert config.TICK_TIMEOUT_SECONDS is None
    with patch.object(Config, "TICK_TIMEOUT", "2m"):
        assert config.TICK_TIMEOUT_SECONDS == 120


@pytest.mark.parametrize(
    "attribute, value",
    [
        ("SCRAPE_INTERVAL", "five minutes"),
        ("TICK_TIMEOUT", "10d"),
        ("SCOPE_CONCURRENCY", 0),
        ("SCOPE_FAILURE_POLICY", "best_effort"),
        ("TICK_FAILURE_POLICY", "retry"),
        ("PROVIDER_MAX_RETRIES", -1),
    ],
)
def test_validate_instance_rejects_invalid_settings(attribute, value):
    config = Config()

    with patch.object(Config, attribute, value):
        with pytest.raises(ValueError):
            config.validate_instance()


def test_validate_instance_accepts_defaults():
    Config().validate_instance()
