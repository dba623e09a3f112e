"""Tests for configuration loading."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from elastic_operator.config import (
    DEFAULT_DEPLOY_TIMEOUT_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    Config,
    ConfigurationError,
)


class TestConfig:
    """Tests for Config class."""

    def test_valid_config(self) -> None:
        """Test creating a valid configuration with defaults."""
        config = Config(api_url="https://control-plane.example.com")

        assert config.deploy_timeout_seconds == DEFAULT_DEPLOY_TIMEOUT_SECONDS
        assert config.poll_interval_seconds == DEFAULT_POLL_INTERVAL_SECONDS
        assert config.spec_file == Path("/specs/cluster.yaml")
        assert config.dry_run is False

    def test_missing_api_url(self) -> None:
        """Test that a missing control plane URL raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(api_url="")

        assert "CONTROL_PLANE_URL" in str(exc_info.value)

    def test_invalid_api_url(self) -> None:
        """Test that a non-HTTP control plane URL is rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(api_url="ftp://nope")

        assert "http(s)" in str(exc_info.value)

    def test_interval_out_of_range(self) -> None:
        """Test that reconcile interval bounds are enforced."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(api_url="https://cp.example.com", reconcile_interval_seconds=5)

        assert "RECONCILE_INTERVAL" in str(exc_info.value)

    def test_collects_all_errors(self) -> None:
        """Test that every violated bound is reported at once."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(
                api_url="https://cp.example.com",
                deploy_timeout_seconds=0,
                poll_interval_seconds=0.0,
            )

        message = str(exc_info.value)
        assert "DEPLOY_TIMEOUT" in message
        assert "POLL_INTERVAL" in message

    def test_token_not_in_repr(self) -> None:
        """Test that the API token is hidden from repr."""
        config = Config(api_url="https://cp.example.com", api_token="s3cr3t")
        assert "s3cr3t" not in repr(config)


class TestConfigFromEnv:
    """Tests for Config.from_env."""

    def test_from_env(self) -> None:
        """Test loading every setting from environment variables."""
        env = {
            "CONTROL_PLANE_URL": "https://cp.example.com",
            "CONTROL_PLANE_TOKEN": "token",
            "SPEC_FILE": "/tmp/cluster.yaml",
            "DEPLOY_TIMEOUT": "600",
            "POLL_INTERVAL": "2.5",
            "DRY_RUN": "true",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.api_url == "https://cp.example.com"
        assert config.api_token == "token"
        assert config.spec_file == Path("/tmp/cluster.yaml")
        assert config.deploy_timeout_seconds == 600
        assert config.poll_interval_seconds == 2.5
        assert config.dry_run is True

    def test_from_env_invalid_integer(self) -> None:
        """Test that a non-integer environment value is reported."""
        env = {"CONTROL_PLANE_URL": "https://cp.example.com", "WAIT_TIMEOUT": "soon"}
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                Config.from_env()

        assert "WAIT_TIMEOUT" in str(exc_info.value)

    def test_from_env_missing_url(self) -> None:
        """Test that a missing control plane URL fails from_env."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError):
                Config.from_env()
