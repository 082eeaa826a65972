"""Tests for configuration module."""

import json
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from chartdev.config import Settings, get_settings, print_settings_json


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Defaults should reproduce the plain build-install-watch behaviour."""
        settings = Settings()

        assert settings.chart_dir == "helm"
        assert settings.chart_file == "Chart.yaml"
        assert settings.manifest_file == "images.yaml"
        assert settings.container_tool == "docker"
        assert settings.helm_binary == "helm"
        assert settings.max_concurrent_builds == 1
        assert settings.debounce_seconds == 0.0
        assert settings.build_timeout is None
        assert settings.release_timeout is None
        assert settings.skip_invalid_entries is False

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "CHARTDEV_CONTAINER_TOOL": "podman",
                "CHARTDEV_LOG_LEVEL": "DEBUG",
                "CHARTDEV_MAX_CONCURRENT_BUILDS": "4",
                "CHARTDEV_DEBOUNCE_SECONDS": "0.25",
                "CHARTDEV_BUILD_TIMEOUT": "600",
            },
        ):
            settings = Settings()
            assert settings.container_tool == "podman"
            assert settings.log_level == "DEBUG"
            assert settings.max_concurrent_builds == 4
            assert settings.debounce_seconds == 0.25
            assert settings.build_timeout == 600

    def test_invalid_concurrency(self) -> None:
        """Concurrency below one should be rejected."""
        with pytest.raises(ValidationError):
            Settings(max_concurrent_builds=0)


class TestGetSettings:
    """Test get_settings function."""

    def test_get_settings_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        assert isinstance(get_settings(), Settings)


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_print_settings_json(self) -> None:
        """print_settings_json should return valid JSON."""
        parsed = json.loads(print_settings_json(Settings()))
        assert "chart_dir" in parsed
        assert "container_tool" in parsed
        assert "debounce_seconds" in parsed

    def test_print_settings_json_default(self) -> None:
        """print_settings_json without args should use default settings."""
        parsed = json.loads(print_settings_json())
        assert "manifest_file" in parsed
