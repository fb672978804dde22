"""Tests for environment-backed settings."""

from __future__ import annotations

import pytest

from servicekit.config import ENV_VARS, ServiceKitSettings
from servicekit.errors import ConfigError


class TestServiceKitSettings:
    """Tests for ServiceKitSettings.from_env."""

    def test_from_env_parses_all_fields(self) -> None:
        env = {
            "SERVICEKIT_BASE_URL": "https://api.example.com",
            "SERVICEKIT_TIMEOUT": "12.5",
            "SERVICEKIT_FOLLOW_REDIRECTS": "no",
            "SERVICEKIT_MAX_WORKERS": "8",
            "SERVICEKIT_LOG_LEVEL": "debug",
            "SERVICEKIT_DEFAULT_HEADERS": '{"Accept": "application/json"}',
        }

        settings = ServiceKitSettings.from_env(env)

        assert settings.base_url == "https://api.example.com"
        assert settings.timeout == 12.5
        assert settings.follow_redirects is False
        assert settings.max_workers == 8
        assert settings.log_level == "DEBUG"
        assert settings.default_headers == {"Accept": "application/json"}

    def test_from_env_handles_missing_fields(self) -> None:
        settings = ServiceKitSettings.from_env({})

        assert settings.base_url == ""
        assert settings.timeout == 30.0
        assert settings.follow_redirects is True
        assert settings.max_workers == 4
        assert settings.log_level == "INFO"
        assert settings.default_headers == {}

    def test_empty_values_use_defaults(self) -> None:
        settings = ServiceKitSettings.from_env({"SERVICEKIT_TIMEOUT": ""})

        assert settings.timeout == 30.0

    def test_ignores_unrelated_variables(self) -> None:
        settings = ServiceKitSettings.from_env({"HOME": "/root", "TIMEOUT": "1"})

        assert settings.timeout == 30.0

    @pytest.mark.parametrize(
        ("variable", "value"),
        [
            ("SERVICEKIT_TIMEOUT", "soon"),
            ("SERVICEKIT_MAX_WORKERS", "0"),
            ("SERVICEKIT_FOLLOW_REDIRECTS", "maybe"),
            ("SERVICEKIT_DEFAULT_HEADERS", "[1, 2]"),
        ],
    )
    def test_invalid_value_raises_config_error(self, variable: str, value: str) -> None:
        with pytest.raises(ConfigError) as exc_info:
            ServiceKitSettings.from_env({variable: value})

        assert exc_info.value.variable == variable

    def test_env_vars_cover_every_field(self) -> None:
        assert set(ENV_VARS) == set(ServiceKitSettings.model_fields)
