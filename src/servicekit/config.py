"""Environment-backed settings for servicekit.

All SERVICEKIT_* environment variables are parsed here into a typed
ServiceKitSettings object. This is the only place where env vars are read.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from servicekit.errors import ConfigError

SERVICEKIT_ENV_PREFIX = "SERVICEKIT_"

# Field name -> environment variable
ENV_VARS: dict[str, str] = {
    "base_url": "SERVICEKIT_BASE_URL",
    "timeout": "SERVICEKIT_TIMEOUT",
    "follow_redirects": "SERVICEKIT_FOLLOW_REDIRECTS",
    "max_workers": "SERVICEKIT_MAX_WORKERS",
    "log_level": "SERVICEKIT_LOG_LEVEL",
    "default_headers": "SERVICEKIT_DEFAULT_HEADERS",
}

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class ServiceKitSettings(BaseModel):
    """Settings for building a WebService and its HTTPX session."""

    base_url: str = Field(default="", description="SERVICEKIT_BASE_URL - Base URL for relative paths")
    timeout: float = Field(default=30.0, description="SERVICEKIT_TIMEOUT - Transport timeout in seconds")
    follow_redirects: bool = Field(
        default=True, description="SERVICEKIT_FOLLOW_REDIRECTS - Follow HTTP redirects"
    )
    max_workers: int = Field(
        default=4, ge=1, description="SERVICEKIT_MAX_WORKERS - Concurrent requests per session"
    )
    log_level: str = Field(default="INFO", description="SERVICEKIT_LOG_LEVEL - Logging level")
    default_headers: dict[str, str] = Field(
        default_factory=dict,
        description="SERVICEKIT_DEFAULT_HEADERS - JSON object of headers sent with every request",
    )

    @field_validator("default_headers", mode="before")
    @classmethod
    def parse_headers(cls, v: Any) -> dict[str, str]:
        """Parse JSON string into dict."""
        if isinstance(v, dict):
            return v
        if isinstance(v, str) and v:
            parsed = json.loads(v)
            if not isinstance(parsed, dict):
                raise ValueError("default headers must be a JSON object")
            return {str(k): str(val) for k, val in parsed.items()}
        return {}

    @field_validator("follow_redirects", mode="before")
    @classmethod
    def parse_bool(cls, v: Any) -> bool:
        """Parse common boolean spellings."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            lowered = v.strip().lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
        raise ValueError(f"not a boolean: {v!r}")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> str:
        return str(v).upper()

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> ServiceKitSettings:
        """Build from environment variables.

        Args:
            env: Environment variables mapping (typically os.environ).

        Returns:
            ServiceKitSettings with values parsed from SERVICEKIT_* variables.

        Raises:
            ConfigError: If a variable holds an invalid value.
        """
        values = {field: env[var] for field, var in ENV_VARS.items() if env.get(var)}
        try:
            return cls(**values)
        except ValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first["loc"] else ""
            raise ConfigError(
                f"Invalid configuration: {first['msg']}",
                variable=ENV_VARS.get(field),
            ) from e
