"""Typed exceptions for servicekit.

All errors raised by servicekit itself inherit from ServiceError.
These provide structured error information for logging and debugging.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base exception for all servicekit errors."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class HTTPError(ServiceError):
    """HTTP request failed at the transport level or with a bad status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
        method: str = "GET",
    ):
        context = {"status_code": status_code, "url": url, "method": method}
        super().__init__(message, context={k: v for k, v in context.items() if v is not None})
        self.status_code = status_code
        self.url = url
        self.method = method


class TimeoutError(ServiceError):
    """Request timed out in the transport."""

    def __init__(self, message: str, *, timeout_seconds: float | None = None):
        context = {"timeout_seconds": timeout_seconds} if timeout_seconds else {}
        super().__init__(message, context=context)
        self.timeout_seconds = timeout_seconds


class NoResultValueError(ServiceError):
    """A value was read from an empty result."""

    def __init__(self, message: str = "Result holds no value"):
        super().__init__(message)


class JSONSerializationError(ServiceError):
    """Response body could not be decoded as JSON because it was missing."""

    def __init__(self, message: str = "Cannot decode JSON from a missing response body"):
        super().__init__(message)


class BodyProviderError(ServiceError):
    """A request body provider broke its contract."""

    def __init__(self, message: str, *, provider: str | None = None):
        context = {"provider": provider} if provider else {}
        super().__init__(message, context=context)
        self.provider = provider


class RequestLockedError(ServiceError):
    """The request was reconfigured after its network handle was created."""

    def __init__(self, setting: str):
        super().__init__("Request can no longer be configured", context={"setting": setting})
        self.setting = setting


class ConfigError(ServiceError):
    """Configuration could not be parsed."""

    def __init__(self, message: str, *, variable: str | None = None):
        context = {"variable": variable} if variable else {}
        super().__init__(message, context=context)
        self.variable = variable
