"""Request descriptor mutated by the ServiceTask configuration setters.

The descriptor stays a plain mutable dataclass until the task creates its
network handle; from then on the task treats it as frozen.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from collections.abc import Callable
from enum import Enum
from typing import Any
from urllib.parse import urlencode

import httpx

# Methods whose percent-encoded parameters belong in the URL query
QUERY_METHODS = frozenset({"GET", "HEAD", "DELETE"})

# Turns query parameters into an already-encoded query string
QueryEncoder = Callable[[dict[str, Any]], str]


class ContentType:
    """Common Content-Type header values."""

    JSON = "application/json"
    FORM_ENCODED = "application/x-www-form-urlencoded"


class ParameterEncoding(str, Enum):
    """How ``Request.parameters`` are encoded."""

    PERCENT = "percent"
    JSON = "json"


class CachePolicy(str, Enum):
    """Cache behaviour requested from the transport."""

    USE_PROTOCOL_CACHE_POLICY = "use_protocol_cache_policy"
    RELOAD_IGNORING_LOCAL_CACHE = "reload_ignoring_local_cache"
    RETURN_CACHE_DATA_ELSE_LOAD = "return_cache_data_else_load"
    RETURN_CACHE_DATA_DONT_LOAD = "return_cache_data_dont_load"


_CACHE_CONTROL = {
    CachePolicy.RELOAD_IGNORING_LOCAL_CACHE: "no-cache",
    CachePolicy.RETURN_CACHE_DATA_ELSE_LOAD: "max-stale",
    CachePolicy.RETURN_CACHE_DATA_DONT_LOAD: "only-if-cached",
}


@dataclass
class Request:
    """A finished description of an HTTP request.

    Attributes:
        method: HTTP method (GET, POST, ...).
        url: Absolute URL without the encoded parameters.
        headers: Request headers.
        parameters: Parameters encoded per ``parameter_encoding``.
        parameter_encoding: PERCENT puts parameters in the query for GET, HEAD
            and DELETE and in a form body otherwise; JSON always sends a body.
        query_parameters: Parameters always encoded into the URL query.
        query_encoder: Builds the query string instead of httpx when set.
        form_parameters: Parameters encoded as a form body.
        form_safe_characters: Characters left unescaped in the form body.
        body: Explicit body; takes precedence over encoded parameters.
        content_type: Content-Type header for the body.
        cache_policy: Cache behaviour, sent as a Cache-Control header.
        should_handle_cookies: Whether the transport's cookie jar applies.
    """

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    parameters: dict[str, Any] = field(default_factory=dict)
    parameter_encoding: ParameterEncoding = ParameterEncoding.PERCENT
    query_parameters: dict[str, Any] = field(default_factory=dict)
    query_encoder: QueryEncoder | None = None
    form_parameters: dict[str, Any] = field(default_factory=dict)
    form_safe_characters: str = ""
    body: bytes | None = None
    content_type: str | None = None
    cache_policy: CachePolicy = CachePolicy.USE_PROTOCOL_CACHE_POLICY
    should_handle_cookies: bool = True

    def __post_init__(self) -> None:
        self.method = self.method.upper()

    @property
    def url_value(self) -> str:
        """Final URL with query parameters encoded."""
        params = dict(self.query_parameters)
        if (
            self.parameters
            and self.parameter_encoding is ParameterEncoding.PERCENT
            and self.method in QUERY_METHODS
        ):
            params.update(self.parameters)

        url = httpx.URL(self.url)
        if not params:
            return str(url)
        if self.query_encoder is None:
            return str(url.copy_merge_params(params))
        separator = "&" if url.query else "?"
        return f"{url}{separator}{self.query_encoder(params)}"

    @property
    def body_value(self) -> bytes | None:
        """Encoded body, or None for a body-less request."""
        if self.body is not None:
            return self.body
        if self.form_parameters:
            return urlencode(
                self.form_parameters, doseq=True, safe=self.form_safe_characters
            ).encode("utf-8")
        if self.parameters:
            if self.parameter_encoding is ParameterEncoding.JSON:
                return json.dumps(self.parameters).encode("utf-8")
            if self.method not in QUERY_METHODS:
                return urlencode(self.parameters, doseq=True).encode("utf-8")
        return None

    @property
    def header_values(self) -> dict[str, str]:
        """Headers including derived Content-Type and Cache-Control."""
        headers = dict(self.headers)
        content_type = self._derived_content_type()
        if content_type and not _has_header(headers, "content-type"):
            headers["Content-Type"] = content_type
        cache_control = _CACHE_CONTROL.get(self.cache_policy)
        if cache_control and not _has_header(headers, "cache-control"):
            headers["Cache-Control"] = cache_control
        return headers

    def _derived_content_type(self) -> str | None:
        if self.content_type:
            return self.content_type
        if self.body is not None:
            return None
        if self.form_parameters:
            return ContentType.FORM_ENCODED
        if self.parameters:
            if self.parameter_encoding is ParameterEncoding.JSON:
                return ContentType.JSON
            if self.method not in QUERY_METHODS:
                return ContentType.FORM_ENCODED
        return None

    def to_httpx(self, client: httpx.Client | None = None) -> httpx.Request:
        """Build an httpx.Request.

        Args:
            client: When given and cookies are handled, the client's defaults
                (base headers, cookie jar) are merged in via build_request.

        Returns:
            The request ready to send.
        """
        if client is not None and self.should_handle_cookies:
            return client.build_request(
                self.method,
                self.url_value,
                headers=self.header_values,
                content=self.body_value,
            )
        return httpx.Request(
            self.method,
            self.url_value,
            headers=self.header_values,
            content=self.body_value,
        )


def _has_header(headers: dict[str, str], name: str) -> bool:
    return any(key.lower() == name for key in headers)
