"""Cross-cutting observer for service tasks.

A PassthroughDelegate sees raw request and response events from every task it
is attached to. Subclass it and override the hooks you need; the defaults do
nothing. Tasks hold the delegate through a weak reference, so its lifetime is
managed by whoever created it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from servicekit.errors import HTTPError
from servicekit.session import describe_url, redact_url

if TYPE_CHECKING:
    from servicekit.metrics import ServiceTaskMetrics
    from servicekit.request import Request

logger = logging.getLogger(__name__)


class PassthroughDelegate:
    """No-op base class for task observers."""

    def modified_request(self, request: Request) -> Request:
        """Return the request to send. Called just before the handle is created."""
        return request

    def request_sent(self, request: Request) -> None:
        """Called just before the network handle for ``request`` is first resumed."""

    def response_received(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        request: Request,
        error: BaseException | None,
    ) -> None:
        """Called when the network completion arrives, before validation."""

    def validate_response(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        error: BaseException | None,
    ) -> None:
        """Raise to turn the task's result into a failure."""

    def service_result_failure(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        request: Request,
        error: BaseException,
    ) -> None:
        """Called once when the network layer reports an error."""

    def update_ui_begin(self, response: httpx.Response | None) -> None:
        """Called on the UI dispatcher before an update_ui handler runs."""

    def update_ui_end(self, response: httpx.Response | None) -> None:
        """Called on the UI dispatcher after an update_ui handler returns."""

    def did_finish_collecting_task_metrics(
        self,
        metrics: ServiceTaskMetrics,
        request: Request,
        response: httpx.Response | None,
        data: bytes | None,
        error: BaseException | None,
    ) -> None:
        """Called once the task's metrics have been collected."""


class LoggingPassthroughDelegate(PassthroughDelegate):
    """Delegate that logs task events.

    Args:
        raise_for_status: Fail responses with a non-2xx status code.
        log: Logger to write to (defaults to this module's logger).
    """

    def __init__(self, *, raise_for_status: bool = False, log: logging.Logger | None = None):
        self.raise_for_status = raise_for_status
        self.log = log or logger

    def request_sent(self, request: Request) -> None:
        self.log.info(f"Sent {request.method} {describe_url(request)}")

    def response_received(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        request: Request,
        error: BaseException | None,
    ) -> None:
        status = response.status_code if response is not None else "no response"
        size = len(data) if data is not None else 0
        self.log.info(
            f"Received {request.method} {describe_url(request)} -> {status} ({size} bytes)"
        )

    def validate_response(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        error: BaseException | None,
    ) -> None:
        if not self.raise_for_status or response is None:
            return
        if response.is_success:
            return
        if _has_request(response):
            raise HTTPError(
                f"Unexpected status {response.status_code}",
                status_code=response.status_code,
                url=redact_url(str(response.request.url)),
                method=response.request.method,
            )
        raise HTTPError(f"Unexpected status {response.status_code}", status_code=response.status_code)

    def service_result_failure(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        request: Request,
        error: BaseException,
    ) -> None:
        self.log.warning(f"{request.method} {describe_url(request)} failed: {error}")

    def did_finish_collecting_task_metrics(
        self,
        metrics: ServiceTaskMetrics,
        request: Request,
        response: httpx.Response | None,
        data: bytes | None,
        error: BaseException | None,
    ) -> None:
        self.log.debug(f"Metrics for {request.method} {describe_url(request)}: {metrics.to_dict()}")


def _has_request(response: httpx.Response) -> bool:
    # httpx raises when .request is read on a response built without one
    try:
        response.request
    except RuntimeError:
        return False
    return True
