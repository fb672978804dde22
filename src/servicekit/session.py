"""Network providers and the task handles they create.

A Session turns a finished Request into a DataTask handle. The handle sends
the request when resumed and invokes its completion callback exactly once
with ``(body, response, error)``; a cancelled handle never calls back.

HTTPXSession is the default provider, sending requests with httpx on a small
thread pool. AsyncDataTask stands in for the network handle while an async
body provider is still producing the request body.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Protocol

import httpx

from servicekit.errors import BodyProviderError, HTTPError, TimeoutError
from servicekit.request import Request

logger = logging.getLogger(__name__)

# Query parameters whose values are hidden in log output
SENSITIVE_PARAMS = frozenset({"token", "key", "api_key", "apikey", "secret", "password", "signature"})

# (body, response, error) -> None
Completion = Callable[[bytes | None, httpx.Response | None, BaseException | None], None]

# callback(data=..., error=...) -> None
BodyCallback = Callable[..., None]
AsyncBodyProvider = Callable[[BodyCallback], None]


class TaskState(str, Enum):
    """Lifecycle state of a network handle.

    IDLE and CANCELLED are only reported by a ServiceTask: IDLE before it has
    created a handle, CANCELLED (terminal) once it has been cancelled.
    """

    IDLE = "idle"
    RUNNING = "running"
    SUSPENDED = "suspended"
    CANCELING = "canceling"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DataTask(Protocol):
    """An in-flight network operation."""

    @property
    def state(self) -> TaskState: ...

    def resume(self) -> None: ...

    def suspend(self) -> None: ...

    def cancel(self) -> None: ...


class Session(Protocol):
    """Creates DataTask handles for finished requests."""

    def data_task(self, request: Request, completion: Completion) -> DataTask: ...


class HTTPXDataTask:
    """DataTask that sends one request through an httpx.Client.

    The request is submitted to the session's executor on the first resume.
    Suspending before the send starts withdraws the submission; a send that
    is already on the wire cannot be paused and completes normally. Every
    outcome other than cancel reaches the completion, including requests that
    httpx cannot build and sends dropped by HTTPXSession.close().
    """

    def __init__(self, session: HTTPXSession, request: Request, completion: Completion) -> None:
        self._session = session
        self._request = request
        self._completion = completion
        self._lock = threading.Lock()
        self._state = TaskState.SUSPENDED
        self._future: Future[None] | None = None

    @property
    def state(self) -> TaskState:
        return self._state

    def resume(self) -> None:
        with self._lock:
            if self._state in (TaskState.CANCELING, TaskState.COMPLETED):
                return
            self._state = TaskState.RUNNING
            if self._future is not None:
                return
            try:
                self._future = self._session.submit(self)
                return
            except RuntimeError as e:
                refused = e
        error = HTTPError("Session is closed", url=describe_url(self._request), method=self._request.method)
        error.__cause__ = refused
        self._finish(None, None, error)

    def suspend(self) -> None:
        with self._lock:
            if self._state is not TaskState.RUNNING:
                return
            self._state = TaskState.SUSPENDED
            if self._future is not None and self._future.cancel():
                self._future = None

    def cancel(self) -> None:
        with self._lock:
            if self._state is TaskState.COMPLETED:
                return
            self._state = TaskState.CANCELING
            if self._future is not None:
                self._future.cancel()

    def abandon(self) -> None:
        """Fail a send that its session dropped before it started."""
        with self._lock:
            future = self._future
            if self._state is not TaskState.RUNNING or future is None or not future.cancelled():
                return
        self._finish(
            None,
            None,
            HTTPError(
                "Session closed before the request was sent",
                url=describe_url(self._request),
                method=self._request.method,
            ),
        )

    def send(self) -> None:
        if self._state is TaskState.CANCELING:
            return

        method = self._request.method
        log_url = describe_url(self._request)
        logger.debug(f"HTTP {method} {log_url}")

        body: bytes | None = None
        response: httpx.Response | None = None
        error: BaseException | None = None
        try:
            response = self._session.send(self._request)
            body = response.content
        except httpx.TimeoutException as e:
            timeout = self._session.client.timeout.read
            error = TimeoutError(f"Request timed out: {method} {log_url}", timeout_seconds=timeout)
            error.__cause__ = e
        except httpx.RequestError as e:
            error = HTTPError(f"Request failed: {e}", url=log_url, method=method)
            error.__cause__ = e
        except Exception as e:
            # Building the request failed: invalid URL, header encoding, body encoding
            error = HTTPError(f"Request could not be sent: {e}", url=log_url, method=method)
            error.__cause__ = e

        if response is not None:
            elapsed_ms = round(response.elapsed.total_seconds() * 1000, 2)
            logger.debug(f"HTTP {method} {log_url} -> {response.status_code} in {elapsed_ms}ms")
        self._finish(body, response, error)

    def _finish(
        self,
        body: bytes | None,
        response: httpx.Response | None,
        error: BaseException | None,
    ) -> None:
        with self._lock:
            if self._state is TaskState.CANCELING:
                logger.debug(f"HTTP {self._request.method} finished after cancel; dropping result")
                return
            if self._state is TaskState.COMPLETED:
                return
            self._state = TaskState.COMPLETED
        self._completion(body, response, error)


class HTTPXSession:
    """Default network provider backed by httpx.

    Args:
        client: Client to send with. When omitted one is created and owned.
        timeout: Timeout for an owned client, in seconds.
        follow_redirects: Redirect handling for an owned client.
        max_workers: Number of requests that may be on the wire at once.
        headers: Default headers for an owned client.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        timeout: float = 30.0,
        follow_redirects: bool = True,
        max_workers: int = 4,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=follow_redirects,
            headers=headers,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="servicekit-net",
        )
        self._lock = threading.Lock()
        self._submitted: set[HTTPXDataTask] = set()

    def data_task(self, request: Request, completion: Completion) -> HTTPXDataTask:
        return HTTPXDataTask(self, request, completion)

    def submit(self, task: HTTPXDataTask) -> Future[None]:
        """Queue ``task`` for sending.

        Raises:
            RuntimeError: If the session has been closed.
        """
        with self._lock:
            self._submitted.add(task)
        try:
            future = self._executor.submit(task.send)
        except RuntimeError:
            self._forget(task)
            raise
        future.add_done_callback(lambda _: self._forget(task))
        return future

    def _forget(self, task: HTTPXDataTask) -> None:
        with self._lock:
            self._submitted.discard(task)

    def send(self, request: Request) -> httpx.Response:
        return self.client.send(request.to_httpx(self.client))

    def close(self) -> None:
        """Stop accepting sends and close an owned client.

        Sends that were queued but not started complete with an HTTPError.
        """
        with self._lock:
            submitted = list(self._submitted)
        self._executor.shutdown(wait=False, cancel_futures=True)
        for task in submitted:
            task.abandon()
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> HTTPXSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class AsyncDataTask:
    """Handle for a task whose request body is still being produced.

    Resuming invokes the provider once with a callback. The callback accepts
    ``data=`` or ``error=`` and may be called from any thread; the first call
    is forwarded to ``on_body``, later calls are ignored. After cancel() the
    provider's outcome is dropped.
    """

    def __init__(
        self,
        provider: AsyncBodyProvider,
        on_body: Callable[[bytes | None, BaseException | None], None],
    ) -> None:
        self._provider = provider
        self._on_body = on_body
        self._lock = threading.Lock()
        self._state = TaskState.SUSPENDED
        self._started = False
        self._delivered = False

    @property
    def state(self) -> TaskState:
        return self._state

    def resume(self) -> None:
        with self._lock:
            if self._state in (TaskState.CANCELING, TaskState.COMPLETED):
                return
            self._state = TaskState.RUNNING
            if self._started:
                return
            self._started = True
        self._provider(self._deliver)

    def suspend(self) -> None:
        with self._lock:
            if self._state is TaskState.RUNNING:
                self._state = TaskState.SUSPENDED

    def cancel(self) -> None:
        with self._lock:
            if self._state is not TaskState.COMPLETED:
                self._state = TaskState.CANCELING

    def _deliver(self, data: bytes | None = None, error: BaseException | None = None) -> None:
        with self._lock:
            if self._delivered:
                logger.warning("Body provider called back more than once; ignoring")
                return
            self._delivered = True
            if self._state is TaskState.CANCELING:
                logger.debug("Body provider finished after cancel; dropping result")
                return
            self._state = TaskState.COMPLETED

        if error is None and data is None:
            error = BodyProviderError("Body provider finished without data or error")
        self._on_body(data, error)


def redact_url(url: str) -> str:
    """Redact sensitive query parameter values for logging.

    A URL httpx cannot parse is returned without its query.
    """
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return url.split("?", 1)[0]
    if not parsed.query:
        return url
    query = "&".join(
        f"{key}=***" if key.lower() in SENSITIVE_PARAMS else f"{key}={value}"
        for key, value in parsed.params.multi_items()
    )
    return f"{url.split('?', 1)[0]}?{query}"


def describe_url(request: Request) -> str:
    """Redacted URL of ``request`` for log and error messages. Never raises."""
    try:
        return redact_url(request.url_value)
    except Exception:
        return redact_url(request.url)
