"""ServiceTask - chainable wrapper around a network data task.

A ServiceTask owns a request, the network handle that sends it, and a
suspended HandlerPipeline of response-processing stages. Every configuration
setter and every stage-registration method returns the task itself:

    task = (
        service.get("/zip/15217")
        .response_json(lambda json, response: Location.parse(json))
        .update_ui(lambda location: view.show(location))
        .response_error(lambda error: view.show_error(error))
        .resume()
    )

When the network completion arrives the task records the response, turns a
transport or validation error into a failed result, and releases the
pipeline. Stages then run one at a time in registration order, each reading
and possibly replacing the shared ServiceTaskResult:

- response, response_json and transform skip their work once the result is a
  failure
- update_ui runs only for a value result, on the UI dispatcher
- response_error and update_error_ui observe a failure without changing it
- recover is the only stage that can turn a failure back into a value
"""

from __future__ import annotations

import json
import logging
import threading
import weakref
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any

import httpx

from servicekit.delegate import PassthroughDelegate
from servicekit.dispatch import Dispatcher, main_dispatcher
from servicekit.errors import JSONSerializationError, RequestLockedError
from servicekit.metrics import ServiceTaskMetrics
from servicekit.pipeline import HandlerPipeline
from servicekit.request import CachePolicy, ContentType, ParameterEncoding, QueryEncoder, Request
from servicekit.result import ServiceTaskResult, as_result
from servicekit.session import (
    AsyncBodyProvider,
    AsyncDataTask,
    BodyCallback,
    DataTask,
    Session,
    TaskState,
    describe_url,
)

logger = logging.getLogger(__name__)

# Handlers may return a ServiceTaskResult or a plain value (see as_result)
ResponseProcessingHandler = Callable[[bytes | None, httpx.Response | None], Any]
JSONHandler = Callable[[Any, httpx.Response | None], Any]
ResultTransformer = Callable[[Any], Any]
UpdateUIHandler = Callable[[Any], None]
ErrorHandler = Callable[[BaseException], None]
ErrorRecoveryHandler = Callable[[BaseException], Any]
MetricsHandler = Callable[[ServiceTaskMetrics, httpx.Response | None], None]
RequestBodyFactory = Callable[[], bytes]

_UNSET: Any = object()

_body_executor: ThreadPoolExecutor | None = None
_body_executor_lock = threading.Lock()


def _background_executor() -> ThreadPoolExecutor:
    global _body_executor
    with _body_executor_lock:
        if _body_executor is None:
            _body_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="servicekit-body")
        return _body_executor


def asyncify(
    factory: RequestBodyFactory,
    executor: ThreadPoolExecutor | None = None,
) -> AsyncBodyProvider:
    """Adapt a blocking body factory into an async body provider.

    The factory runs on a background executor and its outcome is forwarded
    through the provider callback.
    """

    def provide(callback: BodyCallback) -> None:
        def run() -> None:
            try:
                data = factory()
            except Exception as e:
                callback(error=e)
                return
            callback(data=data)

        (executor or _background_executor()).submit(run)

    return provide


class ServiceTask:
    """A request plus an ordered pipeline of response handlers.

    Args:
        request: Request descriptor, configurable until the first resume().
        session: Network provider that creates the task's handle.
        dispatcher: Context for update_ui/update_error_ui handlers.
            Defaults to the process-wide main_dispatcher().
        passthrough_delegate: Optional observer, held by weak reference.
        now: Clock used for metrics (injectable for testing).
    """

    def __init__(
        self,
        request: Request,
        session: Session,
        *,
        dispatcher: Dispatcher | None = None,
        passthrough_delegate: PassthroughDelegate | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._request = request
        self._session = session
        self._dispatcher = dispatcher or main_dispatcher()
        self._now = now or (lambda: datetime.now(UTC))
        self._lock = threading.RLock()
        self._pipeline = HandlerPipeline(name=f"servicekit-task-{id(self):x}")

        self._data_task: DataTask | None = None
        self._body_provider: AsyncBodyProvider | None = None
        self._result: ServiceTaskResult | None = None
        self._response_data: bytes | None = None
        self._response: httpx.Response | None = None
        self._response_error: BaseException | None = None
        self._json: Any = _UNSET
        self._metrics = ServiceTaskMetrics()
        self._metrics_handler: MetricsHandler | None = None
        self._has_resumed = False
        self._has_ever_been_suspended = False
        self._cancelled = False

        self._delegate_ref: weakref.ReferenceType[PassthroughDelegate] | None = None
        self.passthrough_delegate = passthrough_delegate

    def __del__(self) -> None:
        pipeline = getattr(self, "_pipeline", None)
        if pipeline is not None:
            pipeline.cancel_all()

    def __repr__(self) -> str:
        url = describe_url(self._request)
        return f"<ServiceTask {self._request.method} {url} state={self.state.value}>"

    # -- Accessors ---------------------------------------------------------

    @property
    def passthrough_delegate(self) -> PassthroughDelegate | None:
        if self._delegate_ref is None:
            return None
        return self._delegate_ref()

    @passthrough_delegate.setter
    def passthrough_delegate(self, delegate: PassthroughDelegate | None) -> None:
        self._delegate_ref = weakref.ref(delegate) if delegate is not None else None

    @property
    def state(self) -> TaskState:
        """State of the network handle.

        IDLE before the first resume, CANCELLED once cancel() was called.
        """
        if self._cancelled:
            return TaskState.CANCELLED
        data_task = self._data_task
        if data_task is None:
            return TaskState.IDLE
        return data_task.state

    @property
    def url(self) -> str:
        return self._request.url_value

    @property
    def request(self) -> Request:
        return self._request

    @property
    def metrics(self) -> ServiceTaskMetrics:
        return self._metrics

    @property
    def result(self) -> ServiceTaskResult | None:
        """Latest result written by the completion handler or a stage."""
        return self._result

    # -- Request configuration ---------------------------------------------

    def _configure(self, setting: str) -> Request:
        if self._data_task is not None:
            raise RequestLockedError(setting)
        return self._request

    def set_should_handle_cookies(self, handle: bool) -> ServiceTask:
        """Use the session's cookie jar for this request (default True)."""
        self._configure("should_handle_cookies").should_handle_cookies = handle
        return self

    def set_parameters(
        self,
        parameters: dict[str, Any],
        encoding: ParameterEncoding | None = None,
    ) -> ServiceTask:
        """Set parameters, percent-encoded unless ``encoding`` says otherwise."""
        request = self._configure("parameters")
        request.parameters = dict(parameters)
        request.parameter_encoding = encoding or ParameterEncoding.PERCENT
        return self

    def set_parameter_encoding(self, encoding: ParameterEncoding) -> ServiceTask:
        self._configure("parameter_encoding").parameter_encoding = encoding
        return self

    def set_query_parameters(
        self,
        parameters: dict[str, Any],
        encoder: QueryEncoder | None = None,
    ) -> ServiceTask:
        """Set key/value pairs encoded as the URL query.

        ``encoder`` builds the query string itself; by default httpx encodes it.
        """
        request = self._configure("query_parameters")
        request.query_parameters = dict(parameters)
        request.query_encoder = encoder
        return self

    def set_form_parameters(
        self,
        parameters: dict[str, Any],
        safe_characters: str = "",
    ) -> ServiceTask:
        """Set key/value pairs encoded as a form body.

        Characters in ``safe_characters`` are not percent-escaped.
        """
        request = self._configure("form_parameters")
        request.form_parameters = dict(parameters)
        request.form_safe_characters = safe_characters
        return self

    def set_body(self, data: bytes, content_type: str | None = None) -> ServiceTask:
        """Set the request body, and the Content-Type header when given."""
        request = self._configure("body")
        request.body = data
        if content_type is not None:
            request.content_type = content_type
        self._body_provider = None
        return self

    def set_json(self, obj: Any) -> ServiceTask:
        """Serialize ``obj`` as the JSON request body."""
        return self.set_body(json.dumps(obj).encode("utf-8"), ContentType.JSON)

    def set_json_data(self, data: bytes) -> ServiceTask:
        """Use already-encoded JSON as the request body."""
        return self.set_body(data, ContentType.JSON)

    def set_headers(self, headers: dict[str, str]) -> ServiceTask:
        self._configure("headers").headers = dict(headers)
        return self

    def set_header_value(self, value: str, name: str) -> ServiceTask:
        self._configure("headers").headers[name] = value
        return self

    def set_cache_policy(self, cache_policy: CachePolicy) -> ServiceTask:
        self._configure("cache_policy").cache_policy = cache_policy
        return self

    def set_body_provider(
        self,
        provider: AsyncBodyProvider,
        content_type: str | None = None,
    ) -> ServiceTask:
        """Produce the request body asynchronously when the task first resumes.

        ``provider`` receives a callback and must call it exactly once, from
        any thread, with ``data=`` or ``error=``. An error is delivered to the
        pipeline as if the network had failed with it.
        """
        request = self._configure("body")
        request.body = None
        if content_type is not None:
            request.content_type = content_type
        self._body_provider = provider
        return self

    def set_json_body_provider(self, provider: AsyncBodyProvider) -> ServiceTask:
        return self.set_body_provider(provider, ContentType.JSON)

    def set_body_factory(
        self,
        factory: RequestBodyFactory,
        content_type: str | None = None,
    ) -> ServiceTask:
        """Build the request body on a background thread when the task first resumes.

        If ``factory`` raises, the error is delivered to the pipeline.
        """
        return self.set_body_provider(asyncify(factory), content_type)

    def set_json_body_factory(self, factory: RequestBodyFactory) -> ServiceTask:
        return self.set_body_factory(factory, ContentType.JSON)

    # -- Lifecycle ---------------------------------------------------------

    def resume(self) -> ServiceTask:
        """Start or continue the request.

        The first call creates the network handle (after running the body
        provider, if one is set) and queues metrics delivery behind the
        stages registered so far. Later calls re-resume the same handle. A
        cancelled task is never resumed.
        """
        with self._lock:
            if self._cancelled:
                logger.debug(f"Not resuming cancelled {self._request.method} {describe_url(self._request)}")
                return self
            if self._data_task is None:
                provider = self._body_provider
                if provider is not None:
                    self._body_provider = None
                    self._data_task = AsyncDataTask(provider, self._handle_body)
                else:
                    self._data_task = self._create_session_task()
            data_task = self._data_task
            first_resume = not self._has_resumed
            self._has_resumed = True
            self._record_metric("fetch_start_date")

        if first_resume and not self._has_ever_been_suspended:
            self._pipeline.add(self._send_metrics)

        logger.debug(f"Resuming {self._request.method} {describe_url(self._request)}")
        if first_resume and not isinstance(data_task, AsyncDataTask):
            self._notify_request_sent()
        data_task.resume()
        return self

    def suspend(self) -> None:
        """Suspend the network handle. Queued stages are unaffected."""
        self._has_ever_been_suspended = True
        data_task = self._data_task
        if data_task is not None:
            data_task.suspend()

    def cancel(self) -> None:
        """Cancel the network handle and every stage that has not run yet."""
        with self._lock:
            self._cancelled = True
            data_task = self._data_task
        logger.debug(f"Cancelling {self._request.method} {describe_url(self._request)}")
        if data_task is not None:
            data_task.cancel()
        self._pipeline.cancel_all()

    def close(self) -> None:
        """Drop pending stages; the task is not needed any more."""
        self._pipeline.cancel_all()

    def __enter__(self) -> ServiceTask:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every queued stage has run (or the task was cancelled).

        Returns:
            True if the pipeline finished, False on timeout.
        """
        return self._pipeline.wait(timeout)

    def _create_session_task(self) -> DataTask:
        delegate = self.passthrough_delegate
        if delegate is not None:
            self._request = delegate.modified_request(self._request)
        return self._session.data_task(self._request, self._handle_completion)

    def _notify_request_sent(self) -> None:
        delegate = self.passthrough_delegate
        if delegate is not None:
            delegate.request_sent(self._request)

    def _handle_body(self, data: bytes | None, error: BaseException | None) -> None:
        if error is not None:
            logger.debug(f"Body provider failed for {describe_url(self._request)}: {error}")
            self._handle_response(None, None, error)
            return

        with self._lock:
            if self._cancelled:
                return
            self._request.body = data
            data_task = self._create_session_task()
            self._data_task = data_task
        self._notify_request_sent()
        data_task.resume()

    def _handle_completion(
        self,
        data: bytes | None,
        response: httpx.Response | None,
        error: BaseException | None,
    ) -> None:
        self._handle_response(response, data, error)

    def _handle_response(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        error: BaseException | None,
    ) -> None:
        """Record the network outcome and release the pipeline."""
        try:
            self._record_metric("response_end_date")
            self._response = response
            self._response_data = data
            self._response_error = error

            delegate = self.passthrough_delegate
            if delegate is not None:
                delegate.response_received(response, data, self._request, error)

            if error is not None:
                self._result = ServiceTaskResult.failure(error)

            validation_failed = False
            if delegate is not None:
                try:
                    delegate.validate_response(response, data, error)
                except Exception as validation_error:
                    validation_failed = True
                    self._result = ServiceTaskResult.failure(validation_error)

            # Only a network-level error that validation did not replace is reported
            if error is not None and not validation_failed and delegate is not None:
                delegate.service_result_failure(response, data, self._request, error)
        finally:
            self._pipeline.release()

    def _record_metric(self, name: str) -> None:
        with self._lock:
            self._metrics = self._metrics.record(name, self._now())

    # -- Response handlers -------------------------------------------------

    def response(self, handler: ResponseProcessingHandler) -> ServiceTask:
        """Process the raw body and response on the pipeline thread.

        Skipped when an earlier stage (or the network) failed. The handler's
        return value replaces the result; raising makes it a failure.
        """

        def stage() -> None:
            if self._result is not None and self._result.is_failure:
                return
            try:
                self._result = as_result(handler(self._response_data, self._response))
            except Exception as e:
                self._result = ServiceTaskResult.failure(e)

        self._pipeline.add(stage)
        return self

    def transform(self, handler: ResultTransformer) -> ServiceTask:
        """Transform the value produced by an earlier stage.

        Does nothing until some stage has produced a result. A failed or empty
        result makes the stage fail without calling the handler.
        """

        def stage() -> None:
            if self._result is None:
                return
            try:
                value = self._result.task_value()
                self._result = as_result(handler(value))
            except Exception as e:
                self._result = ServiceTaskResult.failure(e)

        self._pipeline.add(stage)
        return self

    def response_json(self, handler: JSONHandler) -> ServiceTask:
        """Decode the body as JSON and pass it to ``handler``.

        The decoded document is cached on the task, so later JSON stages reuse
        it. A missing body fails with JSONSerializationError.
        """

        def decode(data: bytes | None, response: httpx.Response | None) -> Any:
            if data is None:
                raise JSONSerializationError()

            if self._json is not _UNSET:
                return handler(self._json, response)

            self._record_metric("response_json_start_date")
            document = json.loads(data)
            self._json = document
            result = handler(document, response)
            self._record_metric("response_json_end_date")
            return result

        return self.response(decode)

    def update_ui(self, handler: UpdateUIHandler) -> ServiceTask:
        """Pass the current value to ``handler`` on the UI dispatcher.

        The pipeline waits for the handler to return. Nothing happens when the
        result is empty or a failure.
        """

        def stage() -> None:
            result = self._result
            if result is None or not result.is_value:
                return
            value = result.task_value()

            def run_on_ui() -> None:
                delegate = self.passthrough_delegate
                if delegate is not None:
                    delegate.update_ui_begin(self._response)
                self._record_metric("update_ui_start_date")
                handler(value)
                self._record_metric("update_ui_end_date")
                if delegate is not None:
                    delegate.update_ui_end(self._response)

            self._dispatcher.run_sync(run_on_ui)

        self._pipeline.add(stage)
        return self

    # -- Error handling ----------------------------------------------------

    def _failure_error(self) -> BaseException | None:
        result = self._result
        if result is None or not result.is_failure:
            return None
        return result.error

    def response_error(self, handler: ErrorHandler) -> ServiceTask:
        """Call ``handler`` with the error when the result is a failure."""

        def stage() -> None:
            error = self._failure_error()
            if error is not None:
                handler(error)

        self._pipeline.add(stage)
        return self

    def update_error_ui(self, handler: ErrorHandler) -> ServiceTask:
        """Like response_error, but the handler runs on the UI dispatcher."""

        def stage() -> None:
            error = self._failure_error()
            if error is not None:
                self._dispatcher.run_sync(lambda: handler(error))

        self._pipeline.add(stage)
        return self

    def recover(self, handler: ErrorRecoveryHandler) -> ServiceTask:
        """Give ``handler`` a chance to recover from a failure.

        Returning a value (or None for an empty result) clears the failure for
        later stages; returning a failure or raising keeps the task failed.
        """

        def stage() -> None:
            error = self._failure_error()
            if error is None:
                return
            try:
                self._result = as_result(handler(error))
            except Exception as e:
                self._result = ServiceTaskResult.failure(e)

        self._pipeline.add(stage)
        return self

    # -- Metrics -----------------------------------------------------------

    def metrics_collected(self, handler: MetricsHandler) -> ServiceTask:
        """Set the callback invoked once the task's metrics are collected."""
        self._metrics_handler = handler
        return self

    def _send_metrics(self) -> None:
        metrics = self._metrics
        delegate = self.passthrough_delegate
        if delegate is not None:
            delegate.did_finish_collecting_task_metrics(
                metrics,
                self._request,
                self._response,
                self._response_data,
                self._response_error,
            )
        if self._metrics_handler is not None:
            self._metrics_handler(metrics, self._response)
