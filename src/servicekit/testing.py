"""Testing utilities for code built on servicekit.

Provides an in-memory network provider and a recording observer so service
tasks can be exercised without a network:
- StubSession: completes every task with a canned body/response/error
- RecordingDelegate: remembers every passthrough hook call
- resume_and_wait(): resume a task and block until its pipeline drains

Usage:
    from servicekit.testing import StubSession, resume_and_wait

    def test_zip_lookup():
        session = StubSession.json({"zip": "15217"})
        task = ServiceTask(Request("GET", "https://api.example.com/zip"), session)
        seen = []
        task.response_json(lambda json, response: json["zip"]).update_ui(seen.append)

        resume_and_wait(task)

        assert seen == ["15217"]
"""

from __future__ import annotations

import json
import threading
from typing import TYPE_CHECKING, Any

import httpx

from servicekit.delegate import PassthroughDelegate
from servicekit.request import ContentType, Request
from servicekit.session import Completion, TaskState

if TYPE_CHECKING:
    from servicekit.metrics import ServiceTaskMetrics
    from servicekit.result import ServiceTaskResult
    from servicekit.task import ServiceTask


class StubDataTask:
    """DataTask that completes from its StubSession's canned outcome."""

    def __init__(self, session: StubSession, request: Request, completion: Completion) -> None:
        self.session = session
        self.request = request
        self._completion = completion
        self._lock = threading.Lock()
        self._state = TaskState.SUSPENDED
        self.resume_count = 0
        self.suspend_count = 0

    @property
    def state(self) -> TaskState:
        return self._state

    def resume(self) -> None:
        with self._lock:
            if self._state in (TaskState.CANCELING, TaskState.COMPLETED):
                return
            self._state = TaskState.RUNNING
            self.resume_count += 1
        if self.session.auto_complete:
            self.complete()

    def suspend(self) -> None:
        with self._lock:
            self.suspend_count += 1
            if self._state is TaskState.RUNNING:
                self._state = TaskState.SUSPENDED

    def cancel(self) -> None:
        with self._lock:
            if self._state is not TaskState.COMPLETED:
                self._state = TaskState.CANCELING

    def complete(self) -> bool:
        """Deliver the canned outcome.

        Returns:
            True if the completion callback ran, False if the task was
            cancelled or already completed.
        """
        with self._lock:
            if self._state in (TaskState.CANCELING, TaskState.COMPLETED):
                return False
            self._state = TaskState.COMPLETED
        self._completion(self.session.body, self.session.response, self.session.error)
        return True


class StubSession:
    """Network provider that never touches the network.

    Args:
        body: Response body delivered to every task.
        status_code: Status of the generated httpx.Response.
        headers: Headers of the generated httpx.Response.
        error: Transport error delivered instead of a response.
        auto_complete: Complete tasks as soon as they are resumed. When False,
            call complete_all() (or StubDataTask.complete()) yourself.
    """

    def __init__(
        self,
        *,
        body: bytes | None = b"",
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        error: BaseException | None = None,
        auto_complete: bool = True,
    ) -> None:
        self.error = error
        self.auto_complete = auto_complete
        if error is None:
            self.body = body
            self.response: httpx.Response | None = httpx.Response(
                status_code,
                content=body or b"",
                headers=headers,
            )
        else:
            self.body = None
            self.response = None
        self.tasks: list[StubDataTask] = []

    @classmethod
    def json(cls, payload: Any, *, status_code: int = 200, **kwargs: Any) -> StubSession:
        """Session answering every request with ``payload`` as JSON."""
        return cls(
            body=json.dumps(payload).encode("utf-8"),
            status_code=status_code,
            headers={"content-type": ContentType.JSON},
            **kwargs,
        )

    @property
    def requests(self) -> list[Request]:
        """Requests for which a handle was created, in order."""
        return [task.request for task in self.tasks]

    def data_task(self, request: Request, completion: Completion) -> StubDataTask:
        task = StubDataTask(self, request, completion)
        self.tasks.append(task)
        return task

    def complete_all(self) -> None:
        for task in self.tasks:
            task.complete()


class RecordingDelegate(PassthroughDelegate):
    """Passthrough delegate that records every hook call.

    Args:
        validation_error: Raised from validate_response when set.
    """

    def __init__(self, *, validation_error: BaseException | None = None) -> None:
        self.validation_error = validation_error
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._lock = threading.Lock()

    def record(self, name: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((name, args))

    def names(self) -> list[str]:
        """Hook names in call order."""
        with self._lock:
            return [name for name, _ in self.calls]

    def count(self, name: str) -> int:
        return self.names().count(name)

    def args_for(self, name: str) -> list[tuple[Any, ...]]:
        with self._lock:
            return [args for call, args in self.calls if call == name]

    def request_sent(self, request: Request) -> None:
        self.record("request_sent", request)

    def response_received(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        request: Request,
        error: BaseException | None,
    ) -> None:
        self.record("response_received", response, data, request, error)

    def validate_response(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        error: BaseException | None,
    ) -> None:
        self.record("validate_response", response, data, error)
        if self.validation_error is not None:
            raise self.validation_error

    def service_result_failure(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        request: Request,
        error: BaseException,
    ) -> None:
        self.record("service_result_failure", response, data, request, error)

    def update_ui_begin(self, response: httpx.Response | None) -> None:
        self.record("update_ui_begin", response)

    def update_ui_end(self, response: httpx.Response | None) -> None:
        self.record("update_ui_end", response)

    def did_finish_collecting_task_metrics(
        self,
        metrics: ServiceTaskMetrics,
        request: Request,
        response: httpx.Response | None,
        data: bytes | None,
        error: BaseException | None,
    ) -> None:
        self.record("did_finish_collecting_task_metrics", metrics, request, response, data, error)


def resume_and_wait(task: ServiceTask, timeout: float = 5.0) -> ServiceTaskResult | None:
    """Resume ``task`` and block until its pipeline has drained.

    Returns:
        The task's final result.

    Raises:
        TimeoutError: If the pipeline does not finish within ``timeout``.
    """
    task.resume()
    if not task.wait(timeout):
        raise TimeoutError(f"{task!r} did not finish within {timeout}s")
    return task.result
