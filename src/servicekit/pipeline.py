"""Serial handler queue that starts suspended.

A HandlerPipeline holds the response-processing stages of one ServiceTask.
Stages run one at a time, in the order they were added, on a worker thread
that is never the caller's. The queue stays suspended until release() is
called once the network result is known.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)

Operation = Callable[[], None]


class HandlerPipeline:
    """Ordered, strictly serial queue of stage operations.

    Args:
        name: Label used for the worker thread name and log messages.
    """

    def __init__(self, name: str = "servicekit-pipeline") -> None:
        self.name = name
        self._operations: deque[Operation] = deque()
        self._condition = threading.Condition()
        self._suspended = True
        self._draining = False
        self._cancelled = False

    @property
    def is_suspended(self) -> bool:
        return self._suspended

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> int:
        """Number of queued operations that have not started."""
        with self._condition:
            return len(self._operations)

    def add(self, operation: Operation) -> None:
        """Queue an operation behind everything already queued."""
        with self._condition:
            if self._cancelled:
                logger.debug(f"{self.name}: ignoring operation added after cancel")
                return
            self._operations.append(operation)
            start = self._should_start()
        if start:
            self._start_worker()

    def release(self) -> None:
        """Unblock the queue. Only the first call has an effect."""
        with self._condition:
            if not self._suspended:
                return
            self._suspended = False
            start = self._should_start()
            self._condition.notify_all()
        if start:
            self._start_worker()

    def cancel_all(self) -> None:
        """Drop every operation that has not started yet.

        The operation currently running, if any, finishes normally.
        """
        with self._condition:
            self._cancelled = True
            dropped = len(self._operations)
            self._operations.clear()
            self._condition.notify_all()
        if dropped:
            logger.debug(f"{self.name}: cancelled {dropped} pending operation(s)")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the queue is released and drained, or cancelled.

        Returns:
            True if the queue finished, False on timeout.
        """
        with self._condition:
            return self._condition.wait_for(self._is_finished, timeout=timeout)

    def _is_finished(self) -> bool:
        if self._cancelled:
            return not self._draining
        return not self._suspended and not self._operations and not self._draining

    def _should_start(self) -> bool:
        # Caller holds the condition lock
        if self._suspended or self._draining or not self._operations:
            return False
        self._draining = True
        return True

    def _start_worker(self) -> None:
        worker = threading.Thread(target=self._drain, name=self.name, daemon=True)
        worker.start()

    def _drain(self) -> None:
        while True:
            with self._condition:
                if self._cancelled or not self._operations:
                    self._draining = False
                    self._condition.notify_all()
                    return
                operation = self._operations.popleft()
            try:
                operation()
            except Exception:
                logger.exception(f"{self.name}: handler raised outside of its stage")
