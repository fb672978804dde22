"""UI-thread dispatchers.

update_ui and update_error_ui stages hand their callback to a Dispatcher and
block the pipeline worker until it returns. SerialDispatcher gives every
caller one dedicated thread, which keeps UI mutation single-threaded without
tying servicekit to a particular UI toolkit.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol, TypeVar

T = TypeVar("T")


class Dispatcher(Protocol):
    """Runs a callable in a designated context and waits for it."""

    def run_sync(self, fn: Callable[[], T]) -> T: ...


class ImmediateDispatcher:
    """Runs callables inline on the calling thread."""

    def run_sync(self, fn: Callable[[], T]) -> T:
        return fn()


class SerialDispatcher:
    """Runs callables on one dedicated thread, blocking the caller.

    Calls made from the dispatcher's own thread run inline so nested
    dispatches cannot deadlock.
    """

    def __init__(self, name: str = "servicekit-ui") -> None:
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._thread_id: int | None = None
        self._executor.submit(self._capture_thread).result()

    def _capture_thread(self) -> None:
        self._thread_id = threading.get_ident()

    @property
    def is_current(self) -> bool:
        """True when called from the dispatcher's thread."""
        return threading.get_ident() == self._thread_id

    def run_sync(self, fn: Callable[[], T]) -> T:
        if self.is_current:
            return fn()
        return self._executor.submit(fn).result()

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)


_main_dispatcher: SerialDispatcher | None = None
_main_lock = threading.Lock()


def main_dispatcher() -> SerialDispatcher:
    """Return the process-wide default UI dispatcher."""
    global _main_dispatcher
    with _main_lock:
        if _main_dispatcher is None:
            _main_dispatcher = SerialDispatcher()
        return _main_dispatcher
