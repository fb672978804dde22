"""Tests for HandlerPipeline."""

from __future__ import annotations

import threading

from servicekit.pipeline import HandlerPipeline

WAIT_TIMEOUT = 5.0


class TestHandlerPipeline:
    """Tests for the suspended serial queue."""

    def test_starts_suspended(self):
        pipeline = HandlerPipeline()
        ran: list[int] = []

        pipeline.add(lambda: ran.append(1))

        assert pipeline.is_suspended is True
        assert pipeline.pending == 1
        assert pipeline.wait(timeout=0.05) is False
        assert ran == []

    def test_release_runs_in_order(self):
        pipeline = HandlerPipeline()
        ran: list[int] = []
        for i in range(5):
            pipeline.add(lambda i=i: ran.append(i))

        pipeline.release()

        assert pipeline.wait(WAIT_TIMEOUT) is True
        assert ran == [0, 1, 2, 3, 4]

    def test_operations_run_off_the_calling_thread(self):
        pipeline = HandlerPipeline(name="pipeline-under-test")
        threads: list[str] = []
        pipeline.add(lambda: threads.append(threading.current_thread().name))

        pipeline.release()
        pipeline.wait(WAIT_TIMEOUT)

        assert threads == ["pipeline-under-test"]
        assert threads[0] != threading.current_thread().name

    def test_release_is_one_shot(self):
        pipeline = HandlerPipeline()
        ran: list[int] = []
        pipeline.add(lambda: ran.append(1))

        pipeline.release()
        pipeline.release()
        pipeline.wait(WAIT_TIMEOUT)

        assert ran == [1]

    def test_operation_added_while_running_waits_its_turn(self):
        pipeline = HandlerPipeline()
        gate = threading.Event()
        started = threading.Event()
        ran: list[str] = []

        def slow() -> None:
            started.set()
            gate.wait(WAIT_TIMEOUT)
            ran.append("slow")

        pipeline.add(slow)
        pipeline.add(lambda: ran.append("queued"))
        pipeline.release()
        started.wait(WAIT_TIMEOUT)

        pipeline.add(lambda: ran.append("late"))
        gate.set()

        assert pipeline.wait(WAIT_TIMEOUT) is True
        assert ran == ["slow", "queued", "late"]

    def test_operation_added_after_drain_still_runs(self):
        pipeline = HandlerPipeline()
        ran: list[int] = []
        pipeline.release()
        pipeline.wait(WAIT_TIMEOUT)

        pipeline.add(lambda: ran.append(1))

        assert pipeline.wait(WAIT_TIMEOUT) is True
        assert ran == [1]

    def test_never_runs_concurrently(self):
        pipeline = HandlerPipeline()
        active = 0
        peak = 0
        lock = threading.Lock()

        def op() -> None:
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            with lock:
                active -= 1

        for _ in range(50):
            pipeline.add(op)
        pipeline.release()
        pipeline.wait(WAIT_TIMEOUT)

        assert peak == 1

    def test_cancel_all_drops_pending(self):
        pipeline = HandlerPipeline()
        ran: list[int] = []
        pipeline.add(lambda: ran.append(1))

        pipeline.cancel_all()
        pipeline.release()

        assert pipeline.wait(WAIT_TIMEOUT) is True
        assert ran == []
        assert pipeline.is_cancelled is True

    def test_add_after_cancel_is_ignored(self):
        pipeline = HandlerPipeline()
        pipeline.cancel_all()

        pipeline.add(lambda: None)

        assert pipeline.pending == 0

    def test_cancel_does_not_interrupt_running_operation(self):
        pipeline = HandlerPipeline()
        gate = threading.Event()
        started = threading.Event()
        ran: list[str] = []

        def running() -> None:
            started.set()
            gate.wait(WAIT_TIMEOUT)
            ran.append("running")

        pipeline.add(running)
        pipeline.add(lambda: ran.append("pending"))
        pipeline.release()
        started.wait(WAIT_TIMEOUT)

        pipeline.cancel_all()
        gate.set()

        assert pipeline.wait(WAIT_TIMEOUT) is True
        assert ran == ["running"]

    def test_raising_operation_does_not_stop_queue(self, caplog):
        pipeline = HandlerPipeline()
        ran: list[int] = []

        def boom() -> None:
            raise RuntimeError("boom")

        pipeline.add(boom)
        pipeline.add(lambda: ran.append(1))
        pipeline.release()
        pipeline.wait(WAIT_TIMEOUT)

        assert ran == [1]
        assert "handler raised" in caplog.text
