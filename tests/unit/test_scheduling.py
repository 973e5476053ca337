"""Tests for the debouncer and deferred runner."""

from __future__ import annotations

import threading

import pytest

from formflow.forms.scheduling import Debouncer, DeferredRunner


class TestDebouncer:
    def test_zero_delay_runs_immediately(self) -> None:
        calls: list[str] = []
        Debouncer().schedule("k", 0, lambda: calls.append("ran"))
        assert calls == ["ran"]

    def test_reschedule_replaces_pending(self) -> None:
        debouncer = Debouncer()
        calls: list[int] = []
        debouncer.schedule("k", 60_000, lambda: calls.append(1))
        debouncer.schedule("k", 60_000, lambda: calls.append(2))
        assert debouncer.pending() == ["k"]
        debouncer.flush()
        assert calls == [2]
        assert debouncer.pending() == []

    def test_keys_are_independent(self) -> None:
        debouncer = Debouncer()
        calls: list[str] = []
        debouncer.schedule("a", 60_000, lambda: calls.append("a"))
        debouncer.schedule("b", 60_000, lambda: calls.append("b"))
        debouncer.flush("b")
        assert calls == ["b"]
        debouncer.cancel()
        assert debouncer.pending() == []
        assert calls == ["b"]

    @pytest.mark.slow
    def test_timer_fires(self) -> None:
        fired = threading.Event()
        Debouncer().schedule("k", 10, fired.set)
        assert fired.wait(5)

    def test_failing_callback_is_logged(self, caplog) -> None:
        debouncer = Debouncer()
        done = threading.Event()

        def explode() -> None:
            done.set()
            raise RuntimeError("boom")

        debouncer.schedule("k", 60_000, explode)
        debouncer._fire("k")
        assert done.is_set()
        assert "Debounced callback for 'k' failed" in caplog.text


class TestDeferredRunner:
    def test_wait_for_jobs(self) -> None:
        runner = DeferredRunner(workers=2)
        gate = threading.Event()
        results: list[int] = []

        runner.submit(lambda: (gate.wait(5), results.append(1)))
        assert not runner.wait(timeout=0.01)
        gate.set()
        assert runner.wait(timeout=5)
        assert results == [1]
        runner.shutdown()

    def test_wait_without_jobs(self) -> None:
        runner = DeferredRunner()
        assert runner.wait()
        runner.shutdown()

    def test_failed_job_is_logged(self, caplog) -> None:
        runner = DeferredRunner(workers=1)

        def explode() -> None:
            raise ValueError("bad")

        runner.submit(explode)
        assert runner.wait(timeout=5)
        runner.shutdown()
        assert "Deferred job failed" in caplog.text
