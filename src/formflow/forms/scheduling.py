"""
Work scheduled off the update path.

``Debouncer`` coalesces rapid edits per key: only the last call within the
delay runs. ``DeferredRunner`` runs slow custom validation functions on a
small thread pool; the engine applies their results as follow-up
transactions.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Any

logger = logging.getLogger(__name__)


class Debouncer:
    """Per-key trailing-edge debounce backed by ``threading.Timer``."""

    def __init__(self) -> None:
        self._pending: dict[str, tuple[threading.Timer, Callable[[], Any]]] = {}
        self._lock = threading.Lock()

    def schedule(self, key: str, delay_ms: int, callback: Callable[[], Any]) -> None:
        """Run ``callback`` after ``delay_ms`` unless rescheduled first.

        A delay of zero runs the callback immediately on the calling thread.
        """
        self.cancel(key)
        if delay_ms <= 0:
            callback()
            return

        timer = threading.Timer(delay_ms / 1000, self._fire, args=(key,))
        timer.daemon = True
        with self._lock:
            self._pending[key] = (timer, callback)
        timer.start()

    def _fire(self, key: str) -> None:
        with self._lock:
            entry = self._pending.pop(key, None)
        if entry is None:
            return
        _, callback = entry
        try:
            callback()
        except Exception:
            logger.exception("Debounced callback for '%s' failed", key)

    def cancel(self, key: str | None = None) -> None:
        """Drop the pending callback for ``key`` (all keys if None)."""
        with self._lock:
            keys = list(self._pending) if key is None else [key]
            entries = [self._pending.pop(k) for k in keys if k in self._pending]
        for timer, _ in entries:
            timer.cancel()

    def flush(self, key: str | None = None) -> None:
        """Run pending callbacks now, on the calling thread."""
        with self._lock:
            keys = list(self._pending) if key is None else [key]
            entries = [self._pending.pop(k) for k in keys if k in self._pending]
        for timer, callback in entries:
            timer.cancel()
            callback()

    def pending(self) -> list[str]:
        with self._lock:
            return list(self._pending)


class DeferredRunner:
    """Thread pool for deferred validation, created on first use."""

    def __init__(self, workers: int = 2) -> None:
        self.workers = workers
        self._executor: ThreadPoolExecutor | None = None
        self._futures: set[Future[Any]] = set()
        self._lock = threading.Lock()

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future[Any]:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.workers, thread_name_prefix="formflow-deferred"
                )
            future = self._executor.submit(fn, *args)
            self._futures.add(future)
        future.add_done_callback(self._discard)
        return future

    def _discard(self, future: Future[Any]) -> None:
        with self._lock:
            self._futures.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error("Deferred job failed", exc_info=future.exception())

    def wait(self, timeout: float | None = None) -> bool:
        """Block until in-flight jobs finish; True if none remain."""
        while True:
            with self._lock:
                futures = list(self._futures)
            if not futures:
                return True
            _, not_done = wait_futures(futures, timeout=timeout)
            if not_done:
                return False

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
