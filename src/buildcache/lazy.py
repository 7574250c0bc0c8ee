"""Process-wide memoized values computed at most once."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Generic, TypeVar

T = TypeVar("T")


class Lazy(Generic[T]):
    """Once-cell: not started, in flight (shared future) or settled.

    The first caller computes the value; callers arriving while the
    computation runs wait on the same future instead of recomputing. The
    outcome is kept either way: a computation that raised re-raises the same
    exception for every later caller and is never run again.
    """

    def __init__(self, fn: Callable[[], T]) -> None:
        self._fn = fn
        self._lock = threading.Lock()
        self._future: Future[T] | None = None

    def __call__(self) -> T:
        with self._lock:
            future = self._future
            owner = future is None
            if owner:
                future = self._future = Future()

        assert future is not None
        if owner:
            try:
                future.set_result(self._fn())
            except BaseException as e:
                future.set_exception(e)
        return future.result()

    @property
    def resolved(self) -> bool:
        future = self._future
        return future is not None and future.done() and future.exception() is None

    @property
    def failed(self) -> bool:
        future = self._future
        return future is not None and future.done() and future.exception() is not None
