from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Iterator
from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from contextlib import contextmanager
from typing import Any, TypeVar

from werkzeug.utils import secure_filename

T = TypeVar("T")


def path_segment(value: str | None, default: str = "unspecified") -> str:
    """Filesystem/object-key safe version of a free-text label ("1st Semester" -> "1st_Semester")."""
    seg = secure_filename((value or "").strip())
    return seg or default


def call_with_timeout(executor: Executor, timeout: float | None, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a blocking call on `executor` and wait at most `timeout` seconds.

    Raises TimeoutError when the deadline passes. The underlying call is not cancelled,
    so callers must treat a timeout as an unknown outcome.
    """
    future = executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError:
        raise TimeoutError(f"{getattr(fn, '__name__', 'call')} timed out after {timeout}s") from None


class KeyedLocks:
    """One mutex per key, created on demand and dropped when nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, list[Any]] = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock: threading.Lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)
