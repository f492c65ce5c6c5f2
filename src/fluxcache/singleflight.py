"""Per-key call coalescing for concurrent cache misses.

:class:`SingleFlight` keeps a lock-guarded table of keys that currently
have a call in progress. The first thread to ask for a key runs the call;
threads arriving while it runs wait for it and receive the same result, or
the same exception. Once the call finishes the key is forgotten, so a later
request starts a fresh call.

The coordinator keys calls by cache key, which guarantees at most one
upstream fetch and one artifact write per key at any moment.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class _Call(Generic[T]):
    """One in-progress call and the outcome its followers wait for."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Optional[T] = None
        self.error: Optional[BaseException] = None
        self.followers = 0


class SingleFlight(Generic[T]):
    """Coalesce concurrent calls that share a key.

    Example::

        flight: SingleFlight[bytes] = SingleFlight()
        data, shared = flight.do(key, lambda: fetch(key))
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[str, _Call[T]] = {}

    def do(self, key: str, fn: Callable[[], T]) -> tuple[T, bool]:
        """Run *fn* for *key*, or wait for the call already running for it.

        Returns:
            ``(result, shared)`` where ``shared`` is ``True`` when this
            caller joined another thread's call instead of running *fn*.

        Raises:
            BaseException: Whatever *fn* raised, re-raised in the leader and
                in every follower.
        """
        with self._lock:
            call = self._calls.get(key)
            if call is not None:
                call.followers += 1
                leader = False
            else:
                call = _Call()
                self._calls[key] = call
                leader = True

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result, True  # type: ignore[return-value]

        try:
            call.result = fn()
        except BaseException as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                del self._calls[key]
            call.done.set()
        return call.result, False

    def in_flight(self) -> int:
        """Return the number of keys with a call currently running."""
        with self._lock:
            return len(self._calls)

    def waiting(self, key: str) -> int:
        """Return how many followers are waiting on the call for *key*."""
        with self._lock:
            call: Any = self._calls.get(key)
            return call.followers if call is not None else 0
