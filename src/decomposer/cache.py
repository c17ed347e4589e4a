"""Single-value cache with a time-to-live and an injectable clock."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 5 * 60


class TtlCache(Generic[T]):
    """Hold one value until it is older than ``ttl`` seconds.

    ``clock`` defaults to :func:`time.monotonic`; tests pass a fake.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, *, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl <= 0:
            msg = f"ttl must be positive, got {ttl}"
            raise ValueError(msg)
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._value: T | None = None
        self._stored_at: float | None = None

    def get(self) -> T | None:
        """Return the cached value, or None when empty or expired."""
        with self._lock:
            if self._stored_at is None:
                return None
            if self._clock() - self._stored_at >= self.ttl:
                self._value = None
                self._stored_at = None
                return None
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value
            self._stored_at = self._clock()

    def get_or_load(self, loader: Callable[[], T]) -> T:
        """Return the cached value, calling *loader* on a miss and caching its result."""
        cached = self.get()
        if cached is not None:
            return cached
        value = loader()
        self.set(value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._value = None
            self._stored_at = None
