"""Thread-safe boolean flag and counter."""

from __future__ import annotations

import threading


class AtomicBoolean:
    """A boolean that can be read and written from several threads."""

    def __init__(self, value: bool = False) -> None:
        self._lock = threading.Lock()
        self._value = bool(value)

    def set(self, value: bool) -> None:
        with self._lock:
            self._value = bool(value)

    def get(self) -> bool:
        with self._lock:
            return self._value


class AtomicCounter:
    """An integer counter safe to change from several threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> None:
        with self._lock:
            self._value += 1

    def decrement(self) -> None:
        with self._lock:
            self._value -= 1

    def get(self) -> int:
        with self._lock:
            return self._value