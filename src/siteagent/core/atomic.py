# src/siteagent/core/atomic.py
"""Atomic cells for state shared between worker threads.

Readers call load() and always observe a complete value: writers replace
the whole value with store(), never mutate it in place.
"""

from __future__ import annotations

import threading
from typing import Generic, TypeVar

T = TypeVar("T")


class AtomicReference(Generic[T]):
    """Holds a single value that is swapped as a whole."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._lock = threading.Lock()

    def load(self) -> T:
        with self._lock:
            return self._value

    def store(self, value: T) -> None:
        with self._lock:
            self._value = value

    def swap(self, value: T) -> T:
        """Store value and return the previous one."""
        with self._lock:
            previous = self._value
            self._value = value
            return previous

    def compare_and_set(self, expected: T, value: T) -> bool:
        """Store value only if the current value is ``expected`` (identity)."""
        with self._lock:
            if self._value is not expected:
                return False
            self._value = value
            return True


class AtomicCounter:
    """Monotonic counter safe under concurrent increments."""

    def __init__(self, initial: int = 0) -> None:
        self._value = initial
        self._lock = threading.Lock()

    def inc(self, delta: int = 1) -> int:
        """Increment and return the new value."""
        with self._lock:
            self._value += delta
            return self._value

    def load(self) -> int:
        with self._lock:
            return self._value

    def __repr__(self) -> str:
        return f"AtomicCounter({self.load()})"
