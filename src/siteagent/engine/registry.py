# src/siteagent/engine/registry.py
"""Typed registry mapping operation names to handlers.

Populated explicitly, one entry per resource kind and activity, at agent
start. A duplicate or unknown name is an error, never a silent no-op.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from typing import Any

from siteagent.contracts.errors import DuplicateActivityError, UnknownActivityError

Handler = Callable[..., Any]


class ActivityRegistry:
    """Name -> handler mapping for activities or workflows.

    Example:
        registry = ActivityRegistry()
        registry.register("VpcCreate", engine.run_activity)
        handler = registry.get("VpcCreate")
    """

    def __init__(self, kind: str = "activity") -> None:
        """Initialize an empty registry.

        Args:
            kind: Label used in error messages ("activity" or "workflow")
        """
        self._kind = kind
        self._handlers: dict[str, Handler] = {}
        self._lock = threading.Lock()

    def register(self, name: str, handler: Handler) -> None:
        """Register a handler.

        Raises:
            DuplicateActivityError: If the name is already registered
        """
        if not name:
            raise ValueError(f"{self._kind} name must not be empty")
        with self._lock:
            if name in self._handlers:
                raise DuplicateActivityError(f"{self._kind} '{name}' is already registered")
            self._handlers[name] = handler

    def get(self, name: str) -> Handler:
        """Look up a handler.

        Raises:
            UnknownActivityError: If nothing is registered under the name
        """
        with self._lock:
            handler = self._handlers.get(name)
        if handler is None:
            raise UnknownActivityError(f"no {self._kind} registered as '{name}'")
        return handler

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._handlers)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)
