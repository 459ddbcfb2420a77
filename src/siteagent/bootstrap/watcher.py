# src/siteagent/bootstrap/watcher.py
"""Watches the mounted bootstrap secret for external changes.

Kubernetes updates a mounted secret by swapping the ..data symlink, so
that name is tracked alongside the secret's own files.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from siteagent.contracts.errors import BootstrapError
from siteagent.core.logging import get_logger

logger = get_logger(__name__)

MOUNT_DATA_LINK = "..data"


class SecretEventHandler(FileSystemEventHandler):
    """Invokes a callback for events on tracked file names.

    Callback errors are logged; the next event triggers another attempt.
    """

    def __init__(self, tracked_names: Iterable[str], on_change: Callable[[], None]) -> None:
        super().__init__()
        self._tracked = frozenset(tracked_names) | {MOUNT_DATA_LINK}
        self._on_change = on_change

    def is_tracked(self, event: FileSystemEvent) -> bool:
        if event.is_directory and Path(str(event.src_path)).name != MOUNT_DATA_LINK:
            return False
        paths = [event.src_path, getattr(event, "dest_path", "")]
        return any(path and Path(str(path)).name in self._tracked for path in paths)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed_no_write") or not self.is_tracked(event):
            return
        logger.info("Bootstrap secret changed", event=event.event_type, path=str(event.src_path))
        try:
            self._on_change()
        except Exception as e:
            logger.error("Credential refresh after secret change failed", error=str(e))


class SecretWatcher:
    """Runs a watchdog observer over the bootstrap secret directory."""

    def __init__(
        self,
        directory: Path,
        tracked_names: Iterable[str],
        on_change: Callable[[], None],
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        self._directory = directory
        self._handler = SecretEventHandler(tracked_names, on_change)
        self._observer_factory = observer_factory
        self._observer: BaseObserver | None = None

    @property
    def handler(self) -> SecretEventHandler:
        return self._handler

    @property
    def running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        """Begin watching.

        Raises:
            BootstrapError: If the watch cannot be established; the agent
                cannot operate without rotating credentials
        """
        if self._observer is not None:
            return
        observer = self._observer_factory()
        try:
            observer.schedule(self._handler, str(self._directory), recursive=False)
            observer.start()
        except OSError as e:
            raise BootstrapError(f"cannot watch bootstrap secret directory {self._directory}: {e}") from e
        self._observer = observer
        logger.info("Watching bootstrap secret", directory=str(self._directory))

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None
