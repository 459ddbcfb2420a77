# tests/bootstrap/test_watcher.py
"""Tests for the bootstrap secret watcher."""

import threading
from pathlib import Path

import pytest
from watchdog.events import DirCreatedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent
from watchdog.observers.polling import PollingObserver

from siteagent.bootstrap.secret import BOOTSTRAP_SECRET_KEYS
from siteagent.bootstrap.watcher import SecretEventHandler, SecretWatcher
from siteagent.contracts.errors import BootstrapError


class TestSecretEventHandler:
    @pytest.fixture
    def calls(self) -> list[int]:
        return []

    @pytest.fixture
    def handler(self, calls: list[int]) -> SecretEventHandler:
        return SecretEventHandler(BOOTSTRAP_SECRET_KEYS, lambda: calls.append(1))

    def test_tracked_file_triggers(self, handler: SecretEventHandler, calls: list[int]) -> None:
        handler.dispatch(FileModifiedEvent("/etc/sitereg/otp"))
        assert calls == [1]

    def test_untracked_file_ignored(self, handler: SecretEventHandler, calls: list[int]) -> None:
        handler.dispatch(FileCreatedEvent("/etc/sitereg/README"))
        handler.dispatch(DirCreatedEvent("/etc/sitereg/otp"))
        assert calls == []

    def test_data_link_swap_triggers(self, handler: SecretEventHandler, calls: list[int]) -> None:
        handler.dispatch(FileMovedEvent("/etc/sitereg/..data_tmp", "/etc/sitereg/..data"))
        assert calls == [1]

    def test_callback_errors_do_not_escape(self) -> None:
        def fail() -> None:
            raise BootstrapError("endpoint down")

        SecretEventHandler(BOOTSTRAP_SECRET_KEYS, fail).dispatch(FileModifiedEvent("/etc/sitereg/otp"))


class _BrokenObserver:
    def schedule(self, *args: object, **kwargs: object) -> None:
        raise FileNotFoundError("no such directory")

    def start(self) -> None:  # pragma: no cover - schedule fails first
        pass


class TestSecretWatcher:
    def test_unwatchable_directory(self, tmp_path: Path) -> None:
        watcher = SecretWatcher(tmp_path / "missing", BOOTSTRAP_SECRET_KEYS, lambda: None, _BrokenObserver)  # type: ignore[arg-type]
        with pytest.raises(BootstrapError, match="cannot watch"):
            watcher.start()
        assert not watcher.running

    @pytest.mark.slow
    def test_detects_file_change(self, tmp_path: Path) -> None:
        (tmp_path / "otp").write_text("token-1")
        changed = threading.Event()
        watcher = SecretWatcher(tmp_path, BOOTSTRAP_SECRET_KEYS, changed.set, lambda: PollingObserver(timeout=0.05))
        watcher.start()
        try:
            assert watcher.running
            (tmp_path / "otp").write_text("token-2-longer")
            assert changed.wait(5.0)
        finally:
            watcher.stop()
        assert not watcher.running
