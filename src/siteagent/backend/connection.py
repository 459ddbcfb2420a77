# src/siteagent/backend/connection.py
"""Connection Lifecycle Manager.

Owns the single backend client shared by every in-flight operation:

- Lazy creation: the first ensure_connection() builds the client; callers
  racing on an absent handle wait for that one creation.
- Health gauge: UNKNOWN until the first result, then HEALTHY or UNHEALTHY.
  Only transport failures mark the connection UNHEALTHY; an UNHEALTHY
  handle is rebuilt on next use.
- Rotation: a background thread polls the TLS material fingerprint and
  swaps in a new handle when it changes. Handles are never mutated; a swap
  replaces the whole handle and bumps the version.

Callers that hold a handle through acquire() finish against it; a replaced
client is closed when the last such caller releases it, or immediately when
none holds it.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from siteagent.backend.client import BackendClient, ConnectionConfig, SiteControllerClient
from siteagent.backend.credentials import CredentialSource
from siteagent.contracts.enums import HealthState
from siteagent.contracts.errors import BackendError, ConnectionUnavailableError
from siteagent.core.atomic import AtomicCounter, AtomicReference
from siteagent.core.config import BackendSettings
from siteagent.core.logging import get_logger

logger = get_logger(__name__)

ClientFactory = Callable[[ConnectionConfig], BackendClient]


@dataclass(frozen=True, slots=True)
class ConnectionHandle:
    """A live client and the configuration it was built from."""

    client: BackendClient
    version: int
    config: ConnectionConfig
    fingerprint: str


class ConnectionManager:
    """Creates, health-tracks and rotates the shared backend connection.

    Example:
        manager = ConnectionManager(settings.backend, FileCredentialSource(...))
        with manager.acquire() as handle:
            try:
                result = handle.client.create("vpcs", body)
            except BackendError as e:
                manager.record_result(e)
                raise
            manager.record_result(None)
    """

    def __init__(
        self,
        settings: BackendSettings,
        credentials: CredentialSource | None = None,
        client_factory: ClientFactory = SiteControllerClient,
        *,
        watch_rotation: bool = True,
    ) -> None:
        """Initialize the manager. No connection is made until first use.

        Args:
            settings: Backend address, TLS mode and poll interval
            credentials: TLS material source, required when TLS is enabled
            client_factory: Builds a client from a connection config
            watch_rotation: Start the rotation watcher after first creation
        """
        if settings.tls_enabled and credentials is None:
            raise ValueError("credentials source is required when backend TLS is enabled")
        self._settings = settings
        self._credentials = credentials
        self._client_factory = client_factory
        self._watch_rotation = watch_rotation

        self._handle: AtomicReference[ConnectionHandle | None] = AtomicReference(None)
        self._health: AtomicReference[HealthState] = AtomicReference(HealthState.UNKNOWN)
        self._last_error: AtomicReference[str | None] = AtomicReference(None)
        self._versions = AtomicCounter()
        self._creation_attempts = AtomicCounter()
        self._rotations = AtomicCounter()
        self._rpc_succeeded = AtomicCounter()
        self._rpc_failed = AtomicCounter()

        self._create_lock = threading.Lock()
        # Guarded by _lease_lock; keyed by handle version
        self._lease_lock = threading.Lock()
        self._leases: dict[int, int] = {}
        self._retired: dict[int, ConnectionHandle] = {}
        self._stop = threading.Event()
        self._watcher: threading.Thread | None = None
        self._watcher_lock = threading.Lock()

    # -- accessors ------------------------------------------------------

    def get_connection(self) -> ConnectionHandle | None:
        """Current handle, or None before the first successful creation."""
        return self._handle.load()

    def current_version(self) -> int:
        """Version of the current handle; 0 when no handle exists."""
        handle = self._handle.load()
        return 0 if handle is None else handle.version

    @property
    def health(self) -> HealthState:
        return self._health.load()

    @property
    def last_error(self) -> str | None:
        return self._last_error.load()

    # -- lifecycle ------------------------------------------------------

    def ensure_connection(self) -> ConnectionHandle:
        """Return a usable handle, creating one if none exists.

        Exactly one caller performs creation; concurrent callers block on the
        creation lock and then observe the handle it produced. The handle is
        not held: a later swap may close its client. Use acquire() around
        calls that must survive a swap.

        Raises:
            ConnectionUnavailableError: If creation fails. Health is set to
                UNHEALTHY; the caller decides whether to retry.
        """
        observed = self._handle.load()
        if observed is not None and self._health.load() != HealthState.UNHEALTHY:
            return observed

        with self._create_lock:
            current = self._handle.load()
            # Another caller swapped while we waited
            if current is not None and current is not observed:
                return current
            handle = self._create_and_swap(reason="initial" if current is None else "reconnect")

        self._start_watcher()
        return handle

    @contextmanager
    def acquire(self) -> Iterator[ConnectionHandle]:
        """Hold the current handle for the duration of one backend call.

        A swap while the handle is held retires it instead of closing it; the
        client is closed when the last holder exits.

        Raises:
            ConnectionUnavailableError: If no handle can be created
        """
        while True:
            handle = self.ensure_connection()
            with self._lease_lock:
                # A swap between ensure_connection() and here may already have closed it
                if self._handle.load() is handle:
                    self._leases[handle.version] = self._leases.get(handle.version, 0) + 1
                    break
        try:
            yield handle
        finally:
            self._release(handle)

    def _release(self, handle: ConnectionHandle) -> None:
        with self._lease_lock:
            remaining = self._leases.pop(handle.version) - 1
            if remaining:
                self._leases[handle.version] = remaining
                return
            retired = self._retired.pop(handle.version, None)
        if retired is not None:
            self._close_handle(retired, reason="released")

    def _retire(self, handle: ConnectionHandle) -> None:
        with self._lease_lock:
            if self._leases.get(handle.version):
                self._retired[handle.version] = handle
                return
        self._close_handle(handle, reason="replaced")

    def _close_handle(self, handle: ConnectionHandle, *, reason: str) -> None:
        try:
            handle.client.close()
        except Exception as e:
            logger.warning("Failed to close backend client", version=handle.version, reason=reason, error=str(e))
        else:
            logger.debug("Backend client closed", version=handle.version, reason=reason)

    def _create_and_swap(self, *, reason: str) -> ConnectionHandle:
        """Build a client from the current material and swap it in.

        Must be called with the creation lock held.
        """
        self._creation_attempts.inc()
        try:
            config, fingerprint = self._build_config()
            client = self._client_factory(config)
        except Exception as e:
            self._health.store(HealthState.UNHEALTHY)
            self._last_error.store(str(e))
            logger.error("Backend connection creation failed", reason=reason, error=str(e))
            if isinstance(e, ConnectionUnavailableError):
                raise
            raise ConnectionUnavailableError(f"failed to create backend connection: {e}") from e

        handle = ConnectionHandle(client=client, version=self._versions.inc(), config=config, fingerprint=fingerprint)
        previous = self._handle.swap(handle)
        if previous is not None:
            self._retire(previous)
        self._health.store(HealthState.HEALTHY)
        self._last_error.store(None)
        logger.info("Backend connection created", reason=reason, version=handle.version, address=config.address)
        return handle

    def _build_config(self) -> tuple[ConnectionConfig, str]:
        settings = self._settings
        if not settings.tls_enabled or self._credentials is None:
            config = ConnectionConfig(
                address=settings.address,
                tls_enabled=False,
                timeout_seconds=settings.request_timeout_seconds,
                page_size=settings.page_size,
            )
            return config, ""

        material = self._credentials.load()
        config = ConnectionConfig(
            address=settings.address,
            tls_enabled=True,
            ca_path=material.ca_path,
            cert_path=material.cert_path,
            key_path=material.key_path,
            server_name=settings.server_name,
            timeout_seconds=settings.request_timeout_seconds,
            page_size=settings.page_size,
        )
        return config, material.fingerprint

    def record_result(self, error: BaseException | None) -> None:
        """Update the health gauge from one backend call result.

        None marks the connection HEALTHY. A transport failure
        (UNAVAILABLE, UNAUTHENTICATED) marks it UNHEALTHY. Any other error is
        an application failure and leaves the gauge unchanged.
        """
        if error is None:
            self._rpc_succeeded.inc()
            self._health.store(HealthState.HEALTHY)
            return

        self._rpc_failed.inc()
        if isinstance(error, BackendError) and error.is_transport_failure:
            self._health.store(HealthState.UNHEALTHY)
            self._last_error.store(str(error))
            logger.warning("Backend connection unhealthy", status=error.status.value, error=str(error))

    # -- rotation -------------------------------------------------------

    def check_rotation(self) -> bool:
        """Swap in a new handle if the TLS material changed.

        Returns:
            True if a new handle was swapped in
        """
        if self._credentials is None:
            return False
        handle = self._handle.load()
        if handle is None:
            return False
        material = self._credentials.load()
        if material.fingerprint == handle.fingerprint:
            return False

        with self._create_lock:
            current = self._handle.load()
            if current is not handle:
                return False
            self._create_and_swap(reason="rotation")
        self._rotations.inc()
        return True

    def _start_watcher(self) -> None:
        if not self._watch_rotation or self._credentials is None:
            return
        with self._watcher_lock:
            if self._watcher is not None:
                return
            self._watcher = threading.Thread(target=self._watch_loop, name="siteagent-cert-watcher", daemon=True)
            self._watcher.start()

    def _watch_loop(self) -> None:
        interval = self._settings.cert_poll_interval_seconds
        while not self._stop.wait(interval):
            try:
                self.check_rotation()
            except Exception as e:
                # Rotation is retried on the next tick; keep watching
                self._last_error.store(str(e))
                logger.error("Certificate rotation check failed", error=str(e))

    @property
    def watcher_started(self) -> bool:
        return self._watcher is not None

    @property
    def retired_count(self) -> int:
        """Replaced handles still held by in-flight callers."""
        with self._lease_lock:
            return len(self._retired)

    def close(self) -> None:
        """Stop the watcher and close every client this manager created."""
        self._stop.set()
        if self._watcher is not None:
            self._watcher.join(timeout=5.0)
        with self._create_lock:
            current = self._handle.swap(None)
            with self._lease_lock:
                handles = [*self._retired.values(), current]
                self._retired.clear()
        for handle in handles:
            if handle is not None:
                self._close_handle(handle, reason="shutdown")

    def status(self) -> dict[str, Any]:
        """JSON-serializable view for the status endpoint."""
        return {
            "health": self._health.load().name.lower(),
            "version": self.current_version(),
            "creation_attempts": self._creation_attempts.load(),
            "rotations": self._rotations.load(),
            "retired": self.retired_count,
            "rpc_succeeded": self._rpc_succeeded.load(),
            "rpc_failed": self._rpc_failed.load(),
            "last_error": self._last_error.load(),
        }
