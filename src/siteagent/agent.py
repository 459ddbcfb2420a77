# src/siteagent/agent.py
"""Agent wiring and lifecycle.

AgentContext is the single object passed to every component constructor:
settings, the shared connection manager, the substrate, the publisher and
the observability sinks. There is no module-level state.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from siteagent.backend.connection import ConnectionManager
from siteagent.backend.credentials import CredentialSource, FileCredentialSource, SecretStoreCredentialSource
from siteagent.bootstrap.downloader import CredentialDownloader
from siteagent.bootstrap.manager import BootstrapManager
from siteagent.bootstrap.secret import BOOTSTRAP_SECRET_KEYS
from siteagent.bootstrap.token import TokenHandler
from siteagent.bootstrap.watcher import SecretWatcher
from siteagent.contracts.enums import SecretBackend
from siteagent.core.config import SiteAgentSettings
from siteagent.core.logging import get_logger
from siteagent.core.security.secret_store import FileSecretStore, KeyVaultSecretStore, SecretStore
from siteagent.core.stats import LatencyHistogram, StatisticsRegistry
from siteagent.engine.engine import OrchestrationEngine
from siteagent.engine.publisher import ControlPlanePublisher, HTTPControlPlanePublisher
from siteagent.engine.spans import SpanFactory
from siteagent.engine.substrate import ExecutionSubstrate, LocalSubstrate
from siteagent.resources.manager import ResourceManager

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

logger = get_logger(__name__)

RECEIVE_TOKEN_ACTIVITY = "ReceiveAndSaveToken"
ROTATE_TOKEN_WORKFLOW = "RotateSiteCredentials"


@dataclass(frozen=True)
class AgentContext:
    """Shared collaborators for one agent process."""

    settings: SiteAgentSettings
    connections: ConnectionManager
    substrate: ExecutionSubstrate
    publisher: ControlPlanePublisher
    statistics: StatisticsRegistry = field(default_factory=StatisticsRegistry)
    latency: LatencyHistogram = field(default_factory=LatencyHistogram)
    spans: SpanFactory = field(default_factory=SpanFactory)
    site_id: str | None = None


def build_secret_stores(settings: SiteAgentSettings) -> tuple[SecretStore, SecretStore]:
    """Bootstrap and credential stores for the configured backend.

    Returns:
        (bootstrap_store, credential_store); the same instance for Key Vault
    """
    bootstrap = settings.bootstrap
    if bootstrap.secret_backend == SecretBackend.KEYVAULT:
        assert bootstrap.keyvault_url is not None, "validated by BootstrapSettings"
        store = KeyVaultSecretStore(bootstrap.keyvault_url)
        return store, store

    store = FileSecretStore(
        directories={
            bootstrap.bootstrap_secret_name: bootstrap.secret_dir,
            bootstrap.credentials_secret_name: bootstrap.credentials_dir,
        },
        file_names={bootstrap.credentials_secret_name: bootstrap.credential_file_names()},
    )
    return store, store


def build_credential_source(settings: SiteAgentSettings, credential_store: SecretStore) -> CredentialSource:
    bootstrap = settings.bootstrap
    if bootstrap.secret_backend == SecretBackend.KEYVAULT:
        return SecretStoreCredentialSource(credential_store, bootstrap.credentials_secret_name, bootstrap.credentials_dir)
    return FileCredentialSource(bootstrap.ca_cert_path, bootstrap.cert_path, bootstrap.key_path)


class SiteAgent:
    """One agent process: bootstrap, resource workflows, status.

    Example:
        agent = SiteAgent.from_settings(load_settings(Path("agent.yaml")))
        agent.start()
        ...
        agent.stop()
    """

    def __init__(
        self,
        context: AgentContext,
        *,
        bootstrap: BootstrapManager | None = None,
        watcher: SecretWatcher | None = None,
    ) -> None:
        self._context = context
        self._bootstrap = bootstrap
        self._watcher = watcher
        self._engine = OrchestrationEngine(context)
        self._resources = ResourceManager(context, self._engine)
        self._token_handler: TokenHandler | None = None
        self._started = False

    @classmethod
    def from_settings(cls, settings: SiteAgentSettings, tracer: Tracer | None = None) -> SiteAgent:
        """Wire every component from settings."""
        bootstrap_store, credential_store = build_secret_stores(settings)
        credentials = build_credential_source(settings, credential_store)

        bootstrap_manager: BootstrapManager | None = None
        watcher: SecretWatcher | None = None
        spans = SpanFactory(tracer)
        if settings.is_master and settings.bootstrap.enabled:
            bootstrap_manager = BootstrapManager(
                bootstrap_store=bootstrap_store,
                bootstrap_secret_name=settings.bootstrap.bootstrap_secret_name,
                credential_store=credential_store,
                credentials_secret_name=settings.bootstrap.credentials_secret_name,
                downloader=CredentialDownloader(
                    timeout=settings.bootstrap.download_timeout_seconds,
                    max_attempts=settings.bootstrap.download_max_attempts,
                ),
                spans=spans,
            )
            if settings.bootstrap.secret_backend == SecretBackend.FILE:
                watcher = SecretWatcher(
                    settings.bootstrap.secret_dir, BOOTSTRAP_SECRET_KEYS, bootstrap_manager.on_secret_changed
                )

        context = AgentContext(
            settings=settings,
            connections=ConnectionManager(settings.backend, credentials if settings.backend.tls_enabled else None),
            substrate=LocalSubstrate(max_workers=settings.workflow.max_workers),
            publisher=HTTPControlPlanePublisher(
                settings.control_plane, credentials if settings.control_plane.tls_enabled else None
            ),
            spans=spans,
            site_id=settings.site_id,
        )
        return cls(context, bootstrap=bootstrap_manager, watcher=watcher)

    @property
    def context(self) -> AgentContext:
        return self._context

    @property
    def engine(self) -> OrchestrationEngine:
        return self._engine

    @property
    def resources(self) -> ResourceManager:
        return self._resources

    @property
    def bootstrap(self) -> BootstrapManager | None:
        return self._bootstrap

    @property
    def token_handler(self) -> TokenHandler | None:
        return self._token_handler

    @property
    def site_id(self) -> str | None:
        if self._context.site_id:
            return self._context.site_id
        if self._bootstrap is not None and self._bootstrap.secret is not None:
            return self._bootstrap.secret.site_uuid
        return None

    def start(self) -> None:
        """Bootstrap credentials (master only), then register and schedule workflows.

        Raises:
            BootstrapError: If initial credentials cannot be obtained or the
                secret watch cannot be established
        """
        if self._started:
            return
        settings = self._context.settings

        if self._bootstrap is not None:
            self._bootstrap.load_secret()
            self._bootstrap.download_and_store(None)
            if self._watcher is not None:
                self._watcher.start()
        else:
            logger.info("Bootstrap not run on this replica", is_master=settings.is_master)

        self._resources.register()
        self._register_token_rotation()
        if settings.inventory_cron:
            self._resources.schedule_inventory(settings.inventory_cron, settings.control_plane.subscribe_queue)

        substrate = self._context.substrate
        if isinstance(substrate, LocalSubstrate):
            substrate.start()
        self._started = True
        logger.info("Site agent started", site_id=self.site_id, queue=settings.control_plane.subscribe_queue)

    def _register_token_rotation(self) -> None:
        if self._bootstrap is None:
            return
        site_id = self.site_id
        if not site_id:
            logger.warning("No site id available, token rotation disabled")
            return
        self._token_handler = TokenHandler(self._bootstrap, site_id, self._context.publisher)
        substrate = self._context.substrate
        substrate.activities.register(RECEIVE_TOKEN_ACTIVITY, self._token_handler.receive_and_save_token)
        substrate.workflows.register(
            ROTATE_TOKEN_WORKFLOW,
            functools.partial(
                substrate.execute_activity,
                RECEIVE_TOKEN_ACTIVITY,
                options=self._context.settings.workflow.activity_options(),
            ),
        )

    def stop(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
        substrate = self._context.substrate
        if isinstance(substrate, LocalSubstrate):
            substrate.close()
        publisher = self._context.publisher
        if isinstance(publisher, HTTPControlPlanePublisher):
            publisher.close()
        self._context.connections.close()
        self._started = False
        logger.info("Site agent stopped")

    def status(self) -> dict[str, Any]:
        """JSON-serializable snapshot of every subsystem."""
        return {
            "site_id": self.site_id,
            "is_master": self._context.settings.is_master,
            "connection": self._context.connections.status(),
            "bootstrap": self._bootstrap.status() if self._bootstrap is not None else None,
            "workflows": self._context.statistics.snapshot(),
            "latency": self._context.latency.snapshot(),
        }
