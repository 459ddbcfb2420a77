# tests/conftest.py
"""Shared test fixtures.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/

Fixtures never touch the network: HTTP collaborators are exercised through
httpx.MockTransport and the engine through in-memory fakes.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from hypothesis import Phase, Verbosity, settings

from siteagent.backend.client import ConnectionConfig
from siteagent.contracts.identity import TransactionID
from siteagent.contracts.workflow import ResponsePayload
from siteagent.engine.publisher import publish_workflow_id
from siteagent.core.config import (
    BackendSettings,
    ControlPlaneSettings,
    RetrySettings,
    SiteAgentSettings,
    WorkflowSettings,
)

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Certificates
# =============================================================================


@dataclass(frozen=True)
class PKI:
    """A throwaway CA and a client certificate it issued."""

    ca_certificate: str
    certificate: str
    key: str
    ca_expiry: datetime
    cert_expiry: datetime


def _issue_pki(ca_days: int = 365, cert_days: int = 90) -> PKI:
    now = datetime.now(UTC).replace(microsecond=0)
    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "siteagent-test-ca")])
    ca_expiry = now + timedelta(days=ca_days)
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(ca_expiry)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(ca_key, hashes.SHA256())
    )

    leaf_key = ec.generate_private_key(ec.SECP256R1())
    cert_expiry = now + timedelta(days=cert_days)
    leaf_cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "site-agent")]))
        .issuer_name(ca_name)
        .public_key(leaf_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(cert_expiry)
        .sign(ca_key, hashes.SHA256())
    )

    return PKI(
        ca_certificate=ca_cert.public_bytes(serialization.Encoding.PEM).decode("ascii"),
        certificate=leaf_cert.public_bytes(serialization.Encoding.PEM).decode("ascii"),
        key=leaf_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode("ascii"),
        ca_expiry=ca_expiry,
        cert_expiry=cert_expiry,
    )


@pytest.fixture(scope="session")
def pki() -> PKI:
    return _issue_pki()


@pytest.fixture(scope="session")
def rotated_pki() -> PKI:
    return _issue_pki(ca_days=730, cert_days=180)


# =============================================================================
# Settings
# =============================================================================


def no_sleep(_seconds: float) -> None:
    pass


@pytest.fixture
def fast_workflow_settings() -> WorkflowSettings:
    return WorkflowSettings(
        activity_timeout_seconds=5.0,
        publish_timeout_seconds=5.0,
        max_workers=4,
        retry=RetrySettings(max_attempts=7, initial_interval_seconds=1.0, max_interval_seconds=60.0),
        publish_retry=RetrySettings(max_attempts=3, initial_interval_seconds=1.0, max_interval_seconds=60.0),
    )


@pytest.fixture
def agent_settings(tmp_path: Path, fast_workflow_settings: WorkflowSettings) -> SiteAgentSettings:
    return SiteAgentSettings(
        site_id="site-0001",
        backend=BackendSettings(address="http://controller.local:8080", tls_enabled=False),
        control_plane=ControlPlaneSettings(url="http://cloud.local", tls_enabled=False),
        workflow=fast_workflow_settings,
        bootstrap={
            "secret_dir": tmp_path / "sitereg",
            "credentials_dir": tmp_path / "certs",
        },
    )


# =============================================================================
# Fakes
# =============================================================================


@dataclass
class FakeBackendClient:
    """In-memory BackendClient recording every call.

    Each verb pops the next scripted outcome from `outcomes`: an exception is
    raised, anything else returned. With no script left, returns `default`.
    """

    config: ConnectionConfig = field(default_factory=lambda: ConnectionConfig(address="http://fake", tls_enabled=False))
    outcomes: list[Any] = field(default_factory=list)
    default: Any = field(default_factory=dict)
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    closed: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def _next(self, verb: str, *args: Any) -> Any:
        with self._lock:
            self.calls.append((verb, args))
            outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def create(self, collection: str, body: dict[str, Any], *, transaction_id: TransactionID | None = None) -> Any:
        return self._next("create", collection, body)

    def update(self, collection: str, resource_id: str, body: dict[str, Any], *, transaction_id: TransactionID | None = None) -> Any:
        return self._next("update", collection, resource_id, body)

    def delete(self, collection: str, resource_id: str, *, transaction_id: TransactionID | None = None) -> Any:
        return self._next("delete", collection, resource_id)

    def find(self, collection: str, filters: dict[str, Any] | None = None) -> Any:
        return self._next("find", collection, filters)

    def action(
        self,
        collection: str,
        resource_id: str,
        action: str,
        body: dict[str, Any] | None = None,
        *,
        transaction_id: TransactionID | None = None,
    ) -> Any:
        return self._next("action", collection, resource_id, action, body)

    def close(self) -> None:
        self.closed = True


@dataclass
class RecordingPublisher:
    """ControlPlanePublisher that records publishes and can be scripted to fail."""

    failures: list[BaseException] = field(default_factory=list)
    published: list[tuple[str, TransactionID, dict[str, Any]]] = field(default_factory=list)
    activities: list[str] = field(default_factory=list)
    cert_expiries: list[tuple[str, datetime]] = field(default_factory=list)
    cert_expiry_error: BaseException | None = None

    def publish(self, workflow: str, transaction_id: TransactionID, payload: ResponsePayload, activity: str = "") -> str:
        # Snapshot: the payload object keeps mutating after publish
        self.published.append((workflow, transaction_id, payload.to_dict()))
        self.activities.append(activity)
        if self.failures:
            raise self.failures.pop(0)
        return publish_workflow_id(workflow, transaction_id, activity)

    def publish_cert_expiry(self, site_id: str, expiry: datetime) -> str:
        if self.cert_expiry_error is not None:
            raise self.cert_expiry_error
        self.cert_expiries.append((site_id, expiry))
        return f"update-agent-cert-expiry-{site_id}"


@pytest.fixture
def fake_client() -> FakeBackendClient:
    return FakeBackendClient()


@pytest.fixture
def recording_publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def sleep_recorder() -> tuple[list[float], Callable[[float], None]]:
    """(delays, sleep) pair: sleep records instead of waiting."""
    delays: list[float] = []
    return delays, delays.append


# =============================================================================
# Agent harness
# =============================================================================


@dataclass
class Harness:
    """A wired agent context over fakes."""

    context: Any
    engine: Any
    resources: Any
    client: FakeBackendClient
    publisher: RecordingPublisher
    substrate: Any
    connections: Any
    factory_calls: list[ConnectionConfig]


@pytest.fixture
def harness(
    agent_settings: SiteAgentSettings,
    fake_client: FakeBackendClient,
    recording_publisher: RecordingPublisher,
) -> Any:
    from siteagent.agent import AgentContext
    from siteagent.backend.connection import ConnectionManager
    from siteagent.engine.engine import OrchestrationEngine
    from siteagent.engine.substrate import LocalSubstrate
    from siteagent.resources.manager import ResourceManager

    factory_calls: list[ConnectionConfig] = []

    def factory(config: ConnectionConfig) -> FakeBackendClient:
        factory_calls.append(config)
        return fake_client

    substrate = LocalSubstrate(max_workers=4, sleep=no_sleep)
    connections = ConnectionManager(agent_settings.backend, None, factory, watch_rotation=False)
    context = AgentContext(
        settings=agent_settings,
        connections=connections,
        substrate=substrate,
        publisher=recording_publisher,
        site_id=agent_settings.site_id,
    )
    engine = OrchestrationEngine(context)
    resources = ResourceManager(context, engine)
    resources.register()
    yield Harness(
        context=context,
        engine=engine,
        resources=resources,
        client=fake_client,
        publisher=recording_publisher,
        substrate=substrate,
        connections=connections,
        factory_calls=factory_calls,
    )
    substrate.close(wait=False)
