# src/siteagent/engine/publisher.py
"""Control-plane publisher.

Each publish starts one workflow on the control plane:

    POST <url>/namespaces/<namespace>/workflows
    {"workflowType": ..., "workflowId": ..., "taskQueue": ..., "args": [...]}

The workflow ID is derived from the transaction and the activity, so a
retried publish for one operation is deduplicated remotely while a later
operation on the same resource starts its own workflow.
"""

from __future__ import annotations

import ssl
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Protocol

import httpx

from siteagent.backend.credentials import CredentialSource
from siteagent.contracts.errors import PublishError
from siteagent.contracts.identity import TransactionID
from siteagent.contracts.workflow import ResponsePayload
from siteagent.core.config import ControlPlaneSettings
from siteagent.core.logging import get_logger

logger = get_logger(__name__)

CERT_EXPIRY_WORKFLOW = "UpdateAgentCertExpiry"


def publish_workflow_id(workflow: str, transaction_id: TransactionID, activity: str = "") -> str:
    """Remote workflow ID for one status update, e.g. "UpdateVpcInfo-Delete-vpc-1-1767322800000000000"."""
    parts = [workflow, activity, transaction_id.resource_id, str(transaction_id.resource_version)]
    return "-".join(part for part in parts if part)


def cert_expiry_workflow_id(site_id: str) -> str:
    return f"update-agent-cert-expiry-{site_id}"


class ControlPlanePublisher(Protocol):
    def publish(self, workflow: str, transaction_id: TransactionID, payload: ResponsePayload, activity: str = "") -> str:
        """Start a status-update workflow; returns the remote workflow ID.

        Raises:
            PublishError: If the control plane rejects or cannot be reached
        """
        ...

    def publish_cert_expiry(self, site_id: str, expiry: datetime) -> str:
        """Report the agent certificate expiry; returns the remote workflow ID."""
        ...


class HTTPControlPlanePublisher:
    """Publishes to the control plane workflow API over httpx.

    With TLS enabled the client presents the site credentials and verifies
    the control plane against the site CA. The client is rebuilt whenever the
    credential fingerprint changes; a replaced client stays open until the
    last publish using it returns.
    """

    def __init__(
        self,
        settings: ControlPlaneSettings,
        credentials: CredentialSource | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the publisher.

        Args:
            settings: Control plane URL, namespace and queue
            credentials: Site TLS material, required when TLS is enabled
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        if settings.tls_enabled and credentials is None and transport is None:
            raise ValueError("credentials source is required when control plane TLS is enabled")
        self._settings = settings
        self._credentials = credentials
        self._transport = transport
        self._lock = threading.Lock()
        # Guarded by _lock
        self._client: httpx.Client | None = None
        self._fingerprint: str | None = None
        self._leases: dict[int, int] = {}
        self._retired: dict[int, httpx.Client] = {}

    def _current_client(self) -> httpx.Client:
        """Return the client for the current material. Call with _lock held."""
        material = None
        fingerprint = ""
        if self._settings.tls_enabled and self._credentials is not None:
            material = self._credentials.load()
            fingerprint = material.fingerprint
        if self._client is not None and fingerprint == self._fingerprint:
            return self._client

        verify: ssl.SSLContext | bool = self._settings.tls_enabled
        if material is not None:
            verify = ssl.create_default_context(cafile=str(material.ca_path))
            verify.load_cert_chain(certfile=str(material.cert_path), keyfile=str(material.key_path))

        previous = self._client
        self._client = httpx.Client(
            base_url=self._settings.url,
            verify=verify,
            timeout=self._settings.request_timeout_seconds,
            transport=self._transport,
        )
        self._fingerprint = fingerprint
        if previous is not None:
            if self._leases.get(id(previous)):
                self._retired[id(previous)] = previous
            else:
                previous.close()
            logger.info("Control plane client rebuilt for rotated credentials")
        return self._client

    @contextmanager
    def _lease(self) -> Iterator[httpx.Client]:
        with self._lock:
            client = self._current_client()
            self._leases[id(client)] = self._leases.get(id(client), 0) + 1
        try:
            yield client
        finally:
            with self._lock:
                remaining = self._leases.pop(id(client)) - 1
                if remaining:
                    self._leases[id(client)] = remaining
                    retired = None
                else:
                    retired = self._retired.pop(id(client), None)
            if retired is not None:
                retired.close()

    def _start_workflow(self, workflow: str, workflow_id: str, args: list[Any]) -> str:
        body = {
            "workflowType": workflow,
            "workflowId": workflow_id,
            "taskQueue": self._settings.publish_queue,
            "args": args,
        }
        path = f"/namespaces/{self._settings.namespace}/workflows"
        try:
            with self._lease() as client:
                response = client.post(path, json=body)
        except httpx.TransportError as e:
            raise PublishError(f"control plane unreachable publishing {workflow_id}: {e}") from e

        if not response.is_success:
            raise PublishError(f"control plane rejected {workflow_id}: {response.status_code} {response.text}")

        remote_id = workflow_id
        if response.content:
            data = response.json()
            if isinstance(data, dict) and data.get("workflowId"):
                remote_id = str(data["workflowId"])
        logger.debug("Published to control plane", workflow=workflow, workflow_id=remote_id)
        return remote_id

    def publish(self, workflow: str, transaction_id: TransactionID, payload: ResponsePayload, activity: str = "") -> str:
        transaction = {
            "resource_id": transaction_id.resource_id,
            "timestamp": transaction_id.timestamp.isoformat() if transaction_id.timestamp else None,
        }
        workflow_id = publish_workflow_id(workflow, transaction_id, activity)
        return self._start_workflow(workflow, workflow_id, [transaction, payload.to_dict()])

    def publish_cert_expiry(self, site_id: str, expiry: datetime) -> str:
        return self._start_workflow(CERT_EXPIRY_WORKFLOW, cert_expiry_workflow_id(site_id), [site_id, expiry.isoformat()])

    def close(self) -> None:
        """Close every client, including ones still held by in-flight publishes."""
        with self._lock:
            clients = [*self._retired.values(), self._client]
            self._retired.clear()
            self._client = None
            self._fingerprint = None
        for client in clients:
            if client is not None:
                client.close()
