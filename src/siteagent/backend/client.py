# src/siteagent/backend/client.py
"""Site controller client.

The site controller exposes a uniform REST surface for every resource kind:

    POST   /v1/<collection>                  create
    PATCH  /v1/<collection>/<id>             update
    DELETE /v1/<collection>/<id>             delete
    GET    /v1/<collection>                  find (paged)
    POST   /v1/<collection>/<id>:<action>    action (reboot, ...)

Every failure is raised as a BackendError carrying a BackendStatus, so the
connection manager can tell a dead connection from a rejected request.
"""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import httpx

from siteagent.contracts.enums import BackendStatus
from siteagent.contracts.errors import BackendError, ResourceStaleError
from siteagent.contracts.identity import TransactionID
from siteagent.core.logging import get_logger

logger = get_logger(__name__)

# Error body code the controller returns when the resource is already in
# the requested state.
STALE_RESOURCE_CODE = "RESOURCE_STALE"

_STATUS_BY_HTTP_CODE: dict[int, BackendStatus] = {
    400: BackendStatus.INVALID_ARGUMENT,
    401: BackendStatus.UNAUTHENTICATED,
    403: BackendStatus.PERMISSION_DENIED,
    404: BackendStatus.NOT_FOUND,
    408: BackendStatus.DEADLINE_EXCEEDED,
    409: BackendStatus.ALREADY_EXISTS,
    412: BackendStatus.FAILED_PRECONDITION,
    422: BackendStatus.INVALID_ARGUMENT,
    499: BackendStatus.CANCELLED,
    502: BackendStatus.UNAVAILABLE,
    503: BackendStatus.UNAVAILABLE,
    504: BackendStatus.UNAVAILABLE,
}


def classify_status(http_code: int) -> BackendStatus:
    """Map an HTTP status code onto a backend status."""
    if 200 <= http_code < 300:
        return BackendStatus.OK
    return _STATUS_BY_HTTP_CODE.get(http_code, BackendStatus.INTERNAL)


class BackendClient(Protocol):
    """Operations the dispatch contract may perform against the controller."""

    def create(self, collection: str, body: dict[str, Any], *, transaction_id: TransactionID | None = None) -> dict[str, Any]: ...

    def update(
        self, collection: str, resource_id: str, body: dict[str, Any], *, transaction_id: TransactionID | None = None
    ) -> dict[str, Any]: ...

    def delete(self, collection: str, resource_id: str, *, transaction_id: TransactionID | None = None) -> dict[str, Any]: ...

    def find(self, collection: str, filters: dict[str, Any] | None = None) -> list[dict[str, Any]]: ...

    def action(
        self,
        collection: str,
        resource_id: str,
        action: str,
        body: dict[str, Any] | None = None,
        *,
        transaction_id: TransactionID | None = None,
    ) -> dict[str, Any]: ...

    def close(self) -> None: ...


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """Immutable settings one client instance is bound to.

    A rotated certificate produces a new config and a new client; a live
    client's config never changes.
    """

    address: str
    tls_enabled: bool = True
    ca_path: Path | None = None
    cert_path: Path | None = None
    key_path: Path | None = None
    server_name: str | None = None
    timeout_seconds: float = 30.0
    page_size: int = 100


def build_ssl_context(config: ConnectionConfig) -> ssl.SSLContext:
    """Mutual TLS context from the configured CA and client key pair.

    Raises:
        ValueError: If TLS is enabled but a material path is missing
    """
    if config.ca_path is None or config.cert_path is None or config.key_path is None:
        raise ValueError("TLS requires ca_path, cert_path and key_path")
    context = ssl.create_default_context(cafile=str(config.ca_path))
    context.load_cert_chain(certfile=str(config.cert_path), keyfile=str(config.key_path))
    return context


class SiteControllerClient:
    """httpx client for the site controller REST API."""

    def __init__(self, config: ConnectionConfig, transport: httpx.BaseTransport | None = None) -> None:
        """Initialize the client.

        Args:
            config: Address and TLS material to bind to
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        self._config = config
        verify: ssl.SSLContext | bool = build_ssl_context(config) if config.tls_enabled else False
        self._client = httpx.Client(
            base_url=f"{config.address}/v1",
            verify=verify,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        transaction_id: TransactionID | None = None,
    ) -> Any:
        headers: dict[str, str] = {}
        if transaction_id is not None:
            headers["X-Transaction-Id"] = transaction_id.resource_id
            headers["X-Resource-Version"] = str(transaction_id.resource_version)
        extensions = {"sni_hostname": self._config.server_name} if self._config.server_name else None

        try:
            response = self._client.request(method, path, json=json, params=params, headers=headers, extensions=extensions)
        except httpx.TransportError as e:
            raise BackendError(BackendStatus.UNAVAILABLE, f"{method} {path}: {e}") from e

        if response.is_success:
            return response.json() if response.content else {}
        raise _error_from_response(method, path, response)

    def create(self, collection: str, body: dict[str, Any], *, transaction_id: TransactionID | None = None) -> dict[str, Any]:
        return self._request("POST", f"/{collection}", json=body, transaction_id=transaction_id)

    def update(
        self, collection: str, resource_id: str, body: dict[str, Any], *, transaction_id: TransactionID | None = None
    ) -> dict[str, Any]:
        return self._request("PATCH", f"/{collection}/{resource_id}", json=body, transaction_id=transaction_id)

    def delete(self, collection: str, resource_id: str, *, transaction_id: TransactionID | None = None) -> dict[str, Any]:
        return self._request("DELETE", f"/{collection}/{resource_id}", transaction_id=transaction_id)

    def find(self, collection: str, filters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """List resources, following page tokens until exhausted."""
        items: list[dict[str, Any]] = []
        params: dict[str, Any] = {**(filters or {}), "page_size": self._config.page_size}
        while True:
            page = self._request("GET", f"/{collection}", params=params)
            items.extend(page.get("items", []))
            token = page.get("next_page_token")
            if not token:
                return items
            params = {**params, "page_token": token}

    def action(
        self,
        collection: str,
        resource_id: str,
        action: str,
        body: dict[str, Any] | None = None,
        *,
        transaction_id: TransactionID | None = None,
    ) -> dict[str, Any]:
        return self._request("POST", f"/{collection}/{resource_id}:{action}", json=body or {}, transaction_id=transaction_id)

    def close(self) -> None:
        self._client.close()


def _error_from_response(method: str, path: str, response: httpx.Response) -> BackendError:
    message = response.text
    code = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        code = body.get("code")
        message = str(body.get("message", message))

    if code == STALE_RESOURCE_CODE:
        return ResourceStaleError(message or "resource is already in the desired state")

    status = classify_status(response.status_code)
    logger.debug("Site controller call failed", method=method, path=path, http_status=response.status_code, status=status.value)
    return BackendError(status, f"{method} {path} returned {response.status_code}: {message}")
