# tests/bootstrap/conftest.py
"""Fixtures for credential bootstrap tests: a file-backed store and a mock credentials endpoint."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import pytest

from siteagent.bootstrap.downloader import CredentialDownloader
from siteagent.bootstrap.manager import BootstrapManager
from siteagent.core.security.secret_store import FileSecretStore

CREDS_URL = "https://sitereg.cloud.example/v1/credentials"


@dataclass
class CredentialsEndpoint:
    """Mock credentials endpoint recording request bodies."""

    pki: object
    requests: list[dict] = field(default_factory=list)
    statuses: list[int] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        status = self.statuses.pop(0) if self.statuses else 200
        if status != 200:
            return httpx.Response(status, text="endpoint error")
        return httpx.Response(
            200,
            json={"caCertificate": self.pki.ca_certificate, "certificate": self.pki.certificate, "key": self.pki.key},
        )


@pytest.fixture
def secret_store(tmp_path: Path) -> FileSecretStore:
    return FileSecretStore(
        directories={"bootstrap-info": tmp_path / "sitereg", "site-credentials": tmp_path / "certs"},
        file_names={"site-credentials": {"cacertificate": "ca.crt", "certificate": "tls.crt", "key": "tls.key"}},
    )


@pytest.fixture
def bootstrap_secret(secret_store: FileSecretStore, pki) -> dict[str, str]:
    data = {"site-uuid": "site-0001", "otp": "token-1", "creds-url": CREDS_URL, "cacert": pki.ca_certificate}
    secret_store.write("bootstrap-info", data)
    return data


@pytest.fixture
def endpoint(pki) -> CredentialsEndpoint:
    return CredentialsEndpoint(pki)


@pytest.fixture
def bootstrap_manager(secret_store: FileSecretStore, bootstrap_secret, endpoint: CredentialsEndpoint) -> BootstrapManager:
    return BootstrapManager(
        bootstrap_store=secret_store,
        bootstrap_secret_name="bootstrap-info",
        credential_store=secret_store,
        credentials_secret_name="site-credentials",
        downloader=CredentialDownloader(transport=httpx.MockTransport(endpoint), sleep=lambda _: None),
    )
