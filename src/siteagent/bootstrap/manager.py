# src/siteagent/bootstrap/manager.py
"""Credential bootstrap: download site credentials and persist them.

The persisted credential secret records the token it was downloaded with.
download_and_store() compares that token with the one in memory and skips
the download when they match, so repeated file-watch events cost nothing.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from siteagent.bootstrap.downloader import CredentialDownloader
from siteagent.bootstrap.secret import load_bootstrap_secret
from siteagent.contracts.bootstrap import KEY_TOKEN, BootstrapSecret
from siteagent.contracts.errors import InvalidBootstrapSecretError
from siteagent.core.atomic import AtomicCounter, AtomicReference
from siteagent.core.logging import get_logger
from siteagent.core.security.crypto import certificate_expiry
from siteagent.core.security.fingerprint import secret_fingerprint
from siteagent.core.security.secret_store import SecretNotFoundError, SecretStore
from siteagent.engine.spans import SpanFactory

logger = get_logger(__name__)


class BootstrapManager:
    """Owns the bootstrap secret and the persisted site credentials.

    Never touches the backend connection: the connection manager picks up
    new credentials through its own rotation watcher.
    """

    def __init__(
        self,
        *,
        bootstrap_store: SecretStore,
        bootstrap_secret_name: str,
        credential_store: SecretStore,
        credentials_secret_name: str,
        downloader: CredentialDownloader,
        spans: SpanFactory | None = None,
    ) -> None:
        self._bootstrap_store = bootstrap_store
        self._bootstrap_secret_name = bootstrap_secret_name
        self._credential_store = credential_store
        self._credentials_secret_name = credentials_secret_name
        self._downloader = downloader
        self._spans = spans or SpanFactory()

        self._secret: BootstrapSecret | None = None
        # Reentrant: token rotation holds it across its own download_and_store()
        self._lock = threading.RLock()
        self._attempted = AtomicCounter()
        self._succeeded = AtomicCounter()
        self._skipped = AtomicCounter()
        self._last_error: AtomicReference[str | None] = AtomicReference(None)
        self._ca_expiry: AtomicReference[datetime | None] = AtomicReference(None)
        self._agent_cert_expiry: AtomicReference[datetime | None] = AtomicReference(None)

    @property
    def bootstrap_store(self) -> SecretStore:
        return self._bootstrap_store

    @property
    def bootstrap_secret_name(self) -> str:
        return self._bootstrap_secret_name

    @property
    def credential_store(self) -> SecretStore:
        return self._credential_store

    @property
    def credentials_secret_name(self) -> str:
        return self._credentials_secret_name

    @property
    def secret(self) -> BootstrapSecret | None:
        return self._secret

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the rotation lock; file-watch triggered downloads wait."""
        with self._lock:
            yield

    def load_secret(self) -> BootstrapSecret:
        """Re-read the bootstrap secret, replacing the in-memory copy.

        Raises:
            InvalidBootstrapSecretError: If the secret is absent or incomplete
        """
        secret = load_bootstrap_secret(self._bootstrap_store, self._bootstrap_secret_name)
        with self._lock:
            self._secret = secret
        return secret

    def stored_token(self) -> str | None:
        """Token the persisted credentials were downloaded with, if any."""
        try:
            data = self._credential_store.read(self._credentials_secret_name)
        except SecretNotFoundError:
            return None
        token = data.get(KEY_TOKEN)
        return token.strip() if token else None

    def download_and_store(self, token_override: str | None = None) -> bool:
        """Download credentials for the current token and persist them.

        Args:
            token_override: Token to use instead of the stored comparison;
                forces a download and becomes the in-memory token

        Returns:
            True if credentials were downloaded, False if already current

        Raises:
            InvalidBootstrapSecretError: If the bootstrap secret is incomplete
            BootstrapError: If the download fails
            CertificateError: If the returned CA certificate cannot be parsed
        """
        with self._lock:
            secret = self._secret if self._secret is not None else self.load_secret()
            if token_override:
                secret.token = token_override
            elif self.stored_token() == secret.token:
                self._skipped.inc()
                logger.debug("Credentials already current for token", token_fingerprint=secret_fingerprint(secret.token))
                return False

            missing = secret.missing_fields()
            if missing:
                raise InvalidBootstrapSecretError(f"invalid bootstrap secret: missing {', '.join(missing)}")

            self._attempted.inc()
            with self._spans.bootstrap_span("download", secret.site_uuid) as span:
                try:
                    credentials = self._downloader.download(secret, secret.token)
                    ca_expiry = certificate_expiry(credentials.ca_certificate)
                    self._credential_store.write(self._credentials_secret_name, credentials.as_secret_data(secret.token))
                except Exception as e:
                    self._last_error.store(str(e))
                    span.record_exception(e)
                    logger.error("Credential download failed", site_uuid=secret.site_uuid, error=str(e))
                    raise

            self._succeeded.inc()
            self._ca_expiry.store(ca_expiry)
            self._last_error.store(None)
            logger.info(
                "Credentials downloaded and stored",
                site_uuid=secret.site_uuid,
                token_fingerprint=secret_fingerprint(secret.token),
                ca_expiry=ca_expiry.isoformat(),
            )
            return True

    def on_secret_changed(self) -> None:
        """File-watch callback: re-read the bootstrap secret, then re-check the token."""
        with self._lock:
            self.load_secret()
            self.download_and_store(None)

    def record_agent_cert_expiry(self, expiry: datetime) -> None:
        self._agent_cert_expiry.store(expiry)

    def status(self) -> dict[str, Any]:
        """JSON-serializable view for the status endpoint."""
        ca_expiry = self._ca_expiry.load()
        agent_expiry = self._agent_cert_expiry.load()
        return {
            "download_attempted": self._attempted.load(),
            "download_succeeded": self._succeeded.load(),
            "download_skipped": self._skipped.load(),
            "last_error": self._last_error.load(),
            "ca_cert_expiry": ca_expiry.isoformat() if ca_expiry else None,
            "agent_cert_expiry": agent_expiry.isoformat() if agent_expiry else None,
        }
