# src/siteagent/bootstrap/token.py
"""Rotation token delivery.

The control plane sends a new token base64-encoded and encrypted for this
site. Receiving it updates the bootstrap secret, forces a credential
download, and reports the new certificate's expiry back.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime

from siteagent.bootstrap.manager import BootstrapManager
from siteagent.bootstrap.secret import TAG_TOKEN
from siteagent.contracts.bootstrap import KEY_CERT
from siteagent.contracts.errors import CertificateError, NonRetryableError, TokenDecryptionError
from siteagent.core.logging import get_logger
from siteagent.core.security.crypto import certificate_expiry, decrypt_token
from siteagent.core.security.fingerprint import secret_fingerprint
from siteagent.engine.publisher import ControlPlanePublisher

logger = get_logger(__name__)


class TokenHandler:
    """Handles ReceiveAndSaveToken activities on the master replica."""

    def __init__(self, manager: BootstrapManager | None, site_id: str, publisher: ControlPlanePublisher | None = None) -> None:
        """Initialize the handler.

        Args:
            manager: Bootstrap manager owning the secrets; None when this
                replica has no secret access
            site_id: Key material for token decryption
            publisher: Receives the rotated certificate expiry (best effort)
        """
        self._manager = manager
        self._site_id = site_id
        self._publisher = publisher

    def receive_and_save_token(self, encrypted_token_b64: str) -> datetime:
        """Decrypt a rotation token, store it and rotate credentials.

        Returns:
            Expiry of the newly issued client certificate

        Raises:
            NonRetryableError: Empty input (ErrEmptyOTP), bad base64
                (ErrBase64DecodeOTP), no secret access (ErrNilSecretInterface),
                empty bootstrap secret (ErrNilSecretData), undecryptable token
                (ErrDecryptOTP)
            BootstrapError: If the credential download fails (retryable)
        """
        log = logger.bind(activity="ReceiveAndSaveToken")
        if not encrypted_token_b64:
            raise NonRetryableError("received empty token", type="ErrEmptyOTP")
        try:
            encrypted = base64.b64decode(encrypted_token_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise NonRetryableError(f"token is not valid base64: {e}", type="ErrBase64DecodeOTP") from e

        manager = self._manager
        if manager is None:
            raise NonRetryableError("secret access is not configured", type="ErrNilSecretInterface")

        with manager.locked():
            data = manager.bootstrap_store.read(manager.bootstrap_secret_name)
            if not data:
                raise NonRetryableError(
                    f"bootstrap secret '{manager.bootstrap_secret_name}' has no data", type="ErrNilSecretData"
                )

            try:
                token = decrypt_token(encrypted, self._site_id).decode("utf-8")
            except UnicodeDecodeError as e:
                raise TokenDecryptionError(f"decrypted token is not UTF-8: {e}") from e
            manager.bootstrap_store.write(manager.bootstrap_secret_name, {TAG_TOKEN: token})
            log.info("Rotation token stored", token_fingerprint=secret_fingerprint(token))

            manager.download_and_store(token)

        # Mounted volumes update asynchronously; read the store, not the files
        credentials = manager.credential_store.read(manager.credentials_secret_name)
        certificate = credentials.get(KEY_CERT)
        if not certificate:
            raise CertificateError(f"secret '{manager.credentials_secret_name}' has no certificate after rotation")
        expiry = certificate_expiry(certificate)
        manager.record_agent_cert_expiry(expiry)
        log.info("Agent certificate rotated", expiry=expiry.isoformat())

        if self._publisher is not None:
            try:
                workflow_id = self._publisher.publish_cert_expiry(self._site_id, expiry)
            except Exception as e:
                log.warning("Failed to report certificate expiry", error=str(e))
            else:
                log.info("Certificate expiry reported", workflow_id=workflow_id)
        return expiry
