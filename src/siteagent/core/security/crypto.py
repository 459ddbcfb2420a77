# src/siteagent/core/security/crypto.py
"""Token encryption and certificate parsing.

Rotation tokens arrive encrypted with a key derived from the site
identifier: AES-256-GCM, key = SHA-256(site id), 12-byte nonce prefixed
to the ciphertext.
"""

from __future__ import annotations

import hashlib
import os
from datetime import datetime

from cryptography import x509
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from siteagent.contracts.errors import CertificateError, TokenDecryptionError

_NONCE_SIZE = 12


def _derive_key(site_id: str) -> bytes:
    if not site_id:
        raise ValueError("site id is required to derive the token key")
    return hashlib.sha256(site_id.encode("utf-8")).digest()


def encrypt_token(token: bytes, site_id: str) -> bytes:
    """Encrypt a token for delivery to the site identified by site_id."""
    nonce = os.urandom(_NONCE_SIZE)
    return nonce + AESGCM(_derive_key(site_id)).encrypt(nonce, token, None)


def decrypt_token(ciphertext: bytes, site_id: str) -> bytes:
    """Decrypt a token produced by encrypt_token.

    Raises:
        TokenDecryptionError: If the ciphertext is truncated, tampered with,
            or was encrypted for another site
    """
    if len(ciphertext) <= _NONCE_SIZE:
        raise TokenDecryptionError("encrypted token is too short")
    nonce, body = ciphertext[:_NONCE_SIZE], ciphertext[_NONCE_SIZE:]
    try:
        return AESGCM(_derive_key(site_id)).decrypt(nonce, body, None)
    except InvalidTag as e:
        raise TokenDecryptionError("encrypted token failed authentication") from e


def load_certificate(pem: str | bytes) -> x509.Certificate:
    """Parse the first certificate in a PEM document.

    Raises:
        CertificateError: If no PEM certificate can be decoded
    """
    data = pem.encode("utf-8") if isinstance(pem, str) else pem
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise CertificateError(f"failed to decode certificate PEM: {e}") from e


def certificate_expiry(pem: str | bytes) -> datetime:
    """UTC expiry (notAfter) of a PEM certificate."""
    return load_certificate(pem).not_valid_after_utc
