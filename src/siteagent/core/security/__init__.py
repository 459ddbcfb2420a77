# src/siteagent/core/security/__init__.py
"""Security utilities: fingerprints, token encryption, secret persistence."""

from siteagent.core.security.crypto import (
    certificate_expiry,
    decrypt_token,
    encrypt_token,
    load_certificate,
)
from siteagent.core.security.fingerprint import material_fingerprint, secret_fingerprint
from siteagent.core.security.secret_store import (
    FileSecretStore,
    KeyVaultSecretStore,
    SecretNotFoundError,
    SecretStore,
)

__all__ = [
    "FileSecretStore",
    "KeyVaultSecretStore",
    "SecretNotFoundError",
    "SecretStore",
    "certificate_expiry",
    "decrypt_token",
    "encrypt_token",
    "load_certificate",
    "material_fingerprint",
    "secret_fingerprint",
]
