# src/siteagent/core/security/secret_store.py
"""Persistence for named secret documents.

A secret is a flat mapping of key -> string value. Two backends:

- FileSecretStore: each secret is a directory, each key a file. This is
  the layout of a mounted Kubernetes secret volume.
- KeyVaultSecretStore: each secret is one Azure Key Vault secret whose
  value is the JSON-encoded mapping.

Usage:
    store = FileSecretStore(
        directories={"site-credentials": Path("/etc/temporal-certs")},
        file_names={"site-credentials": {"cacertificate": "ca.crt"}},
    )
    store.write("site-credentials", {"otp": "...", "cacertificate": "..."})
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from siteagent.contracts.bootstrap import KEY_TOKEN
from siteagent.contracts.errors import SiteAgentError
from siteagent.core.logging import get_logger

if TYPE_CHECKING:
    from azure.keyvault.secrets import SecretClient

logger = get_logger(__name__)


class SecretNotFoundError(SiteAgentError):
    """Raised when a named secret does not exist in the store."""


class SecretStore(Protocol):
    """Read and replace named secret documents."""

    def read(self, name: str) -> dict[str, str]:
        """Load every key of a secret.

        Raises:
            SecretNotFoundError: If the secret does not exist
        """
        ...

    def write(self, name: str, data: Mapping[str, str]) -> None:
        """Create or update the given keys of a secret."""
        ...


class FileSecretStore:
    """Secrets stored as one file per key in a per-secret directory.

    Keys listed in sync_keys are written first and flushed to disk with
    fsync, so a reader that sees any other key already sees them. The token
    is the key the idempotence check compares against, hence the default.
    """

    def __init__(
        self,
        directories: Mapping[str, Path],
        file_names: Mapping[str, Mapping[str, str]] | None = None,
        sync_keys: frozenset[str] = frozenset({KEY_TOKEN}),
    ) -> None:
        """Initialize the store.

        Args:
            directories: Secret name -> directory holding its files
            file_names: Secret name -> (key -> file name) overrides; keys
                without an override use the key as the file name
            sync_keys: Keys flushed with fsync on write
        """
        self._directories = dict(directories)
        self._file_names = {name: dict(mapping) for name, mapping in (file_names or {}).items()}
        self._sync_keys = sync_keys

    def _directory(self, name: str) -> Path:
        if name not in self._directories:
            raise SecretNotFoundError(f"No directory configured for secret '{name}'")
        return self._directories[name]

    def path_for(self, name: str, key: str) -> Path:
        """Path of the file holding one key of a secret."""
        return self._directory(name) / self._file_names.get(name, {}).get(key, key)

    def read(self, name: str) -> dict[str, str]:
        directory = self._directory(name)
        if not directory.is_dir():
            raise SecretNotFoundError(f"Secret directory '{directory}' does not exist")

        overrides = self._file_names.get(name, {})
        by_file = {file_name: key for key, file_name in overrides.items()}
        data: dict[str, str] = {}
        for path in sorted(directory.iterdir()):
            # Mounted volumes keep their real content behind ..data symlinks
            if path.name.startswith(".") or not path.is_file():
                continue
            data[by_file.get(path.name, path.name)] = path.read_text(encoding="utf-8")
        return data

    def write(self, name: str, data: Mapping[str, str]) -> None:
        directory = self._directory(name)
        directory.mkdir(parents=True, exist_ok=True)

        ordered = sorted(data, key=lambda key: key not in self._sync_keys)
        for key in ordered:
            path = self.path_for(name, key)
            with path.open("w", encoding="utf-8") as f:
                f.write(data[key])
                if key in self._sync_keys:
                    f.flush()
                    os.fsync(f.fileno())
        logger.debug("Secret written", secret=name, keys=ordered, backend="file")


def _get_keyvault_client(vault_url: str) -> SecretClient:
    """Create a Key Vault SecretClient using DefaultAzureCredential.

    Raises:
        ImportError: If azure-keyvault-secrets or azure-identity not installed
    """
    try:
        from azure.identity import DefaultAzureCredential
        from azure.keyvault.secrets import SecretClient
    except ImportError as e:
        raise ImportError(
            "azure-keyvault-secrets and azure-identity are required for Key Vault support. "
            "Install with: pip install 'siteagent[azure]'"
        ) from e

    credential = DefaultAzureCredential()
    return SecretClient(vault_url=vault_url, credential=credential)


class KeyVaultSecretStore:
    """Secrets stored as JSON documents in Azure Key Vault.

    Writes merge into the existing document: keys absent from the update
    keep their stored value. Nothing is cached, so every replica reading
    the same vault sees the latest rotation.
    """

    def __init__(self, vault_url: str, client: SecretClient | None = None) -> None:
        """Initialize the store.

        Args:
            vault_url: The Key Vault URL (e.g., https://my-vault.vault.azure.net)
            client: Pre-built client, created lazily when omitted
        """
        self._vault_url = vault_url
        self._client = client

    def _get_client(self) -> SecretClient:
        """Get or create the Key Vault client (lazy initialization)."""
        if self._client is None:
            self._client = _get_keyvault_client(self._vault_url)
        return self._client

    def read(self, name: str) -> dict[str, str]:
        """Load a secret document from Key Vault.

        Raises:
            SecretNotFoundError: If the secret doesn't exist or has no value
            azure.core.exceptions.ClientAuthenticationError: If authentication fails
            azure.core.exceptions.HttpResponseError: For other HTTP errors
        """
        from azure.core.exceptions import ResourceNotFoundError

        try:
            secret = self._get_client().get_secret(name)
        except ResourceNotFoundError as e:
            raise SecretNotFoundError(f"Secret '{name}' not found in Key Vault ({self._vault_url})") from e

        if secret.value is None:
            raise SecretNotFoundError(f"Key Vault secret '{name}' has no value")
        try:
            document = json.loads(secret.value)
        except json.JSONDecodeError as e:
            raise SecretNotFoundError(f"Key Vault secret '{name}' is not a JSON document") from e
        if not isinstance(document, dict):
            raise SecretNotFoundError(f"Key Vault secret '{name}' is not a JSON object")
        return {str(key): str(value) for key, value in document.items()}

    def write(self, name: str, data: Mapping[str, str]) -> None:
        try:
            document = self.read(name)
        except SecretNotFoundError:
            document = {}
        document.update(data)
        self._get_client().set_secret(name, json.dumps(document, sort_keys=True))
        logger.debug("Secret written", secret=name, keys=sorted(data), backend="keyvault")
