# src/siteagent/backend/credentials.py
"""Sources of the TLS material the backend client is built from.

A source returns file paths plus a fingerprint of their content. The
connection manager compares fingerprints to detect certificate rotation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from siteagent.contracts.bootstrap import KEY_CA_CERT, KEY_CERT, KEY_KEY
from siteagent.contracts.errors import ConnectionUnavailableError
from siteagent.core.security.fingerprint import material_fingerprint
from siteagent.core.security.secret_store import SecretStore


@dataclass(frozen=True, slots=True)
class TLSMaterial:
    """Paths of the CA certificate and client key pair, with a content fingerprint."""

    ca_path: Path
    cert_path: Path
    key_path: Path
    fingerprint: str


class CredentialSource(Protocol):
    def load(self) -> TLSMaterial:
        """Read the current material.

        Raises:
            ConnectionUnavailableError: If the material is absent or incomplete
        """
        ...


class FileCredentialSource:
    """Material already on disk, e.g. a mounted secret volume."""

    def __init__(self, ca_path: Path, cert_path: Path, key_path: Path) -> None:
        self._paths = (ca_path, cert_path, key_path)

    def load(self) -> TLSMaterial:
        try:
            contents = [path.read_bytes() for path in self._paths]
        except FileNotFoundError as e:
            raise ConnectionUnavailableError(f"TLS material not found: {e.filename}") from e
        ca_path, cert_path, key_path = self._paths
        return TLSMaterial(ca_path, cert_path, key_path, material_fingerprint(contents))


class SecretStoreCredentialSource:
    """Material held in a secret store, materialized into a private directory.

    Files are rewritten only when the fingerprint changes, so a client
    built from the previous material keeps valid paths until rotation.
    """

    def __init__(self, store: SecretStore, secret_name: str, cache_dir: Path) -> None:
        self._store = store
        self._secret_name = secret_name
        self._cache_dir = cache_dir

    def load(self) -> TLSMaterial:
        data = self._store.read(self._secret_name)
        missing = [key for key in (KEY_CA_CERT, KEY_CERT, KEY_KEY) if not data.get(key)]
        if missing:
            raise ConnectionUnavailableError(f"Secret '{self._secret_name}' is missing {', '.join(missing)}")

        contents = [data[KEY_CA_CERT], data[KEY_CERT], data[KEY_KEY]]
        fingerprint = material_fingerprint(contents)
        # One directory per fingerprint so rotation never rewrites live files
        directory = self._cache_dir / fingerprint[:16]
        paths = (directory / "ca.crt", directory / "tls.crt", directory / "tls.key")
        if not all(path.exists() for path in paths):
            directory.mkdir(parents=True, exist_ok=True, mode=0o700)
            for path, content in zip(paths, contents, strict=True):
                path.write_text(content, encoding="utf-8")
            os.chmod(paths[2], 0o600)
        return TLSMaterial(*paths, fingerprint=fingerprint)
