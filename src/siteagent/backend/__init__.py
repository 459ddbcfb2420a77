# src/siteagent/backend/__init__.py
"""Site controller client and connection lifecycle."""

from siteagent.backend.client import (
    BackendClient,
    ConnectionConfig,
    SiteControllerClient,
    classify_status,
)
from siteagent.backend.connection import ConnectionHandle, ConnectionManager
from siteagent.backend.credentials import (
    CredentialSource,
    FileCredentialSource,
    SecretStoreCredentialSource,
    TLSMaterial,
)

__all__ = [
    "BackendClient",
    "ConnectionConfig",
    "ConnectionHandle",
    "ConnectionManager",
    "CredentialSource",
    "FileCredentialSource",
    "SecretStoreCredentialSource",
    "SiteControllerClient",
    "TLSMaterial",
    "classify_status",
]
