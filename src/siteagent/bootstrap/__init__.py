# src/siteagent/bootstrap/__init__.py
"""Credential bootstrap and rotation."""

from siteagent.bootstrap.downloader import CredentialDownloader, build_download_ssl_context, is_loopback_host
from siteagent.bootstrap.manager import BootstrapManager
from siteagent.bootstrap.secret import (
    BOOTSTRAP_SECRET_KEYS,
    load_bootstrap_secret,
    parse_bootstrap_secret,
)
from siteagent.bootstrap.token import TokenHandler
from siteagent.bootstrap.watcher import SecretEventHandler, SecretWatcher

__all__ = [
    "BOOTSTRAP_SECRET_KEYS",
    "BootstrapManager",
    "CredentialDownloader",
    "SecretEventHandler",
    "SecretWatcher",
    "TokenHandler",
    "build_download_ssl_context",
    "is_loopback_host",
    "load_bootstrap_secret",
    "parse_bootstrap_secret",
]
