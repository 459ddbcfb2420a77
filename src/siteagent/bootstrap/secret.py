# src/siteagent/bootstrap/secret.py
"""The bootstrap secret: site identity and the material to fetch credentials."""

from __future__ import annotations

from siteagent.contracts.bootstrap import BootstrapSecret
from siteagent.contracts.errors import InvalidBootstrapSecretError
from siteagent.core.logging import get_logger
from siteagent.core.security.fingerprint import secret_fingerprint
from siteagent.core.security.secret_store import SecretNotFoundError, SecretStore

logger = get_logger(__name__)

# Keys (file names, for a mounted secret) of the bootstrap secret.
TAG_SITE_UUID = "site-uuid"
TAG_TOKEN = "otp"
TAG_CREDS_URL = "creds-url"
TAG_CA_CERT = "cacert"

BOOTSTRAP_SECRET_KEYS: tuple[str, ...] = (TAG_SITE_UUID, TAG_TOKEN, TAG_CREDS_URL, TAG_CA_CERT)


def parse_bootstrap_secret(data: dict[str, str]) -> BootstrapSecret:
    """Build a BootstrapSecret from a secret document.

    Raises:
        InvalidBootstrapSecretError: If any of the four fields is missing or empty
    """
    secret = BootstrapSecret(
        site_uuid=data.get(TAG_SITE_UUID, "").strip(),
        token=data.get(TAG_TOKEN, "").strip(),
        credentials_url=data.get(TAG_CREDS_URL, "").strip(),
        ca_certificate=data.get(TAG_CA_CERT, ""),
    )
    missing = secret.missing_fields()
    if missing:
        raise InvalidBootstrapSecretError(f"invalid bootstrap secret: missing {', '.join(missing)}")
    return secret


def load_bootstrap_secret(store: SecretStore, name: str) -> BootstrapSecret:
    """Read and validate the bootstrap secret.

    Raises:
        InvalidBootstrapSecretError: If the secret is absent or incomplete
    """
    try:
        data = store.read(name)
    except SecretNotFoundError as e:
        raise InvalidBootstrapSecretError(f"bootstrap secret '{name}' not found") from e
    secret = parse_bootstrap_secret(data)
    logger.info(
        "Bootstrap secret read",
        secret=name,
        site_uuid=secret.site_uuid,
        credentials_url=secret.credentials_url,
        token_fingerprint=secret_fingerprint(secret.token),
    )
    return secret
