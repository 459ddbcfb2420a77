# src/siteagent/bootstrap/downloader.py
"""Credential download from the site registration endpoint.

POST {"uuid": <site uuid>, "otp": <token>} to the credentials URL over TLS,
verifying the server against the CA from the bootstrap secret. The
response carries the CA certificate and the site's client key pair.
"""

from __future__ import annotations

import ipaddress
import ssl
import time
from collections.abc import Callable
from urllib.parse import urlsplit

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from siteagent.contracts.bootstrap import BootstrapSecret, SiteCredentials
from siteagent.contracts.errors import BootstrapError
from siteagent.core.logging import get_logger

logger = get_logger(__name__)

DOWNLOAD_TIMEOUT_SECONDS = 60.0


class _RetryableDownloadError(BootstrapError):
    """Server-side or transport failure worth another attempt."""


def is_loopback_host(host: str) -> bool:
    """True for loopback and unspecified addresses and "localhost"."""
    if host == "localhost":
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_loopback or address.is_unspecified


def build_download_ssl_context(ca_certificate: str, host: str) -> ssl.SSLContext:
    """TLS context trusting only the bootstrap CA.

    Verification is skipped entirely for loopback hosts, which only occur in
    local test setups.

    Raises:
        BootstrapError: If the CA certificate cannot be loaded
    """
    try:
        context = ssl.create_default_context(cadata=ca_certificate)
    except ssl.SSLError as e:
        raise BootstrapError(f"bootstrap CA certificate is invalid: {e}") from e
    if is_loopback_host(host):
        logger.info("Credentials endpoint is local, skipping server verification", host=host)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class CredentialDownloader:
    """Downloads site credentials with bounded exponential-backoff retries."""

    def __init__(
        self,
        *,
        timeout: float = DOWNLOAD_TIMEOUT_SECONDS,
        max_attempts: int = 5,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the downloader.

        Args:
            timeout: Client-side timeout for each request
            max_attempts: Total attempts for transport and 5xx failures
            transport: Optional transport override (tests use httpx.MockTransport)
            sleep: Backoff sleep (tests inject a no-op)
        """
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._transport = transport
        self._sleep = sleep

    def download(self, secret: BootstrapSecret, token: str) -> SiteCredentials:
        """Exchange the token for site credentials.

        Raises:
            BootstrapError: If the endpoint rejects the token, keeps failing,
                or returns an incomplete response
        """
        host = urlsplit(secret.credentials_url).hostname or ""
        context = build_download_ssl_context(secret.ca_certificate, host)
        body = {"uuid": secret.site_uuid, "otp": token}

        with httpx.Client(verify=context, timeout=self._timeout, transport=self._transport) as client:
            try:
                response = Retrying(
                    stop=stop_after_attempt(self._max_attempts),
                    wait=wait_exponential(multiplier=1, max=30),
                    retry=retry_if_exception_type(_RetryableDownloadError),
                    sleep=self._sleep,
                    reraise=True,
                )(self._post, client, secret.credentials_url, body)
            except _RetryableDownloadError as e:
                raise BootstrapError(f"credential download failed after {self._max_attempts} attempts: {e}") from e

        return self._parse(response)

    def _post(self, client: httpx.Client, url: str, body: dict[str, str]) -> httpx.Response:
        try:
            response = client.post(url, json=body, headers={"Accept": "application/json"})
        except httpx.TransportError as e:
            logger.warning("Credential download attempt failed", url=url, error=str(e))
            raise _RetryableDownloadError(str(e)) from e

        if response.status_code >= 500:
            logger.warning("Credential download attempt failed", url=url, http_status=response.status_code)
            raise _RetryableDownloadError(f"credentials endpoint returned {response.status_code}")
        if not response.is_success:
            raise BootstrapError(f"credentials endpoint rejected the request: {response.status_code} {response.text}")
        return response

    def _parse(self, response: httpx.Response) -> SiteCredentials:
        try:
            data = response.json()
        except ValueError as e:
            raise BootstrapError("credentials response is not JSON") from e
        if not isinstance(data, dict):
            raise BootstrapError("credentials response is not a JSON object")

        fields = {"caCertificate": "", "certificate": "", "key": ""}
        for name in fields:
            value = data.get(name)
            if not isinstance(value, str) or not value:
                raise BootstrapError(f"credentials response is missing '{name}'")
            fields[name] = value
        return SiteCredentials(
            ca_certificate=fields["caCertificate"],
            certificate=fields["certificate"],
            key=fields["key"],
        )
