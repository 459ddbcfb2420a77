# src/siteagent/contracts/bootstrap.py
"""Bootstrap secret and site credential records."""

from dataclasses import dataclass, fields

# Key names inside the persisted credential secret.
KEY_TOKEN = "otp"
KEY_CA_CERT = "cacertificate"
KEY_CERT = "certificate"
KEY_KEY = "key"

CREDENTIAL_KEYS: tuple[str, ...] = (KEY_TOKEN, KEY_CA_CERT, KEY_CERT, KEY_KEY)


@dataclass(slots=True)
class BootstrapSecret:
    """Out-of-band material used to download site credentials.

    Mutable: the token field is replaced whenever a rotation token arrives.
    """

    site_uuid: str
    token: str
    credentials_url: str
    ca_certificate: str

    def missing_fields(self) -> list[str]:
        """Names of fields that are empty."""
        return [f.name for f in fields(self) if not getattr(self, f.name)]

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()


@dataclass(frozen=True, slots=True)
class SiteCredentials:
    """Certificates issued to the site by the credentials endpoint."""

    ca_certificate: str
    certificate: str
    key: str

    def as_secret_data(self, token: str) -> dict[str, str]:
        """Secret document layout for persistence."""
        return {
            KEY_TOKEN: token,
            KEY_CA_CERT: self.ca_certificate,
            KEY_CERT: self.certificate,
            KEY_KEY: self.key,
        }
