# src/siteagent/contracts/identity.py
"""Correlation identifiers for two-phase resource operations."""

from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass(frozen=True, slots=True)
class TransactionID:
    """Identifies one logical operation across both workflow phases.

    Attributes:
        resource_id: Identifier of the resource being operated on
        timestamp: When the control plane issued the operation (optional)
    """

    resource_id: str
    timestamp: datetime | None = None

    @property
    def resource_version(self) -> int:
        """Monotonic version derived from the timestamp (nanoseconds since epoch).

        Zero when the transaction carries no timestamp.
        """
        if self.timestamp is None:
            return 0
        ts = self.timestamp if self.timestamp.tzinfo is not None else self.timestamp.replace(tzinfo=UTC)
        delta = ts - datetime(1970, 1, 1, tzinfo=UTC)
        return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000

    @classmethod
    def now(cls, resource_id: str) -> "TransactionID":
        """Create a transaction stamped with the current time."""
        return cls(resource_id=resource_id, timestamp=datetime.now(UTC))
