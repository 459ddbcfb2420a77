# src/siteagent/contracts/retry.py
"""Retry and timeout policy shared by the engine and the substrate."""

from dataclasses import dataclass, field, replace

# Backoff coefficient is fixed; the substrate rejects anything else.
BACKOFF_COEFFICIENT = 2.0

DEFAULT_INITIAL_INTERVAL = 1.0
DEFAULT_MAXIMUM_INTERVAL = 60.0
DEFAULT_MAXIMUM_ATTEMPTS = 7
DEFAULT_START_TO_CLOSE_TIMEOUT = 60.0


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff.

    maximum_attempts is the TOTAL number of tries, not the number of retries.
    """

    initial_interval: float = DEFAULT_INITIAL_INTERVAL
    backoff_coefficient: float = BACKOFF_COEFFICIENT
    maximum_interval: float = DEFAULT_MAXIMUM_INTERVAL
    maximum_attempts: int = DEFAULT_MAXIMUM_ATTEMPTS

    def __post_init__(self) -> None:
        if self.maximum_attempts < 1:
            raise ValueError("maximum_attempts must be >= 1")
        if self.initial_interval <= 0:
            raise ValueError("initial_interval must be > 0")
        if self.maximum_interval < self.initial_interval:
            raise ValueError("maximum_interval must be >= initial_interval")
        if self.backoff_coefficient != BACKOFF_COEFFICIENT:
            raise ValueError(f"backoff_coefficient is fixed at {BACKOFF_COEFFICIENT}")

    def with_interval_override(self, interval_seconds: float | None) -> "RetryPolicy":
        """Return a copy using a per-request initial interval when one is given.

        Non-positive overrides are ignored and the default interval is kept.
        """
        if interval_seconds is None or interval_seconds <= 0:
            return self
        return replace(
            self,
            initial_interval=float(interval_seconds),
            maximum_interval=max(self.maximum_interval, float(interval_seconds)),
        )

    def interval_for(self, attempt: int) -> float:
        """Delay before the retry that follows ``attempt`` (1-based)."""
        delay = self.initial_interval * (self.backoff_coefficient ** (attempt - 1))
        return min(delay, self.maximum_interval)


@dataclass(frozen=True, slots=True)
class ActivityOptions:
    """Options the engine hands to the substrate for one activity."""

    start_to_close_timeout: float = DEFAULT_START_TO_CLOSE_TIMEOUT
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(frozen=True, slots=True)
class WorkflowOptions:
    """Per-request options sent by the control plane.

    Attributes:
        retry_interval: Initial retry interval override in seconds (0 = default)
    """

    retry_interval: int = 0
