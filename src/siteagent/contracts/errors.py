# src/siteagent/contracts/errors.py
"""Error taxonomy for the site agent.

Categories:
- Input errors (TransactionValidationError): never retried.
- Transport errors (BackendError with a transport status): retried by the
  substrate, drive the connection health gauge to UNHEALTHY.
- Application errors (BackendError with any other status): retried by the
  substrate, connection health untouched.
- Publish errors (PublishError): independent of the resource outcome.
- Bootstrap errors (BootstrapError and subclasses).

NonRetryableError is the control-flow marker the substrate checks before
scheduling another attempt.
"""

from typing import Any

from siteagent.contracts.enums import TRANSPORT_FAILURE_STATUSES, BackendStatus


class SiteAgentError(Exception):
    """Base class for all site agent errors."""


class NonRetryableError(SiteAgentError):
    """Raised when retrying cannot change the outcome.

    Attributes:
        type: Short machine-readable error code (e.g. "ErrEmptyOTP")
        details: Optional payload carried alongside the error
    """

    def __init__(self, message: str, *, type: str = "", details: Any = None) -> None:
        self.type = type
        self.details = details
        super().__init__(message)


class TransactionValidationError(NonRetryableError):
    """Raised when a transaction identifier is missing or empty."""

    def __init__(self, message: str) -> None:
        super().__init__(message, type="ErrInvalidTransaction")


class DispatchContractError(SiteAgentError):
    """Raised when a resource kind declares an invalid activity table.

    Detected at construction time, never while a workflow is running.
    """


class UnknownActivityError(SiteAgentError):
    """Raised when an operation name has no registered handler."""


class DuplicateActivityError(SiteAgentError):
    """Raised when an operation name is registered twice."""


class BackendError(SiteAgentError):
    """Raised when the site controller rejects or fails a call.

    Attributes:
        status: Status code reported for the call
    """

    def __init__(self, status: BackendStatus, message: str) -> None:
        self.status = status
        super().__init__(f"{status.value}: {message}")

    @property
    def is_transport_failure(self) -> bool:
        """True when the status means the connection itself is down."""
        return self.status in TRANSPORT_FAILURE_STATUSES


class ResourceStaleError(BackendError):
    """Raised when the resource is already in the requested state.

    Treated as success for idempotent operations so that stale retries
    do not report a failure for work that already happened.
    """

    def __init__(self, message: str = "resource is already in the desired state") -> None:
        super().__init__(BackendStatus.FAILED_PRECONDITION, message)


class ConnectionUnavailableError(SiteAgentError):
    """Raised when no backend connection handle could be created."""


class ActivityFailedError(SiteAgentError):
    """Raised when an activity fails on its final attempt.

    Attributes:
        activity: Registered activity name
        attempts: Number of attempts made
        last_error: Error raised by the final attempt
    """

    def __init__(self, activity: str, attempts: int, last_error: BaseException) -> None:
        self.activity = activity
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(str(last_error))


class ActivityTimeoutError(SiteAgentError):
    """Raised when an activity attempt exceeds its start-to-close timeout."""

    def __init__(self, activity: str, timeout: float) -> None:
        self.activity = activity
        self.timeout = timeout
        super().__init__(f"activity {activity} exceeded start-to-close timeout of {timeout}s")


class PublishError(SiteAgentError):
    """Raised when the control plane rejects a status publish."""


class BootstrapError(SiteAgentError):
    """Raised when credentials cannot be bootstrapped or rotated."""


class InvalidBootstrapSecretError(BootstrapError):
    """Raised when the mounted bootstrap secret is missing a field."""


class CertificateError(BootstrapError):
    """Raised when a PEM certificate cannot be decoded."""


class TokenDecryptionError(NonRetryableError):
    """Raised when an encrypted token cannot be decrypted."""

    def __init__(self, message: str) -> None:
        super().__init__(message, type="ErrDecryptOTP")


def is_retryable(error: BaseException) -> bool:
    """Decide whether the substrate may attempt an activity again."""
    return not isinstance(error, NonRetryableError)
