"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core,
backend, bootstrap or engine (TYPE_CHECKING imports aside).

Import patterns:
    from siteagent.contracts import TransactionID, OperationKind, ResourceInfo

    # Settings classes live in core
    from siteagent.core.config import SiteAgentSettings
"""

from siteagent.contracts.bootstrap import (
    CREDENTIAL_KEYS,
    KEY_CA_CERT,
    KEY_CERT,
    KEY_KEY,
    KEY_TOKEN,
    BootstrapSecret,
    SiteCredentials,
)
from siteagent.contracts.dispatch import WorkflowMetadata
from siteagent.contracts.enums import (
    SUCCESS_OBJECT_STATUS,
    TRANSPORT_FAILURE_STATUSES,
    BackendStatus,
    CompositeStatus,
    HealthState,
    ObjectStatus,
    OperationKind,
    SecretBackend,
    WorkflowStatus,
)
from siteagent.contracts.errors import (
    ActivityFailedError,
    ActivityTimeoutError,
    BackendError,
    BootstrapError,
    CertificateError,
    ConnectionUnavailableError,
    DispatchContractError,
    DuplicateActivityError,
    InvalidBootstrapSecretError,
    NonRetryableError,
    PublishError,
    ResourceStaleError,
    SiteAgentError,
    TokenDecryptionError,
    TransactionValidationError,
    UnknownActivityError,
    is_retryable,
)
from siteagent.contracts.identity import TransactionID
from siteagent.contracts.retry import (
    BACKOFF_COEFFICIENT,
    ActivityOptions,
    RetryPolicy,
    WorkflowOptions,
)
from siteagent.contracts.workflow import (
    ResourceInfo,
    ResourceListInfo,
    ResponsePayload,
    WorkflowOutcome,
)

__all__ = [
    # bootstrap
    "CREDENTIAL_KEYS",
    "KEY_CA_CERT",
    "KEY_CERT",
    "KEY_KEY",
    "KEY_TOKEN",
    "BootstrapSecret",
    "SiteCredentials",
    # dispatch
    "WorkflowMetadata",
    # enums
    "SUCCESS_OBJECT_STATUS",
    "TRANSPORT_FAILURE_STATUSES",
    "BackendStatus",
    "CompositeStatus",
    "HealthState",
    "ObjectStatus",
    "OperationKind",
    "SecretBackend",
    "WorkflowStatus",
    # errors
    "ActivityFailedError",
    "ActivityTimeoutError",
    "BackendError",
    "BootstrapError",
    "CertificateError",
    "ConnectionUnavailableError",
    "DispatchContractError",
    "DuplicateActivityError",
    "InvalidBootstrapSecretError",
    "NonRetryableError",
    "PublishError",
    "ResourceStaleError",
    "SiteAgentError",
    "TokenDecryptionError",
    "TransactionValidationError",
    "UnknownActivityError",
    "is_retryable",
    # identity
    "TransactionID",
    # retry
    "BACKOFF_COEFFICIENT",
    "ActivityOptions",
    "RetryPolicy",
    "WorkflowOptions",
    # workflow
    "ResourceInfo",
    "ResourceListInfo",
    "ResponsePayload",
    "WorkflowOutcome",
]
