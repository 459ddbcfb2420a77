# src/siteagent/contracts/enums.py
"""Status codes and kinds used across subsystem boundaries.

Every resource activity MUST map to an OperationKind at construction time.
An activity with no mapping is a programming error and is rejected before
any workflow runs.
"""

from enum import IntEnum, StrEnum


class OperationKind(StrEnum):
    """What a resource activity does to the resource.

    Selects the object status reported on success.
    """

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    READ = "read"
    NONE = "none"


class WorkflowStatus(StrEnum):
    """Status of a workflow as reported to the control plane."""

    UNSPECIFIED = "WORKFLOW_STATUS_UNSPECIFIED"
    IN_PROGRESS = "WORKFLOW_STATUS_IN_PROGRESS"
    SUCCESS = "WORKFLOW_STATUS_SUCCESS"
    FAILURE = "WORKFLOW_STATUS_FAILURE"


class ObjectStatus(StrEnum):
    """Status of the resource object as reported to the control plane."""

    UNSPECIFIED = "OBJECT_STATUS_UNSPECIFIED"
    IN_PROGRESS = "OBJECT_STATUS_IN_PROGRESS"
    CREATED = "OBJECT_STATUS_CREATED"
    UPDATED = "OBJECT_STATUS_UPDATED"
    DELETED = "OBJECT_STATUS_DELETED"


# Object status reported after a successful activity, per operation kind.
SUCCESS_OBJECT_STATUS: dict[OperationKind, ObjectStatus] = {
    OperationKind.CREATE: ObjectStatus.CREATED,
    OperationKind.UPDATE: ObjectStatus.UPDATED,
    OperationKind.DELETE: ObjectStatus.DELETED,
    OperationKind.READ: ObjectStatus.UNSPECIFIED,
    OperationKind.NONE: ObjectStatus.UNSPECIFIED,
}


class HealthState(IntEnum):
    """Three-state health gauge for long-lived connections.

    Integer valued so it can be exported as a gauge.
    """

    UNKNOWN = 0
    HEALTHY = 1
    UNHEALTHY = 2


class BackendStatus(StrEnum):
    """Per-call status codes reported by the site controller client."""

    OK = "OK"
    CANCELLED = "CANCELLED"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    FAILED_PRECONDITION = "FAILED_PRECONDITION"
    INTERNAL = "INTERNAL"
    UNAVAILABLE = "UNAVAILABLE"
    UNAUTHENTICATED = "UNAUTHENTICATED"


# Codes that mean the connection itself is down, not that the call was rejected.
TRANSPORT_FAILURE_STATUSES: frozenset[BackendStatus] = frozenset(
    {
        BackendStatus.UNAVAILABLE,
        BackendStatus.UNAUTHENTICATED,
    }
)


class CompositeStatus(StrEnum):
    """Combined outcome of both workflow phases, used as a latency label."""

    SUCCESS = "success"
    ACTIVITY_FAILED = "activity_failed"
    PUBLISH_FAILED = "publish_failed"
    ACTIVITY_PUBLISH_FAILED = "activity_publish_failed"

    @classmethod
    def from_outcome(cls, activity_failed: bool, publish_failed: bool) -> "CompositeStatus":
        """Derive the composite label from the two phase outcomes."""
        if activity_failed and publish_failed:
            return cls.ACTIVITY_PUBLISH_FAILED
        if activity_failed:
            return cls.ACTIVITY_FAILED
        if publish_failed:
            return cls.PUBLISH_FAILED
        return cls.SUCCESS


class SecretBackend(StrEnum):
    """Where downloaded site credentials are persisted."""

    FILE = "file"
    KEYVAULT = "keyvault"
