# src/siteagent/contracts/workflow.py
"""Payloads that travel between the engine, the backend and the control plane."""

from dataclasses import asdict, dataclass, field
from typing import Any

from siteagent.contracts.enums import ObjectStatus, WorkflowStatus


@dataclass(slots=True)
class ResourceInfo:
    """Status payload published for create/update/delete activities.

    Mutable: the engine updates it in place as the phases complete.
    Seeded with FAILURE so an operation that never reaches the backend is
    still published as failed.
    """

    status: WorkflowStatus = WorkflowStatus.FAILURE
    object_status: ObjectStatus = ObjectStatus.UNSPECIFIED
    status_msg: str = ""
    resource: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["object_status"] = self.object_status.value
        return data


@dataclass(slots=True)
class ResourceListInfo:
    """List-shaped status payload published for read activities."""

    status: WorkflowStatus = WorkflowStatus.FAILURE
    status_msg: str = ""
    items: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


ResponsePayload = ResourceInfo | ResourceListInfo


@dataclass(frozen=True, slots=True)
class WorkflowOutcome:
    """Result of one two-phase operation.

    activity_error is authoritative for whether the resource operation took
    effect. A publish_error alone means the status update is orphaned and
    may need reconciliation.
    """

    activity_error: BaseException | None
    publish_error: BaseException | None
    response: ResponsePayload
    publish_workflow_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.activity_error is None and self.publish_error is None
