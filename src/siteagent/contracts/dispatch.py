# src/siteagent/contracts/dispatch.py
"""Dispatch contract implemented once per resource kind.

The two-phase engine is written against this protocol only. Each resource
kind supplies one implementation describing how a generic activity maps
onto a concrete site controller call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from siteagent.contracts.enums import ObjectStatus, OperationKind, WorkflowStatus
from siteagent.contracts.identity import TransactionID
from siteagent.contracts.workflow import ResponsePayload

if TYPE_CHECKING:
    from siteagent.backend.client import BackendClient
    from siteagent.core.stats import WorkflowStatistics


@runtime_checkable
class WorkflowMetadata(Protocol):
    """Per-invocation capability object for one resource operation.

    Constructed fresh for every workflow, mutated in place as the phases
    complete, discarded after publish. Never shared between operations.
    """

    def resource_type(self) -> str:
        """Stable resource label used for logging and metrics."""
        ...

    def activity_type(self) -> str:
        """Stable activity label used for logging and metrics."""
        ...

    def operation_kind(self) -> OperationKind:
        """What the activity does to the resource."""
        ...

    def invoke_activity_name(self) -> str:
        """Registered name of the backend-invocation activity."""
        ...

    def publish_activity_name(self) -> str:
        """Registered name of the publish activity."""
        ...

    def stale_is_success(self) -> bool:
        """Whether an already-in-desired-state error counts as success."""
        ...

    def invoke_backend(self, client: BackendClient, transaction_id: TransactionID, request: Any) -> Any:
        """Perform the site controller call for this activity."""
        ...

    def set_response_state(self, status: WorkflowStatus, object_status: ObjectStatus, message: str) -> None:
        """Update the response payload in place."""
        ...

    def apply_result(self, result: Any) -> None:
        """Merge a successful backend result into the response payload."""
        ...

    def response(self) -> ResponsePayload:
        """Current response payload, as it will be published."""
        ...

    def statistics(self) -> WorkflowStatistics:
        """Shared running counters for this resource kind."""
        ...
