# src/siteagent/resources/base.py
"""Dispatch contract implementation shared by every resource kind.

A resource kind is a declaration: a collection on the site controller and
a closed table of activities. Each activity names its operation kind, the
backend call it performs and the control-plane workflow that receives its
status. Tables are checked when the kind is declared, so a bad mapping
fails at import time rather than inside a running workflow.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from siteagent.backend.client import BackendClient
from siteagent.contracts.enums import ObjectStatus, OperationKind, WorkflowStatus
from siteagent.contracts.errors import DispatchContractError
from siteagent.contracts.identity import TransactionID
from siteagent.contracts.workflow import ResourceInfo, ResourceListInfo, ResponsePayload
from siteagent.core.stats import WorkflowStatistics

# (client, collection, transaction, request) -> backend result
BackendCall = Callable[[BackendClient, str, TransactionID, Any], Any]


def _body(request: Any) -> dict[str, Any]:
    if request is None:
        return {}
    if not isinstance(request, Mapping):
        raise TypeError(f"request must be a mapping, got {type(request).__name__}")
    return dict(request)


def call_create(client: BackendClient, collection: str, transaction_id: TransactionID, request: Any) -> Any:
    return client.create(collection, _body(request), transaction_id=transaction_id)


def call_update(client: BackendClient, collection: str, transaction_id: TransactionID, request: Any) -> Any:
    return client.update(collection, transaction_id.resource_id, _body(request), transaction_id=transaction_id)


def call_delete(client: BackendClient, collection: str, transaction_id: TransactionID, request: Any) -> Any:
    return client.delete(collection, transaction_id.resource_id, transaction_id=transaction_id)


def call_list(client: BackendClient, collection: str, transaction_id: TransactionID, request: Any) -> Any:
    return client.find(collection, _body(request))


def call_action(action: str) -> BackendCall:
    """Backend call for a named action on one resource (reboot, ...)."""

    def invoke(client: BackendClient, collection: str, transaction_id: TransactionID, request: Any) -> Any:
        return client.action(collection, transaction_id.resource_id, action, _body(request), transaction_id=transaction_id)

    invoke.__name__ = f"call_{action}"
    return invoke


@dataclass(frozen=True, slots=True)
class ActivitySpec:
    """One entry in a resource kind's activity table.

    Attributes:
        operation: What the activity does to the resource
        call: Backend call performed by the activity
        publish_workflow: Control-plane workflow receiving the status
        stale_is_success: Report an already-in-desired-state result as success
    """

    operation: OperationKind
    call: BackendCall
    publish_workflow: str
    stale_is_success: bool = False


@dataclass(frozen=True)
class ResourceKind:
    """Declaration of one resource kind.

    Attributes:
        resource_type: Stable snake_case label (metrics, logging)
        label: CamelCase name used to build activity and workflow names
        collection: Site controller collection path segment
        activities: Activity name (e.g. "Create") -> spec
    """

    resource_type: str
    label: str
    collection: str
    activities: Mapping[str, ActivitySpec] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.resource_type or not self.label or not self.collection:
            raise DispatchContractError(f"resource kind {self!r} must declare type, label and collection")
        if not self.activities:
            raise DispatchContractError(f"resource kind '{self.resource_type}' declares no activities")
        for name, spec in self.activities.items():
            if not isinstance(spec.operation, OperationKind):
                raise DispatchContractError(f"{self.resource_type}.{name}: activity has no operation kind mapping")
            if not callable(spec.call):
                raise DispatchContractError(f"{self.resource_type}.{name}: backend call is not callable")
            if not spec.publish_workflow:
                raise DispatchContractError(f"{self.resource_type}.{name}: no publish workflow declared")
            if spec.stale_is_success and spec.operation not in (OperationKind.CREATE, OperationKind.DELETE, OperationKind.UPDATE):
                raise DispatchContractError(f"{self.resource_type}.{name}: stale success only applies to create/update/delete")

    def spec(self, activity: str) -> ActivitySpec:
        """Look up an activity.

        Raises:
            DispatchContractError: If the kind does not declare the activity
        """
        if activity not in self.activities:
            raise DispatchContractError(
                f"resource kind '{self.resource_type}' has no activity '{activity}' "
                f"(declared: {', '.join(sorted(self.activities))})"
            )
        return self.activities[activity]

    def invoke_activity_name(self, activity: str) -> str:
        """Registered activity name, e.g. "VpcCreate"."""
        return f"{self.label}{activity}"

    def publish_activity_name(self, activity: str) -> str:
        """Registered publish activity name, e.g. "PublishUpdateVpcInfo"."""
        return f"Publish{self.spec(activity).publish_workflow}"

    def workflow_name(self, activity: str) -> str:
        """Registered workflow name, e.g. "CreateVpc"."""
        return f"{activity}{self.label}"


class ResourceWorkflowMetadata:
    """WorkflowMetadata for one operation on one resource kind.

    Built fresh per workflow. Construction rejects activities the kind does
    not declare.
    """

    def __init__(self, kind: ResourceKind, activity: str, statistics: WorkflowStatistics) -> None:
        self._kind = kind
        self._activity = activity
        self._spec = kind.spec(activity)
        self._statistics = statistics
        self._response: ResponsePayload = (
            ResourceListInfo() if self._spec.operation == OperationKind.READ else ResourceInfo()
        )

    def resource_type(self) -> str:
        return self._kind.resource_type

    def activity_type(self) -> str:
        return self._activity

    def operation_kind(self) -> OperationKind:
        return self._spec.operation

    def invoke_activity_name(self) -> str:
        return self._kind.invoke_activity_name(self._activity)

    def publish_activity_name(self) -> str:
        return self._kind.publish_activity_name(self._activity)

    def stale_is_success(self) -> bool:
        return self._spec.stale_is_success

    def invoke_backend(self, client: BackendClient, transaction_id: TransactionID, request: Any) -> Any:
        return self._spec.call(client, self._kind.collection, transaction_id, request)

    def set_response_state(self, status: WorkflowStatus, object_status: ObjectStatus, message: str) -> None:
        self._response.status = status
        self._response.status_msg = message
        if isinstance(self._response, ResourceInfo):
            self._response.object_status = object_status

    def apply_result(self, result: Any) -> None:
        if isinstance(self._response, ResourceListInfo):
            self._response.items = list(result or [])
        elif isinstance(result, Mapping) and result:
            self._response.resource = dict(result)

    def response(self) -> ResponsePayload:
        return self._response

    def statistics(self) -> WorkflowStatistics:
        return self._statistics

    def __repr__(self) -> str:
        return f"ResourceWorkflowMetadata({self._kind.resource_type}.{self._activity})"
