# src/siteagent/resources/manager.py
"""Registers every resource kind with the substrate and runs its workflows."""

from __future__ import annotations

import functools
from collections.abc import Iterable
from concurrent.futures import Future
from typing import TYPE_CHECKING, Any

from siteagent.contracts.identity import TransactionID
from siteagent.contracts.retry import WorkflowOptions
from siteagent.contracts.workflow import WorkflowOutcome
from siteagent.core.logging import get_logger
from siteagent.engine.engine import OrchestrationEngine
from siteagent.resources.base import ResourceKind, ResourceWorkflowMetadata
from siteagent.resources.catalog import CATALOG, GET_LIST, catalog_by_type

if TYPE_CHECKING:
    from siteagent.agent import AgentContext

logger = get_logger(__name__)


def inventory_workflow_name(kind: ResourceKind) -> str:
    return f"Collect{kind.label}Inventory"


class ResourceManager:
    """Per-kind entry points onto the two-phase engine.

    register() populates the substrate's registries explicitly: one
    invocation activity per (kind, activity), one publish activity per
    control-plane workflow, one workflow per (kind, activity) and, when an
    inventory cron is configured, one scheduled inventory workflow per kind
    with a list read.
    """

    def __init__(
        self,
        context: AgentContext,
        engine: OrchestrationEngine,
        kinds: Iterable[ResourceKind] = CATALOG,
    ) -> None:
        self._context = context
        self._engine = engine
        self._kinds = catalog_by_type(kinds)

    @property
    def kinds(self) -> dict[str, ResourceKind]:
        return dict(self._kinds)

    def kind(self, resource_type: str) -> ResourceKind:
        if resource_type not in self._kinds:
            raise KeyError(f"unknown resource type: {resource_type}")
        return self._kinds[resource_type]

    def register(self) -> None:
        """Register activities and workflows for every kind."""
        substrate = self._context.substrate
        publisher = self._context.publisher
        publish_names: set[str] = set()

        for kind in self._kinds.values():
            for activity, spec in kind.activities.items():
                substrate.activities.register(kind.invoke_activity_name(activity), self._engine.run_activity)
                publish_name = kind.publish_activity_name(activity)
                if publish_name not in publish_names:
                    substrate.activities.register(publish_name, functools.partial(publisher.publish, spec.publish_workflow))
                    publish_names.add(publish_name)
                substrate.workflows.register(
                    kind.workflow_name(activity), functools.partial(self.run, kind.resource_type, activity)
                )
        logger.info("Resource activities registered", kinds=len(self._kinds), activities=len(substrate.activities))

    def schedule_inventory(self, cron: str, queue: str) -> list[str]:
        """Register and schedule one inventory workflow per listable kind.

        Returns:
            Names of the scheduled workflows
        """
        substrate = self._context.substrate
        scheduled: list[str] = []
        for kind in self._kinds.values():
            if GET_LIST not in kind.activities:
                continue
            name = inventory_workflow_name(kind)
            substrate.workflows.register(name, functools.partial(self.collect_inventory, kind.resource_type))
            substrate.schedule(name, queue, cron)
            scheduled.append(name)
        return scheduled

    def new_metadata(self, resource_type: str, activity: str) -> ResourceWorkflowMetadata:
        """Fresh dispatch object; raises DispatchContractError for undeclared activities."""
        return ResourceWorkflowMetadata(
            self.kind(resource_type),
            activity,
            self._context.statistics.for_resource(resource_type),
        )

    def run(
        self,
        resource_type: str,
        activity: str,
        transaction_id: TransactionID | None,
        request: Any = None,
        options: WorkflowOptions | None = None,
    ) -> WorkflowOutcome:
        """Run one operation synchronously on the calling thread."""
        metadata = self.new_metadata(resource_type, activity)
        return self._engine.do_workflow(transaction_id, request, metadata, options)

    def submit(
        self,
        resource_type: str,
        activity: str,
        transaction_id: TransactionID | None,
        request: Any = None,
        options: WorkflowOptions | None = None,
    ) -> Future[WorkflowOutcome]:
        """Start one operation as a workflow on the substrate."""
        name = self.kind(resource_type).workflow_name(activity)
        return self._context.substrate.start_workflow(name, transaction_id, request, options)

    def collect_inventory(self, resource_type: str) -> WorkflowOutcome:
        """List every resource of a kind and publish the inventory."""
        site_id = self._context.site_id or resource_type
        return self.run(resource_type, GET_LIST, TransactionID.now(site_id), {})
