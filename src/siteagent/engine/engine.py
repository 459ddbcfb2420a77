# src/siteagent/engine/engine.py
"""Two-phase orchestration engine.

State machine per operation:

    Validating -> Invoking -> (Succeeded | Failed) -> Publishing -> (PublishSucceeded | PublishFailed)

Phase 1 invokes the site controller; phase 2 publishes the outcome to the
control plane. Both phases are retried by the substrate under their own
policies. A failed phase 1 is still published so the control plane learns
of it. The engine is written once against WorkflowMetadata and knows
nothing about individual resource kinds.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from siteagent.contracts.dispatch import WorkflowMetadata
from siteagent.contracts.enums import SUCCESS_OBJECT_STATUS, CompositeStatus, ObjectStatus, WorkflowStatus
from siteagent.contracts.errors import (
    ActivityFailedError,
    BackendError,
    NonRetryableError,
    ResourceStaleError,
    TransactionValidationError,
)
from siteagent.contracts.identity import TransactionID
from siteagent.contracts.retry import ActivityOptions, WorkflowOptions
from siteagent.contracts.workflow import WorkflowOutcome
from siteagent.core.logging import get_logger

if TYPE_CHECKING:
    from siteagent.agent import AgentContext

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ActivityResult:
    """What the invocation activity hands back to the workflow.

    stale is True when the controller reported the resource already in the
    requested state and the kind accepts that as success.
    """

    value: Any = None
    stale: bool = False


def validate_transaction(transaction_id: TransactionID | None) -> TransactionID:
    """Reject a missing transaction or an empty resource identifier.

    Raises:
        TransactionValidationError: Never retried
    """
    if transaction_id is None:
        raise TransactionValidationError("transaction ID is required")
    if not transaction_id.resource_id:
        raise TransactionValidationError("transaction ID has an empty resource identifier")
    return transaction_id


class OrchestrationEngine:
    """Drives invoke-then-publish for every resource operation.

    Example:
        engine = OrchestrationEngine(context)
        outcome = engine.do_workflow(TransactionID.now("vpc-1"), request, metadata)
        if outcome.activity_error is not None:
            ...  # resource operation did not take effect
    """

    def __init__(self, context: AgentContext) -> None:
        self._context = context

    def _options(self, base: ActivityOptions, options: WorkflowOptions | None) -> ActivityOptions:
        if options is None:
            return base
        return ActivityOptions(
            start_to_close_timeout=base.start_to_close_timeout,
            retry_policy=base.retry_policy.with_interval_override(options.retry_interval),
        )

    def run_activity(self, metadata: WorkflowMetadata, transaction_id: TransactionID, request: Any) -> ActivityResult:
        """Body of every invocation activity: one attempt against the controller.

        Every result is reported to the connection manager so transport
        failures mark the connection unhealthy.
        """
        connections = self._context.connections
        with connections.acquire() as handle:
            try:
                value = metadata.invoke_backend(handle.client, transaction_id, request)
            except ResourceStaleError as e:
                connections.record_result(e)
                if metadata.stale_is_success():
                    logger.info(
                        "Resource already in desired state",
                        resource_type=metadata.resource_type(),
                        activity=metadata.activity_type(),
                        resource_id=transaction_id.resource_id,
                    )
                    return ActivityResult(stale=True)
                raise NonRetryableError(str(e), type="ErrResourceStale") from e
            except BackendError as e:
                connections.record_result(e)
                raise
            connections.record_result(None)
        return ActivityResult(value=value)

    def do_workflow(
        self,
        transaction_id: TransactionID | None,
        request: Any,
        metadata: WorkflowMetadata,
        options: WorkflowOptions | None = None,
    ) -> WorkflowOutcome:
        """Run both phases of one resource operation.

        Args:
            transaction_id: Correlates both phases; must carry a resource ID
            request: Resource-specific request passed to invoke_backend
            metadata: Fresh dispatch object for this operation
            options: Per-request options (retry interval override)

        Returns:
            WorkflowOutcome with independent activity and publish errors
        """
        ctx = self._context
        resource_type = metadata.resource_type()
        activity = metadata.activity_type()
        stats = metadata.statistics()
        stats.record_start()
        started = time.monotonic()

        try:
            transaction_id = validate_transaction(transaction_id)
        except TransactionValidationError as e:
            # Nothing was attempted: no backend call, no publish
            metadata.set_response_state(WorkflowStatus.FAILURE, ObjectStatus.UNSPECIFIED, str(e))
            logger.error("Invalid transaction", resource_type=resource_type, activity=activity, error=str(e))
            self._record(metadata, started, activity_error=e, publish_error=e)
            return WorkflowOutcome(activity_error=e, publish_error=e, response=metadata.response())

        resource_id = transaction_id.resource_id
        log = logger.bind(resource_type=resource_type, activity=activity, resource_id=resource_id)
        activity_error: BaseException | None = None
        publish_error: BaseException | None = None
        workflow_id: str | None = None

        with ctx.spans.workflow_span(activity, resource_type, resource_id) as workflow_span:
            # Phase 1: invoke
            metadata.set_response_state(
                WorkflowStatus.IN_PROGRESS, ObjectStatus.IN_PROGRESS, f"{resource_type} started {activity} activity"
            )
            with ctx.spans.activity_span(activity, resource_type) as span:
                try:
                    result = ctx.substrate.execute_activity(
                        metadata.invoke_activity_name(),
                        metadata,
                        transaction_id,
                        request,
                        options=self._options(ctx.settings.workflow.activity_options(), options),
                    )
                except ActivityFailedError as e:
                    activity_error = e
                    span.record_exception(e)
                    metadata.set_response_state(WorkflowStatus.FAILURE, ObjectStatus.UNSPECIFIED, str(e))
                    log.error("Activity failed", attempts=e.attempts, error=str(e))
                else:
                    if result.stale:
                        message = "resource already in desired state"
                    else:
                        message = f"{resource_type} completed {activity} activity"
                        metadata.apply_result(result.value)
                    metadata.set_response_state(
                        WorkflowStatus.SUCCESS, SUCCESS_OBJECT_STATUS[metadata.operation_kind()], message
                    )
                    log.info("Activity succeeded", stale=result.stale)

            # Phase 2: publish, regardless of phase 1
            publish_activity = metadata.publish_activity_name()
            with ctx.spans.publish_span(publish_activity) as span:
                try:
                    workflow_id = ctx.substrate.execute_activity(
                        publish_activity,
                        transaction_id,
                        metadata.response(),
                        activity,
                        options=self._options(ctx.settings.workflow.publish_options(), options),
                    )
                except ActivityFailedError as e:
                    publish_error = e
                    span.record_exception(e)
                    log.error("Publish failed", publish_activity=publish_activity, attempts=e.attempts, error=str(e))
                else:
                    log.info("Published status", publish_activity=publish_activity, workflow_id=workflow_id)

            workflow_span.set_attribute("activity.failed", activity_error is not None)
            workflow_span.set_attribute("publish.failed", publish_error is not None)

        self._record(metadata, started, activity_error=activity_error, publish_error=publish_error)
        return WorkflowOutcome(
            activity_error=activity_error,
            publish_error=publish_error,
            response=metadata.response(),
            publish_workflow_id=workflow_id,
        )

    def _record(
        self,
        metadata: WorkflowMetadata,
        started: float,
        *,
        activity_error: BaseException | None,
        publish_error: BaseException | None,
    ) -> None:
        metadata.statistics().record_end(
            activity_succeeded=activity_error is None,
            publish_succeeded=publish_error is None,
        )
        status = CompositeStatus.from_outcome(activity_error is not None, publish_error is not None)
        self._context.latency.record(metadata.activity_type(), status, time.monotonic() - started)
