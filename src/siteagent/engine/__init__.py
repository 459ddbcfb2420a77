# src/siteagent/engine/__init__.py
"""Two-phase orchestration engine and the substrate it runs on."""

from siteagent.engine.engine import ActivityResult, OrchestrationEngine, validate_transaction
from siteagent.engine.publisher import (
    CERT_EXPIRY_WORKFLOW,
    ControlPlanePublisher,
    HTTPControlPlanePublisher,
    cert_expiry_workflow_id,
    publish_workflow_id,
)
from siteagent.engine.registry import ActivityRegistry
from siteagent.engine.spans import NoOpSpan, SpanFactory
from siteagent.engine.substrate import ExecutionSubstrate, LocalSubstrate

__all__ = [
    "CERT_EXPIRY_WORKFLOW",
    "ActivityRegistry",
    "ActivityResult",
    "ControlPlanePublisher",
    "ExecutionSubstrate",
    "HTTPControlPlanePublisher",
    "LocalSubstrate",
    "NoOpSpan",
    "OrchestrationEngine",
    "SpanFactory",
    "cert_expiry_workflow_id",
    "publish_workflow_id",
    "validate_transaction",
]
