# src/siteagent/resources/__init__.py
"""Resource kinds and their dispatch contract implementation."""

from siteagent.resources.base import (
    ActivitySpec,
    ResourceKind,
    ResourceWorkflowMetadata,
    call_action,
    call_create,
    call_delete,
    call_list,
    call_update,
)
from siteagent.resources.catalog import CATALOG, catalog_by_type, crud_kind
from siteagent.resources.manager import ResourceManager, inventory_workflow_name

__all__ = [
    "CATALOG",
    "ActivitySpec",
    "ResourceKind",
    "ResourceManager",
    "ResourceWorkflowMetadata",
    "call_action",
    "call_create",
    "call_delete",
    "call_list",
    "call_update",
    "catalog_by_type",
    "crud_kind",
    "inventory_workflow_name",
]
