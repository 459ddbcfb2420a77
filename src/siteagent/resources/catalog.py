# src/siteagent/resources/catalog.py
"""Closed table of the resource kinds the agent serves.

Most kinds are plain CRUD plus a list read. A stale result counts as
success for Create and Delete: a retried create that finds the resource
already present, or a retried delete that finds it gone, did its job.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from siteagent.contracts.enums import OperationKind
from siteagent.resources.base import (
    ActivitySpec,
    ResourceKind,
    call_action,
    call_create,
    call_delete,
    call_list,
    call_update,
)

CREATE = "Create"
UPDATE = "Update"
DELETE = "Delete"
GET_LIST = "GetList"
REBOOT = "Reboot"
SET_MAINTENANCE = "SetMaintenance"

STALE_SUCCESS_DEFAULT: frozenset[str] = frozenset({CREATE, DELETE})


def crud_kind(
    resource_type: str,
    label: str,
    collection: str,
    *,
    activities: Iterable[str] = (CREATE, UPDATE, DELETE, GET_LIST),
    stale_success: frozenset[str] = STALE_SUCCESS_DEFAULT,
    extra: Mapping[str, ActivitySpec] | None = None,
) -> ResourceKind:
    """Declare a kind from the standard activity set.

    Args:
        resource_type: snake_case label
        label: CamelCase name
        collection: Site controller collection
        activities: Subset of Create/Update/Delete/GetList the kind supports
        stale_success: Activities that accept a stale result as success
        extra: Additional non-standard activities
    """
    info = f"Update{label}Info"
    standard = {
        CREATE: ActivitySpec(OperationKind.CREATE, call_create, info),
        UPDATE: ActivitySpec(OperationKind.UPDATE, call_update, info),
        DELETE: ActivitySpec(OperationKind.DELETE, call_delete, info),
        GET_LIST: ActivitySpec(OperationKind.READ, call_list, f"Update{label}Inventory"),
    }
    table: dict[str, ActivitySpec] = {}
    for name in activities:
        spec = standard[name]
        if name in stale_success:
            spec = ActivitySpec(spec.operation, spec.call, spec.publish_workflow, stale_is_success=True)
        table[name] = spec
    table.update(extra or {})
    return ResourceKind(resource_type=resource_type, label=label, collection=collection, activities=table)


CATALOG: tuple[ResourceKind, ...] = (
    crud_kind("vpc", "Vpc", "vpcs"),
    crud_kind("vpc_prefix", "VpcPrefix", "vpc-prefixes"),
    crud_kind("subnet", "Subnet", "subnets"),
    crud_kind(
        "instance",
        "Instance",
        "instances",
        extra={REBOOT: ActivitySpec(OperationKind.UPDATE, call_action("reboot"), "UpdateInstanceRebootInfo")},
    ),
    crud_kind(
        "machine",
        "Machine",
        "machines",
        activities=(UPDATE, GET_LIST),
        extra={
            REBOOT: ActivitySpec(OperationKind.UPDATE, call_action("reboot"), "UpdateMachineRebootInfo"),
            SET_MAINTENANCE: ActivitySpec(OperationKind.UPDATE, call_action("maintenance"), "UpdateMachineInfo"),
        },
    ),
    crud_kind("infiniband_partition", "InfiniBandPartition", "infiniband-partitions"),
    crud_kind("ssh_key_group", "SSHKeyGroup", "ssh-key-groups"),
    crud_kind("tenant", "Tenant", "tenants"),
    crud_kind("operating_system", "OperatingSystem", "operating-systems"),
    crud_kind("instance_type", "InstanceType", "instance-types"),
    crud_kind("network_security_group", "NetworkSecurityGroup", "network-security-groups"),
    crud_kind("expected_machine", "ExpectedMachine", "expected-machines"),
    crud_kind("sku", "Sku", "skus", activities=(GET_LIST,)),
    crud_kind("dpu_extension_service", "DpuExtensionService", "dpu-extension-services"),
    crud_kind("nvlink_logical_partition", "NVLinkLogicalPartition", "nvlink-logical-partitions"),
)


def catalog_by_type(kinds: Iterable[ResourceKind] = CATALOG) -> dict[str, ResourceKind]:
    """Index kinds by resource_type.

    Raises:
        ValueError: If two kinds share a resource_type or label
    """
    by_type: dict[str, ResourceKind] = {}
    labels: set[str] = set()
    for kind in kinds:
        if kind.resource_type in by_type or kind.label in labels:
            raise ValueError(f"duplicate resource kind: {kind.resource_type}")
        by_type[kind.resource_type] = kind
        labels.add(kind.label)
    return by_type
