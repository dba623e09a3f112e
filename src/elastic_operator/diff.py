"""Warehouse diff engine and change planning.

The warehouse name is the only identity key: a renamed warehouse shows up
as one removal plus one addition, never as a rename.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .models import AnyWarehouseSpec, ClusterSpec, WarehouseSpec

# Fields compared for the coordinator group and cluster-wide settings, in
# the order the update phase applies them
CLUSTER_FIELDS = (
    "idle_suspend_interval",
    "expected_cluster_state",
    "ldap_ssl_certs",
    "resource_tags",
    "init_scripts",
    "run_scripts_parallel",
    "run_scripts_timeout",
    "ranger_certs_dir",
    "coordinator_node_size",
    "coordinator_node_count",
    "coordinator_node_volume_config",
    "coordinator_node_configs",
    "custom_ami",
)

WAREHOUSE_FIELDS = (
    "distribution_policy",
    "specify_az",
    "compute_node_size",
    "compute_node_count",
    "compute_node_volume_config",
    "idle_suspend_interval",
    "expected_state",
    "compute_node_configs",
    "auto_scaling_policy",
)


@dataclass(frozen=True)
class WarehouseDiff:
    """Names added, removed and present on both sides.

    ``modified`` holds every name present in both lists; field level
    comparison happens when the warehouse is updated.
    """

    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    modified: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)


def diff_warehouses(
    old: Iterable[WarehouseSpec], new: Iterable[WarehouseSpec]
) -> WarehouseDiff:
    """Compute added, removed and modified warehouse names.

    Added and modified names follow the order of ``new``; removed names
    follow the order of ``old``.
    """
    old_names = [wh.name for wh in old]
    new_names = [wh.name for wh in new]
    old_set, new_set = set(old_names), set(new_names)
    return WarehouseDiff(
        added=tuple(n for n in dict.fromkeys(new_names) if n not in old_set),
        removed=tuple(n for n in dict.fromkeys(old_names) if n not in new_set),
        modified=tuple(n for n in dict.fromkeys(new_names) if n in old_set),
    )


def _effective(spec: AnyWarehouseSpec, field_name: str) -> object:
    if field_name == "compute_node_volume_config":
        return spec.effective_volume()
    if field_name == "specify_az":
        return spec.specify_az or None
    return getattr(spec, field_name, None)


def changed_warehouse_fields(old: AnyWarehouseSpec, new: AnyWarehouseSpec) -> list[str]:
    """Fields whose effective values differ, in update order.

    An undeclared volume config compares equal to an explicit default one.
    """
    return [f for f in WAREHOUSE_FIELDS if _effective(old, f) != _effective(new, f)]


def changed_cluster_fields(old: ClusterSpec, new: ClusterSpec) -> list[str]:
    """Cluster-level fields that differ, in update order."""
    changed = []
    for field_name in CLUSTER_FIELDS:
        old_value, new_value = getattr(old, field_name), getattr(new, field_name)
        if field_name == "coordinator_node_volume_config":
            old_value = old.effective_coordinator_volume()
            new_value = new.effective_coordinator_volume()
        if field_name in ("init_scripts", "ldap_ssl_certs"):
            old_value, new_value = set(old_value), set(new_value)
        if old_value != new_value:
            changed.append(field_name)
    return changed


def plan_changes(previous: ClusterSpec | None, desired: ClusterSpec) -> list[str]:
    """Render the changes an apply would make, one line per change."""
    if previous is None:
        lines = [f"+ cluster {desired.cluster_name}"]
        lines.extend(f"+ warehouse {wh.name}" for wh in desired.warehouses)
        return lines

    lines = [f"~ cluster.{f}" for f in changed_cluster_fields(previous, desired)]
    for f in changed_warehouse_fields(previous.default_warehouse, desired.default_warehouse):
        lines.append(f"~ warehouse {desired.default_warehouse.name}.{f}")

    old_named, new_named = previous.named_warehouses(), desired.named_warehouses()
    diff = diff_warehouses(previous.warehouses, desired.warehouses)
    for name in diff.modified:
        for f in changed_warehouse_fields(old_named[name], new_named[name]):
            lines.append(f"~ warehouse {name}.{f}")
    lines.extend(f"+ warehouse {name}" for name in diff.added)
    lines.extend(f"- warehouse {name}" for name in diff.removed)
    return lines
