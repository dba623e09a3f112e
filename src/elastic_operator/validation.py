"""Precondition checks run before any mutation is issued.

Validation is split in two:
- gather_facts() performs the remote lookups (instance types, network)
- validate() is a pure function over desired state, previous state and
  those facts, raising PreconditionError on the first violated rule

Rules are checked in a fixed priority order so the reported error is
deterministic when several rules are violated at once.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from .api import ClusterAPI
from .api_types import NetworkInfo, VMInfo, VolumeCategoryInfo
from .errors import PreconditionError
from .models import (
    AnyWarehouseSpec,
    ClusterSpec,
    ComputeVolumeConfig,
    CoordinatorVolumeConfig,
    DistributionPolicy,
    WarehouseExternalInfo,
)

logger = logging.getLogger(__name__)

# Minimum coordinator nodes when the network spans availability zones
MULTI_AZ_MIN_COORDINATORS = 3

# Fields that cannot change once the cluster exists
IMMUTABLE_FIELDS = (
    "csp",
    "region",
    "cluster_name",
    "default_admin_password",
    "data_credential_id",
    "deployment_credential_id",
    "network_id",
    "query_port",
)


@dataclass
class ValidationFacts:
    """Remote facts needed by validate()."""

    # Instance type -> VM info, None when the type does not exist
    vm_infos: dict[str, VMInfo | None] = field(default_factory=dict)
    network: NetworkInfo | None = None

    def vm(self, instance_type: str) -> VMInfo | None:
        return self.vm_infos.get(instance_type)


def _all_warehouses(spec: ClusterSpec) -> list[AnyWarehouseSpec]:
    return [spec.default_warehouse, *spec.warehouses]


async def gather_facts(
    api: ClusterAPI,
    desired: ClusterSpec,
    previous: ClusterSpec | None = None,
) -> ValidationFacts:
    """Look up every instance type and the network referenced by the specs.

    Lookups run one after another; a failed lookup propagates as
    RemoteCallError.
    """
    instance_types = [desired.coordinator_node_size]
    instance_types.extend(wh.compute_node_size for wh in _all_warehouses(desired))
    if previous is not None:
        instance_types.append(previous.coordinator_node_size)

    facts = ValidationFacts()
    for instance_type in dict.fromkeys(instance_types):
        facts.vm_infos[instance_type] = await api.get_vm_info(
            desired.csp, desired.region, instance_type
        )

    if desired.network_id:
        facts.network = await api.get_network(desired.network_id)

    logger.debug(
        "Gathered validation facts",
        extra={
            "cluster_name": desired.cluster_name,
            "instance_types": list(facts.vm_infos),
        },
    )
    return facts


def _require_vm(facts: ValidationFacts, spec: ClusterSpec, instance_type: str) -> VMInfo:
    vm = facts.vm(instance_type)
    if vm is None:
        raise PreconditionError(
            f"vm info not exists, csp:{spec.csp} region:{spec.region} vmCate:{instance_type}"
        )
    return vm


def _check_volume_params(
    node_type: str,
    vm: VMInfo,
    volume: CoordinatorVolumeConfig | ComputeVolumeConfig,
) -> None:
    """Check a declared volume against the bounds of the instance's disk category."""
    if not vm.volume_infos:
        return
    category: VolumeCategoryInfo = vm.volume_infos[0]

    def check(name: str, value: int | None, low: int | None, high: int | None) -> None:
        if value is None:
            return
        if (low is not None and value < low) or (high is not None and value > high):
            raise PreconditionError(
                f"verify {node_type} volume params failed, volumeCate:{category.category} "
                f"{name}:{value} must be within [{low}, {high}]"
            )

    check("vol_size", volume.vol_size, category.min_size, category.max_size)
    check("iops", volume.iops, category.min_iops, category.max_iops)
    check("throughput", volume.throughput, category.min_throughput, category.max_throughput)


def validate(
    desired: ClusterSpec,
    facts: ValidationFacts,
    previous: ClusterSpec | None = None,
    external_info: dict[str, WarehouseExternalInfo] | None = None,
) -> None:
    """Validate a create (previous is None) or an update.

    Raises:
        PreconditionError: On the first violated rule.
    """
    is_update = previous is not None
    warehouses = _all_warehouses(desired)

    # 1. Coordinator instance type exists
    coordinator_vm = _require_vm(facts, desired, desired.coordinator_node_size)

    # 2. Multi-AZ networks need a coordinator quorum
    if facts.network is not None and facts.network.multi_az:
        if desired.coordinator_node_count < MULTI_AZ_MIN_COORDINATORS:
            raise PreconditionError(
                "in multi-AZ deployment mode, the number of coordinator nodes should be "
                f"greater than or equal to {MULTI_AZ_MIN_COORDINATORS}"
            )

    # 3. specify_az is only meaningful with the specify_az policy
    for wh in warehouses:
        if wh.specify_az and wh.distribution_policy != DistributionPolicy.SPECIFY_AZ:
            raise PreconditionError(
                f"warehouse[{wh.name}]: specify_az parameter only takes effect when the "
                'distribution_policy value is "specify_az"'
            )

    # 4. Coordinator resize keeps the architecture
    if is_update and previous.coordinator_node_size != desired.coordinator_node_size:
        old_vm = _require_vm(facts, desired, previous.coordinator_node_size)
        if old_vm.arch != coordinator_vm.arch:
            raise PreconditionError(
                "the vm instance architecture can not be changed, "
                f"oldVmCate:{previous.coordinator_node_size} "
                f"newVmCate:{desired.coordinator_node_size}"
            )

    # 5. Coordinator volume never shrinks
    if is_update:
        old_volume = previous.coordinator_node_volume_config or CoordinatorVolumeConfig()
        new_volume = desired.coordinator_node_volume_config or CoordinatorVolumeConfig()
        if new_volume.vol_size < old_volume.vol_size:
            raise PreconditionError("the coordinator node `vol_size` does not support decrease")

    # 6. Coordinator volume params only apply to network disks
    if not coordinator_vm.is_instance_store and desired.coordinator_node_volume_config:
        _check_volume_params(
            "Coordinator node", coordinator_vm, desired.coordinator_node_volume_config
        )

    # 7. Every warehouse shares the coordinator architecture
    warehouse_vms: list[tuple[AnyWarehouseSpec, VMInfo]] = []
    for wh in warehouses:
        vm = _require_vm(facts, desired, wh.compute_node_size)
        if vm.arch != coordinator_vm.arch:
            raise PreconditionError(
                f"the vm instance`s architecture of the warehouse[{wh.name}] must be the same "
                f"as the coordinator node, expect:{coordinator_vm.arch} but found:{vm.arch}"
            )
        warehouse_vms.append((wh, vm))

    # 8. Local disks take no volume config; network disks must fit the category
    for wh, vm in warehouse_vms:
        if vm.is_instance_store:
            if wh.compute_node_volume_config is not None:
                raise PreconditionError(
                    f"the vm instance type[{wh.compute_node_size}] of the warehouse[{wh.name}] "
                    "does not support specifying the volume config of disks, "
                    "field: compute_node_volume_config is not supported"
                )
        elif wh.compute_node_volume_config is not None:
            _check_volume_params("Compute node", vm, wh.compute_node_volume_config)

    # 9. Disk classification is fixed at creation
    if external_info:
        for wh, vm in warehouse_vms:
            record = external_info.get(wh.name)
            if record is not None and record.is_instance_store != vm.is_instance_store:
                expected = (
                    "local disk vm instance type"
                    if record.is_instance_store
                    else "nonlocal disk vm instance type"
                )
                raise PreconditionError(
                    f"the disk type of the warehouse[{wh.name}] must be the same as the "
                    f"previous disk type, expect:{expected}"
                )

    # 10. Warehouse names are unique
    _check_unique_names(wh.name for wh in warehouses)

    if is_update:
        _check_update_rules(previous, desired)


def _check_unique_names(names: Iterable[str]) -> None:
    for name, count in Counter(names).items():
        if count > 1:
            raise PreconditionError(f"only one warehouse with name '{name}' is allowed")


def _check_update_rules(previous: ClusterSpec, desired: ClusterSpec) -> None:
    for field_name in IMMUTABLE_FIELDS:
        if getattr(previous, field_name) != getattr(desired, field_name):
            raise PreconditionError(f"the `{field_name}` field is not allowed to be modified")

    old_warehouses = {wh.name: wh for wh in _all_warehouses(previous)}
    for wh in _all_warehouses(desired):
        old = old_warehouses.get(wh.name)
        if old is None:
            continue
        old_volume, new_volume = old.effective_volume(), wh.effective_volume()
        if old_volume.vol_number != new_volume.vol_number:
            raise PreconditionError(
                f"warehouse[{wh.name}]: the compute node `vol_number` is not allowed to be modified"
            )
        if new_volume.vol_size < old_volume.vol_size:
            raise PreconditionError(
                f"warehouse[{wh.name}]: the compute node `vol_size` does not support decrease"
            )

    if previous.custom_ami != desired.custom_ami:
        if previous.custom_ami is None:
            raise PreconditionError(
                "custom_ami can only be changed on clusters created with a custom ami"
            )
        if desired.custom_ami is None:
            raise PreconditionError("custom_ami cannot be removed once set")
        if previous.custom_ami.os != desired.custom_ami.os:
            raise PreconditionError("the `os` of custom_ami is not allowed to be modified")
