"""Per-entity lifecycle operations.

Each operation issues one or more control plane mutations and, when the
call returns an action id, awaits it with the poller using a fixed
(pending, target) state pair. An abnormal terminal state is raised as
AbnormalStateError carrying the remote reason verbatim.

Policy-level operations (custom configs, auto scaling, idle policy, tags,
certificates) are synchronous. Callers choose whether their failure is
fatal or a warning through the ``fatal`` flag.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .api import ClusterAPI
from .api_types import (
    QUIESCENT_STATES,
    TRANSIENT_STATES,
    ChangeDistributionRequest,
    ClusterInfo,
    ClusterState,
    CreateWarehouseRequest,
    CustomAmiInfo,
    DeployItem,
    DeployRequest,
    DeployResult,
    ModifyVolumeRequest,
    ModuleType,
    UpgradeImageRequest,
)
from .config import (
    DEFAULT_DEPLOY_TIMEOUT_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_WAIT_TIMEOUT_SECONDS,
    Config,
)
from .diff import changed_warehouse_fields
from .errors import AbnormalStateError, Diagnostics, PreconditionError, ReconcileError
from .models import (
    AnyWarehouseSpec,
    AutoScalingPolicy,
    ClusterSpec,
    ComputeVolumeConfig,
    CoordinatorVolumeConfig,
    CustomAmi,
    DistributionPolicy,
    ExpectedState,
    InitScript,
    WarehouseSpec,
)
from .poller import WaitResult, wait_cluster_state, wait_infra_action

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60 * 1000


@dataclass(frozen=True)
class Transition:
    """Pending and target states awaited after a mutation."""

    pending: frozenset[ClusterState]
    target: frozenset[ClusterState]


_RUNNING_OR_ABNORMAL = frozenset({ClusterState.RUNNING, ClusterState.ABNORMAL})

QUIESCE = Transition(TRANSIENT_STATES, QUIESCENT_STATES)
DEPLOY = Transition(TRANSIENT_STATES, _RUNNING_OR_ABNORMAL)
SCALE = Transition(frozenset({ClusterState.SCALING}), _RUNNING_OR_ABNORMAL)
RELEASE_CLUSTER = Transition(
    frozenset(
        {
            ClusterState.RELEASING,
            ClusterState.RUNNING,
            ClusterState.SUSPENDED,
            ClusterState.ABNORMAL,
            ClusterState.UPDATING,
        }
    ),
    frozenset({ClusterState.RELEASED, ClusterState.ABNORMAL}),
)
RELEASE_WAREHOUSE = Transition(
    TRANSIENT_STATES | {ClusterState.RUNNING},
    frozenset({ClusterState.RELEASED, ClusterState.ABNORMAL}),
)
SUSPEND = Transition(
    TRANSIENT_STATES | {ClusterState.RUNNING},
    frozenset({ClusterState.SUSPENDED, ClusterState.ABNORMAL}),
)
RESUME = Transition(TRANSIENT_STATES | {ClusterState.SUSPENDED}, _RUNNING_OR_ABNORMAL)

RELEASE_ABNORMAL_MESSAGE = (
    "release cluster failed: {reason}, we have successfully released your cluster, "
    "but cloud resources may not be released. Please release cloud resources manually "
    "according to the email"
)


@dataclass(frozen=True)
class Timeouts:
    """Wait bounds in seconds."""

    deploy: float = DEFAULT_DEPLOY_TIMEOUT_SECONDS
    wait: float = DEFAULT_WAIT_TIMEOUT_SECONDS
    interval: float = DEFAULT_POLL_INTERVAL_SECONDS

    @classmethod
    def from_config(cls, config: Config) -> Timeouts:
        return cls(
            deploy=config.deploy_timeout_seconds,
            wait=config.wait_timeout_seconds,
            interval=config.poll_interval_seconds,
        )


def idle_config_for(new_minutes: int, old_minutes: int = 0) -> tuple[int, bool]:
    """Interval (ms) and enabled flag for an idle-suspend change.

    Disabling keeps the last configured interval on the remote side.
    """
    if new_minutes > 0:
        return new_minutes * MS_PER_MINUTE, True
    return old_minutes * MS_PER_MINUTE, False


class LifecycleOperations:
    """Mutating operations for one reconciliation pass.

    Every mutation sent to the control plane is appended to ``steps`` and
    warnings are collected into ``diagnostics``.
    """

    def __init__(
        self,
        api: ClusterAPI,
        diagnostics: Diagnostics,
        timeouts: Timeouts | None = None,
    ) -> None:
        self._api = api
        self._diagnostics = diagnostics
        self._timeouts = timeouts or Timeouts()
        self.steps: list[str] = []

    @property
    def diagnostics(self) -> Diagnostics:
        return self._diagnostics

    def _record(self, step: str, **context: object) -> None:
        self.steps.append(step)
        logger.info("Applying change", extra={"step": step, **context})

    async def _best_effort(
        self,
        summary: str,
        operation: Callable[[], Awaitable[object]],
        *,
        fatal: bool,
    ) -> bool:
        """Run an operation whose failure may be downgraded to a warning.

        Returns True when the operation succeeded.
        """
        try:
            await operation()
        except ReconcileError as e:
            if fatal:
                e.summary = summary
                raise
            self._diagnostics.warn(summary, str(e))
            return False
        return True

    # =========================================================================
    # Waiting
    # =========================================================================

    async def _await_action(
        self,
        cluster_id: str,
        action_id: str,
        transition: Transition,
        *,
        timeout: float,
        description: str,
    ) -> WaitResult:
        """Await a cluster or warehouse action and raise on abnormal."""
        if not action_id:
            return WaitResult(state=ClusterState.RUNNING)
        result = await wait_cluster_state(
            self._api,
            cluster_id,
            action_id=action_id,
            pending=transition.pending,
            target=transition.target,
            timeout=timeout,
            interval=self._timeouts.interval,
            description=description,
        )
        if result.is_abnormal:
            raise AbnormalStateError(result.reason, summary=f"{description} failed")
        return result

    async def _await_infra(self, cluster_id: str, action_id: str, description: str) -> None:
        if not action_id:
            return
        result = await wait_infra_action(
            self._api,
            cluster_id,
            action_id,
            timeout=self._timeouts.wait,
            interval=self._timeouts.interval,
            description=description,
        )
        if result.is_failed:
            raise AbnormalStateError(result.reason, summary=f"{description} failed")

    async def await_quiescence(self, cluster_id: str, *, is_new: bool = False) -> WaitResult:
        """Drain any in-flight transition before inspecting or mutating."""
        return await wait_cluster_state(
            self._api,
            cluster_id,
            pending=QUIESCE.pending,
            target=QUIESCE.target,
            timeout=self._timeouts.wait,
            interval=self._timeouts.interval,
            is_new=is_new,
            description=f"cluster {cluster_id} to settle",
        )

    # =========================================================================
    # Cluster
    # =========================================================================

    async def submit_deploy(self, spec: ClusterSpec) -> DeployResult:
        """Deploy the coordinators and the default warehouse.

        Named warehouses are created afterwards, one by one.
        """
        coordinator_volume = spec.effective_coordinator_volume()
        default_wh = spec.default_warehouse
        default_volume = default_wh.effective_volume()
        request = DeployRequest(
            request_id=str(uuid.uuid4()),
            cluster_name=spec.cluster_name,
            csp=spec.csp,
            region=spec.region,
            password=spec.default_admin_password.get_secret_value(),
            network_id=spec.network_id,
            data_credential_id=spec.data_credential_id,
            deployment_credential_id=spec.deployment_credential_id,
            query_port=spec.query_port,
            run_scripts_parallel=spec.run_scripts_parallel,
            run_scripts_timeout=spec.run_scripts_timeout,
            items=[
                DeployItem(
                    module_type=ModuleType.COORDINATOR,
                    instance_type=spec.coordinator_node_size,
                    num=spec.coordinator_node_count,
                    vol_number=1,
                    vol_size=coordinator_volume.vol_size,
                    iops=coordinator_volume.iops,
                    throughput=coordinator_volume.throughput,
                ),
                DeployItem(
                    module_type=ModuleType.WAREHOUSE,
                    instance_type=default_wh.compute_node_size,
                    num=default_wh.compute_node_count,
                    vol_number=default_volume.vol_number,
                    vol_size=default_volume.vol_size,
                    iops=default_volume.iops,
                    throughput=default_volume.throughput,
                    distribution_policy=default_wh.distribution_policy.value,
                    specify_az=default_wh.specify_az,
                ),
            ],
            tags=spec.resource_tags,
            scripts=spec.init_scripts,
            custom_ami=(
                CustomAmiInfo(ami=spec.custom_ami.ami, os=spec.custom_ami.os)
                if spec.custom_ami
                else None
            ),
        )
        self._record("deploy", cluster_name=spec.cluster_name)
        return await self._api.deploy(request)

    async def wait_deployed(self, deployed: DeployResult) -> WaitResult:
        return await self._await_action(
            deployed.cluster_id,
            deployed.action_id,
            DEPLOY,
            timeout=self._timeouts.deploy,
            description=f"deploy cluster {deployed.cluster_id}",
        )

    async def release_cluster(self, cluster_id: str) -> WaitResult:
        """Release the cluster and wait until it is gone.

        Raises:
            AbnormalStateError: If the release ends abnormal. Cloud resources
                may then be left behind.
        """
        self._record("release", cluster_id=cluster_id)
        action_id = await self._api.release(cluster_id)
        result = await wait_cluster_state(
            self._api,
            cluster_id,
            action_id=action_id or None,
            pending=RELEASE_CLUSTER.pending,
            target=RELEASE_CLUSTER.target,
            timeout=self._timeouts.wait,
            interval=self._timeouts.interval,
            is_new=False,
            description=f"release cluster {cluster_id}",
        )
        if result.is_abnormal:
            raise AbnormalStateError(
                RELEASE_ABNORMAL_MESSAGE.format(reason=result.reason),
                summary=f"release cluster {cluster_id} failed",
            )
        return result

    async def suspend_cluster(self, cluster_id: str) -> None:
        self._record("suspend cluster", cluster_id=cluster_id)
        action_id = await self._api.suspend_cluster(cluster_id)
        await self._await_action(
            cluster_id,
            action_id,
            SUSPEND,
            timeout=self._timeouts.deploy,
            description=f"suspend cluster {cluster_id}",
        )

    async def resume_cluster(self, cluster_id: str) -> None:
        self._record("resume cluster", cluster_id=cluster_id)
        action_id = await self._api.resume_cluster(cluster_id)
        await self._await_action(
            cluster_id,
            action_id,
            RESUME,
            timeout=self._timeouts.deploy,
            description=f"resume cluster {cluster_id}",
        )

    async def scale_coordinator_size(self, cluster_id: str, instance_type: str) -> None:
        self._record("scale up coordinator", cluster_id=cluster_id, instance_type=instance_type)
        action_id = await self._api.scale_up(cluster_id, instance_type)
        await self._await_action(
            cluster_id,
            action_id,
            SCALE,
            timeout=self._timeouts.deploy,
            description=f"scale up coordinator of cluster {cluster_id}",
        )

    async def scale_coordinator_count(self, cluster_id: str, old_count: int, new_count: int) -> None:
        if new_count == old_count:
            return
        if new_count > old_count:
            self._record("scale out coordinator", cluster_id=cluster_id, node_count=new_count)
            action_id = await self._api.scale_out(cluster_id, new_count)
        else:
            self._record("scale in coordinator", cluster_id=cluster_id, node_count=new_count)
            action_id = await self._api.scale_in(cluster_id, new_count)
        await self._await_action(
            cluster_id,
            action_id,
            SCALE,
            timeout=self._timeouts.deploy,
            description=f"scale coordinator count of cluster {cluster_id}",
        )

    async def unlock_free_tier(self, cluster_id: str) -> None:
        self._record("unlock free tier", cluster_id=cluster_id)
        await self._api.unlock_free_tier(cluster_id)

    async def modify_coordinator_volume(
        self,
        cluster_id: str,
        old: CoordinatorVolumeConfig,
        new: CoordinatorVolumeConfig,
    ) -> None:
        request = ModifyVolumeRequest(
            cluster_id=cluster_id,
            module_type=ModuleType.COORDINATOR,
            **_changed_volume_fields(old, new),
        )
        if request.is_empty:
            return
        self._record("modify coordinator volume", cluster_id=cluster_id)
        action_id = await self._api.modify_volume(request)
        await self._await_infra(
            cluster_id, action_id, f"modify coordinator volume of cluster {cluster_id}"
        )

    async def upsert_coordinator_configs(
        self, cluster_id: str, configs: dict[str, str], *, fatal: bool
    ) -> bool:
        self._record("upsert coordinator configs", cluster_id=cluster_id)
        return await self._best_effort(
            f"Upsert coordinator configs of cluster[{cluster_id}] failed",
            lambda: self._api.upsert_custom_config(cluster_id, ModuleType.COORDINATOR, configs),
            fatal=fatal,
        )

    async def set_cluster_idle(
        self, cluster_id: str, new_minutes: int, old_minutes: int = 0
    ) -> bool:
        interval_ms, enabled = idle_config_for(new_minutes, old_minutes)
        self._record("update cluster idle config", cluster_id=cluster_id, enabled=enabled)
        return await self._best_effort(
            f"Config cluster[{cluster_id}] idle config failed",
            lambda: self._api.update_cluster_idle_config(cluster_id, interval_ms, enabled),
            fatal=False,
        )

    async def update_tags(self, cluster_id: str, tags: dict[str, str]) -> bool:
        self._record("update resource tags", cluster_id=cluster_id)
        return await self._best_effort(
            f"Cluster[{cluster_id}] failed to update resource tags",
            lambda: self._api.update_resource_tags(cluster_id, tags),
            fatal=False,
        )

    async def update_init_scripts(
        self,
        cluster_id: str,
        scripts: list[InitScript],
        parallel: bool,
        timeout_seconds: int,
    ) -> None:
        self._record("update init scripts", cluster_id=cluster_id)
        await self._best_effort(
            f"Cluster[{cluster_id}] failed to update init scripts",
            lambda: self._api.update_deployment_scripts(
                cluster_id, scripts, parallel, timeout_seconds
            ),
            fatal=True,
        )

    async def upsert_ldap_certs(
        self, cluster_id: str, s3_paths: list[str], *, is_update: bool, fatal: bool
    ) -> bool:
        self._record("upsert ldap ssl certs", cluster_id=cluster_id)
        return await self._best_effort(
            f"Upsert ldap ssl certs of cluster[{cluster_id}] failed",
            lambda: self._api.upsert_ldap_ssl_certs(cluster_id, s3_paths, is_update),
            fatal=fatal,
        )

    async def upsert_ranger_certs(
        self, cluster_id: str, dir_path: str, *, is_update: bool, fatal: bool
    ) -> bool:
        self._record("upsert ranger certs", cluster_id=cluster_id)
        return await self._best_effort(
            f"Upsert ranger certs of cluster[{cluster_id}] failed",
            lambda: self._api.upsert_ranger_certs(cluster_id, dir_path, is_update),
            fatal=fatal,
        )

    async def upgrade_image(self, info: ClusterInfo, ami: CustomAmi) -> None:
        """Roll a new machine image over every warehouse, then the coordinators."""
        cluster_id = info.cluster_id
        if not info.is_all_running():
            raise PreconditionError(
                f"cluster[{cluster_id}] and all of its warehouses must be running "
                "to upgrade the custom ami"
            )
        for wh in info.warehouses:
            if wh.deleted:
                continue
            self._record("upgrade warehouse image", cluster_id=cluster_id, warehouse=wh.name)
            action_id = await self._api.upgrade_image(
                UpgradeImageRequest(
                    cluster_id=cluster_id,
                    module_type=ModuleType.WAREHOUSE,
                    warehouse_id=wh.id,
                    ami=ami.ami,
                    os=ami.os,
                )
            )
            await self._await_infra(cluster_id, action_id, f"upgrade ami of warehouse[{wh.name}]")

        self._record("upgrade coordinator image", cluster_id=cluster_id)
        action_id = await self._api.upgrade_image(
            UpgradeImageRequest(
                cluster_id=cluster_id,
                module_type=ModuleType.COORDINATOR,
                ami=ami.ami,
                os=ami.os,
            )
        )
        await self._await_infra(cluster_id, action_id, "upgrade ami of coordinator nodes")

    # =========================================================================
    # Warehouses
    # =========================================================================

    async def create_warehouse(self, cluster_id: str, spec: WarehouseSpec) -> str:
        """Create a named warehouse and apply its policies.

        Returns:
            The new warehouse id.
        """
        volume = spec.effective_volume()
        request = CreateWarehouseRequest(
            cluster_id=cluster_id,
            name=spec.name,
            instance_type=spec.compute_node_size,
            num=spec.compute_node_count,
            vol_number=volume.vol_number,
            vol_size=volume.vol_size,
            iops=volume.iops,
            throughput=volume.throughput,
            distribution_policy=spec.distribution_policy.value,
            specify_az=spec.specify_az,
        )
        self._record("create warehouse", cluster_id=cluster_id, warehouse=spec.name)
        created = await self._api.create_warehouse(request)
        await self._await_action(
            cluster_id,
            created.action_id,
            DEPLOY,
            timeout=self._timeouts.deploy,
            description=f"create warehouse[{spec.name}]",
        )
        warehouse_id = created.warehouse_id

        if spec.auto_scaling_policy is not None:
            await self.save_auto_scaling(
                cluster_id, warehouse_id, spec.name, spec.auto_scaling_policy, fatal=False
            )
        if spec.compute_node_configs:
            await self.upsert_warehouse_configs(
                cluster_id, warehouse_id, spec.name, spec.compute_node_configs, fatal=False
            )
        if spec.expected_state == ExpectedState.SUSPENDED:
            await self._best_effort(
                f"Suspend warehouse[{spec.name}] failed",
                lambda: self.suspend_warehouse(cluster_id, warehouse_id, spec.name),
                fatal=False,
            )
        if spec.idle_suspend_interval > 0:
            await self.set_warehouse_idle(warehouse_id, spec.name, spec.idle_suspend_interval)
        return warehouse_id

    async def release_warehouse(self, cluster_id: str, warehouse_id: str, name: str) -> None:
        self._record("release warehouse", cluster_id=cluster_id, warehouse=name)
        action_id = await self._api.release_warehouse(cluster_id, warehouse_id)
        await self._await_action(
            cluster_id,
            action_id,
            RELEASE_WAREHOUSE,
            timeout=self._timeouts.wait,
            description=f"release warehouse[{name}]",
        )

    async def suspend_warehouse(self, cluster_id: str, warehouse_id: str, name: str) -> None:
        self._record("suspend warehouse", cluster_id=cluster_id, warehouse=name)
        action_id = await self._api.suspend_warehouse(cluster_id, warehouse_id)
        await self._await_action(
            cluster_id,
            action_id,
            SUSPEND,
            timeout=self._timeouts.deploy,
            description=f"suspend warehouse[{name}]",
        )

    async def resume_warehouse(self, cluster_id: str, warehouse_id: str, name: str) -> None:
        self._record("resume warehouse", cluster_id=cluster_id, warehouse=name)
        action_id = await self._api.resume_warehouse(cluster_id, warehouse_id)
        await self._await_action(
            cluster_id,
            action_id,
            RESUME,
            timeout=self._timeouts.deploy,
            description=f"resume warehouse[{name}]",
        )

    async def scale_warehouse_size(
        self, cluster_id: str, warehouse_id: str, name: str, instance_type: str
    ) -> None:
        self._record("scale warehouse size", warehouse=name, instance_type=instance_type)
        action_id = await self._api.scale_warehouse_size(cluster_id, warehouse_id, instance_type)
        await self._await_action(
            cluster_id,
            action_id,
            SCALE,
            timeout=self._timeouts.deploy,
            description=f"scale size of warehouse[{name}]",
        )

    async def scale_warehouse_count(
        self, cluster_id: str, warehouse_id: str, name: str, node_count: int
    ) -> None:
        self._record("scale warehouse count", warehouse=name, node_count=node_count)
        action_id = await self._api.scale_warehouse_num(cluster_id, warehouse_id, node_count)
        await self._await_action(
            cluster_id,
            action_id,
            SCALE,
            timeout=self._timeouts.deploy,
            description=f"scale node count of warehouse[{name}]",
        )

    async def change_distribution(
        self, cluster_id: str, warehouse_id: str, name: str, spec: AnyWarehouseSpec
    ) -> None:
        self._record("change warehouse distribution", warehouse=name)
        action_id = await self._api.change_warehouse_distribution(
            ChangeDistributionRequest(
                cluster_id=cluster_id,
                warehouse_id=warehouse_id,
                distribution_policy=spec.distribution_policy.value,
                specify_az=spec.specify_az,
            )
        )
        await self._await_infra(cluster_id, action_id, f"change distribution of warehouse[{name}]")

    async def modify_warehouse_volume(
        self,
        cluster_id: str,
        warehouse_id: str,
        name: str,
        old: ComputeVolumeConfig,
        new: ComputeVolumeConfig,
    ) -> None:
        if old.vol_number != new.vol_number:
            raise PreconditionError(
                f"warehouse[{name}]: the compute node `vol_number` is not allowed to be modified"
            )
        if new.vol_size < old.vol_size:
            raise PreconditionError(
                f"warehouse[{name}]: the compute node `vol_size` does not support decrease"
            )
        request = ModifyVolumeRequest(
            cluster_id=cluster_id,
            module_type=ModuleType.WAREHOUSE,
            warehouse_id=warehouse_id,
            **_changed_volume_fields(old, new),
        )
        if request.is_empty:
            return
        self._record("modify warehouse volume", warehouse=name)
        action_id = await self._api.modify_volume(request)
        await self._await_infra(cluster_id, action_id, f"modify volume of warehouse[{name}]")

    async def set_warehouse_idle(
        self, warehouse_id: str, name: str, new_minutes: int, old_minutes: int = 0
    ) -> bool:
        interval_ms, enabled = idle_config_for(new_minutes, old_minutes)
        self._record("update warehouse idle config", warehouse=name, enabled=enabled)
        return await self._best_effort(
            f"Config warehouse[{name}] idle config failed",
            lambda: self._api.update_warehouse_idle_config(warehouse_id, interval_ms, enabled),
            fatal=False,
        )

    async def upsert_warehouse_configs(
        self,
        cluster_id: str,
        warehouse_id: str,
        name: str,
        configs: dict[str, str],
        *,
        fatal: bool,
    ) -> bool:
        self._record("upsert warehouse configs", warehouse=name)
        return await self._best_effort(
            f"Upsert compute node configs of warehouse[{name}] failed",
            lambda: self._api.upsert_custom_config(
                cluster_id, ModuleType.WAREHOUSE, configs, warehouse_id
            ),
            fatal=fatal,
        )

    async def save_auto_scaling(
        self,
        cluster_id: str,
        warehouse_id: str,
        name: str,
        policy: AutoScalingPolicy,
        *,
        fatal: bool,
    ) -> bool:
        self._record("save auto scaling policy", warehouse=name)
        return await self._best_effort(
            f"Config warehouse[{name}] auto-scaling configuration failed",
            lambda: self._api.save_auto_scaling_config(cluster_id, warehouse_id, policy),
            fatal=fatal,
        )

    async def clear_auto_scaling(self, cluster_id: str, warehouse_id: str, name: str) -> bool:
        self._record("delete auto scaling policy", warehouse=name)
        return await self._best_effort(
            f"Delete warehouse[{name}] auto-scaling configuration failed",
            lambda: self._api.delete_auto_scaling_config(cluster_id, warehouse_id),
            fatal=False,
        )

    async def update_warehouse(
        self,
        cluster_id: str,
        warehouse_id: str,
        old: AnyWarehouseSpec,
        new: AnyWarehouseSpec,
    ) -> None:
        """Bring one existing warehouse from ``old`` to ``new``.

        Order: distribution, size, count, volume, idle interval, resume,
        custom configs, suspend, auto scaling. Size and count changes are
        each awaited before volume or config changes are sent.
        """
        name = new.name
        changed = set(changed_warehouse_fields(old, new))
        if not changed:
            return
        logger.info(
            "Updating warehouse",
            extra={"warehouse": name, "changed_fields": sorted(changed)},
        )

        distribution_changed = "distribution_policy" in changed or (
            new.distribution_policy == DistributionPolicy.SPECIFY_AZ and "specify_az" in changed
        )
        if distribution_changed:
            await self.change_distribution(cluster_id, warehouse_id, name, new)

        if "compute_node_size" in changed:
            await self.scale_warehouse_size(cluster_id, warehouse_id, name, new.compute_node_size)

        if "compute_node_count" in changed:
            await self.scale_warehouse_count(
                cluster_id, warehouse_id, name, new.compute_node_count
            )

        if "compute_node_volume_config" in changed:
            await self.modify_warehouse_volume(
                cluster_id, warehouse_id, name, old.effective_volume(), new.effective_volume()
            )

        named = isinstance(old, WarehouseSpec) and isinstance(new, WarehouseSpec)

        if named and "idle_suspend_interval" in changed:
            await self.set_warehouse_idle(
                warehouse_id, name, new.idle_suspend_interval, old.idle_suspend_interval
            )

        if (
            named
            and "expected_state" in changed
            and new.expected_state == ExpectedState.RUNNING
        ):
            await self.resume_warehouse(cluster_id, warehouse_id, name)

        if "compute_node_configs" in changed:
            await self.upsert_warehouse_configs(
                cluster_id, warehouse_id, name, new.compute_node_configs, fatal=False
            )

        if (
            named
            and "expected_state" in changed
            and new.expected_state == ExpectedState.SUSPENDED
        ):
            await self._best_effort(
                f"Suspend warehouse[{name}] failed",
                lambda: self.suspend_warehouse(cluster_id, warehouse_id, name),
                fatal=False,
            )

        if "auto_scaling_policy" in changed:
            if new.auto_scaling_policy is not None:
                await self.save_auto_scaling(
                    cluster_id, warehouse_id, name, new.auto_scaling_policy, fatal=True
                )
            else:
                await self.clear_auto_scaling(cluster_id, warehouse_id, name)


def _changed_volume_fields(
    old: CoordinatorVolumeConfig | ComputeVolumeConfig,
    new: CoordinatorVolumeConfig | ComputeVolumeConfig,
) -> dict[str, int]:
    """Volume fields to send: declared in ``new`` and different from ``old``."""
    changed: dict[str, int] = {}
    for field_name in ("vol_size", "iops", "throughput"):
        value = getattr(new, field_name)
        if value is not None and value != getattr(old, field_name):
            changed[field_name] = value
    return changed
