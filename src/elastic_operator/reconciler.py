"""Cluster reconciler: create, read, update and delete entry points.

Each entry point runs one reconciliation pass:
1. Validate the desired state against remote facts (create, update)
2. Wait for the cluster to leave any transient state
3. Apply mutations in a fixed order through LifecycleOperations
4. Read the cluster back and return the observed snapshot

Steps run strictly one after another; every mutation is awaited before
the next one is sent. Fatal errors abort the rest of the pass and leave
completed mutations in place. Best-effort failures are returned as
warning diagnostics next to the observed state.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .api import ClusterAPI
from .api_types import ClusterInfo, ClusterState, ModuleType, WarehouseInfo
from .config import Config
from .diff import changed_warehouse_fields, diff_warehouses
from .errors import (
    AbnormalStateError,
    Diagnostics,
    NotFoundError,
    ReconcileError,
    RemoteCallError,
)
from .lifecycle import LifecycleOperations, Timeouts
from .models import (
    DEFAULT_WAREHOUSE_NAME,
    OBSERVED_CONTEXT,
    ClusterSpec,
    ExpectedState,
    WarehouseExternalInfo,
    WarehouseSpec,
)
from .provenance import ChangeProvenanceSummary, get_provenance_logger, spec_fingerprint
from .validation import ValidationFacts, gather_facts, validate

logger = logging.getLogger(__name__)

# Tag keys the cloud provider or control plane attach on their own
INTERNAL_TAG_PREFIXES: dict[str, tuple[str, ...]] = {
    "aws": ("aws:",),
    "gcp": ("goog-",),
    "azure": ("hidden-",),
}


class ClusterSnapshot(BaseModel):
    """Observed cluster plus the warehouse correlation table."""

    model_config = {"extra": "ignore"}

    cluster_id: str
    state: ClusterState
    free_tier: bool = False
    spec: ClusterSpec | None = None
    warehouse_external_info: dict[str, WarehouseExternalInfo] = Field(default_factory=dict)


@dataclass
class ReconcileResult:
    """Result of a single reconciliation pass."""

    phase: str
    cluster_name: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    snapshot: ClusterSnapshot | None = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    steps_applied: list[str] = field(default_factory=list)
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if reconciliation succeeded."""
        return self.error is None

    @property
    def cluster_id(self) -> str | None:
        return self.snapshot.cluster_id if self.snapshot else None


@dataclass
class _UpdateContext:
    ops: LifecycleOperations
    cluster_id: str
    old: ClusterSpec
    new: ClusterSpec
    free_tier: bool
    facts: ValidationFacts
    external_info: dict[str, WarehouseExternalInfo]


class ClusterReconciler:
    """Drives one cluster towards its desired state.

    The reconciler holds no state between passes: callers pass the
    previous snapshot in and persist the returned one.
    """

    def __init__(self, api: ClusterAPI, timeouts: Timeouts | None = None) -> None:
        self._api = api
        self._timeouts = timeouts or Timeouts()

    @classmethod
    def from_config(cls, api: ClusterAPI, config: Config) -> ClusterReconciler:
        return cls(api, Timeouts.from_config(config))

    # =========================================================================
    # Entry points
    # =========================================================================

    async def create(self, desired: ClusterSpec) -> ReconcileResult:
        """Deploy a new cluster, then its named warehouses and policies.

        The snapshot is set as soon as the deploy call returns so the
        cluster identity survives a later failure in the pass.
        """
        result = ReconcileResult(phase="create", cluster_name=desired.cluster_name)
        ops = self._operations(result)

        async def run() -> None:
            facts = await gather_facts(self._api, desired)
            validate(desired, facts)

            deployed = await ops.submit_deploy(desired)
            cluster_id = deployed.cluster_id
            default_vm = facts.vm(desired.default_warehouse.compute_node_size)
            external = {
                DEFAULT_WAREHOUSE_NAME: WarehouseExternalInfo(
                    id=deployed.default_warehouse_id,
                    is_default_warehouse=True,
                    is_instance_store=bool(default_vm and default_vm.is_instance_store),
                )
            }
            result.snapshot = ClusterSnapshot(
                cluster_id=cluster_id,
                state=ClusterState.DEPLOYING,
                warehouse_external_info=external,
            )
            await ops.wait_deployed(deployed)
            result.snapshot.state = ClusterState.RUNNING

            await self._apply_create_policies(ops, cluster_id, desired, external)

            for wh in desired.warehouses:
                try:
                    warehouse_id = await ops.create_warehouse(cluster_id, wh)
                except ReconcileError as e:
                    result.diagnostics.warn(f"Create warehouse[{wh.name}] failed", str(e))
                    continue
                vm = facts.vm(wh.compute_node_size)
                external[wh.name] = WarehouseExternalInfo(
                    id=warehouse_id,
                    is_instance_store=bool(vm and vm.is_instance_store),
                )

            if desired.expected_cluster_state == ExpectedState.SUSPENDED:
                await ops.suspend_cluster(cluster_id)

            result.snapshot = await self._observe(
                ops, cluster_id, desired, external, is_new=True
            )

        await self._run(result, ops, desired, run)
        return result

    async def read(
        self,
        cluster_id: str,
        desired: ClusterSpec,
        external_info: dict[str, WarehouseExternalInfo] | None = None,
        recorded: ClusterSpec | None = None,
    ) -> ReconcileResult:
        """Read the live cluster. A released or missing cluster yields no snapshot.

        Fields the control plane never reports (admin password, init
        scripts and their options) are taken from ``recorded``, the spec
        of the last persisted snapshot, and from ``desired`` only when
        nothing was recorded yet.
        """
        result = ReconcileResult(phase="read", cluster_name=desired.cluster_name)
        ops = self._operations(result)

        async def run() -> None:
            result.snapshot = await self._observe(
                ops,
                cluster_id,
                desired,
                dict(external_info or {}),
                is_new=False,
                recorded=recorded,
            )

        await self._run(result, ops, desired, run, cluster_id=cluster_id)
        return result

    async def update(self, desired: ClusterSpec, previous: ClusterSnapshot) -> ReconcileResult:
        """Converge an existing cluster from ``previous`` to ``desired``."""
        result = ReconcileResult(
            phase="update", cluster_name=desired.cluster_name, snapshot=previous
        )
        ops = self._operations(result)
        cluster_id = previous.cluster_id

        async def run() -> None:
            old = previous.spec
            if old is None:
                raise ReconcileError(
                    f"cluster ({cluster_id}) has no observed state; read it before updating"
                )
            facts = await gather_facts(self._api, desired, old)
            validate(desired, facts, old, previous.warehouse_external_info)

            settled = await ops.await_quiescence(cluster_id)
            if settled.is_released:
                result.snapshot = None
                raise NotFoundError(f"cluster ({cluster_id}) not found")
            if settled.is_abnormal:
                raise AbnormalStateError(settled.reason)

            ctx = _UpdateContext(
                ops=ops,
                cluster_id=cluster_id,
                old=old,
                new=desired,
                free_tier=previous.free_tier,
                facts=facts,
                external_info=dict(previous.warehouse_external_info),
            )
            for phase_name, phase in self._update_phases():
                logger.debug(
                    "Update phase", extra={"cluster_id": cluster_id, "update_phase": phase_name}
                )
                await phase(ctx)

            result.snapshot = await self._observe(
                ops, cluster_id, desired, ctx.external_info, is_new=False
            )

        await self._run(result, ops, desired, run, cluster_id=cluster_id)
        return result

    async def delete(self, snapshot: ClusterSnapshot, desired: ClusterSpec) -> ReconcileResult:
        """Release the cluster.

        The identity is cleared when the release finishes, including when it
        ends abnormal: the cluster is gone but cloud resources may remain.
        """
        result = ReconcileResult(
            phase="delete", cluster_name=desired.cluster_name, snapshot=snapshot
        )
        ops = self._operations(result)
        cluster_id = snapshot.cluster_id

        async def run() -> None:
            settled = await ops.await_quiescence(cluster_id)
            if settled.is_released:
                result.snapshot = None
                return
            try:
                await ops.release_cluster(cluster_id)
            except AbnormalStateError:
                result.snapshot = None
                raise
            result.snapshot = None

        await self._run(result, ops, desired, run, cluster_id=cluster_id)
        return result

    # =========================================================================
    # Pass plumbing
    # =========================================================================

    def _operations(self, result: ReconcileResult) -> LifecycleOperations:
        ops = LifecycleOperations(self._api, result.diagnostics, self._timeouts)
        result.steps_applied = ops.steps
        return ops

    async def _run(
        self,
        result: ReconcileResult,
        ops: LifecycleOperations,
        desired: ClusterSpec,
        body: Callable[[], Awaitable[None]],
        cluster_id: str = "",
    ) -> None:
        """Run a pass body, record its outcome and log provenance."""
        provenance_logger = get_provenance_logger()
        provenance = provenance_logger.create_provenance(
            cluster_name=desired.cluster_name,
            phase=result.phase,
            cluster_id=cluster_id,
            spec_hash=spec_fingerprint(desired.model_dump_json()),
        )
        try:
            await body()
        except ReconcileError as e:
            result.error = e
            result.diagnostics.error(e.summary, str(e))
            logger.error(
                "Reconciliation step failed",
                extra={
                    "phase": result.phase,
                    "cluster_name": result.cluster_name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
        finally:
            result.end_time = datetime.now(UTC)
            provenance.cluster_id = result.cluster_id or cluster_id
            provenance.steps_applied = list(ops.steps)
            provenance.warnings = [str(d) for d in result.diagnostics.warnings]
            provenance.duration_seconds = result.duration_seconds
            provenance.change_summary = _summarize_steps(ops.steps)
            if result.error is not None:
                provenance.error = str(result.error)
                provenance.error_type = type(result.error).__name__
            provenance_logger.log_provenance(provenance)

    async def _apply_create_policies(
        self,
        ops: LifecycleOperations,
        cluster_id: str,
        desired: ClusterSpec,
        external: dict[str, WarehouseExternalInfo],
    ) -> None:
        """Mandatory configs and certs are fatal on create; idle and scaling are not."""
        default_wh = desired.default_warehouse
        default_id = external[DEFAULT_WAREHOUSE_NAME].id

        if desired.coordinator_node_configs:
            await ops.upsert_coordinator_configs(
                cluster_id, desired.coordinator_node_configs, fatal=True
            )
        if default_wh.compute_node_configs:
            await ops.upsert_warehouse_configs(
                cluster_id, default_id, default_wh.name, default_wh.compute_node_configs, fatal=True
            )
        if desired.ldap_ssl_certs:
            await ops.upsert_ldap_certs(
                cluster_id, desired.ldap_ssl_certs, is_update=False, fatal=True
            )
        if desired.ranger_certs_dir:
            await ops.upsert_ranger_certs(
                cluster_id, desired.ranger_certs_dir, is_update=False, fatal=True
            )
        if desired.idle_suspend_interval > 0:
            await ops.set_cluster_idle(cluster_id, desired.idle_suspend_interval)
        if default_wh.auto_scaling_policy is not None:
            await ops.save_auto_scaling(
                cluster_id, default_id, default_wh.name, default_wh.auto_scaling_policy, fatal=False
            )

    # =========================================================================
    # Update phases
    # =========================================================================

    def _update_phases(self) -> list[tuple[str, Callable[[_UpdateContext], Awaitable[None]]]]:
        """Update phases in the order they must run.

        Resume comes before every change that needs a running cluster and
        suspend comes after all of them. Warehouse deletions run after
        additions and updates so capacity is not lost mid-transition.
        """
        return [
            ("idle policy", self._phase_idle_policy),
            ("resume", self._phase_resume),
            ("certs, tags and scripts", self._phase_certs_tags_scripts),
            ("free tier unlock", self._phase_free_tier_unlock),
            ("coordinator size", self._phase_coordinator_size),
            ("coordinator count", self._phase_coordinator_count),
            ("coordinator volume", self._phase_coordinator_volume),
            ("coordinator configs", self._phase_coordinator_configs),
            ("default warehouse", self._phase_default_warehouse),
            ("named warehouses", self._phase_named_warehouses),
            ("suspend", self._phase_suspend),
            ("image upgrade", self._phase_image_upgrade),
        ]

    async def _phase_idle_policy(self, ctx: _UpdateContext) -> None:
        if ctx.old.idle_suspend_interval != ctx.new.idle_suspend_interval:
            await ctx.ops.set_cluster_idle(
                ctx.cluster_id, ctx.new.idle_suspend_interval, ctx.old.idle_suspend_interval
            )

    async def _phase_resume(self, ctx: _UpdateContext) -> None:
        if (
            ctx.old.expected_cluster_state != ctx.new.expected_cluster_state
            and ctx.new.expected_cluster_state == ExpectedState.RUNNING
        ):
            await ctx.ops.resume_cluster(ctx.cluster_id)

    async def _phase_certs_tags_scripts(self, ctx: _UpdateContext) -> None:
        old, new, ops = ctx.old, ctx.new, ctx.ops
        if set(old.ldap_ssl_certs) != set(new.ldap_ssl_certs):
            await ops.upsert_ldap_certs(
                ctx.cluster_id, new.ldap_ssl_certs, is_update=True, fatal=False
            )
        if old.resource_tags != new.resource_tags:
            await ops.update_tags(ctx.cluster_id, new.resource_tags)
        if (
            set(old.init_scripts) != set(new.init_scripts)
            or old.run_scripts_parallel != new.run_scripts_parallel
            or old.run_scripts_timeout != new.run_scripts_timeout
        ):
            await ops.update_init_scripts(
                ctx.cluster_id,
                new.init_scripts,
                new.run_scripts_parallel,
                new.run_scripts_timeout,
            )
        if old.ranger_certs_dir != new.ranger_certs_dir:
            if new.ranger_certs_dir:
                await ops.upsert_ranger_certs(
                    ctx.cluster_id, new.ranger_certs_dir, is_update=True, fatal=False
                )
            else:
                ops.diagnostics.warn(
                    "ranger_certs_dir cannot be cleared once set",
                    f"cluster[{ctx.cluster_id}] keeps {old.ranger_certs_dir}",
                )

    async def _phase_free_tier_unlock(self, ctx: _UpdateContext) -> None:
        if not ctx.free_tier:
            return
        old, new = ctx.old, ctx.new
        coordinator_changed = (
            old.coordinator_node_size != new.coordinator_node_size
            or old.coordinator_node_count != new.coordinator_node_count
        )
        warehouses_changed = (
            old.default_warehouse != new.default_warehouse or old.warehouses != new.warehouses
        )
        if coordinator_changed or warehouses_changed:
            await ctx.ops.unlock_free_tier(ctx.cluster_id)

    async def _phase_coordinator_size(self, ctx: _UpdateContext) -> None:
        if ctx.old.coordinator_node_size != ctx.new.coordinator_node_size:
            await ctx.ops.scale_coordinator_size(ctx.cluster_id, ctx.new.coordinator_node_size)

    async def _phase_coordinator_count(self, ctx: _UpdateContext) -> None:
        await ctx.ops.scale_coordinator_count(
            ctx.cluster_id, ctx.old.coordinator_node_count, ctx.new.coordinator_node_count
        )

    async def _phase_coordinator_volume(self, ctx: _UpdateContext) -> None:
        old_volume = ctx.old.effective_coordinator_volume()
        new_volume = ctx.new.effective_coordinator_volume()
        if old_volume != new_volume:
            await ctx.ops.modify_coordinator_volume(ctx.cluster_id, old_volume, new_volume)

    async def _phase_coordinator_configs(self, ctx: _UpdateContext) -> None:
        if ctx.old.coordinator_node_configs != ctx.new.coordinator_node_configs:
            await ctx.ops.upsert_coordinator_configs(
                ctx.cluster_id, ctx.new.coordinator_node_configs, fatal=False
            )

    async def _phase_default_warehouse(self, ctx: _UpdateContext) -> None:
        record = self._external_record(ctx, DEFAULT_WAREHOUSE_NAME)
        await ctx.ops.update_warehouse(
            ctx.cluster_id, record.id, ctx.old.default_warehouse, ctx.new.default_warehouse
        )

    async def _phase_named_warehouses(self, ctx: _UpdateContext) -> None:
        old_named = ctx.old.named_warehouses()
        new_named = ctx.new.named_warehouses()
        diff = diff_warehouses(ctx.old.warehouses, ctx.new.warehouses)
        if diff.is_empty:
            return
        logger.info(
            "Warehouse diff",
            extra={
                "cluster_id": ctx.cluster_id,
                "added": list(diff.added),
                "removed": list(diff.removed),
                "modified": [
                    n for n in diff.modified if changed_warehouse_fields(old_named[n], new_named[n])
                ],
            },
        )

        for name in diff.modified:
            record = self._external_record(ctx, name)
            await ctx.ops.update_warehouse(ctx.cluster_id, record.id, old_named[name], new_named[name])

        for name in diff.added:
            spec: WarehouseSpec = new_named[name]
            try:
                warehouse_id = await ctx.ops.create_warehouse(ctx.cluster_id, spec)
            except ReconcileError as e:
                ctx.ops.diagnostics.warn(f"Create warehouse[{name}] failed", str(e))
                continue
            vm = ctx.facts.vm(spec.compute_node_size)
            ctx.external_info[name] = WarehouseExternalInfo(
                id=warehouse_id,
                is_instance_store=bool(vm and vm.is_instance_store),
            )

        for name in diff.removed:
            record = self._external_record(ctx, name)
            await ctx.ops.release_warehouse(ctx.cluster_id, record.id, name)
            ctx.external_info.pop(name, None)

    async def _phase_suspend(self, ctx: _UpdateContext) -> None:
        if (
            ctx.old.expected_cluster_state != ctx.new.expected_cluster_state
            and ctx.new.expected_cluster_state == ExpectedState.SUSPENDED
        ):
            await ctx.ops.suspend_cluster(ctx.cluster_id)

    async def _phase_image_upgrade(self, ctx: _UpdateContext) -> None:
        if ctx.new.custom_ami is None or ctx.old.custom_ami == ctx.new.custom_ami:
            return
        info = await self._api.get(ctx.cluster_id)
        await ctx.ops.upgrade_image(info, ctx.new.custom_ami)

    @staticmethod
    def _external_record(ctx: _UpdateContext, name: str) -> WarehouseExternalInfo:
        record = ctx.external_info.get(name)
        if record is None:
            raise ReconcileError(
                f"warehouse[{name}] has no recorded id in cluster ({ctx.cluster_id}); "
                "read the cluster before updating"
            )
        return record

    # =========================================================================
    # Read-back
    # =========================================================================

    async def _observe(
        self,
        ops: LifecycleOperations,
        cluster_id: str,
        desired: ClusterSpec,
        external_info: dict[str, WarehouseExternalInfo],
        *,
        is_new: bool,
        recorded: ClusterSpec | None = None,
    ) -> ClusterSnapshot | None:
        """Read the live cluster into a snapshot normalized against ``desired``.

        Returns None when the cluster is released or, for a cluster that
        is not newly created, no longer exists.
        """
        settled = await ops.await_quiescence(cluster_id, is_new=is_new)
        if settled.is_released:
            logger.warning("Cluster released, clearing identity", extra={"cluster_id": cluster_id})
            return None

        try:
            info = await self._api.get(cluster_id)
        except NotFoundError:
            if is_new:
                raise
            logger.warning("Cluster not found, clearing identity", extra={"cluster_id": cluster_id})
            return None

        coordinator_configs = await self._api.get_custom_config(cluster_id, ModuleType.COORDINATOR)

        desired_named = desired.named_warehouses()
        warehouses: list[dict[str, Any]] = []
        default_warehouse: dict[str, Any] | None = None
        observed_external: dict[str, WarehouseExternalInfo] = {}

        for wh in info.warehouses:
            if wh.deleted:
                continue
            observed_external[wh.name] = WarehouseExternalInfo(
                id=wh.id,
                is_default_warehouse=wh.is_default,
                is_instance_store=wh.is_instance_store,
            )
            target = desired.default_warehouse if wh.is_default else desired_named.get(wh.name)
            data = await self._observe_warehouse(cluster_id, wh, target)
            if wh.is_default:
                default_warehouse = data
            else:
                warehouses.append(data)

        if default_warehouse is None:
            raise RemoteCallError(f"cluster ({cluster_id}) reports no default warehouse")

        # Desired order first, then warehouses that only exist remotely
        order = {name: i for i, name in enumerate(desired_named)}
        warehouses.sort(key=lambda w: order.get(w["name"], len(order)))

        try:
            spec = ClusterSpec.model_validate(
                self._observed_cluster(info, desired, recorded or desired, coordinator_configs)
                | {"default_warehouse": default_warehouse, "warehouses": warehouses},
                context=OBSERVED_CONTEXT,
            )
        except ValidationError as e:
            raise RemoteCallError(
                f"cluster ({cluster_id}) description does not fit the cluster model: {e}"
            ) from e

        # Keep records for names the remote side did not report
        for name, record in external_info.items():
            observed_external.setdefault(name, record)

        return ClusterSnapshot(
            cluster_id=cluster_id,
            state=info.cluster_state,
            free_tier=info.free_tier,
            spec=spec,
            warehouse_external_info=observed_external,
        )

    def _observed_cluster(
        self,
        info: ClusterInfo,
        desired: ClusterSpec,
        recorded: ClusterSpec,
        coordinator_configs: dict[str, str],
    ) -> dict[str, Any]:
        """Cluster-level fields as observed, with write-only fields from ``recorded``."""
        internal_prefixes = INTERNAL_TAG_PREFIXES.get(info.csp.lower(), ())
        tags = {k: v for k, v in info.tags.items() if not k.startswith(internal_prefixes)}

        if info.cluster_state == ClusterState.SUSPENDED:
            expected_state = ExpectedState.SUSPENDED
        elif info.cluster_state == ClusterState.RUNNING:
            expected_state = ExpectedState.RUNNING
        else:
            expected_state = desired.expected_cluster_state

        coordinator_volume = None
        if desired.coordinator_node_volume_config is not None and info.coordinator.volume:
            declared = desired.coordinator_node_volume_config
            observed = info.coordinator.volume
            coordinator_volume = {
                "vol_size": observed.vol_size,
                "iops": observed.iops if declared.iops is not None else None,
                "throughput": observed.throughput if declared.throughput is not None else None,
            }

        return {
            "csp": info.csp,
            "region": info.region,
            "cluster_name": info.cluster_name,
            "coordinator_node_size": info.coordinator.instance_type,
            "coordinator_node_count": info.coordinator.node_count,
            "coordinator_node_volume_config": coordinator_volume,
            "coordinator_node_configs": coordinator_configs,
            "default_admin_password": recorded.default_admin_password.get_secret_value(),
            "data_credential_id": info.data_credential_id or desired.data_credential_id,
            "deployment_credential_id": (
                info.deployment_credential_id or desired.deployment_credential_id
            ),
            "network_id": info.network_id or desired.network_id,
            "resource_tags": tags,
            "expected_cluster_state": expected_state,
            "idle_suspend_interval": info.idle_suspend_interval,
            "custom_ami": info.custom_ami.model_dump() if info.custom_ami else None,
            "query_port": info.query_port,
            "init_scripts": recorded.init_scripts,
            "run_scripts_parallel": recorded.run_scripts_parallel,
            "run_scripts_timeout": recorded.run_scripts_timeout,
            "ldap_ssl_certs": info.ldap_ssl_certs,
            "ranger_certs_dir": info.ranger_certs_dir or None,
        }

    async def _observe_warehouse(
        self,
        cluster_id: str,
        wh: WarehouseInfo,
        desired: Any,
    ) -> dict[str, Any]:
        """One warehouse as observed, hiding values the user never declared."""
        data: dict[str, Any] = {
            "name": wh.name,
            "compute_node_size": wh.instance_type,
            "compute_node_count": wh.node_count,
            "distribution_policy": wh.distribution_policy,
            "specify_az": wh.specify_az or None,
        }

        declared_volume = desired.compute_node_volume_config if desired is not None else None
        if not wh.is_instance_store and wh.volume is not None and declared_volume is not None:
            data["compute_node_volume_config"] = {
                "vol_number": wh.volume.vol_number,
                "vol_size": wh.volume.vol_size,
                "iops": wh.volume.iops if declared_volume.iops is not None else None,
                "throughput": (
                    wh.volume.throughput if declared_volume.throughput is not None else None
                ),
            }

        scaling = await self._api.get_auto_scaling_config(cluster_id, wh.id)
        if scaling.state and scaling.policy is not None:
            data["auto_scaling_policy"] = scaling.policy

        data["compute_node_configs"] = await self._api.get_custom_config(
            cluster_id, ModuleType.WAREHOUSE, wh.id
        )

        if not wh.is_default:
            idle = await self._api.get_warehouse_idle_config(wh.id)
            data["idle_suspend_interval"] = idle.interval_ms // 60000 if idle.state else 0
            if wh.state == ClusterState.SUSPENDED:
                data["expected_state"] = ExpectedState.SUSPENDED
            elif wh.state == ClusterState.RUNNING or desired is None:
                data["expected_state"] = ExpectedState.RUNNING
            else:
                data["expected_state"] = desired.expected_state
        return data


_WAREHOUSE_UPDATE_STEPS = frozenset(
    {
        "change warehouse distribution",
        "scale warehouse size",
        "scale warehouse count",
        "modify warehouse volume",
        "update warehouse idle config",
        "resume warehouse",
        "suspend warehouse",
        "upsert warehouse configs",
        "save auto scaling policy",
        "delete auto scaling policy",
    }
)


def _summarize_steps(steps: list[str]) -> ChangeProvenanceSummary:
    return ChangeProvenanceSummary(
        warehouses_created=steps.count("create warehouse"),
        warehouses_updated=sum(1 for s in steps if s in _WAREHOUSE_UPDATE_STEPS),
        warehouses_deleted=steps.count("release warehouse"),
    )
