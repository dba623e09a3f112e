"""Mock control plane client.

Implements the ClusterAPI protocol over MockControlPlaneState. Mutations
apply immediately and return an action id whose terminal state is
reported by get_state; scripted states take precedence when queued.
"""

from __future__ import annotations

from elastic_operator.api_types import (
    AutoScalingConfigInfo,
    ChangeDistributionRequest,
    ClusterInfo,
    ClusterState,
    CoordinatorInfo,
    CreateWarehouseRequest,
    CreateWarehouseResult,
    CustomAmiInfo,
    DeployRequest,
    DeployResult,
    InfraActionInfo,
    InfraActionState,
    ModifyVolumeRequest,
    ModuleType,
    NetworkInfo,
    StateInfo,
    UpgradeImageRequest,
    VMInfo,
    VolumeDetail,
    WarehouseIdleInfo,
    WarehouseInfo,
)
from elastic_operator.errors import NotFoundError, RemoteCallError
from elastic_operator.models import AutoScalingPolicy, InitScript

from .state import MockCluster, MockControlPlaneState, MockWarehouse


class MockControlPlane:
    """In-memory ClusterAPI implementation."""

    def __init__(self, state: MockControlPlaneState | None = None) -> None:
        self.state = state or MockControlPlaneState()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _cluster(self, cluster_id: str) -> MockCluster:
        cluster = self.state.clusters.get(cluster_id)
        if cluster is None:
            raise NotFoundError(f"cluster {cluster_id} not found", status_code=404)
        return cluster

    def _warehouse(self, cluster_id: str, warehouse_id: str) -> MockWarehouse:
        wh = self._cluster(cluster_id).warehouses.get(warehouse_id)
        if wh is None or wh.deleted:
            raise NotFoundError(f"warehouse {warehouse_id} not found", status_code=404)
        return wh

    def _find_warehouse(self, warehouse_id: str) -> MockWarehouse:
        for cluster in self.state.clusters.values():
            wh = cluster.warehouses.get(warehouse_id)
            if wh is not None:
                return wh
        raise NotFoundError(f"warehouse {warehouse_id} not found", status_code=404)

    def _action(self, final: ClusterState) -> str:
        action_id = self.state.next_id("action")
        self.state.actions[action_id] = final
        return action_id

    def _infra_action(self) -> str:
        action_id = self.state.next_id("infra")
        self.state.infra_actions[action_id] = self.state.infra_outcome
        return action_id

    def _volume_for(self, instance_type: str, **params: int | None) -> VolumeDetail | None:
        vm = self.state.vm_catalog.get(instance_type)
        if vm is not None and vm.is_instance_store:
            return None
        return VolumeDetail(**params)

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_vm_info(self, csp: str, region: str, instance_type: str) -> VMInfo | None:
        self.state.record("get_vm_info", csp=csp, region=region, instance_type=instance_type)
        return self.state.vm_catalog.get(instance_type)

    async def get_network(self, network_id: str) -> NetworkInfo:
        self.state.record("get_network", network_id=network_id)
        return self.state.networks.get(network_id, NetworkInfo(network_id=network_id))

    async def get(self, cluster_id: str) -> ClusterInfo:
        self.state.record("get", cluster_id=cluster_id)
        c = self._cluster(cluster_id)
        return ClusterInfo(
            cluster_id=c.id,
            cluster_name=c.name,
            cluster_state=c.state,
            csp=c.csp,
            region=c.region,
            free_tier=c.free_tier,
            query_port=c.query_port,
            idle_suspend_interval=c.idle_suspend_interval,
            tags=dict(c.tags),
            data_credential_id=c.data_credential_id,
            deployment_credential_id=c.deployment_credential_id,
            network_id=c.network_id,
            custom_ami=c.custom_ami,
            ldap_ssl_certs=list(c.ldap_ssl_certs),
            ranger_certs_dir=c.ranger_certs_dir,
            coordinator=CoordinatorInfo(
                instance_type=c.coordinator_instance_type,
                node_count=c.coordinator_node_count,
                volume=c.coordinator_volume,
            ),
            warehouses=[
                WarehouseInfo(
                    id=wh.id,
                    name=wh.name,
                    state=wh.state,
                    is_default=wh.is_default,
                    deleted=wh.deleted,
                    instance_type=wh.instance_type,
                    node_count=wh.node_count,
                    distribution_policy=wh.distribution_policy,
                    specify_az=wh.specify_az,
                    is_instance_store=wh.is_instance_store,
                    volume=wh.volume,
                )
                for wh in c.warehouses.values()
            ],
        )

    async def get_state(self, cluster_id: str, action_id: str | None = None) -> StateInfo:
        self.state.record("get_state", cluster_id=cluster_id, action_id=action_id)
        script = self.state.state_scripts.get(cluster_id)
        if script:
            state, reason = script.pop(0)
            return StateInfo(cluster_state=state, abnormal_reason=reason)
        cluster = self._cluster(cluster_id)
        if action_id and action_id in self.state.actions:
            return StateInfo(
                cluster_state=self.state.actions[action_id],
                abnormal_reason=cluster.abnormal_reason,
            )
        return StateInfo(cluster_state=cluster.state, abnormal_reason=cluster.abnormal_reason)

    async def get_infra_action_state(self, cluster_id: str, action_id: str) -> InfraActionInfo:
        self.state.record("get_infra_action_state", cluster_id=cluster_id, action_id=action_id)
        script = self.state.infra_scripts.get(action_id)
        if script:
            return InfraActionInfo(infra_action_state=script.pop(0))
        final = self.state.infra_actions.get(action_id)
        if final is None:
            raise NotFoundError(f"infra action {action_id} not found", status_code=404)
        err_msg = "infra action failed" if final == InfraActionState.FAILED else ""
        return InfraActionInfo(infra_action_state=final, err_msg=err_msg)

    # =========================================================================
    # Cluster lifecycle
    # =========================================================================

    async def deploy(self, request: DeployRequest) -> DeployResult:
        self.state.record("deploy", request=request)
        coordinator, default = request.items
        cluster_id = self.state.next_id("cluster")
        default_vm = self.state.vm_catalog.get(default.instance_type)
        default_wh = MockWarehouse(
            id=self.state.next_id("wh"),
            name="default_warehouse",
            instance_type=default.instance_type,
            node_count=default.num,
            is_default=True,
            distribution_policy=default.distribution_policy or "crossing_az",
            specify_az=default.specify_az,
            is_instance_store=bool(default_vm and default_vm.is_instance_store),
            volume=self._volume_for(
                default.instance_type,
                vol_number=default.vol_number,
                vol_size=default.vol_size,
                iops=default.iops,
                throughput=default.throughput,
            ),
        )
        self.state.clusters[cluster_id] = MockCluster(
            id=cluster_id,
            name=request.cluster_name,
            csp=request.csp,
            region=request.region,
            coordinator_instance_type=coordinator.instance_type,
            coordinator_node_count=coordinator.num,
            coordinator_volume=VolumeDetail(
                vol_size=coordinator.vol_size,
                iops=coordinator.iops,
                throughput=coordinator.throughput,
            ),
            query_port=request.query_port,
            tags=dict(request.tags),
            data_credential_id=request.data_credential_id,
            deployment_credential_id=request.deployment_credential_id,
            network_id=request.network_id,
            custom_ami=request.custom_ami,
            scripts=list(request.scripts),
            warehouses={default_wh.id: default_wh},
        )
        return DeployResult(
            action_id=self._action(ClusterState.RUNNING),
            cluster_id=cluster_id,
            default_warehouse_id=default_wh.id,
        )

    async def release(self, cluster_id: str) -> str:
        self.state.record("release", cluster_id=cluster_id)
        self._cluster(cluster_id).state = ClusterState.RELEASED
        return self._action(ClusterState.RELEASED)

    async def suspend_cluster(self, cluster_id: str) -> str:
        self.state.record("suspend_cluster", cluster_id=cluster_id)
        self._cluster(cluster_id).state = ClusterState.SUSPENDED
        return self._action(ClusterState.SUSPENDED)

    async def resume_cluster(self, cluster_id: str) -> str:
        self.state.record("resume_cluster", cluster_id=cluster_id)
        self._cluster(cluster_id).state = ClusterState.RUNNING
        return self._action(ClusterState.RUNNING)

    async def scale_up(self, cluster_id: str, instance_type: str) -> str:
        self.state.record("scale_up", cluster_id=cluster_id, instance_type=instance_type)
        self._cluster(cluster_id).coordinator_instance_type = instance_type
        return self._action(ClusterState.RUNNING)

    async def scale_out(self, cluster_id: str, node_count: int) -> str:
        self.state.record("scale_out", cluster_id=cluster_id, node_count=node_count)
        self._cluster(cluster_id).coordinator_node_count = node_count
        return self._action(ClusterState.RUNNING)

    async def scale_in(self, cluster_id: str, node_count: int) -> str:
        self.state.record("scale_in", cluster_id=cluster_id, node_count=node_count)
        self._cluster(cluster_id).coordinator_node_count = node_count
        return self._action(ClusterState.RUNNING)

    async def unlock_free_tier(self, cluster_id: str) -> None:
        self.state.record("unlock_free_tier", cluster_id=cluster_id)
        self._cluster(cluster_id).free_tier = False

    async def modify_volume(self, request: ModifyVolumeRequest) -> str:
        self.state.record("modify_volume", request=request)
        cluster = self._cluster(request.cluster_id)
        if request.module_type == ModuleType.COORDINATOR:
            target = cluster.coordinator_volume
        else:
            target = self._warehouse(request.cluster_id, request.warehouse_id or "").volume
        if target is None:
            raise RemoteCallError("volume cannot be modified on local disks", status_code=400)
        for name in ("vol_size", "iops", "throughput"):
            value = getattr(request, name)
            if value is not None:
                setattr(target, name, value)
        return self._infra_action()

    async def upgrade_image(self, request: UpgradeImageRequest) -> str:
        self.state.record("upgrade_image", request=request)
        cluster = self._cluster(request.cluster_id)
        if request.module_type == ModuleType.COORDINATOR:
            cluster.custom_ami = CustomAmiInfo(ami=request.ami, os=request.os)
        return self._infra_action()

    # =========================================================================
    # Warehouses
    # =========================================================================

    async def create_warehouse(self, request: CreateWarehouseRequest) -> CreateWarehouseResult:
        self.state.record("create_warehouse", request=request)
        cluster = self._cluster(request.cluster_id)
        if cluster.warehouse_by_name(request.name) is not None:
            raise RemoteCallError(f"warehouse {request.name} already exists", status_code=409)
        vm = self.state.vm_catalog.get(request.instance_type)
        wh = MockWarehouse(
            id=self.state.next_id("wh"),
            name=request.name,
            instance_type=request.instance_type,
            node_count=request.num,
            distribution_policy=request.distribution_policy,
            specify_az=request.specify_az,
            is_instance_store=bool(vm and vm.is_instance_store),
            volume=self._volume_for(
                request.instance_type,
                vol_number=request.vol_number,
                vol_size=request.vol_size,
                iops=request.iops,
                throughput=request.throughput,
            ),
        )
        cluster.warehouses[wh.id] = wh
        return CreateWarehouseResult(
            warehouse_id=wh.id, action_id=self._action(ClusterState.RUNNING)
        )

    async def release_warehouse(self, cluster_id: str, warehouse_id: str) -> str:
        self.state.record("release_warehouse", cluster_id=cluster_id, warehouse_id=warehouse_id)
        wh = self._warehouse(cluster_id, warehouse_id)
        wh.deleted = True
        wh.state = ClusterState.RELEASED
        return self._action(ClusterState.RELEASED)

    async def suspend_warehouse(self, cluster_id: str, warehouse_id: str) -> str:
        self.state.record("suspend_warehouse", cluster_id=cluster_id, warehouse_id=warehouse_id)
        self._warehouse(cluster_id, warehouse_id).state = ClusterState.SUSPENDED
        return self._action(ClusterState.SUSPENDED)

    async def resume_warehouse(self, cluster_id: str, warehouse_id: str) -> str:
        self.state.record("resume_warehouse", cluster_id=cluster_id, warehouse_id=warehouse_id)
        self._warehouse(cluster_id, warehouse_id).state = ClusterState.RUNNING
        return self._action(ClusterState.RUNNING)

    async def scale_warehouse_size(
        self, cluster_id: str, warehouse_id: str, instance_type: str
    ) -> str:
        self.state.record(
            "scale_warehouse_size",
            cluster_id=cluster_id,
            warehouse_id=warehouse_id,
            instance_type=instance_type,
        )
        self._warehouse(cluster_id, warehouse_id).instance_type = instance_type
        return self._action(ClusterState.RUNNING)

    async def scale_warehouse_num(self, cluster_id: str, warehouse_id: str, node_count: int) -> str:
        self.state.record(
            "scale_warehouse_num",
            cluster_id=cluster_id,
            warehouse_id=warehouse_id,
            node_count=node_count,
        )
        self._warehouse(cluster_id, warehouse_id).node_count = node_count
        return self._action(ClusterState.RUNNING)

    async def change_warehouse_distribution(self, request: ChangeDistributionRequest) -> str:
        self.state.record("change_warehouse_distribution", request=request)
        wh = self._warehouse(request.cluster_id, request.warehouse_id)
        wh.distribution_policy = request.distribution_policy
        wh.specify_az = request.specify_az
        return self._infra_action()

    # =========================================================================
    # Configuration
    # =========================================================================

    async def upsert_custom_config(
        self,
        cluster_id: str,
        module_type: ModuleType,
        configs: dict[str, str],
        warehouse_id: str | None = None,
    ) -> None:
        self.state.record(
            "upsert_custom_config",
            cluster_id=cluster_id,
            module_type=module_type,
            configs=configs,
            warehouse_id=warehouse_id,
        )
        if module_type == ModuleType.COORDINATOR:
            self._cluster(cluster_id).coordinator_configs = dict(configs)
        else:
            self._warehouse(cluster_id, warehouse_id or "").configs = dict(configs)

    async def get_custom_config(
        self,
        cluster_id: str,
        module_type: ModuleType,
        warehouse_id: str | None = None,
    ) -> dict[str, str]:
        self.state.record(
            "get_custom_config",
            cluster_id=cluster_id,
            module_type=module_type,
            warehouse_id=warehouse_id,
        )
        if module_type == ModuleType.COORDINATOR:
            return dict(self._cluster(cluster_id).coordinator_configs)
        return dict(self._warehouse(cluster_id, warehouse_id or "").configs)

    async def save_auto_scaling_config(
        self, cluster_id: str, warehouse_id: str, policy: AutoScalingPolicy
    ) -> None:
        self.state.record(
            "save_auto_scaling_config",
            cluster_id=cluster_id,
            warehouse_id=warehouse_id,
            policy=policy,
        )
        self._warehouse(cluster_id, warehouse_id).auto_scaling = AutoScalingConfigInfo(
            policy=policy, state=True
        )

    async def get_auto_scaling_config(
        self, cluster_id: str, warehouse_id: str
    ) -> AutoScalingConfigInfo:
        self.state.record(
            "get_auto_scaling_config", cluster_id=cluster_id, warehouse_id=warehouse_id
        )
        return self._warehouse(cluster_id, warehouse_id).auto_scaling

    async def delete_auto_scaling_config(self, cluster_id: str, warehouse_id: str) -> None:
        self.state.record(
            "delete_auto_scaling_config", cluster_id=cluster_id, warehouse_id=warehouse_id
        )
        self._warehouse(cluster_id, warehouse_id).auto_scaling = AutoScalingConfigInfo()

    async def update_cluster_idle_config(
        self, cluster_id: str, interval_ms: int, enabled: bool
    ) -> None:
        self.state.record(
            "update_cluster_idle_config",
            cluster_id=cluster_id,
            interval_ms=interval_ms,
            enabled=enabled,
        )
        self._cluster(cluster_id).idle_suspend_interval = interval_ms // 60000 if enabled else 0

    async def update_warehouse_idle_config(
        self, warehouse_id: str, interval_ms: int, enabled: bool
    ) -> None:
        self.state.record(
            "update_warehouse_idle_config",
            warehouse_id=warehouse_id,
            interval_ms=interval_ms,
            enabled=enabled,
        )
        self._find_warehouse(warehouse_id).idle = WarehouseIdleInfo(
            state=enabled, interval_ms=interval_ms
        )

    async def get_warehouse_idle_config(self, warehouse_id: str) -> WarehouseIdleInfo:
        self.state.record("get_warehouse_idle_config", warehouse_id=warehouse_id)
        return self._find_warehouse(warehouse_id).idle

    async def update_resource_tags(self, cluster_id: str, tags: dict[str, str]) -> None:
        self.state.record("update_resource_tags", cluster_id=cluster_id, tags=tags)
        self._cluster(cluster_id).tags = dict(tags)

    async def update_deployment_scripts(
        self,
        cluster_id: str,
        scripts: list[InitScript],
        parallel: bool,
        timeout_seconds: int,
    ) -> None:
        self.state.record(
            "update_deployment_scripts",
            cluster_id=cluster_id,
            scripts=scripts,
            parallel=parallel,
            timeout_seconds=timeout_seconds,
        )
        self._cluster(cluster_id).scripts = list(scripts)

    async def upsert_ldap_ssl_certs(
        self, cluster_id: str, s3_paths: list[str], is_update: bool
    ) -> None:
        self.state.record(
            "upsert_ldap_ssl_certs", cluster_id=cluster_id, s3_paths=s3_paths, is_update=is_update
        )
        self._cluster(cluster_id).ldap_ssl_certs = list(s3_paths)

    async def upsert_ranger_certs(self, cluster_id: str, dir_path: str, is_update: bool) -> None:
        self.state.record(
            "upsert_ranger_certs", cluster_id=cluster_id, dir_path=dir_path, is_update=is_update
        )
        self._cluster(cluster_id).ranger_certs_dir = dir_path
