"""Control plane interface consumed by the reconciler.

Calls that start asynchronous work return an action id to be awaited with
the poller. An empty action id means the change was applied synchronously.
Implementations raise RemoteCallError on failure and NotFoundError when
the addressed entity does not exist.
"""

from __future__ import annotations

from typing import Protocol

from .api_types import (
    AutoScalingConfigInfo,
    ChangeDistributionRequest,
    ClusterInfo,
    CreateWarehouseRequest,
    CreateWarehouseResult,
    DeployRequest,
    DeployResult,
    InfraActionInfo,
    ModifyVolumeRequest,
    ModuleType,
    NetworkInfo,
    StateInfo,
    UpgradeImageRequest,
    VMInfo,
    WarehouseIdleInfo,
)
from .models import AutoScalingPolicy, InitScript


class ClusterAPI(Protocol):
    """Asynchronous remote cluster management service."""

    # Lookups
    async def get_vm_info(self, csp: str, region: str, instance_type: str) -> VMInfo | None: ...

    async def get_network(self, network_id: str) -> NetworkInfo: ...

    async def get(self, cluster_id: str) -> ClusterInfo: ...

    async def get_state(self, cluster_id: str, action_id: str | None = None) -> StateInfo: ...

    async def get_infra_action_state(self, cluster_id: str, action_id: str) -> InfraActionInfo: ...

    # Cluster lifecycle
    async def deploy(self, request: DeployRequest) -> DeployResult: ...

    async def release(self, cluster_id: str) -> str: ...

    async def suspend_cluster(self, cluster_id: str) -> str: ...

    async def resume_cluster(self, cluster_id: str) -> str: ...

    async def scale_up(self, cluster_id: str, instance_type: str) -> str: ...

    async def scale_out(self, cluster_id: str, node_count: int) -> str: ...

    async def scale_in(self, cluster_id: str, node_count: int) -> str: ...

    async def unlock_free_tier(self, cluster_id: str) -> None: ...

    async def modify_volume(self, request: ModifyVolumeRequest) -> str: ...

    async def upgrade_image(self, request: UpgradeImageRequest) -> str: ...

    # Warehouses
    async def create_warehouse(self, request: CreateWarehouseRequest) -> CreateWarehouseResult: ...

    async def release_warehouse(self, cluster_id: str, warehouse_id: str) -> str: ...

    async def suspend_warehouse(self, cluster_id: str, warehouse_id: str) -> str: ...

    async def resume_warehouse(self, cluster_id: str, warehouse_id: str) -> str: ...

    async def scale_warehouse_size(
        self, cluster_id: str, warehouse_id: str, instance_type: str
    ) -> str: ...

    async def scale_warehouse_num(
        self, cluster_id: str, warehouse_id: str, node_count: int
    ) -> str: ...

    async def change_warehouse_distribution(self, request: ChangeDistributionRequest) -> str: ...

    # Configuration
    async def upsert_custom_config(
        self,
        cluster_id: str,
        module_type: ModuleType,
        configs: dict[str, str],
        warehouse_id: str | None = None,
    ) -> None: ...

    async def get_custom_config(
        self,
        cluster_id: str,
        module_type: ModuleType,
        warehouse_id: str | None = None,
    ) -> dict[str, str]: ...

    async def save_auto_scaling_config(
        self, cluster_id: str, warehouse_id: str, policy: AutoScalingPolicy
    ) -> None: ...

    async def get_auto_scaling_config(
        self, cluster_id: str, warehouse_id: str
    ) -> AutoScalingConfigInfo: ...

    async def delete_auto_scaling_config(self, cluster_id: str, warehouse_id: str) -> None: ...

    async def update_cluster_idle_config(
        self, cluster_id: str, interval_ms: int, enabled: bool
    ) -> None: ...

    async def update_warehouse_idle_config(
        self, warehouse_id: str, interval_ms: int, enabled: bool
    ) -> None: ...

    async def get_warehouse_idle_config(self, warehouse_id: str) -> WarehouseIdleInfo: ...

    async def update_resource_tags(self, cluster_id: str, tags: dict[str, str]) -> None: ...

    async def update_deployment_scripts(
        self,
        cluster_id: str,
        scripts: list[InitScript],
        parallel: bool,
        timeout_seconds: int,
    ) -> None: ...

    async def upsert_ldap_ssl_certs(
        self, cluster_id: str, s3_paths: list[str], is_update: bool
    ) -> None: ...

    async def upsert_ranger_certs(self, cluster_id: str, dir_path: str, is_update: bool) -> None: ...
