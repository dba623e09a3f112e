"""Async HTTP client for the cluster control plane.

Uses httpx for async HTTP requests with bearer token authentication.
Responses are parsed into the typed models of api_types; a 404 is raised
as NotFoundError and every other failure as RemoteCallError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from .api_types import (
    ApiModel,
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
from .config import DEFAULT_REQUEST_TIMEOUT_SECONDS, Config
from .errors import NotFoundError, RemoteCallError
from .models import AutoScalingPolicy, InitScript

logger = logging.getLogger(__name__)

API_PREFIX = "/api/1.0"


def _action_id(result: Any) -> str:
    if isinstance(result, dict):
        return str(result.get("actionId") or "")
    return ""


class ControlPlaneClient:
    """Async HTTP client for the control plane.

    Example:
        async with ControlPlaneClient(base_url, token) as api:
            info = await api.get(cluster_id)
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: Config) -> ControlPlaneClient:
        return cls(config.api_url, config.api_token, config.request_timeout_seconds)

    async def __aenter__(self) -> ControlPlaneClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url + API_PREFIX,
            timeout=self._timeout,
            headers=self._headers(),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *_: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Execute HTTP request and return the JSON response."""
        try:
            resp = await self.client.request(method, path, json=json, params=params)
            resp.raise_for_status()
            return resp.json() if resp.content else None
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = f"{method} {path} failed with {status}: {e.response.text}"
            if status == 404:
                raise NotFoundError(message, status_code=status) from e
            raise RemoteCallError(message, status_code=status) from e
        except httpx.RequestError as e:
            raise RemoteCallError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _parse(model: type[ApiModel], data: Any, what: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise RemoteCallError(f"Unexpected {what} response: {e}") from e

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_vm_info(self, csp: str, region: str, instance_type: str) -> VMInfo | None:
        result = await self._request(
            "GET",
            "/vm-infos",
            params={"csp": csp, "region": region, "instanceType": instance_type},
        )
        if not result:
            return None
        return self._parse(VMInfo, result, "vm info")

    async def get_network(self, network_id: str) -> NetworkInfo:
        result = await self._request("GET", f"/networks/{network_id}")
        return self._parse(NetworkInfo, result, "network")

    async def get(self, cluster_id: str) -> ClusterInfo:
        result = await self._request("GET", f"/clusters/{cluster_id}")
        return self._parse(ClusterInfo, result, "cluster")

    async def get_state(self, cluster_id: str, action_id: str | None = None) -> StateInfo:
        params = {"actionId": action_id} if action_id else None
        result = await self._request("GET", f"/clusters/{cluster_id}/state", params=params)
        return self._parse(StateInfo, result, "cluster state")

    async def get_infra_action_state(self, cluster_id: str, action_id: str) -> InfraActionInfo:
        result = await self._request(
            "GET", f"/clusters/{cluster_id}/infra-actions/{action_id}"
        )
        return self._parse(InfraActionInfo, result, "infra action")

    # =========================================================================
    # Cluster lifecycle
    # =========================================================================

    async def deploy(self, request: DeployRequest) -> DeployResult:
        logger.debug("Deploying cluster", extra={"cluster_name": request.cluster_name})
        result = await self._request("POST", "/clusters", json=request.to_wire())
        return self._parse(DeployResult, result, "deploy")

    async def release(self, cluster_id: str) -> str:
        return _action_id(await self._request("POST", f"/clusters/{cluster_id}/release"))

    async def suspend_cluster(self, cluster_id: str) -> str:
        return _action_id(await self._request("POST", f"/clusters/{cluster_id}/suspend"))

    async def resume_cluster(self, cluster_id: str) -> str:
        return _action_id(await self._request("POST", f"/clusters/{cluster_id}/resume"))

    async def scale_up(self, cluster_id: str, instance_type: str) -> str:
        return _action_id(
            await self._request(
                "POST",
                f"/clusters/{cluster_id}/coordinator/scale-up",
                json={"instanceType": instance_type},
            )
        )

    async def scale_out(self, cluster_id: str, node_count: int) -> str:
        return _action_id(
            await self._request(
                "POST",
                f"/clusters/{cluster_id}/coordinator/scale-out",
                json={"expectNum": node_count},
            )
        )

    async def scale_in(self, cluster_id: str, node_count: int) -> str:
        return _action_id(
            await self._request(
                "POST",
                f"/clusters/{cluster_id}/coordinator/scale-in",
                json={"expectNum": node_count},
            )
        )

    async def unlock_free_tier(self, cluster_id: str) -> None:
        await self._request("POST", f"/clusters/{cluster_id}/unlock-free-tier")

    async def modify_volume(self, request: ModifyVolumeRequest) -> str:
        return _action_id(
            await self._request(
                "POST", f"/clusters/{request.cluster_id}/volumes", json=request.to_wire()
            )
        )

    async def upgrade_image(self, request: UpgradeImageRequest) -> str:
        return _action_id(
            await self._request(
                "POST", f"/clusters/{request.cluster_id}/upgrade-ami", json=request.to_wire()
            )
        )

    # =========================================================================
    # Warehouses
    # =========================================================================

    async def create_warehouse(self, request: CreateWarehouseRequest) -> CreateWarehouseResult:
        result = await self._request(
            "POST", f"/clusters/{request.cluster_id}/warehouses", json=request.to_wire()
        )
        return self._parse(CreateWarehouseResult, result, "create warehouse")

    async def release_warehouse(self, cluster_id: str, warehouse_id: str) -> str:
        return _action_id(
            await self._request(
                "POST", f"/clusters/{cluster_id}/warehouses/{warehouse_id}/release"
            )
        )

    async def suspend_warehouse(self, cluster_id: str, warehouse_id: str) -> str:
        return _action_id(
            await self._request(
                "POST", f"/clusters/{cluster_id}/warehouses/{warehouse_id}/suspend"
            )
        )

    async def resume_warehouse(self, cluster_id: str, warehouse_id: str) -> str:
        return _action_id(
            await self._request(
                "POST", f"/clusters/{cluster_id}/warehouses/{warehouse_id}/resume"
            )
        )

    async def scale_warehouse_size(
        self, cluster_id: str, warehouse_id: str, instance_type: str
    ) -> str:
        return _action_id(
            await self._request(
                "POST",
                f"/clusters/{cluster_id}/warehouses/{warehouse_id}/scale-size",
                json={"instanceType": instance_type},
            )
        )

    async def scale_warehouse_num(self, cluster_id: str, warehouse_id: str, node_count: int) -> str:
        return _action_id(
            await self._request(
                "POST",
                f"/clusters/{cluster_id}/warehouses/{warehouse_id}/scale-num",
                json={"num": node_count},
            )
        )

    async def change_warehouse_distribution(self, request: ChangeDistributionRequest) -> str:
        return _action_id(
            await self._request(
                "POST",
                f"/clusters/{request.cluster_id}/warehouses/{request.warehouse_id}/distribution",
                json=request.to_wire(),
            )
        )

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
        body: dict[str, Any] = {"configType": module_type.value, "configs": configs}
        if warehouse_id:
            body["warehouseId"] = warehouse_id
        await self._request("PUT", f"/clusters/{cluster_id}/custom-configs", json=body)

    async def get_custom_config(
        self,
        cluster_id: str,
        module_type: ModuleType,
        warehouse_id: str | None = None,
    ) -> dict[str, str]:
        params = {"configType": module_type.value}
        if warehouse_id:
            params["warehouseId"] = warehouse_id
        result = await self._request("GET", f"/clusters/{cluster_id}/custom-configs", params=params)
        if not result:
            return {}
        return {str(k): str(v) for k, v in (result.get("configs") or {}).items()}

    async def save_auto_scaling_config(
        self, cluster_id: str, warehouse_id: str, policy: AutoScalingPolicy
    ) -> None:
        await self._request(
            "PUT",
            f"/clusters/{cluster_id}/warehouses/{warehouse_id}/auto-scaling",
            json={"policy": policy.model_dump(mode="json"), "state": True},
        )

    async def get_auto_scaling_config(
        self, cluster_id: str, warehouse_id: str
    ) -> AutoScalingConfigInfo:
        result = await self._request(
            "GET", f"/clusters/{cluster_id}/warehouses/{warehouse_id}/auto-scaling"
        )
        if not result:
            return AutoScalingConfigInfo()
        return self._parse(AutoScalingConfigInfo, result, "auto scaling config")

    async def delete_auto_scaling_config(self, cluster_id: str, warehouse_id: str) -> None:
        await self._request(
            "DELETE", f"/clusters/{cluster_id}/warehouses/{warehouse_id}/auto-scaling"
        )

    async def update_cluster_idle_config(
        self, cluster_id: str, interval_ms: int, enabled: bool
    ) -> None:
        await self._request(
            "PUT",
            f"/clusters/{cluster_id}/idle-config",
            json={"intervalMs": interval_ms, "state": enabled},
        )

    async def update_warehouse_idle_config(
        self, warehouse_id: str, interval_ms: int, enabled: bool
    ) -> None:
        await self._request(
            "PUT",
            f"/warehouses/{warehouse_id}/idle-config",
            json={"intervalMs": interval_ms, "state": enabled},
        )

    async def get_warehouse_idle_config(self, warehouse_id: str) -> WarehouseIdleInfo:
        result = await self._request("GET", f"/warehouses/{warehouse_id}/idle-config")
        if not result:
            return WarehouseIdleInfo()
        return self._parse(WarehouseIdleInfo, result, "warehouse idle config")

    async def update_resource_tags(self, cluster_id: str, tags: dict[str, str]) -> None:
        await self._request("PUT", f"/clusters/{cluster_id}/tags", json={"tags": tags})

    async def update_deployment_scripts(
        self,
        cluster_id: str,
        scripts: list[InitScript],
        parallel: bool,
        timeout_seconds: int,
    ) -> None:
        await self._request(
            "PUT",
            f"/clusters/{cluster_id}/scripts",
            json={
                "scripts": [
                    {"scriptPath": s.script_path, "logsDir": s.logs_dir} for s in scripts
                ],
                "parallel": parallel,
                "timeout": timeout_seconds,
            },
        )

    async def upsert_ldap_ssl_certs(
        self, cluster_id: str, s3_paths: list[str], is_update: bool
    ) -> None:
        await self._request(
            "PUT" if is_update else "POST",
            f"/clusters/{cluster_id}/ldap-ssl-certs",
            json={"s3Paths": s3_paths},
        )

    async def upsert_ranger_certs(self, cluster_id: str, dir_path: str, is_update: bool) -> None:
        await self._request(
            "PUT" if is_update else "POST",
            f"/clusters/{cluster_id}/ranger-certs",
            json={"dirPath": dir_path},
        )
