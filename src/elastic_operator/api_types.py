"""Typed control plane requests and responses.

Wire payloads use camelCase keys; models accept both camelCase and
snake_case so tests and fixtures can build them either way.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from .models import AutoScalingPolicy, InitScript


class ApiModel(BaseModel):
    """Base for all wire models."""

    model_config = {
        "extra": "ignore",
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    def to_wire(self) -> dict:
        """Serialize with wire aliases, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# States
# =============================================================================


class ClusterState(str, Enum):
    """Lifecycle states reported for clusters and warehouses."""

    DEPLOYING = "Deploying"
    SCALING = "Scaling"
    RESUMING = "Resuming"
    SUSPENDING = "Suspending"
    RELEASING = "Releasing"
    UPDATING = "Updating"
    RUNNING = "Running"
    SUSPENDED = "Suspended"
    ABNORMAL = "Abnormal"
    RELEASED = "Released"


TRANSIENT_STATES: frozenset[ClusterState] = frozenset(
    {
        ClusterState.DEPLOYING,
        ClusterState.SCALING,
        ClusterState.RESUMING,
        ClusterState.SUSPENDING,
        ClusterState.RELEASING,
        ClusterState.UPDATING,
    }
)

QUIESCENT_STATES: frozenset[ClusterState] = frozenset(
    {
        ClusterState.RUNNING,
        ClusterState.SUSPENDED,
        ClusterState.ABNORMAL,
        ClusterState.RELEASED,
    }
)


class InfraActionState(str, Enum):
    """States of an infrastructure action (volume, distribution, image)."""

    PENDING = "Pending"
    ONGOING = "Ongoing"
    SUCCEEDED = "Succeeded"
    COMPLETED = "Completed"
    FAILED = "Failed"


class ModuleType(str, Enum):
    """Node group addressed by volume and config operations."""

    COORDINATOR = "FE"
    WAREHOUSE = "BE"


# =============================================================================
# Lookups
# =============================================================================


class VolumeCategoryInfo(ApiModel):
    """Bounds the control plane accepts for one disk category."""

    category: str
    min_size: int | None = None
    max_size: int | None = None
    min_iops: int | None = None
    max_iops: int | None = None
    min_throughput: int | None = None
    max_throughput: int | None = None


class VMInfo(ApiModel):
    """Instance type facts used by precondition checks."""

    instance_type: str
    arch: str
    is_instance_store: bool = False
    volume_infos: list[VolumeCategoryInfo] = Field(default_factory=list)


class NetworkInfo(ApiModel):
    network_id: str
    multi_az: bool = False


class StateInfo(ApiModel):
    """Current state of a cluster or of one of its actions."""

    cluster_state: ClusterState
    abnormal_reason: str = ""


class InfraActionInfo(ApiModel):
    infra_action_state: InfraActionState
    err_msg: str = ""


class VolumeDetail(ApiModel):
    """Observed disk layout of a node group."""

    vol_number: int = 1
    vol_size: int
    iops: int | None = None
    throughput: int | None = None


class CoordinatorInfo(ApiModel):
    instance_type: str
    node_count: int
    volume: VolumeDetail | None = None


class WarehouseInfo(ApiModel):
    """Observed warehouse."""

    id: str
    name: str
    state: ClusterState
    is_default: bool = False
    deleted: bool = False
    instance_type: str
    node_count: int
    distribution_policy: str = "crossing_az"
    specify_az: str | None = None
    is_instance_store: bool = False
    volume: VolumeDetail | None = None


class CustomAmiInfo(ApiModel):
    ami: str
    os: str


class ClusterInfo(ApiModel):
    """Observed cluster as returned by the get call."""

    cluster_id: str
    cluster_name: str
    cluster_state: ClusterState
    csp: str
    region: str
    free_tier: bool = False
    query_port: int = 9030
    idle_suspend_interval: int = 0
    tags: dict[str, str] = Field(default_factory=dict)
    data_credential_id: str = ""
    deployment_credential_id: str = ""
    network_id: str = ""
    custom_ami: CustomAmiInfo | None = None
    ldap_ssl_certs: list[str] = Field(default_factory=list)
    ranger_certs_dir: str | None = None
    coordinator: CoordinatorInfo
    warehouses: list[WarehouseInfo] = Field(default_factory=list)

    def is_all_running(self) -> bool:
        """True when the cluster and every live warehouse are running."""
        if self.cluster_state != ClusterState.RUNNING:
            return False
        return all(
            wh.state == ClusterState.RUNNING for wh in self.warehouses if not wh.deleted
        )


class AutoScalingConfigInfo(ApiModel):
    policy: AutoScalingPolicy | None = None
    state: bool = False


class WarehouseIdleInfo(ApiModel):
    state: bool = False
    interval_ms: int = 0


# =============================================================================
# Mutations
# =============================================================================


class DeployItem(ApiModel):
    """One node group of the initial deployment."""

    module_type: ModuleType
    instance_type: str
    num: int
    vol_number: int
    vol_size: int
    iops: int | None = None
    throughput: int | None = None
    distribution_policy: str | None = None
    specify_az: str | None = None


class DeployRequest(ApiModel):
    """Initial deployment: coordinators plus the default warehouse only."""

    request_id: str
    cluster_name: str
    csp: str
    region: str
    password: str
    network_id: str
    data_credential_id: str
    deployment_credential_id: str
    query_port: int
    run_scripts_parallel: bool = False
    run_scripts_timeout: int = 3600
    ssl_conn_enable: bool = True
    items: list[DeployItem]
    tags: dict[str, str] = Field(default_factory=dict)
    scripts: list[InitScript] = Field(default_factory=list)
    custom_ami: CustomAmiInfo | None = None


class DeployResult(ApiModel):
    action_id: str
    cluster_id: str
    default_warehouse_id: str


class CreateWarehouseRequest(ApiModel):
    cluster_id: str
    name: str
    instance_type: str
    num: int
    vol_number: int
    vol_size: int
    iops: int | None = None
    throughput: int | None = None
    distribution_policy: str
    specify_az: str | None = None


class CreateWarehouseResult(ApiModel):
    warehouse_id: str
    action_id: str


class ModifyVolumeRequest(ApiModel):
    """Volume change; only fields that differ from the observed value are set."""

    cluster_id: str
    module_type: ModuleType
    warehouse_id: str | None = None
    vol_size: int | None = None
    iops: int | None = None
    throughput: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.vol_size is None and self.iops is None and self.throughput is None


class ChangeDistributionRequest(ApiModel):
    cluster_id: str
    warehouse_id: str
    distribution_policy: str
    specify_az: str | None = None


class UpgradeImageRequest(ApiModel):
    cluster_id: str
    module_type: ModuleType
    warehouse_id: str | None = None
    ami: str
    os: str
