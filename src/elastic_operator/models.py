"""Pydantic models for the desired cluster state.

These models provide:
1. Type-safe YAML parsing
2. Validation at the boundary (fail fast, fail loudly)
3. Typed fields for the validator, diff engine and lifecycle operations
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
    ValidationInfo,
    field_validator,
    model_validator,
)

DEFAULT_WAREHOUSE_NAME = "default_warehouse"

# Idle suspend interval bounds in minutes; 0 disables auto suspend
MIN_IDLE_SUSPEND_MINUTES = 15
MAX_IDLE_SUSPEND_MINUTES = 999999

VALID_COORDINATOR_COUNTS = frozenset({1, 3, 5, 7})
SUPPORTED_AMI_OS = frozenset({"al2023"})

# Deploy and scale waits cap the init script runtime
MAX_RUN_SCRIPTS_TIMEOUT_SECONDS = 3600

RESERVED_QUERY_PORT = 443

CLUSTER_NAME_PATTERN = r"^[0-9a-zA-Z_-]{1,32}$"

# Validation context for specs read back from the control plane. Rules that
# only constrain user input are skipped so remote drift can be observed.
OBSERVED_CONTEXT = {"observed": True}


class DistributionPolicy(str, Enum):
    """How compute nodes are spread over availability zones."""

    CROSSING_AZ = "crossing_az"
    SPECIFY_AZ = "specify_az"


class ExpectedState(str, Enum):
    """Lifecycle state the user wants a cluster or warehouse to be in."""

    RUNNING = "running"
    SUSPENDED = "suspended"


def _is_observed(info: ValidationInfo) -> bool:
    return bool(info.context and info.context.get("observed"))


def _validate_idle_interval(v: int) -> int:
    if v != 0 and not (MIN_IDLE_SUSPEND_MINUTES <= v <= MAX_IDLE_SUSPEND_MINUTES):
        raise ValueError(
            f"idle_suspend_interval must be 0 or between {MIN_IDLE_SUSPEND_MINUTES} "
            f"and {MAX_IDLE_SUSPEND_MINUTES} minutes"
        )
    return v


# =============================================================================
# Volumes, images and scripts
# =============================================================================


class CoordinatorVolumeConfig(BaseModel):
    """Disk attached to each coordinator node."""

    model_config = {"extra": "ignore"}

    vol_size: Annotated[int, Field(ge=1)] = 150
    iops: int | None = Field(None, ge=0)
    throughput: int | None = Field(None, ge=0)


class ComputeVolumeConfig(BaseModel):
    """Disks attached to each compute node of a warehouse."""

    model_config = {"extra": "ignore"}

    vol_number: Annotated[int, Field(ge=1, le=24)] = 2
    vol_size: Annotated[int, Field(ge=1)] = 100
    iops: int | None = Field(None, ge=0)
    throughput: int | None = Field(None, ge=0)


class CustomAmi(BaseModel):
    """Custom machine image for all cluster nodes."""

    model_config = {"extra": "ignore"}

    ami: Annotated[str, Field(min_length=1)]
    os: str

    @field_validator("os")
    @classmethod
    def validate_os(cls, v: str, info: ValidationInfo) -> str:
        if not _is_observed(info) and v not in SUPPORTED_AMI_OS:
            raise ValueError(f"os must be one of {sorted(SUPPORTED_AMI_OS)}")
        return v


class InitScript(BaseModel):
    """Script executed on every node at deploy time."""

    model_config = {"extra": "ignore", "frozen": True}

    script_path: Annotated[str, Field(min_length=1)]
    logs_dir: Annotated[str, Field(min_length=1)]


# =============================================================================
# Auto scaling
# =============================================================================


class ScalingCondition(BaseModel):
    """Metric condition that triggers a scaling step."""

    model_config = {"extra": "ignore"}

    type: Annotated[str, Field(min_length=1)]
    duration_seconds: Annotated[int, Field(ge=0)]
    value: float


class ScalingPolicyItem(BaseModel):
    """One scale-out or scale-in rule."""

    model_config = {"extra": "ignore"}

    type: Literal["SCALE_OUT", "SCALE_IN"]
    step_size: Annotated[int, Field(ge=1)] = 1
    conditions: list[ScalingCondition] = Field(default_factory=list)


class AutoScalingPolicy(BaseModel):
    """Warehouse auto scaling policy.

    Compared as a whole; the control plane stores it opaquely.
    """

    model_config = {"extra": "ignore"}

    min_size: Annotated[int, Field(ge=1)]
    max_size: Annotated[int, Field(ge=1)]
    policy_items: list[ScalingPolicyItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_bounds(self) -> AutoScalingPolicy:
        if self.max_size < self.min_size:
            raise ValueError("max_size must be greater than or equal to min_size")
        return self


# =============================================================================
# Warehouses
# =============================================================================


class _WarehouseBase(BaseModel):
    """Fields shared by the default warehouse and named warehouses."""

    model_config = {"extra": "ignore"}

    compute_node_size: Annotated[str, Field(min_length=1)]
    compute_node_count: Annotated[int, Field(ge=1)] = 3
    distribution_policy: DistributionPolicy = DistributionPolicy.CROSSING_AZ
    specify_az: str | None = None
    compute_node_volume_config: ComputeVolumeConfig | None = None
    auto_scaling_policy: AutoScalingPolicy | None = None
    compute_node_configs: dict[str, str] = Field(default_factory=dict)

    def effective_volume(self) -> ComputeVolumeConfig:
        """Volume config with defaults filled in when none was declared."""
        return self.compute_node_volume_config or ComputeVolumeConfig()


class DefaultWarehouseSpec(_WarehouseBase):
    """The warehouse every cluster is deployed with."""

    name: Literal["default_warehouse"] = DEFAULT_WAREHOUSE_NAME

    @property
    def is_default(self) -> bool:
        return True


class WarehouseSpec(_WarehouseBase):
    """An additional, independently managed warehouse."""

    name: Annotated[str, Field(min_length=1)]
    idle_suspend_interval: int = 0
    expected_state: ExpectedState = ExpectedState.RUNNING

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str, info: ValidationInfo) -> str:
        if v == DEFAULT_WAREHOUSE_NAME:
            raise ValueError(f"warehouse name cannot be '{DEFAULT_WAREHOUSE_NAME}'")
        if "-" in v and not _is_observed(info):
            raise ValueError("warehouse name must not contain '-'")
        return v

    @field_validator("idle_suspend_interval")
    @classmethod
    def validate_idle_interval(cls, v: int, info: ValidationInfo) -> int:
        if _is_observed(info):
            return v
        return _validate_idle_interval(v)

    @property
    def is_default(self) -> bool:
        return False


AnyWarehouseSpec = DefaultWarehouseSpec | WarehouseSpec


class WarehouseExternalInfo(BaseModel):
    """Persisted correlation between a warehouse name and its remote identity."""

    model_config = {"extra": "ignore"}

    id: Annotated[str, Field(min_length=1)]
    is_default_warehouse: bool = False
    is_instance_store: bool = False


# =============================================================================
# Cluster
# =============================================================================


class ClusterSpec(BaseModel):
    """Desired state of one elastic cluster."""

    model_config = {"extra": "ignore"}

    # Identity
    csp: Annotated[str, Field(min_length=1)]
    region: Annotated[str, Field(min_length=1)]
    cluster_name: Annotated[str, Field(pattern=CLUSTER_NAME_PATTERN)]

    # Coordinator node group
    coordinator_node_size: Annotated[str, Field(min_length=1)]
    coordinator_node_count: int = 1
    coordinator_node_volume_config: CoordinatorVolumeConfig | None = None
    coordinator_node_configs: dict[str, str] = Field(default_factory=dict)

    # Warehouses
    default_warehouse: DefaultWarehouseSpec
    warehouses: list[WarehouseSpec] = Field(default_factory=list)

    # Credentials and network
    default_admin_password: SecretStr
    data_credential_id: Annotated[str, Field(min_length=1)]
    deployment_credential_id: Annotated[str, Field(min_length=1)]
    network_id: Annotated[str, Field(min_length=1)]

    # Policies
    resource_tags: dict[str, str] = Field(default_factory=dict)
    expected_cluster_state: ExpectedState = ExpectedState.RUNNING
    idle_suspend_interval: int = 0
    custom_ami: CustomAmi | None = None
    query_port: Annotated[int, Field(ge=1, le=65535)] = 9030

    # Scripts and certificates
    init_scripts: list[InitScript] = Field(default_factory=list)
    run_scripts_parallel: bool = False
    run_scripts_timeout: Annotated[int, Field(ge=1, le=MAX_RUN_SCRIPTS_TIMEOUT_SECONDS)] = 3600
    ldap_ssl_certs: list[str] = Field(default_factory=list)
    ranger_certs_dir: str | None = None

    @field_validator("coordinator_node_count")
    @classmethod
    def validate_coordinator_count(cls, v: int, info: ValidationInfo) -> int:
        if not _is_observed(info) and v not in VALID_COORDINATOR_COUNTS:
            raise ValueError(
                f"coordinator_node_count must be one of {sorted(VALID_COORDINATOR_COUNTS)}"
            )
        return v

    @field_validator("default_admin_password")
    @classmethod
    def validate_password(cls, v: SecretStr, info: ValidationInfo) -> SecretStr:
        if _is_observed(info):
            return v
        # 8-64 characters with upper case, lower case, digit and symbol
        value = v.get_secret_value()
        if not (8 <= len(value) <= 64):
            raise ValueError("default_admin_password must be 8 to 64 characters long")
        required = (r"[A-Z]", r"[a-z]", r"[0-9]", r"[^A-Za-z0-9]")
        if not all(re.search(pattern, value) for pattern in required):
            raise ValueError(
                "default_admin_password must contain upper case, lower case, "
                "digit and special characters"
            )
        return v

    @field_validator("idle_suspend_interval")
    @classmethod
    def validate_idle_interval(cls, v: int, info: ValidationInfo) -> int:
        if _is_observed(info):
            return v
        return _validate_idle_interval(v)

    @field_validator("query_port")
    @classmethod
    def validate_query_port(cls, v: int, info: ValidationInfo) -> int:
        if not _is_observed(info) and v == RESERVED_QUERY_PORT:
            raise ValueError(f"query_port cannot be {RESERVED_QUERY_PORT}")
        return v

    @field_validator("init_scripts")
    @classmethod
    def dedupe_init_scripts(cls, v: list[InitScript]) -> list[InitScript]:
        return list(dict.fromkeys(v))

    @field_validator("ldap_ssl_certs")
    @classmethod
    def validate_ldap_ssl_certs(cls, v: list[str], info: ValidationInfo) -> list[str]:
        for path in v:
            if not _is_observed(info) and not path.startswith("s3://"):
                raise ValueError(f"ldap_ssl_certs entries must be s3 paths: {path!r}")
        return list(dict.fromkeys(v))

    @field_validator("ranger_certs_dir")
    @classmethod
    def validate_ranger_certs_dir(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("ranger_certs_dir must not be blank")
        return v

    def effective_coordinator_volume(self) -> CoordinatorVolumeConfig:
        """Coordinator volume with defaults filled in when none was declared."""
        return self.coordinator_node_volume_config or CoordinatorVolumeConfig()

    def named_warehouses(self) -> dict[str, WarehouseSpec]:
        """Named warehouses keyed by name, in declaration order."""
        return {wh.name: wh for wh in self.warehouses}
