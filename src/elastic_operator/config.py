"""Configuration management with validation.

All settings come from environment variables and are validated at load
time so a misconfigured operator fails before touching the control plane.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_RECONCILE_INTERVAL_SECONDS = 300
MIN_RECONCILE_INTERVAL_SECONDS = 30
MAX_RECONCILE_INTERVAL_SECONDS = 3600

# Deploy and scale operations may take up to an hour on the remote side
DEFAULT_DEPLOY_TIMEOUT_SECONDS = 3600
# Read, delete and infra action waits
DEFAULT_WAIT_TIMEOUT_SECONDS = 1800
MAX_TIMEOUT_SECONDS = 6 * 3600

DEFAULT_POLL_INTERVAL_SECONDS = 10.0
MIN_POLL_INTERVAL_SECONDS = 0.1

DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0

# Limits
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
MAX_STATE_FILE_SIZE_BYTES = 4 * 1024 * 1024

VALID_URL_PATTERN = r"^https?://[^\s/$.?#][^\s]*$"


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Control plane
    api_url: str
    api_token: str = field(default="", repr=False)

    # Paths
    spec_file: Path = field(default_factory=lambda: Path("/specs/cluster.yaml"))
    state_file: Path = field(default_factory=lambda: Path("/state/cluster-state.json"))

    # Timing
    reconcile_interval_seconds: int = DEFAULT_RECONCILE_INTERVAL_SECONDS
    deploy_timeout_seconds: int = DEFAULT_DEPLOY_TIMEOUT_SECONDS
    wait_timeout_seconds: int = DEFAULT_WAIT_TIMEOUT_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    # Behavior
    dry_run: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.api_url:
            errors.append("CONTROL_PLANE_URL is required")
        elif not re.match(VALID_URL_PATTERN, self.api_url):
            errors.append(f"CONTROL_PLANE_URL must be an http(s) URL: {self.api_url}")

        if not (
            MIN_RECONCILE_INTERVAL_SECONDS
            <= self.reconcile_interval_seconds
            <= MAX_RECONCILE_INTERVAL_SECONDS
        ):
            errors.append(
                f"RECONCILE_INTERVAL must be between {MIN_RECONCILE_INTERVAL_SECONDS} "
                f"and {MAX_RECONCILE_INTERVAL_SECONDS} seconds"
            )

        for name, value in (
            ("DEPLOY_TIMEOUT", self.deploy_timeout_seconds),
            ("WAIT_TIMEOUT", self.wait_timeout_seconds),
        ):
            if not (1 <= value <= MAX_TIMEOUT_SECONDS):
                errors.append(f"{name} must be between 1 and {MAX_TIMEOUT_SECONDS} seconds")

        if self.poll_interval_seconds < MIN_POLL_INTERVAL_SECONDS:
            errors.append(f"POLL_INTERVAL must be at least {MIN_POLL_INTERVAL_SECONDS} seconds")

        if self.request_timeout_seconds <= 0:
            errors.append("REQUEST_TIMEOUT must be positive")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            CONTROL_PLANE_URL: Base URL of the cluster control plane API
            CONTROL_PLANE_TOKEN: Bearer token for the control plane (optional)
            SPEC_FILE: Path to the cluster YAML spec (default: /specs/cluster.yaml)
            STATE_FILE: Path to the persisted cluster state
                (default: /state/cluster-state.json)
            RECONCILE_INTERVAL: Seconds between reconciliation loops (default: 300)
            DEPLOY_TIMEOUT: Timeout for deploy and scale waits in seconds (default: 3600)
            WAIT_TIMEOUT: Timeout for read, delete and infra waits in seconds (default: 1800)
            POLL_INTERVAL: Seconds between state polls (default: 10)
            REQUEST_TIMEOUT: Per-request HTTP timeout in seconds (default: 60)
            DRY_RUN: If "true", only report planned changes (default: false)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            api_url=os.environ.get("CONTROL_PLANE_URL", ""),
            api_token=os.environ.get("CONTROL_PLANE_TOKEN", ""),
            spec_file=Path(os.environ.get("SPEC_FILE", "/specs/cluster.yaml")),
            state_file=Path(os.environ.get("STATE_FILE", "/state/cluster-state.json")),
            reconcile_interval_seconds=get_int(
                "RECONCILE_INTERVAL", DEFAULT_RECONCILE_INTERVAL_SECONDS
            ),
            deploy_timeout_seconds=get_int("DEPLOY_TIMEOUT", DEFAULT_DEPLOY_TIMEOUT_SECONDS),
            wait_timeout_seconds=get_int("WAIT_TIMEOUT", DEFAULT_WAIT_TIMEOUT_SECONDS),
            poll_interval_seconds=get_float("POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS),
            request_timeout_seconds=get_float(
                "REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS
            ),
            dry_run=get_bool("DRY_RUN", False),
        )
