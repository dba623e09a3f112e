"""Cluster spec loading with validation.

All file operations enforce size limits. Input validation is performed
at the boundary so a malformed spec never reaches the reconciler.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import ClusterSpec

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


def format_validation_error(e: ValidationError, source: str) -> str:
    """Render pydantic errors as one ``loc: msg`` line each."""
    errors = []
    for error in e.errors():
        loc = ".".join(str(x) for x in error["loc"])
        errors.append(f"  - {loc}: {error['msg']}")
    return f"Validation failed for {source}:\n" + "\n".join(errors)


def parse_spec(raw_data: Any, source: str = "<spec>") -> ClusterSpec:
    """Validate already-parsed YAML content.

    Both a flat mapping and a wrapper with ``apiVersion``/``spec`` keys
    are accepted.
    """
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec file must contain a YAML mapping: {source}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        spec_data = raw_data.get("spec", {})
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {source}")
    else:
        spec_data = raw_data

    try:
        return ClusterSpec.model_validate(spec_data)
    except ValidationError as e:
        raise SpecLoadError(format_validation_error(e, source)) from e


def load_spec(spec_path: Path) -> ClusterSpec:
    """Load and validate a cluster spec from YAML.

    Args:
        spec_path: Path of the YAML spec file.

    Returns:
        Validated cluster spec.

    Raises:
        SpecLoadError: If the spec cannot be loaded or fails validation.
    """
    if not spec_path.exists():
        raise SpecLoadError(f"Spec file not found: {spec_path}")

    try:
        file_size = spec_path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {spec_path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {spec_path}"
        )

    try:
        content = spec_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {spec_path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {spec_path}: {e}") from e

    spec = parse_spec(raw_data, str(spec_path))
    logger.info("Loaded spec for cluster '%s' from %s", spec.cluster_name, spec_path)
    return spec
