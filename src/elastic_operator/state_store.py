"""Persistence of the observed cluster snapshot between passes.

The snapshot carries the cluster id and the warehouse correlation table,
which cannot be recovered from the spec alone. The admin password is
written in clear because it is needed to compare later specs, so the
file is created readable by the owner only.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from .config import MAX_STATE_FILE_SIZE_BYTES
from .models import OBSERVED_CONTEXT
from .reconciler import ClusterSnapshot

logger = logging.getLogger(__name__)

STATE_FILE_MODE = 0o600
STATE_FORMAT_VERSION = 1


class StateStoreError(Exception):
    """Raised when the state file cannot be read or written."""

    pass


def _dump(snapshot: ClusterSnapshot) -> dict:
    data = snapshot.model_dump(mode="json")
    if snapshot.spec is not None:
        data["spec"]["default_admin_password"] = (
            snapshot.spec.default_admin_password.get_secret_value()
        )
    return data


class StateStore:
    """JSON file holding at most one cluster snapshot."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ClusterSnapshot | None:
        """Return the stored snapshot, or None when nothing is stored."""
        if not self._path.exists():
            return None

        try:
            file_size = self._path.stat().st_size
        except OSError as e:
            raise StateStoreError(f"Failed to stat state file {self._path}: {e}") from e

        if file_size > MAX_STATE_FILE_SIZE_BYTES:
            raise StateStoreError(
                f"State file exceeds maximum size of {MAX_STATE_FILE_SIZE_BYTES} bytes: "
                f"{self._path}"
            )

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StateStoreError(f"Failed to read state file {self._path}: {e}") from e
        except json.JSONDecodeError as e:
            raise StateStoreError(f"Invalid JSON in {self._path}: {e}") from e

        if not isinstance(raw, dict):
            raise StateStoreError(f"State file must contain a JSON object: {self._path}")

        version = raw.get("version")
        if version != STATE_FORMAT_VERSION:
            raise StateStoreError(
                f"Unsupported state format version {version!r} in {self._path}"
            )

        snapshot_data = raw.get("snapshot")
        if snapshot_data is None:
            return None

        try:
            return ClusterSnapshot.model_validate(snapshot_data, context=OBSERVED_CONTEXT)
        except ValidationError as e:
            raise StateStoreError(f"Corrupt state in {self._path}: {e}") from e

    def save(self, snapshot: ClusterSnapshot | None) -> None:
        """Write the snapshot atomically. None records a cluster that no longer exists."""
        payload = {
            "version": STATE_FORMAT_VERSION,
            "snapshot": _dump(snapshot) if snapshot is not None else None,
        }
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, STATE_FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise StateStoreError(f"Failed to write state file {self._path}: {e}") from e

        logger.debug(
            "Saved cluster state",
            extra={
                "state_file": str(self._path),
                "cluster_id": snapshot.cluster_id if snapshot else None,
            },
        )
