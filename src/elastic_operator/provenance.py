"""Reconciliation provenance for audit.

Every create, read, update and delete pass is stamped with one structured
record answering:
- "What did the operator change on this cluster, and when?"
- "Which operator build and which spec revision were running?"
- "Which steps were skipped with a warning?"
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to dev
OPERATOR_VERSION = os.environ.get("OPERATOR_VERSION", "dev")


@dataclass
class ChangeProvenanceSummary:
    """Warehouse-level change counts for one pass."""

    warehouses_created: int = 0
    warehouses_updated: int = 0
    warehouses_deleted: int = 0


@dataclass
class ReconcileProvenance:
    """Provenance record for one reconciliation pass."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Identity
    cluster_name: str = ""
    cluster_id: str = ""
    phase: str = ""  # create, read, update, delete
    operator_version: str = OPERATOR_VERSION
    operator_instance_id: str = ""

    # Source of truth
    git_commit_sha: str = ""
    spec_hash: str = ""  # SHA256 of the desired spec

    # Outcome
    dry_run: bool = False
    steps_applied: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    change_summary: ChangeProvenanceSummary = field(default_factory=ChangeProvenanceSummary)
    duration_seconds: float = 0.0

    # Error tracking
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result


def spec_fingerprint(payload: str) -> str:
    """SHA256 of a serialized spec, for correlating passes with spec revisions."""
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ProvenanceLogger:
    """Writes provenance records to the structured log."""

    def __init__(self) -> None:
        self._git_commit_sha = os.environ.get("GIT_COMMIT_SHA", "")
        self._instance_id = os.environ.get("CONTAINER_INSTANCE_ID", "")

    def create_provenance(
        self,
        cluster_name: str,
        phase: str,
        cluster_id: str = "",
        spec_hash: str = "",
        dry_run: bool = False,
    ) -> ReconcileProvenance:
        """Create a new provenance record for a reconciliation pass."""
        return ReconcileProvenance(
            cluster_name=cluster_name,
            cluster_id=cluster_id,
            phase=phase,
            operator_version=OPERATOR_VERSION,
            operator_instance_id=self._instance_id,
            git_commit_sha=self._git_commit_sha,
            spec_hash=spec_hash,
            dry_run=dry_run,
        )

    def log_provenance(self, provenance: ReconcileProvenance) -> None:
        """Log a completed provenance record.

        Errors log at ERROR, passes with warnings at WARNING, the rest at INFO.
        """
        log_level = logging.INFO
        if provenance.error:
            log_level = logging.ERROR
        elif provenance.warnings:
            log_level = logging.WARNING

        logger.log(
            log_level,
            "Reconciliation provenance",
            extra={
                "provenance": provenance.to_dict(),
                # Flatten key fields for easier querying
                "cluster_name": provenance.cluster_name,
                "cluster_id": provenance.cluster_id,
                "phase": provenance.phase,
                "changes_applied": len(provenance.steps_applied),
                "warnings_count": len(provenance.warnings),
                "git_commit": provenance.git_commit_sha,
                "operator_version": provenance.operator_version,
                "duration_seconds": provenance.duration_seconds,
            },
        )


# Global singleton for provenance logging
_provenance_logger: ProvenanceLogger | None = None


def get_provenance_logger() -> ProvenanceLogger:
    """Get the global provenance logger instance."""
    global _provenance_logger
    if _provenance_logger is None:
        _provenance_logger = ProvenanceLogger()
    return _provenance_logger
