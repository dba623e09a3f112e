"""Control loop driving one cluster from its spec file.

Each cycle:
1. Loads the YAML spec from disk
2. Loads the persisted snapshot (cluster id and warehouse ids)
3. Creates the cluster when no snapshot exists, otherwise reads the live
   cluster and updates it from that fresh observation so drift is undone
4. Persists the returned snapshot

A circuit breaker pauses the loop after repeated failed cycles.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from .api import ClusterAPI
from .config import Config
from .diff import plan_changes
from .models import ClusterSpec
from .reconciler import ClusterReconciler, ReconcileResult
from .spec_loader import SpecLoadError, load_spec
from .state_store import StateStore, StateStoreError

logger = logging.getLogger(__name__)

# Circuit breaker settings
MAX_CONSECUTIVE_FAILURES = 5
CIRCUIT_BREAKER_RESET_SECONDS = 300  # 5 minutes


class ClusterOperator:
    """Runs reconciliation cycles for the cluster described by the spec file."""

    def __init__(
        self,
        config: Config,
        api: ClusterAPI,
        store: StateStore | None = None,
    ) -> None:
        self._config = config
        self._reconciler = ClusterReconciler.from_config(api, config)
        self._store = store or StateStore(config.state_file)

        self._shutdown_event = asyncio.Event()

        # Circuit breaker state
        self._consecutive_failures = 0
        self._circuit_open_until: datetime | None = None

    @property
    def config(self) -> Config:
        return self._config

    @property
    def store(self) -> StateStore:
        return self._store

    async def run(self) -> None:
        """Run reconciliation cycles at the configured interval until shutdown.

        After MAX_CONSECUTIVE_FAILURES failed cycles the circuit opens and
        cycles are skipped for CIRCUIT_BREAKER_RESET_SECONDS.
        """
        logger.info(
            "Starting operator",
            extra={
                "spec_file": str(self._config.spec_file),
                "interval_seconds": self._config.reconcile_interval_seconds,
                "dry_run": self._config.dry_run,
            },
        )

        while not self._shutdown_event.is_set():
            if self._circuit_open_until is not None:
                now = datetime.now(UTC)
                if now < self._circuit_open_until:
                    remaining = (self._circuit_open_until - now).total_seconds()
                    logger.warning(
                        "Circuit breaker open, skipping reconciliation",
                        extra={
                            "remaining_seconds": remaining,
                            "consecutive_failures": self._consecutive_failures,
                        },
                    )
                    await self._sleep(min(remaining, self._config.reconcile_interval_seconds))
                    continue
                logger.info("Circuit breaker reset, resuming reconciliation")
                self._circuit_open_until = None
                self._consecutive_failures = 0

            try:
                result = await self.reconcile_once()
            except Exception as e:
                logger.exception("Unexpected error during reconciliation")
                result = ReconcileResult(phase="cycle", cluster_name="", error=e)
            self._record_outcome(result)
            await self._sleep(self._config.reconcile_interval_seconds)

        logger.info("Operator shutdown complete")

    def shutdown(self) -> None:
        """Signal the loop to stop after the current cycle."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    def _record_outcome(self, result: ReconcileResult) -> None:
        if result.error is None:
            self._consecutive_failures = 0
            return
        self._consecutive_failures += 1
        if self._consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            self._circuit_open_until = datetime.now(UTC) + timedelta(
                seconds=CIRCUIT_BREAKER_RESET_SECONDS
            )
            logger.error(
                "Circuit breaker opened after consecutive failures",
                extra={
                    "consecutive_failures": self._consecutive_failures,
                    "reset_seconds": CIRCUIT_BREAKER_RESET_SECONDS,
                },
            )

    # =========================================================================
    # Cycles
    # =========================================================================

    async def reconcile_once(self) -> ReconcileResult:
        """Run one cycle and persist its outcome."""
        try:
            desired = load_spec(self._config.spec_file)
            snapshot = self._store.load()
        except (SpecLoadError, StateStoreError) as e:
            result = ReconcileResult(phase="load", cluster_name="", error=e)
            result.end_time = datetime.now(UTC)
            self._log_result(result)
            return result

        if self._config.dry_run:
            return self._plan(desired, snapshot.spec if snapshot else None)

        if snapshot is None:
            result = await self._reconciler.create(desired)
            self._persist(result)
            self._log_result(result)
            return result

        read = await self._reconciler.read(
            snapshot.cluster_id,
            desired,
            snapshot.warehouse_external_info,
            recorded=snapshot.spec,
        )
        if read.error is not None:
            self._log_result(read)
            return read
        if read.snapshot is None:
            # Released outside the operator; the next cycle creates it again
            self._persist(read)
            self._log_result(read)
            return read

        result = await self._reconciler.update(desired, read.snapshot)
        self._persist(result)
        self._log_result(result)
        return result

    async def destroy(self) -> ReconcileResult:
        """Release the cluster recorded in the state file."""
        desired = load_spec(self._config.spec_file)
        snapshot = self._store.load()
        if snapshot is None:
            result = ReconcileResult(phase="delete", cluster_name=desired.cluster_name)
            result.end_time = datetime.now(UTC)
            logger.info("No cluster recorded, nothing to destroy")
            return result
        result = await self._reconciler.delete(snapshot, desired)
        self._persist(result)
        self._log_result(result)
        return result

    def _plan(self, desired: ClusterSpec, previous: ClusterSpec | None) -> ReconcileResult:
        result = ReconcileResult(phase="plan", cluster_name=desired.cluster_name)
        result.steps_applied = plan_changes(previous, desired)
        result.end_time = datetime.now(UTC)
        logger.info(
            "DRY RUN: would apply changes",
            extra={"cluster_name": desired.cluster_name, "planned": result.steps_applied},
        )
        return result

    def _persist(self, result: ReconcileResult) -> None:
        try:
            self._store.save(result.snapshot)
        except StateStoreError as e:
            logger.error("Failed to persist cluster state", extra={"error": str(e)})
            if result.error is None:
                result.error = e

    def _log_result(self, result: ReconcileResult) -> None:
        """Log reconciliation result with structured data."""
        extra: dict[str, Any] = {
            "phase": result.phase,
            "cluster_name": result.cluster_name,
            "cluster_id": result.cluster_id,
            "duration_seconds": result.duration_seconds,
            "changes_applied": len(result.steps_applied),
            "warnings": len(result.diagnostics.warnings),
        }
        if result.error is not None:
            extra["error"] = str(result.error)
            logger.error("Reconciliation failed", extra=extra)
        elif result.diagnostics.warnings:
            logger.warning("Reconciliation completed with warnings", extra=extra)
        else:
            logger.info("Reconciliation result", extra=extra)
