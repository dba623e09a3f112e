"""Asynchronous action poller.

Remote mutations complete asynchronously. The poller queries the reported
state at a fixed interval until it reaches one of the caller's target
states or the deadline passes.

Poll RPC errors are not retried: a single failure aborts the wait so a
broken control plane surfaces instead of looking like a slow action.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass
from enum import Enum

from .api import ClusterAPI
from .api_types import ClusterState, InfraActionState
from .errors import NotFoundError, WaitTimeoutError

logger = logging.getLogger(__name__)

# A fetch returns the current state and the remote reason attached to it
StateFetcher = Callable[[], Awaitable[tuple[Enum, str]]]

INFRA_PENDING_STATES: frozenset[InfraActionState] = frozenset(
    {InfraActionState.PENDING, InfraActionState.ONGOING}
)
INFRA_TARGET_STATES: frozenset[InfraActionState] = frozenset(
    {InfraActionState.SUCCEEDED, InfraActionState.COMPLETED, InfraActionState.FAILED}
)


@dataclass(frozen=True)
class WaitResult:
    """Outcome of a completed wait."""

    state: Enum
    reason: str = ""
    polls: int = 0
    not_found: bool = False

    @property
    def is_abnormal(self) -> bool:
        return self.state == ClusterState.ABNORMAL

    @property
    def is_released(self) -> bool:
        return self.state == ClusterState.RELEASED

    @property
    def is_failed(self) -> bool:
        return self.state == InfraActionState.FAILED


async def await_state(
    fetch: StateFetcher,
    *,
    pending: Collection[Enum],
    target: Collection[Enum],
    timeout: float,
    interval: float,
    is_new: bool = True,
    description: str = "action",
) -> WaitResult:
    """Poll until the fetched state is in ``target``.

    Args:
        fetch: Coroutine factory returning (state, reason).
        pending: States expected while the action is in flight.
        target: States that end the wait successfully.
        timeout: Seconds before giving up.
        interval: Seconds between polls.
        is_new: False when the entity is known to exist already. A
            not-found answer is then reported as a released result
            instead of an error.
        description: Human-readable name used in logs and errors.

    Returns:
        The terminal state, with the remote reason when it carries one.

    Raises:
        WaitTimeoutError: If the deadline passes outside the target states.
        RemoteCallError: If a poll call fails.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    polls = 0

    while True:
        try:
            state, reason = await fetch()
        except NotFoundError:
            if is_new:
                raise
            logger.info("Entity not found while waiting", extra={"wait": description})
            return WaitResult(
                state=ClusterState.RELEASED, polls=polls + 1, not_found=True
            )
        polls += 1

        if state in target:
            logger.debug(
                "Wait complete",
                extra={"wait": description, "state": state.value, "polls": polls},
            )
            return WaitResult(state=state, reason=reason, polls=polls)

        # Released means there is nothing left to wait for
        if state == ClusterState.RELEASED:
            return WaitResult(state=state, reason=reason, polls=polls)

        if state not in pending:
            logger.warning(
                "Unexpected state while waiting",
                extra={"wait": description, "state": state.value},
            )

        remaining = deadline - loop.time()
        if remaining <= 0:
            raise WaitTimeoutError(
                f"timeout while waiting for {description}, last state: {state.value}",
                last_state=state.value,
            )
        await asyncio.sleep(min(interval, remaining))


async def wait_cluster_state(
    api: ClusterAPI,
    cluster_id: str,
    *,
    pending: Collection[ClusterState],
    target: Collection[ClusterState],
    timeout: float,
    interval: float,
    action_id: str | None = None,
    is_new: bool = True,
    description: str = "cluster state",
) -> WaitResult:
    """Wait for a cluster, or one of its actions, to settle."""

    async def fetch() -> tuple[Enum, str]:
        info = await api.get_state(cluster_id, action_id)
        return info.cluster_state, info.abnormal_reason

    return await await_state(
        fetch,
        pending=pending,
        target=target,
        timeout=timeout,
        interval=interval,
        is_new=is_new,
        description=description,
    )


async def wait_infra_action(
    api: ClusterAPI,
    cluster_id: str,
    action_id: str,
    *,
    timeout: float,
    interval: float,
    description: str = "infra action",
) -> WaitResult:
    """Wait for a volume, distribution or image action to finish."""

    async def fetch() -> tuple[Enum, str]:
        info = await api.get_infra_action_state(cluster_id, action_id)
        return info.infra_action_state, info.err_msg

    return await await_state(
        fetch,
        pending=INFRA_PENDING_STATES,
        target=INFRA_TARGET_STATES,
        timeout=timeout,
        interval=interval,
        description=description,
    )
