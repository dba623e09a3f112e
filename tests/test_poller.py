"""Tests for the action poller."""

from __future__ import annotations

import asyncio
from enum import Enum

import pytest

from elastic_operator.api_types import ClusterState, InfraActionState
from elastic_operator.errors import NotFoundError, RemoteCallError, WaitTimeoutError
from elastic_operator.poller import await_state, wait_cluster_state, wait_infra_action

PENDING = {ClusterState.DEPLOYING, ClusterState.UPDATING}
TARGET = {ClusterState.RUNNING, ClusterState.ABNORMAL}


class ScriptedFetch:
    """Returns queued states, repeating the last one."""

    def __init__(self, *states: Enum | Exception) -> None:
        self._states = list(states)
        self.calls = 0

    async def __call__(self) -> tuple[Enum, str]:
        self.calls += 1
        item = self._states.pop(0) if len(self._states) > 1 else self._states[0]
        if isinstance(item, Exception):
            raise item
        return item, "reason" if item == ClusterState.ABNORMAL else ""


class TestAwaitState:
    """Tests for await_state."""

    @pytest.mark.asyncio
    async def test_polls_until_target(self) -> None:
        """Test that A, A, B, C with C as target returns C after four polls."""
        fetch = ScriptedFetch(
            ClusterState.DEPLOYING,
            ClusterState.DEPLOYING,
            ClusterState.UPDATING,
            ClusterState.RUNNING,
        )

        result = await await_state(
            fetch, pending=PENDING, target=TARGET, timeout=5, interval=0.001
        )

        assert result.state == ClusterState.RUNNING
        assert result.polls == 4
        assert fetch.calls == 4

    @pytest.mark.asyncio
    async def test_target_on_first_poll(self) -> None:
        """Test that a target state on the first poll returns at once."""
        fetch = ScriptedFetch(ClusterState.RUNNING)

        result = await await_state(fetch, pending=PENDING, target=TARGET, timeout=5, interval=1)

        assert result.polls == 1

    @pytest.mark.asyncio
    async def test_abnormal_carries_reason(self) -> None:
        """Test that an abnormal state carries the remote reason."""
        fetch = ScriptedFetch(ClusterState.DEPLOYING, ClusterState.ABNORMAL)

        result = await await_state(
            fetch, pending=PENDING, target=TARGET, timeout=5, interval=0.001
        )

        assert result.is_abnormal
        assert result.reason == "reason"

    @pytest.mark.asyncio
    async def test_timeout_stops_polling(self) -> None:
        """Test that no poll is issued after the deadline."""
        fetch = ScriptedFetch(ClusterState.DEPLOYING)

        with pytest.raises(WaitTimeoutError) as exc_info:
            await await_state(
                fetch, pending=PENDING, target=TARGET, timeout=0.05, interval=0.01
            )

        assert exc_info.value.last_state == "Deploying"
        calls_at_timeout = fetch.calls
        assert calls_at_timeout >= 1
        await asyncio.sleep(0.05)
        assert fetch.calls == calls_at_timeout

    @pytest.mark.asyncio
    async def test_zero_timeout_polls_once(self) -> None:
        """Test that a zero timeout still polls once."""
        fetch = ScriptedFetch(ClusterState.DEPLOYING)

        with pytest.raises(WaitTimeoutError):
            await await_state(fetch, pending=PENDING, target=TARGET, timeout=0, interval=1)

        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_released_short_circuits(self) -> None:
        """Test that Released ends the wait even when it is not a target."""
        fetch = ScriptedFetch(ClusterState.RELEASED)

        result = await await_state(fetch, pending=PENDING, target=TARGET, timeout=5, interval=1)

        assert result.is_released

    @pytest.mark.asyncio
    async def test_unexpected_state_keeps_polling(self) -> None:
        """Test that an unexpected state does not end the wait."""
        fetch = ScriptedFetch(ClusterState.SUSPENDED, ClusterState.RUNNING)

        result = await await_state(
            fetch, pending=PENDING, target=TARGET, timeout=5, interval=0.001
        )

        assert result.state == ClusterState.RUNNING
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_not_found_for_existing_entity(self) -> None:
        """Test that a vanished entity reads as released when it is not new."""
        fetch = ScriptedFetch(NotFoundError("gone"))

        result = await await_state(
            fetch, pending=PENDING, target=TARGET, timeout=5, interval=1, is_new=False
        )

        assert result.is_released
        assert result.not_found

    @pytest.mark.asyncio
    async def test_not_found_for_new_entity_raises(self) -> None:
        """Test that not-found on a new entity propagates."""
        fetch = ScriptedFetch(NotFoundError("gone"))

        with pytest.raises(NotFoundError):
            await await_state(fetch, pending=PENDING, target=TARGET, timeout=5, interval=1)

    @pytest.mark.asyncio
    async def test_rpc_error_aborts(self) -> None:
        """Test that poll errors are not retried."""
        fetch = ScriptedFetch(RemoteCallError("boom"), ClusterState.RUNNING)

        with pytest.raises(RemoteCallError):
            await await_state(fetch, pending=PENDING, target=TARGET, timeout=5, interval=0.001)

        assert fetch.calls == 1


class TestWaitHelpers:
    """Tests for the API-backed wait helpers."""

    @pytest.mark.asyncio
    async def test_wait_cluster_state_uses_action_id(self, mock_ctx) -> None:
        """Test that cluster waits poll with the action id."""
        mock_ctx.state.script_states("cluster-1", ClusterState.DEPLOYING, ClusterState.RUNNING)

        result = await wait_cluster_state(
            mock_ctx.api,
            "cluster-1",
            action_id="action-9",
            pending=PENDING,
            target=TARGET,
            timeout=5,
            interval=0.001,
        )

        assert result.state == ClusterState.RUNNING
        calls = mock_ctx.state.calls_to("get_state")
        assert [c.args["action_id"] for c in calls] == ["action-9", "action-9"]

    @pytest.mark.asyncio
    async def test_wait_infra_action_failed(self, mock_ctx) -> None:
        """Test that a failed infra action is reported."""
        mock_ctx.state.clusters.clear()
        mock_ctx.state.infra_scripts["infra-1"] = [
            InfraActionState.PENDING,
            InfraActionState.ONGOING,
            InfraActionState.FAILED,
        ]

        result = await wait_infra_action(
            mock_ctx.api, "cluster-1", "infra-1", timeout=5, interval=0.001
        )

        assert result.is_failed
