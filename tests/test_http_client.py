"""Tests for the control plane HTTP client."""

from __future__ import annotations

import json

import httpx
import pytest

from elastic_operator.api_types import ClusterState, ModuleType
from elastic_operator.errors import NotFoundError, RemoteCallError
from elastic_operator.http_client import ControlPlaneClient


class Recorder:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def client_for(recorder: Recorder, token: str = "secret-token") -> ControlPlaneClient:
    return ControlPlaneClient(
        "https://cp.example.com/", token, transport=httpx.MockTransport(recorder)
    )


class TestRequests:
    """Tests for request construction and error mapping."""

    @pytest.mark.asyncio
    async def test_bearer_token_and_prefix(self) -> None:
        """Test that requests carry the bearer token and the API path prefix."""
        recorder = Recorder(
            httpx.Response(200, json={"clusterState": "Running", "abnormalReason": ""})
        )
        async with client_for(recorder) as api:
            state = await api.get_state("c-1", "a-7")

        assert state.cluster_state == ClusterState.RUNNING
        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.url.path == "/api/1.0/clusters/c-1/state"
        assert request.url.params["actionId"] == "a-7"

    @pytest.mark.asyncio
    async def test_no_token_no_auth_header(self) -> None:
        """Test that no Authorization header is sent without a token."""
        recorder = Recorder(httpx.Response(200, json={"clusterState": "Suspended"}))
        async with client_for(recorder, token="") as api:
            await api.get_state("c-1")

        assert "Authorization" not in recorder.requests[0].headers
        assert "actionId" not in recorder.requests[0].url.params

    @pytest.mark.asyncio
    async def test_404_raises_not_found(self) -> None:
        """Test that a 404 response raises NotFoundError."""
        recorder = Recorder(httpx.Response(404, text="no such cluster"))
        async with client_for(recorder) as api:
            with pytest.raises(NotFoundError) as exc_info:
                await api.get("c-404")

        assert exc_info.value.status_code == 404
        assert "no such cluster" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_server_error_raises_remote_call_error(self) -> None:
        """Test that a server error raises RemoteCallError with its status."""
        recorder = Recorder(httpx.Response(500, text="boom"))
        async with client_for(recorder) as api:
            with pytest.raises(RemoteCallError) as exc_info:
                await api.suspend_cluster("c-1")

        assert not isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_malformed_response_raises_remote_call_error(self) -> None:
        """Test that an unparsable response body raises RemoteCallError."""
        recorder = Recorder(httpx.Response(200, json={"unexpected": True}))
        async with client_for(recorder) as api:
            with pytest.raises(RemoteCallError, match="cluster state"):
                await api.get_state("c-1")

    @pytest.mark.asyncio
    async def test_client_requires_context(self) -> None:
        """Test that calls outside the async context manager fail."""
        api = ControlPlaneClient("https://cp.example.com")

        with pytest.raises(RuntimeError):
            await api.get("c-1")


class TestResponses:
    """Tests for response parsing."""

    @pytest.mark.asyncio
    async def test_action_id_extracted(self) -> None:
        """Test that the action id is read from mutation responses."""
        recorder = Recorder(httpx.Response(200, json={"actionId": "a-42"}))
        async with client_for(recorder) as api:
            action_id = await api.release("c-1")

        assert action_id == "a-42"
        assert recorder.requests[0].method == "POST"
        assert recorder.requests[0].url.path == "/api/1.0/clusters/c-1/release"

    @pytest.mark.asyncio
    async def test_empty_body_yields_empty_action_id(self) -> None:
        """Test that an empty response body yields an empty action id."""
        recorder = Recorder(httpx.Response(200))
        async with client_for(recorder) as api:
            assert await api.resume_cluster("c-1") == ""

    @pytest.mark.asyncio
    async def test_unknown_vm_is_none(self) -> None:
        """Test that an empty VM lookup response yields None."""
        recorder = Recorder(httpx.Response(200))
        async with client_for(recorder) as api:
            assert await api.get_vm_info("aws", "us-west-2", "x9.unknown") is None

        params = recorder.requests[0].url.params
        assert params["instanceType"] == "x9.unknown"
        assert params["csp"] == "aws"

    @pytest.mark.asyncio
    async def test_custom_config_round_trip(self) -> None:
        """Test that custom configs are sent and read back as strings."""
        recorder = Recorder(
            httpx.Response(200),
            httpx.Response(200, json={"configs": {"qe_max_connection": 2048}}),
        )
        async with client_for(recorder) as api:
            await api.upsert_custom_config(
                "c-1", ModuleType.WAREHOUSE, {"qe_max_connection": "2048"}, "wh-1"
            )
            configs = await api.get_custom_config("c-1", ModuleType.WAREHOUSE, "wh-1")

        body = json.loads(recorder.requests[0].content)
        assert body == {
            "configType": "BE",
            "configs": {"qe_max_connection": "2048"},
            "warehouseId": "wh-1",
        }
        assert configs == {"qe_max_connection": "2048"}

    @pytest.mark.asyncio
    async def test_cluster_info_parsed_from_camel_case(self) -> None:
        """Test that camelCase cluster descriptions are parsed."""
        recorder = Recorder(
            httpx.Response(
                200,
                json={
                    "clusterId": "c-1",
                    "clusterName": "analytics",
                    "clusterState": "Running",
                    "csp": "aws",
                    "region": "us-west-2",
                    "freeTier": True,
                    "tags": {"team": "data"},
                    "coordinator": {"instanceType": "m6i.xlarge", "nodeCount": 3},
                },
            )
        )
        async with client_for(recorder) as api:
            info = await api.get("c-1")

        assert info.cluster_id == "c-1"
        assert info.free_tier is True
        assert info.tags == {"team": "data"}
        assert info.coordinator.node_count == 3
