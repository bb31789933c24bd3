"""Tests for FastAPI web API.

Uses TestClient against the full application; Replicate is mocked with
respx.
"""

from unittest.mock import PropertyMock, patch

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from mcp_server.transport import SessionTransport
from replicate_mcp.config import Settings
from web.app import create_app

API = "https://api.test/v1"
API_KEY = "test-key"
AUTH = {"X-Api-Key": API_KEY}

GENERATE_CALL = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "tools/call",
    "params": {
        "name": "generate_image",
        "arguments": {"model": "a/b", "input": {"prompt": "x"}},
    },
}


def make_settings(**overrides) -> Settings:
    values = {
        "api_key": API_KEY,
        "replicate_api_token": "r8_test",
        "replicate_base_url": API,
        "replicate_poll_interval": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def client():
    """Test client for an app with auth and an upstream token configured."""
    with TestClient(create_app(make_settings())) as test_client:
        yield test_client


def rpc(method: str, params: dict | None = None, id=1) -> dict:
    message = {"jsonrpc": "2.0", "method": method, "id": id}
    if params is not None:
        message["params"] = params
    return message


def initialize(client: TestClient, session_id: str | None = None) -> str:
    headers = dict(AUTH)
    if session_id:
        headers["Mcp-Session-Id"] = session_id
    response = client.post(
        "/mcp",
        json=rpc("initialize", {"protocolVersion": "2025-03-26", "capabilities": {}}),
        headers=headers,
    )
    assert response.status_code == 200
    return response.headers["mcp-session-id"]


class TestHealthEndpoints:
    """Test public endpoints."""

    def test_health(self, client: TestClient) -> None:
        """Health needs no API key."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["title"] == "Replicate MCP Server"
        assert "timestamp" in data

    def test_root(self, client: TestClient) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "Replicate MCP Server"


class TestAuthentication:
    """Test API key checks on /mcp."""

    def test_wrong_api_key(self, client: TestClient) -> None:
        response = client.post(
            "/mcp", json=rpc("ping"), headers={"X-Api-Key": "not-the-key"}
        )
        assert response.status_code == 401
        assert response.json() == {
            "jsonrpc": "2.0",
            "error": {
                "code": -32001,
                "message": "Unauthorized: Invalid or missing API key",
            },
            "id": None,
        }

    def test_missing_api_key(self, client: TestClient) -> None:
        response = client.post("/mcp", json=rpc("ping"))
        assert response.status_code == 401
        assert response.json()["error"]["code"] == -32001

    def test_bearer_token(self, client: TestClient) -> None:
        """The Bearer scheme is case-insensitive and tolerates spaces."""
        response = client.post(
            "/mcp",
            json=rpc("ping"),
            headers={"Authorization": f"  bearer   {API_KEY}"},
        )
        assert response.status_code == 200

    def test_x_api_key(self, client: TestClient) -> None:
        response = client.post("/mcp", json=rpc("ping"), headers=AUTH)
        assert response.status_code == 200

    def test_no_configured_key_is_open(self) -> None:
        with TestClient(create_app(make_settings(api_key=None))) as open_client:
            response = open_client.post("/mcp", json=rpc("ping"))
        assert response.status_code == 200

    def test_get_and_delete_require_key(self, client: TestClient) -> None:
        assert client.get("/mcp").status_code == 401
        assert client.delete("/mcp").status_code == 401


class TestJsonRpcEnvelope:
    """Test request and notification handling."""

    def test_request_with_zero_id(self, client: TestClient) -> None:
        """id 0 is a request, not a notification."""
        response = client.post("/mcp", json=rpc("ping", id=0), headers=AUTH)
        assert response.status_code == 200
        assert response.json() == {"jsonrpc": "2.0", "result": {}, "id": 0}

    def test_notification_gets_202(self, client: TestClient) -> None:
        response = client.post(
            "/mcp",
            json={"jsonrpc": "2.0", "method": "notifications/initialized"},
            headers=AUTH,
        )
        assert response.status_code == 202
        assert response.content == b""

    def test_null_id_is_notification(self, client: TestClient) -> None:
        response = client.post(
            "/mcp", json={"jsonrpc": "2.0", "method": "ping", "id": None}, headers=AUTH
        )
        assert response.status_code == 202
        assert response.content == b""

    def test_unknown_method(self, client: TestClient) -> None:
        response = client.post("/mcp", json=rpc("prompts/list", id="a"), headers=AUTH)
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "a"
        assert body["error"]["code"] == -32601
        assert "result" not in body

    def test_parse_error(self, client: TestClient) -> None:
        response = client.post(
            "/mcp",
            content=b"{not json",
            headers={**AUTH, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32700
        assert response.json()["id"] is None

    @pytest.mark.parametrize(
        "body",
        [
            [{"jsonrpc": "2.0", "method": "ping", "id": 1}],
            {"jsonrpc": "1.0", "method": "ping", "id": 1},
            {"jsonrpc": "2.0", "id": 1},
            "ping",
        ],
    )
    def test_invalid_request(self, client: TestClient, body) -> None:
        response = client.post("/mcp", json=body, headers=AUTH)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32600

    def test_internal_failure(self, client: TestClient) -> None:
        with patch.object(
            SessionTransport, "handle_message", side_effect=RuntimeError("boom")
        ):
            response = client.post("/mcp", json=rpc("ping", id=9), headers=AUTH)
        assert response.status_code == 500
        assert response.json()["error"]["code"] == -32603
        assert response.json()["id"] == 9


class TestSessions:
    """Test the session lifecycle over HTTP."""

    def test_initialize_generates_session_id(self, client: TestClient) -> None:
        first = initialize(client)
        second = initialize(client)
        assert len(first) == 32
        assert first != second

    def test_initialize_reuses_explicit_id(self, client: TestClient) -> None:
        assert initialize(client, "my-session") == "my-session"
        assert initialize(client, "my-session") == "my-session"

    def test_initialize_with_malformed_client_info(self, client: TestClient) -> None:
        response = client.post(
            "/mcp",
            json=rpc(
                "initialize", {"protocolVersion": "2025-03-26", "clientInfo": "x"}
            ),
            headers=AUTH,
        )
        assert response.status_code == 200
        body = response.json()
        assert "error" not in body
        assert body["result"]["protocolVersion"] == "2025-03-26"
        assert "mcp-session-id" in response.headers

    def test_session_calls_echo_header(self, client: TestClient) -> None:
        session_id = initialize(client)
        response = client.post(
            "/mcp",
            json=rpc("tools/list"),
            headers={**AUTH, "Mcp-Session-Id": session_id},
        )
        assert response.status_code == 200
        assert response.headers["mcp-session-id"] == session_id
        names = [t["name"] for t in response.json()["result"]["tools"]]
        assert names == ["search_models", "generate_image"]

    def test_stale_session(self, client: TestClient) -> None:
        response = client.post(
            "/mcp",
            json=rpc("tools/list"),
            headers={**AUTH, "Mcp-Session-Id": "does-not-exist"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": -32600,
            "message": "Invalid session. Please re-initialize.",
        }

    def test_stateless_call(self, client: TestClient) -> None:
        """Calls without a session header are served without a session."""
        response = client.post("/mcp", json=rpc("tools/list"), headers=AUTH)
        assert response.status_code == 200
        assert "mcp-session-id" not in response.headers

    def test_delete_session(self, client: TestClient) -> None:
        session_id = initialize(client)
        headers = {**AUTH, "Mcp-Session-Id": session_id}

        assert client.delete("/mcp", headers=headers).status_code == 200
        assert client.delete("/mcp", headers=headers).status_code == 404
        response = client.post("/mcp", json=rpc("ping"), headers=headers)
        assert response.status_code == 400

    def test_delete_without_session(self, client: TestClient) -> None:
        response = client.delete("/mcp", headers=AUTH)
        assert response.status_code == 405
        assert response.json()["error"]["code"] == -32000

    def test_stream_without_session(self, client: TestClient) -> None:
        response = client.get("/mcp", headers=AUTH)
        assert response.status_code == 405
        assert response.json()["error"]["code"] == -32000

    def test_stream_unknown_session(self, client: TestClient) -> None:
        response = client.get("/mcp", headers={**AUTH, "Mcp-Session-Id": "nope"})
        assert response.status_code == 404

    def test_second_stream_conflicts(self, client: TestClient) -> None:
        session_id = initialize(client)
        with patch.object(
            SessionTransport, "stream_open", new_callable=PropertyMock, return_value=True
        ):
            response = client.get(
                "/mcp", headers={**AUTH, "Mcp-Session-Id": session_id}
            )
        assert response.status_code == 409

    def test_cors_exposes_session_header(self, client: TestClient) -> None:
        response = client.post(
            "/mcp",
            json=rpc("initialize", {"protocolVersion": "2025-03-26"}),
            headers={**AUTH, "Origin": "https://app.example"},
        )
        exposed = response.headers["access-control-expose-headers"]
        assert "mcp-session-id" in exposed.lower()


class TestToolCallsEndToEnd:
    """Test tools/call through the HTTP endpoint."""

    def test_generate_image_success(self, client: TestClient) -> None:
        with respx.mock(base_url=API) as upstream:
            upstream.post("/models/a/b/predictions").mock(
                return_value=httpx.Response(
                    201,
                    json={
                        "id": "p1",
                        "status": "succeeded",
                        "output": ["https://x/y.png"],
                        "metrics": {"predict_time": 2.1},
                    },
                )
            )
            response = client.post("/mcp", json=GENERATE_CALL, headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == 1
        result = body["result"]
        assert "isError" not in result
        text = result["content"][0]["text"]
        assert "https://x/y.png" in text
        assert "2.1" in text

    def test_generate_image_without_upstream_token(self) -> None:
        """A missing server-side token is a domain error, not a transport error."""
        app = create_app(make_settings(replicate_api_token=None))
        with TestClient(app) as no_token_client:
            response = no_token_client.post("/mcp", json=GENERATE_CALL, headers=AUTH)
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["isError"] is True
        assert "Server Configuration Error" in result["content"][0]["text"]

    def test_invalid_arguments_never_reach_upstream(self, client: TestClient) -> None:
        call = rpc(
            "tools/call",
            {"name": "generate_image", "arguments": {"model": "flux", "extra": 1}},
        )
        with respx.mock(base_url=API) as upstream:
            response = client.post("/mcp", json=call, headers=AUTH)
            assert upstream.calls.call_count == 0

        result = response.json()["result"]
        assert result["isError"] is True
        lines = [
            line
            for line in result["content"][0]["text"].splitlines()
            if line.startswith("- ")
        ]
        assert sorted(line.split(":")[0] for line in lines) == [
            "- extra",
            "- input",
            "- model",
        ]

    def test_unknown_tool(self, client: TestClient) -> None:
        response = client.post(
            "/mcp", json=rpc("tools/call", {"name": "nope"}), headers=AUTH
        )
        assert response.status_code == 200
        error = response.json()["error"]
        assert error["code"] == -32601
        assert error["data"]["available_tools"] == ["search_models", "generate_image"]
