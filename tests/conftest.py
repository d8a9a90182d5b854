"""Pytest configuration and fixtures."""

from __future__ import annotations

import inspect
from typing import Any, Callable

import httpx
import pytest

from parley.lib import oj
from parley.mcp.client import MCPSessionClient
from parley.mcp.config import MCPClientConfig
from parley.mcp.transport.http import HTTPTransport

MCP_URL = "https://mcp.example.com/mcp"

DEFAULT_TOOLS = [
    {
        "name": "get_card_info",
        "description": "Get the details of a single card",
        "inputSchema": {
            "type": "object",
            "properties": {"url": {"type": "string"}},
            "required": ["url"],
        },
    },
    {
        "name": "get_event_data",
        "description": "List the currently running events",
        "inputSchema": {"type": "object", "properties": {}},
    },
]


def json_response(payload: Any, headers: dict[str, str] | None = None, status: int = 200) -> httpx.Response:
    all_headers = {"Content-Type": "application/json"}
    all_headers.update(headers or {})
    return httpx.Response(status, content=oj.dumps(payload), headers=all_headers)


def sse_response(*frames: str, headers: dict[str, str] | None = None) -> httpx.Response:
    body = "".join(f"event: message\ndata: {frame}\n\n" for frame in frames)
    all_headers = {"Content-Type": "text/event-stream"}
    all_headers.update(headers or {})
    return httpx.Response(200, content=body.encode(), headers=all_headers)


ToolHandler = Callable[[dict[str, Any]], Any]


class FakeMCPServer:
    """
    Scripted MCP server behind httpx.MockTransport.

    GET answers the liveness probe. POST answers initialize, tools/list and
    tools/call. Tool handlers receive the JSON-RPC message and return either
    a result dict or a ready httpx.Response; they may be coroutines.
    """

    def __init__(self, tools: list[dict[str, Any]] | None = None, session_id: str | None = "session-abc"):
        self.tools = list(DEFAULT_TOOLS) if tools is None else tools
        self.session_id = session_id
        self.probe_status = 200
        self.errors: dict[str, dict[str, Any]] = {}
        self.tool_handlers: dict[str, ToolHandler] = {}
        self.requests: list[httpx.Request] = []
        self.messages: list[dict[str, Any]] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @property
    def methods(self) -> list[str]:
        return [message.get("method") for message in self.messages]

    @property
    def post_requests(self) -> list[httpx.Request]:
        return [request for request in self.requests if request.method == "POST"]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            return httpx.Response(self.probe_status)

        message = oj.loads(request.content)
        self.messages.append(message)
        method = message.get("method")

        headers = {}
        if method == "initialize" and self.session_id:
            headers["Mcp-Session-Id"] = self.session_id

        if "id" not in message:
            return httpx.Response(202, headers=headers)

        if method in self.errors:
            return json_response(
                {"jsonrpc": "2.0", "id": message["id"], "error": self.errors[method]},
                headers,
            )

        if method == "initialize":
            result: Any = {
                "protocolVersion": "2024-11-05",
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "fake-mcp", "version": "1.0"},
            }
        elif method == "tools/list":
            result = {"tools": self.tools}
        elif method == "tools/call":
            name = message["params"]["name"]
            handler = self.tool_handlers.get(name)
            if handler is None:
                result = {"content": [{"type": "text", "text": f"{name} ok"}]}
            else:
                result = handler(message)
                if inspect.isawaitable(result):
                    result = await result
                if isinstance(result, httpx.Response):
                    return result
        else:
            result = {}

        return json_response({"jsonrpc": "2.0", "id": message["id"], "result": result}, headers)


@pytest.fixture
def mcp_server():
    return FakeMCPServer()


@pytest.fixture
def mcp_config():
    return MCPClientConfig(base_url=MCP_URL, timeout=1.0, probe_timeout=1.0)


@pytest.fixture
def make_client(mcp_server, mcp_config):
    """Build an MCPSessionClient wired to the fake server."""

    def _make(config: MCPClientConfig | None = None, server: FakeMCPServer | None = None) -> MCPSessionClient:
        config = config or mcp_config
        server = server or mcp_server
        transport = HTTPTransport(config.to_transport_config(), http_transport=server.transport)
        return MCPSessionClient(config, transport=transport)

    return _make
