"""
MCP (Model Context Protocol) client for Parley.

Gives the realtime agent access to tools on a remote MCP server.

Submodules:
- transport: JSON-RPC over HTTP POST, event-stream frame selection
- protocol: JSON-RPC 2.0 messages, error codes, session state machine
- client: handshake, tool catalogue, tool calls
- agent_tools: catalogue as function tools for the agent
"""

# Transport layer
from parley.mcp.transport import (
    HTTPTransport,
    TransportConfig,
    Transport,
    TransportError,
    ConnectionError,
    TimeoutError,
    SessionError,
    HTTPStatusError,
    FrameError,
    select_response,
)

# Protocol layer
from parley.mcp.protocol import (
    MCPError,
    ConnectionState,
    ConnectionStateMachine,
    InvalidStateTransition,
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCNotification,
)

# Client
from parley.mcp.config import MCPClientConfig, load_mcp_config
from parley.mcp.tools import (
    ToolDescriptor,
    ToolCallResult,
    DEFAULT_FALLBACK_TOOLS,
    extract_text,
)
from parley.mcp.client import MCPSessionClient
from parley.mcp.agent_tools import MCPToolRunner, tool_to_function_schema

__all__ = [
    # Transport
    "HTTPTransport",
    "TransportConfig",
    "Transport",
    "TransportError",
    "ConnectionError",
    "TimeoutError",
    "SessionError",
    "HTTPStatusError",
    "FrameError",
    "select_response",
    # Protocol
    "MCPError",
    "ConnectionState",
    "ConnectionStateMachine",
    "InvalidStateTransition",
    "JSONRPCRequest",
    "JSONRPCResponse",
    "JSONRPCNotification",
    # Client
    "MCPClientConfig",
    "load_mcp_config",
    "ToolDescriptor",
    "ToolCallResult",
    "DEFAULT_FALLBACK_TOOLS",
    "extract_text",
    "MCPSessionClient",
    "MCPToolRunner",
    "tool_to_function_schema",
]
