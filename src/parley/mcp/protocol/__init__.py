"""
MCP Protocol Core.

JSON-RPC 2.0 message types, error codes and the session state machine.
"""

from parley.mcp.protocol.messages import (
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCNotification,
    RequestIds,
)
from parley.mcp.protocol.errors import (
    MCPError,
    PARSE_ERROR,
    INVALID_PARAMS,
    INTERNAL_ERROR,
    REQUEST_TIMEOUT,
    NETWORK_ERROR,
    HTTP_STATUS_ERROR,
    NOT_CONNECTED,
    TOOL_NOT_FOUND,
)
from parley.mcp.protocol.state import (
    ConnectionState,
    ConnectionStateMachine,
    InvalidStateTransition,
)

__all__ = [
    # Messages
    "JSONRPCRequest",
    "JSONRPCResponse",
    "JSONRPCNotification",
    "RequestIds",
    # Errors
    "MCPError",
    "PARSE_ERROR",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "REQUEST_TIMEOUT",
    "NETWORK_ERROR",
    "HTTP_STATUS_ERROR",
    "NOT_CONNECTED",
    "TOOL_NOT_FOUND",
    # State
    "ConnectionState",
    "ConnectionStateMachine",
    "InvalidStateTransition",
]
