"""
MCP Transport Layer.

JSON-RPC over HTTP POST, with event-stream response frame selection.
"""

from parley.mcp.transport.types import (
    TransportConfig,
    TransportEvent,
    TransportEventType,
    TransportResponse,
)
from parley.mcp.transport.base import (
    Transport,
    TransportError,
    ConnectionError,
    TimeoutError,
    SessionError,
    HTTPStatusError,
    FrameError,
)
from parley.mcp.transport.http import HTTPTransport
from parley.mcp.transport.sse import SSEFrame, iter_frames, select_response

__all__ = [
    "Transport",
    "TransportConfig",
    "TransportEvent",
    "TransportEventType",
    "TransportResponse",
    "TransportError",
    "ConnectionError",
    "TimeoutError",
    "SessionError",
    "HTTPStatusError",
    "FrameError",
    "HTTPTransport",
    "SSEFrame",
    "iter_frames",
    "select_response",
]
