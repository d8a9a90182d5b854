"""Protocol error types and error codes."""

from dataclasses import dataclass
from typing import Any

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Client-side codes (-32000 to -32099 reserved for implementation)
REQUEST_TIMEOUT = -32001
NETWORK_ERROR = -32010
HTTP_STATUS_ERROR = -32011
NOT_CONNECTED = -32012
TOOL_NOT_FOUND = -32013

# Error code to message mapping
ERROR_MESSAGES = {
    PARSE_ERROR: "Parse error",
    INVALID_PARAMS: "Invalid params",
    INTERNAL_ERROR: "Internal error",
    REQUEST_TIMEOUT: "Request timeout",
    NETWORK_ERROR: "Network error",
    HTTP_STATUS_ERROR: "HTTP error",
    NOT_CONNECTED: "Not connected",
    TOOL_NOT_FOUND: "Tool not found",
}


@dataclass
class MCPError(Exception):
    """
    MCP protocol error.

    Represents errors from the JSON-RPC layer, the transport under it, or
    client-side precondition checks. Can be converted to/from JSON-RPC
    error objects.
    """

    code: int
    message: str
    data: dict[str, Any] | None = None

    def __post_init__(self):
        # Set exception message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-RPC error object."""
        error = {
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            error["data"] = self.data
        return error

    @classmethod
    def from_dict(cls, error: dict[str, Any]) -> "MCPError":
        """Create from JSON-RPC error object."""
        data = error.get("data")
        return cls(
            code=error.get("code", INTERNAL_ERROR),
            message=error.get("message", "Unknown error"),
            data=data if isinstance(data, dict) else None,
        )

    @classmethod
    def parse_error(cls, details: str | None = None) -> "MCPError":
        """Create a parse error."""
        return cls(
            code=PARSE_ERROR,
            message=details or ERROR_MESSAGES[PARSE_ERROR],
            data={"details": details} if details else None,
        )

    @classmethod
    def internal_error(cls, details: str | None = None) -> "MCPError":
        """Create an internal error."""
        return cls(
            code=INTERNAL_ERROR,
            message=details or ERROR_MESSAGES[INTERNAL_ERROR],
        )

    @classmethod
    def timeout(cls, timeout_seconds: float) -> "MCPError":
        """Create a request timeout error."""
        return cls(
            code=REQUEST_TIMEOUT,
            message=f"Request timed out after {timeout_seconds}s",
            data={"timeout": timeout_seconds},
        )

    @classmethod
    def network(cls, details: str) -> "MCPError":
        """Create a network error (server unreachable)."""
        return cls(code=NETWORK_ERROR, message=details)

    @classmethod
    def http_status(cls, status_code: int, details: str) -> "MCPError":
        """Create an error for a non-2xx HTTP answer."""
        return cls(
            code=HTTP_STATUS_ERROR,
            message=details,
            data={"status": status_code},
        )

    @classmethod
    def not_connected(cls) -> "MCPError":
        """Create an error for calls made while disconnected."""
        return cls(
            code=NOT_CONNECTED,
            message="Not connected to the MCP server",
        )

    @classmethod
    def tool_not_found(cls, name: str, available: list[str]) -> "MCPError":
        """Create an error for a tool missing from the catalogue."""
        listed = ", ".join(available) if available else "(none)"
        return cls(
            code=TOOL_NOT_FOUND,
            message=f"Tool '{name}' not found. Available tools: {listed}",
            data={"tool": name, "available": available},
        )

    def __str__(self) -> str:
        base = f"MCPError({self.code}): {self.message}"
        if self.data:
            base += f" {self.data}"
        return base

    def __repr__(self) -> str:
        return f"MCPError(code={self.code}, message={self.message!r}, data={self.data})"
