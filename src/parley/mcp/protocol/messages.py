"""
JSON-RPC 2.0 envelopes exchanged with an MCP server.

The client only ever sends requests and notifications and only ever reads
responses, so that is all that is modelled here. Server errors are carried
as MCPError so callers can raise them unchanged.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any

from parley.mcp.protocol.errors import MCPError

JSONRPC_VERSION = "2.0"


class RequestIds:
    """
    Monotonic request id source, starting at 1.

    One instance lives as long as its client; reconnecting does not reset
    it, so ids stay unique across sessions.
    """

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def next(self) -> int:
        return next(self._counter)


@dataclass(frozen=True)
class JSONRPCRequest:
    method: str
    id: int
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        msg: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id, "method": self.method}
        if self.params is not None:
            msg["params"] = self.params
        return msg

    def __str__(self) -> str:
        return f"Request({self.method}, id={self.id})"


@dataclass(frozen=True)
class JSONRPCNotification:
    """A message without an id. The server sends no JSON-RPC response."""

    method: str
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        msg: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params is not None:
            msg["params"] = self.params
        return msg

    def __str__(self) -> str:
        return f"Notification({self.method})"


@dataclass(frozen=True)
class JSONRPCResponse:
    """A decoded response. Exactly one of result and error is meaningful."""

    id: int | str | None
    result: Any = None
    error: MCPError | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def answers(self, request: JSONRPCRequest) -> bool:
        """
        Check whether this response belongs to the request.

        Servers that omit the id on error responses are given the benefit
        of the doubt.
        """
        return self.id is None or self.id == request.id

    def unwrap(self) -> Any:
        """
        Return the result.

        Raises:
            MCPError: The server's error, code and message preserved.
        """
        if self.error is not None:
            raise self.error
        return self.result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JSONRPCResponse:
        error = data.get("error")
        return cls(
            id=data.get("id"),
            result=data.get("result"),
            error=MCPError.from_dict(error) if isinstance(error, dict) else None,
        )

    def __str__(self) -> str:
        if self.error is not None:
            return f"Response(id={self.id}, error={self.error.code})"
        return f"Response(id={self.id}, ok)"
