"""Transport configuration, observability events and raw responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any
from urllib.parse import urlparse

EVENT_STREAM = "text/event-stream"
MCP_SESSION_HEADER = "Mcp-Session-Id"
ACCEPT = f"application/json, {EVENT_STREAM}"
LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1", "[::1]")


class TransportEventType(Enum):
    CONNECTING = auto()
    CONNECTED = auto()
    DISCONNECTING = auto()
    DISCONNECTED = auto()
    PROBE = auto()
    MESSAGE_SENT = auto()
    MESSAGE_RECEIVED = auto()
    SESSION_ESTABLISHED = auto()
    ERROR = auto()


@dataclass
class TransportEvent:
    """Something the transport did, for logging and diagnostics."""

    type: TransportEventType
    timestamp: float
    data: dict[str, Any] | None = None
    error: Exception | None = None

    def __str__(self) -> str:
        text = f"[{self.type.name}]"
        if self.data:
            text += f" {self.data}"
        if self.error:
            text += f" error={self.error}"
        return text


@dataclass
class TransportConfig:
    """
    Where and how to reach one MCP endpoint.

    Plain http:// is refused unless the host is local. Timeouts are in
    seconds; max_concurrent_requests bounds in-flight POSTs.
    """

    url: str
    timeout: float = 15.0
    connect_timeout: float = 10.0
    headers: dict[str, str] = field(default_factory=dict)
    max_concurrent_requests: int = 10
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("url is required")
        if self.url.startswith("http://") and not self.is_local:
            raise ValueError("Remote connections must use https://")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")
        if self.max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be at least 1")

    @property
    def is_local(self) -> bool:
        return (urlparse(self.url).hostname or "") in LOCAL_HOSTS

    def post_headers(self, session_id: str | None = None) -> dict[str, str]:
        """Per-request headers for a JSON-RPC POST, on top of the client defaults."""
        headers = {
            "Content-Type": "application/json",
            "Accept": ACCEPT,
            "Cache-Control": "no-cache",
        }
        if session_id:
            headers[MCP_SESSION_HEADER] = session_id
        return headers


@dataclass(frozen=True)
class TransportResponse:
    """The parts of an HTTP reply the JSON-RPC layer looks at."""

    status_code: int
    content_type: str
    body: bytes
    reason: str = ""
    session_id: str | None = None

    @property
    def is_event_stream(self) -> bool:
        return EVENT_STREAM in self.content_type

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")
