"""Abstract base transport and error types."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

from parley.mcp.transport.types import TransportConfig, TransportEvent, TransportEventType

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Base exception for transport errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ConnectionError(TransportError):
    """Server could not be reached (DNS, refused, reset)."""

    pass


class TimeoutError(TransportError):
    """Request or connection timed out."""

    pass


class SessionError(TransportError):
    """Transport used while not connected or while closing."""

    pass


class HTTPStatusError(TransportError):
    """Server answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class FrameError(TransportError):
    """Response body held no usable JSON-RPC message."""

    pass


class Transport(ABC):
    """
    One JSON-RPC message out, its single response back.

    Implementations keep no protocol state beyond the server-issued
    session id. Observers registered with on_event() see every step; a
    failing observer is logged and skipped.
    """

    def __init__(self, config: TransportConfig):
        self.config = config
        self._event_handlers: list[Callable[[TransportEvent], None]] = []

    def on_event(self, handler: Callable[[TransportEvent], None]) -> None:
        self._event_handlers.append(handler)

    def _emit(
        self,
        event_type: TransportEventType,
        data: dict[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        event = TransportEvent(type=event_type, timestamp=time.time(), data=data, error=error)
        for handler in self._event_handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Transport event handler failed for {event}")

    @abstractmethod
    async def connect(self) -> None:
        """
        Prepare the transport for sending.

        Raises:
            ConnectionError: If the transport cannot be prepared.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Release all resources. Safe to call more than once."""

    @abstractmethod
    async def send(self, message: dict, expect_response: bool = True) -> dict | None:
        """
        Send a JSON-RPC message to the server.

        Args:
            message: JSON-RPC request or notification.
            expect_response: False for notifications; the body is not read.

        Returns:
            The JSON-RPC response dict, or None when no response is expected.

        Raises:
            TimeoutError: The request timed out.
            ConnectionError: The server could not be reached.
            HTTPStatusError: The server answered with a non-2xx status.
            FrameError: No JSON-RPC response could be read from the body.
            SessionError: The transport is not connected.
        """

    @abstractmethod
    async def probe(self, timeout: float) -> None:
        """
        Check that the endpoint answers at all.

        Raises:
            TransportError: If the endpoint is unreachable or unhealthy.
        """

    @abstractmethod
    def is_connected(self) -> bool: ...

    @property
    @abstractmethod
    def session_id(self) -> str | None:
        """Session id issued by the server, sent back on every later request."""

    @abstractmethod
    def clear_session(self) -> None: ...

    async def __aenter__(self) -> "Transport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
