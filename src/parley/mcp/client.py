"""MCP session client: handshake, tool catalogue and tool calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from parley.mcp.config import MCPClientConfig
from parley.mcp.protocol.errors import MCPError
from parley.mcp.protocol.messages import (
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    RequestIds,
)
from parley.mcp.protocol.state import ConnectionState, ConnectionStateMachine
from parley.mcp.tools import ToolCallResult, ToolDescriptor
from parley.mcp.transport.base import (
    ConnectionError,
    FrameError,
    HTTPStatusError,
    SessionError,
    TimeoutError,
    Transport,
    TransportError,
)
from parley.mcp.transport.http import HTTPTransport

logger = logging.getLogger(__name__)


def _to_mcp_error(error: TransportError, timeout: float) -> MCPError:
    """Map a transport failure onto a distinct protocol error code."""
    if isinstance(error, TimeoutError):
        return MCPError.timeout(timeout)
    if isinstance(error, HTTPStatusError):
        return MCPError.http_status(error.status_code, str(error))
    if isinstance(error, FrameError):
        return MCPError.parse_error(str(error))
    if isinstance(error, ConnectionError):
        return MCPError.network(str(error))
    if isinstance(error, SessionError):
        return MCPError.not_connected()
    return MCPError.internal_error(str(error))


class MCPSessionClient:
    """
    Client for one MCP server session.

    Runs the handshake (probe, ``initialize``, ``notifications/initialized``,
    ``tools/list``) and falls back to a fixed tool catalogue when any step
    fails. Tool calls race freely; each one gets its own request id and its
    own timeout. Nothing is retried here; callers may use ``reconnect()``.
    """

    def __init__(
        self,
        config: MCPClientConfig,
        transport: Transport | None = None,
    ):
        """
        Args:
            config: Client configuration.
            transport: Transport to use (defaults to HTTPTransport for config.base_url).
        """
        self.config = config
        self.transport = transport or HTTPTransport(config.to_transport_config())

        self._state = ConnectionStateMachine()
        self._tools: list[ToolDescriptor] = []
        # Shared across reconnects so ids stay unique for the client's lifetime
        self._request_ids = RequestIds()
        self._server_info: dict[str, Any] | None = None
        # Bumped by initialize, reconnect and disconnect
        self._attempt = 0

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state.state

    @property
    def is_connected(self) -> bool:
        """True only after a fully successful handshake."""
        return self._state.is_connected

    @property
    def session_id(self) -> str | None:
        """Session id issued by the server, if any."""
        return self.transport.session_id

    @property
    def tools(self) -> list[ToolDescriptor]:
        """Copy of the current tool catalogue."""
        return list(self._tools)

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self._tools]

    @property
    def server_info(self) -> dict[str, Any] | None:
        """``serverInfo`` from the initialize response."""
        return self._server_info

    def on_state_change(
        self,
        callback: Callable[[ConnectionState, ConnectionState], None],
    ) -> None:
        """Register callback for state changes."""
        self._state.on_transition(callback)

    async def initialize(self) -> ConnectionState:
        """
        Run the handshake and load the tool catalogue.

        Never raises. Any failure leaves the client DEGRADED with the
        fallback catalogue installed.

        Returns:
            The resulting state (CONNECTED or DEGRADED).
        """
        if self._state.state != ConnectionState.DISCONNECTED:
            logger.warning(f"initialize() called in state {self.state}; ignoring")
            return self.state

        self._attempt += 1
        attempt = self._attempt
        self._state.transition(ConnectionState.INITIALIZING)
        logger.info(f"Initializing MCP session with {self.config.base_url}")

        try:
            if not self.transport.is_connected():
                await self.transport.connect()
            await self._probe()
            if self._abandoned(attempt):
                return self.state
            await self._handshake()
            if self._abandoned(attempt):
                return self.state
            tools = await self._list_tools()
        except (MCPError, TransportError, ValueError) as e:
            return self._degrade(attempt, str(e))
        except Exception as e:
            logger.exception("Unexpected error during MCP initialization")
            return self._degrade(attempt, str(e))

        if self._abandoned(attempt):
            return self.state

        self._tools = tools
        self._state.transition(ConnectionState.CONNECTED)
        logger.info(
            f"MCP session ready: session={self.session_id} tools={len(tools)}"
        )
        return self.state

    def _abandoned(self, attempt: int) -> bool:
        # disconnect() or reconnect() ran while the handshake was in flight
        if attempt == self._attempt and self._state.state == ConnectionState.INITIALIZING:
            return False
        logger.info(f"Handshake abandoned; session is now {self.state}")
        return True

    def _degrade(self, attempt: int, reason: str) -> ConnectionState:
        if self._abandoned(attempt):
            return self.state
        logger.warning(f"MCP initialization failed, using fallback tools: {reason}")
        self._tools = list(self.config.fallback_tools)
        self._state.transition(ConnectionState.DEGRADED)
        return self.state

    async def _probe(self) -> None:
        timeout = self.config.probe_timeout
        try:
            await asyncio.wait_for(self.transport.probe(timeout), timeout=timeout)
        except asyncio.TimeoutError:
            raise MCPError.timeout(timeout)
        except TransportError as e:
            raise _to_mcp_error(e, timeout)

    async def _handshake(self) -> None:
        result = await self.request(
            "initialize",
            {
                "protocolVersion": self.config.protocol_version,
                "capabilities": {"tools": {}},
                "clientInfo": self.config.client_info,
            },
        )
        if isinstance(result, dict) and isinstance(result.get("serverInfo"), dict):
            self._server_info = result["serverInfo"]

        if self.session_id is None:
            logger.warning(
                "Server issued no session id; skipping notifications/initialized"
            )
            return

        await self.notify("notifications/initialized", {})

    async def _list_tools(self) -> list[ToolDescriptor]:
        result = await self.request("tools/list", {})
        entries = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(entries, list):
            raise MCPError.parse_error("tools/list result has no tools array")
        return [ToolDescriptor.from_dict(entry) for entry in entries]

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Send a request and wait for its response.

        Args:
            method: The RPC method name.
            params: Optional method parameters.
            timeout: Per-call timeout (defaults to config.timeout).

        Returns:
            The ``result`` member of the response.

        Raises:
            MCPError: On timeout, transport failure or error response.
        """
        if self._state.state == ConnectionState.DISCONNECTED:
            raise MCPError.not_connected()

        request = JSONRPCRequest(
            method=method,
            id=self._request_ids.next(),
            params=params,
        )
        effective_timeout = timeout if timeout is not None else self.config.timeout
        logger.debug(f"-> {request}")

        try:
            message = await asyncio.wait_for(
                self.transport.send(request.to_dict()),
                timeout=effective_timeout,
            )
        except asyncio.TimeoutError:
            raise MCPError.timeout(effective_timeout)
        except TransportError as e:
            raise _to_mcp_error(e, effective_timeout)

        response = JSONRPCResponse.from_dict(message)
        logger.debug(f"<- {response}")

        if not response.answers(request):
            raise MCPError.parse_error(
                f"Response id {response.id} does not match request id {request.id}"
            )

        return response.unwrap()

    async def notify(
        self,
        method: str,
        params: dict[str, Any] | None = None,
    ) -> None:
        """
        Send a notification (no id, no response read).

        Raises:
            MCPError: If the transport fails.
        """
        if self._state.state == ConnectionState.DISCONNECTED:
            raise MCPError.not_connected()

        notification = JSONRPCNotification(method=method, params=params)
        logger.debug(f"-> {notification}")
        try:
            await asyncio.wait_for(
                self.transport.send(notification.to_dict(), expect_response=False),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError:
            raise MCPError.timeout(self.config.timeout)
        except TransportError as e:
            raise _to_mcp_error(e, self.config.timeout)

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
    ) -> ToolCallResult:
        """
        Invoke a tool from the catalogue.

        Never raises; every failure is reported through the result.
        """
        if not self._state.is_usable:
            return ToolCallResult.failure(MCPError.not_connected())

        if name not in self.tool_names:
            return ToolCallResult.failure(
                MCPError.tool_not_found(name, self.tool_names)
            )

        logger.info(f"Calling tool {name}")
        try:
            result = await self.request(
                "tools/call",
                {"name": name, "arguments": arguments or {}},
            )
        except MCPError as e:
            logger.warning(f"Tool call {name} failed: {e}")
            return ToolCallResult.failure(e)

        return ToolCallResult.from_result(result)

    async def reconnect(self) -> bool:
        """
        Drop the session and rerun the handshake.

        Returns:
            True if the client ends up CONNECTED.
        """
        logger.info("Reconnecting MCP session")
        self._attempt += 1
        self.transport.clear_session()
        self._tools = []
        self._server_info = None
        self._state.reset()
        await self.initialize()
        return self._state.is_connected

    async def disconnect(self) -> None:
        """Close the session and the transport."""
        self._attempt += 1
        if self._state.state in (ConnectionState.CONNECTED, ConnectionState.DEGRADED):
            self._state.transition(ConnectionState.DISCONNECTED)
        else:
            self._state.reset()

        self._tools = []
        self._server_info = None
        self.transport.clear_session()
        await self.transport.disconnect()
        logger.info("MCP session disconnected")

    async def __aenter__(self) -> "MCPSessionClient":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.disconnect()
