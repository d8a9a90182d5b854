"""HTTP transport for JSON-RPC exchanges with an MCP server."""

from __future__ import annotations

import asyncio
import logging

import httpx

from parley.lib import oj
from parley.mcp.transport.base import (
    Transport,
    ConnectionError,
    TimeoutError,
    SessionError,
    HTTPStatusError,
    FrameError,
    TransportError,
)
from parley.mcp.transport.sse import select_response
from parley.mcp.transport.types import (
    MCP_SESSION_HEADER,
    TransportConfig,
    TransportEventType,
    TransportResponse,
)

logger = logging.getLogger(__name__)


class HTTPTransport(Transport):
    """
    Request/response transport over HTTP POST.

    Each send() is one POST carrying one JSON-RPC message. The reply is
    either a single JSON document or an event-stream body, from which the
    response frame is selected. The server-issued session id is captured
    from the ``Mcp-Session-Id`` response header and sent back on every
    later request.
    """

    MCP_SESSION_HEADER = MCP_SESSION_HEADER

    def __init__(
        self,
        config: TransportConfig,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            config: Transport configuration.
            http_transport: Optional httpx transport (e.g. httpx.MockTransport).
        """
        super().__init__(config)
        self._http_transport = http_transport
        self._client: httpx.AsyncClient | None = None
        self._session_id: str | None = None
        self._closing = False
        self._request_semaphore: asyncio.Semaphore | None = None

    async def connect(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return

        self._emit(TransportEventType.CONNECTING, {"url": self.config.url})
        try:
            # Posting to the full URL; base_url would append a trailing slash
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout, connect=self.config.connect_timeout),
                headers=self.config.headers,
                verify=self.config.verify_ssl,
                transport=self._http_transport,
            )
        except Exception as e:
            self._emit(TransportEventType.ERROR, error=e)
            raise ConnectionError(f"Failed to initialize HTTP client: {e}", cause=e)

        self._request_semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)
        self._closing = False
        self._emit(TransportEventType.CONNECTED)

    async def disconnect(self) -> None:
        """Close the HTTP client and forget the session."""
        if self._client is None:
            return

        self._closing = True
        self._emit(TransportEventType.DISCONNECTING)
        try:
            await self._client.aclose()
        finally:
            self._client = None
            self._closing = False
            self._session_id = None
        self._emit(TransportEventType.DISCONNECTED)

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise SessionError("Transport not connected")
        if self._closing:
            raise SessionError("Transport is closing")
        return self._client

    async def probe(self, timeout: float) -> None:
        """GET the endpoint and require a 2xx answer within ``timeout``."""
        client = self._require_client()
        try:
            try:
                response = await client.get(self.config.url, timeout=timeout)
            except httpx.TimeoutException as e:
                raise TimeoutError(f"Liveness probe timed out after {timeout}s", cause=e)
            except httpx.HTTPError as e:
                raise ConnectionError(f"Liveness probe failed: {e}", cause=e)

            self._emit(TransportEventType.PROBE, {"status": response.status_code})
            if not response.is_success:
                raise HTTPStatusError(
                    response.status_code,
                    f"Liveness probe returned HTTP {response.status_code} {response.reason_phrase}",
                )
        except TransportError as e:
            self._emit(TransportEventType.ERROR, {"stage": "probe"}, error=e)
            raise

    async def send(self, message: dict, expect_response: bool = True) -> dict | None:
        """Send one JSON-RPC message via HTTP POST."""
        client = self._require_client()
        async with self._request_semaphore:
            try:
                return await self._exchange(client, message, expect_response)
            except TransportError as e:
                self._emit(
                    TransportEventType.ERROR,
                    {"method": message.get("method"), "id": message.get("id")},
                    error=e,
                )
                raise

    async def _exchange(
        self,
        client: httpx.AsyncClient,
        message: dict,
        expect_response: bool,
    ) -> dict | None:
        method, request_id = message.get("method"), message.get("id")
        self._emit(TransportEventType.MESSAGE_SENT, {"method": method, "id": request_id})
        logger.debug(f"POST {self.config.url} method={method} id={request_id} session={self._session_id}")

        try:
            http_response = await client.post(
                self.config.url,
                content=oj.dumps(message),
                headers=self.config.post_headers(self._session_id),
            )
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Request timed out: {e}", cause=e)
        except httpx.HTTPError as e:
            raise ConnectionError(f"HTTP error: {e}", cause=e)

        response = TransportResponse(
            status_code=http_response.status_code,
            content_type=http_response.headers.get("Content-Type", ""),
            body=http_response.content,
            reason=http_response.reason_phrase,
            session_id=http_response.headers.get(MCP_SESSION_HEADER),
        )
        self._capture_session(response)

        if response.status_code >= 400:
            raise HTTPStatusError(
                response.status_code,
                f"HTTP {response.status_code}: {response.reason} - {response.text}",
            )
        if not expect_response:
            return None

        result = self._parse_body(response)
        self._emit(TransportEventType.MESSAGE_RECEIVED, {"id": result.get("id")})
        return result

    def _capture_session(self, response: TransportResponse) -> None:
        if response.session_id and response.session_id != self._session_id:
            self._session_id = response.session_id
            logger.debug(f"Session established: {response.session_id}")
            self._emit(TransportEventType.SESSION_ESTABLISHED, {"session_id": response.session_id})

    @staticmethod
    def _parse_body(response: TransportResponse) -> dict:
        if response.is_event_stream:
            return select_response(response.text)

        try:
            result = oj.loads(response.body)
        except oj.JSONDecodeError as e:
            raise FrameError(f"Failed to parse response: {e}", cause=e)

        if not isinstance(result, dict):
            raise FrameError(f"Expected a JSON-RPC object, got {type(result).__name__}")
        return result

    def is_connected(self) -> bool:
        return self._client is not None and not self._closing

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def clear_session(self) -> None:
        self._session_id = None
