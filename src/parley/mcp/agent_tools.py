"""Expose the MCP tool catalogue to a conversational agent."""

from __future__ import annotations

import logging
from typing import Any, Callable

from parley.mcp.client import MCPSessionClient
from parley.mcp.tools import ToolDescriptor, extract_text

logger = logging.getLogger(__name__)

# (title, data) -> None; usually SessionController.add_breadcrumb
BreadcrumbCallback = Callable[[str, Any], None]

NOT_CONNECTED_MESSAGE = (
    "The tool server is not connected, so '{name}' could not be run. "
    "Please try again later."
)


def tool_to_function_schema(tool: ToolDescriptor) -> dict[str, Any]:
    """
    Convert an MCP tool descriptor to the function calling format.

    MCP format:
        {"name": "...", "description": "...", "inputSchema": {...}}

    Function tool format:
        {"type": "function", "name": "...", "description": "...", "parameters": {...}}
    """
    return {
        "type": "function",
        "name": tool.name,
        "description": tool.description,
        "parameters": tool.input_schema or {"type": "object", "properties": {}},
    }


class MCPToolRunner:
    """
    Runs catalogue tools on behalf of the agent.

    Results come back as plain text, which is what the agent consumes.
    Each run leaves breadcrumbs for start, failure and completion. When the
    client is not CONNECTED the runner reconnects up to ``retry_attempts``
    times before giving up; this is the only retry anywhere in the stack.
    """

    def __init__(
        self,
        client: MCPSessionClient,
        breadcrumb: BreadcrumbCallback | None = None,
        retry_attempts: int | None = None,
    ):
        self.client = client
        self._breadcrumb = breadcrumb
        self.retry_attempts = (
            retry_attempts if retry_attempts is not None else client.config.retry_attempts
        )

    def function_tools(self) -> list[dict[str, Any]]:
        """Function tool schemas for the current catalogue."""
        return [tool_to_function_schema(tool) for tool in self.client.tools]

    def _crumb(self, title: str, data: Any = None) -> None:
        if self._breadcrumb is None:
            return
        try:
            self._breadcrumb(title, data)
        except Exception:
            logger.exception(f"Breadcrumb callback failed for '{title}'")

    async def _ensure_connected(self) -> bool:
        if self.client.is_connected:
            return True

        for attempt in range(1, self.retry_attempts + 1):
            logger.info(
                f"MCP client is {self.client.state}; reconnect attempt "
                f"{attempt}/{self.retry_attempts}"
            )
            if await self.client.reconnect():
                return True
        return False

    async def run(self, name: str, arguments: dict[str, Any] | None = None) -> str:
        """
        Run a tool and return its result as text.

        Never raises; failures are returned as text for the agent.
        """
        self._crumb(f"Tool started: {name}", {"arguments": arguments or {}})

        if not await self._ensure_connected():
            message = NOT_CONNECTED_MESSAGE.format(name=name)
            self._crumb(f"Tool failed: {name}", {"error": message})
            return message

        result = await self.client.call_tool(name, arguments)
        if not result.success:
            self._crumb(
                f"Tool failed: {name}",
                {"error": result.error, "code": result.error_code},
            )
            return f"Tool '{name}' failed: {result.error}"

        text = extract_text(result)
        self._crumb(f"Tool done: {name}", {"response": text})
        return text
