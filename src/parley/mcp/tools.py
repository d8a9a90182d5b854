"""Tool descriptors, call results and result-to-text extraction."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from parley.lib import oj
from parley.mcp.protocol.errors import MCPError


@dataclass(frozen=True)
class ToolDescriptor:
    """One entry of a server's tool catalogue."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolDescriptor":
        """Create from a ``tools/list`` entry."""
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError(f"Tool entry has no name: {data!r}")
        schema = data.get("inputSchema")
        return cls(
            name=name,
            description=data.get("description") or "",
            input_schema=schema if isinstance(schema, dict) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


def _empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


# Installed when the handshake fails so the agent still sees a tool surface.
DEFAULT_FALLBACK_TOOLS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        "get_all_cards_with_name",
        "List every card by name",
        _empty_schema(),
    ),
    ToolDescriptor(
        "get_available_benefit_keywords",
        "List the benefit keywords cards can be searched by",
        _empty_schema(),
    ),
    ToolDescriptor(
        "search_cards_by_benefit",
        "Search cards offering a benefit keyword",
        _empty_schema(),
    ),
    ToolDescriptor(
        "search_cards_by_annual_fee",
        "Search cards within an annual fee range",
        _empty_schema(),
    ),
    ToolDescriptor(
        "get_card_info",
        "Get the details of a single card",
        _empty_schema(),
    ),
    ToolDescriptor(
        "get_event_data",
        "List the currently running events",
        _empty_schema(),
    ),
)


@dataclass
class ToolCallResult:
    """
    Outcome of a ``tools/call`` request.

    Failures of any cause (precondition, network, HTTP status, framing,
    JSON-RPC error) share this shape; ``error_code`` tells them apart.
    """

    success: bool
    content: list[dict[str, Any]] = field(default_factory=list)
    data: Any = None
    error: str | None = None
    error_code: int | None = None

    @classmethod
    def from_result(cls, result: Any) -> "ToolCallResult":
        """Build a successful result from the JSON-RPC ``result`` member."""
        content: list[dict[str, Any]] = []
        if isinstance(result, dict) and isinstance(result.get("content"), list):
            content = [part for part in result["content"] if isinstance(part, dict)]
        return cls(success=True, content=content, data=result)

    @classmethod
    def failure(cls, error: MCPError) -> "ToolCallResult":
        return cls(success=False, error=error.message, error_code=error.code)


def _looks_like_json(text: str) -> bool:
    return text.startswith("{") or text.startswith("[")


def extract_text(result: ToolCallResult) -> str:
    """
    Render a tool call result as text for the agent.

    Text parts are joined with newlines. Text that is itself a JSON
    document is re-dumped indented; anything else is returned as is.
    """
    if not result.success:
        return result.error or "The tool call failed without an error message."

    if not result.content:
        if result.data:
            return oj.dumps_str(result.data, indent=True)
        return "The tool returned no content."

    texts = [
        part["text"]
        for part in result.content
        if part.get("type") == "text" and part.get("text")
    ]
    if not texts:
        return oj.dumps_str(result.content, indent=True)

    text = "\n".join(texts)
    if _looks_like_json(text):
        try:
            return oj.dumps_str(oj.loads(text), indent=True)
        except oj.JSONDecodeError:
            pass
    return text
