"""
Event-stream frame selection.

Some MCP servers answer a POST with a ``text/event-stream`` body that holds
several ``data:`` frames: progress notifications, partial results and the
final result. Only one of them is the response the caller asked for.

Selection rule:
    1. the first frame whose ``result.content`` is non-empty;
    2. otherwise the longest frame that parses as a JSON object.

Frames that do not parse are skipped. The rule mirrors what servers have
been observed to send; it is not guaranteed by the protocol.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterator

from parley.lib import oj
from parley.mcp.transport.base import FrameError

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(r"\r?\n")


@dataclass(frozen=True)
class SSEFrame:
    """One ``data:`` line of an event-stream body."""

    index: int
    data: str
    event: str | None = None
    id: str | None = None


def iter_frames(body: str) -> Iterator[SSEFrame]:
    """
    Yield every data frame in an event-stream body, in order.

    ``event:`` and ``id:`` fields apply to the data lines that follow them
    until the next blank line. Comment lines (leading ``:``) are ignored.
    """
    event: str | None = None
    event_id: str | None = None
    index = 0

    for line in _LINE_SPLIT.split(body):
        if not line.strip():
            event = None
            event_id = None
            continue
        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "data":
            yield SSEFrame(index=index, data=value, event=event, id=event_id)
            index += 1
        elif field == "event":
            event = value
        elif field == "id":
            event_id = value


def _has_content(message: dict[str, Any]) -> bool:
    result = message.get("result")
    if not isinstance(result, dict):
        return False
    return bool(result.get("content"))


def select_response(body: str) -> dict[str, Any]:
    """
    Pick the JSON-RPC response out of an event-stream body.

    Args:
        body: The full response text.

    Returns:
        The selected JSON-RPC message.

    Raises:
        FrameError: If the body has no data frames or none of them parse.
    """
    frames = list(iter_frames(body))
    if not frames:
        raise FrameError("Event stream contained no data frames")

    logger.debug(f"Scanning {len(frames)} event-stream frames")

    longest: tuple[SSEFrame, dict[str, Any]] | None = None

    for frame in frames:
        try:
            parsed = oj.loads(frame.data)
        except oj.JSONDecodeError as e:
            logger.warning(f"Skipping unparseable frame {frame.index}: {e}")
            continue

        if not isinstance(parsed, dict):
            logger.warning(f"Skipping non-object frame {frame.index}")
            continue

        if _has_content(parsed):
            logger.debug(f"Selected frame {frame.index} (has result.content)")
            return parsed

        if longest is None or len(frame.data) > len(longest[0].data):
            longest = (frame, parsed)

    if longest is None:
        raise FrameError(
            f"None of the {len(frames)} event-stream frames could be parsed"
        )

    logger.debug(f"Selected frame {longest[0].index} (longest parseable)")
    return longest[1]
