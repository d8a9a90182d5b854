"""
Session events decoded from the realtime transport.

The transport delivers loosely typed dicts. decode_event() turns each one
into exactly one of the frozen event classes below; anything it cannot
make sense of becomes Ignored, so nothing downstream touches raw payloads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from parley.session.transcript import Role

logger = logging.getLogger(__name__)

DEFAULT_TRIP_CATEGORY = "OFF_BRAND"
DEFAULT_TRIP_RATIONALE = "Guardrail triggered"


@dataclass(frozen=True)
class ContentPart:
    """One fragment of a history message's content."""

    type: str
    text: str | None = None
    transcript: str | None = None

    @property
    def display_text(self) -> str:
        if self.type in ("text", "input_text", "output_text"):
            return self.text or ""
        if self.type in ("input_audio", "audio", "output_audio"):
            return self.transcript or ""
        return ""


@dataclass(frozen=True)
class AssistantDelta:
    item_id: str
    delta: str


@dataclass(frozen=True)
class UserTranscriptionDelta:
    item_id: str
    delta: str


@dataclass(frozen=True)
class SpeechStarted:
    item_id: str


@dataclass(frozen=True)
class TranscriptionCompleted:
    item_id: str
    transcript: str


@dataclass(frozen=True)
class TurnFinished:
    pass


@dataclass(frozen=True)
class GuardrailTripped:
    """A guardrail flagged assistant output. Without item_id the latest assistant message is meant."""

    category: str = DEFAULT_TRIP_CATEGORY
    rationale: str = DEFAULT_TRIP_RATIONALE
    item_id: str | None = None


@dataclass(frozen=True)
class HistoryMessage:
    item_id: str
    role: Role
    content: tuple[ContentPart, ...] = ()
    completed: bool | None = None

    @property
    def text(self) -> str:
        """Content fragments joined by spaces, trimmed."""
        return " ".join(part.display_text for part in self.content).strip()


@dataclass(frozen=True)
class FunctionCall:
    item_id: str
    name: str
    arguments: Any = None
    output: Any = None


HistoryItem = Union[HistoryMessage, FunctionCall]


@dataclass(frozen=True)
class HistorySnapshot:
    items: tuple[HistoryItem, ...] = ()


@dataclass(frozen=True)
class Ignored:
    type: str
    reason: str


SessionEvent = Union[
    AssistantDelta,
    UserTranscriptionDelta,
    SpeechStarted,
    TranscriptionCompleted,
    TurnFinished,
    GuardrailTripped,
    HistoryMessage,
    FunctionCall,
    HistorySnapshot,
    Ignored,
]

ASSISTANT_DELTA_TYPES = frozenset(
    {
        "response.text.delta",
        "response.audio_transcript.delta",
        "response.output_text.delta",
        "response.output_audio_transcript.delta",
    }
)
USER_DELTA_TYPES = frozenset(
    {
        "conversation.input_audio_transcription.delta",
        "conversation.item.input_audio_transcription.delta",
    }
)


def _item_id(raw: dict[str, Any]) -> str | None:
    value = raw.get("item_id", raw.get("itemId"))
    if isinstance(value, str) and value:
        return value
    return None


def _delta_text(raw: dict[str, Any]) -> Any:
    return raw.get("delta", raw.get("text"))


def _decode_content(raw_content: Any) -> tuple[ContentPart, ...]:
    if not isinstance(raw_content, list):
        return ()
    parts = []
    for part in raw_content:
        if not isinstance(part, dict):
            continue
        text = part.get("text")
        transcript = part.get("transcript")
        parts.append(
            ContentPart(
                type=str(part.get("type", "")),
                text=text if isinstance(text, str) else None,
                transcript=transcript if isinstance(transcript, str) else None,
            )
        )
    return tuple(parts)


def decode_history_item(raw: Any) -> HistoryItem | Ignored:
    """Decode one history item (``message`` or ``function_call``)."""
    if not isinstance(raw, dict):
        return Ignored("history_item", "item is not an object")

    item_type = raw.get("type")
    item_id = _item_id(raw)
    if item_id is None:
        return Ignored(f"history_item:{item_type}", "missing item id")

    if item_type == "message":
        try:
            role = Role(raw.get("role"))
        except ValueError:
            return Ignored("history_item:message", f"unsupported role {raw.get('role')!r}")
        status = raw.get("status")
        return HistoryMessage(
            item_id=item_id,
            role=role,
            content=_decode_content(raw.get("content")),
            completed=None if status is None else status == "completed",
        )

    if item_type == "function_call":
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            return Ignored("history_item:function_call", "missing tool name")
        return FunctionCall(
            item_id=item_id,
            name=name,
            arguments=raw.get("arguments"),
            output=raw.get("output"),
        )

    return Ignored(f"history_item:{item_type}", "unsupported item type")


def _decode_guardrail(raw: dict[str, Any]) -> GuardrailTripped:
    info = raw.get("info") if isinstance(raw.get("info"), dict) else {}
    category = raw.get("category") or info.get("category") or DEFAULT_TRIP_CATEGORY
    rationale = raw.get("rationale") or info.get("rationale") or DEFAULT_TRIP_RATIONALE
    return GuardrailTripped(
        category=str(category),
        rationale=str(rationale),
        item_id=_item_id(raw),
    )


def decode_event(raw: Any) -> SessionEvent:
    """
    Decode one raw transport event.

    Never raises. Unknown tags and malformed payloads come back as Ignored.
    """
    if not isinstance(raw, dict):
        return Ignored("", "event is not an object")

    event_type = raw.get("type")
    if not isinstance(event_type, str):
        return Ignored("", "event has no type")

    if event_type in ASSISTANT_DELTA_TYPES:
        item_id = _item_id(raw)
        delta = _delta_text(raw)
        if item_id is None or not isinstance(delta, str) or not delta:
            return Ignored(event_type, "missing item id or delta")
        return AssistantDelta(item_id, delta)

    if event_type in USER_DELTA_TYPES:
        item_id = _item_id(raw)
        delta = _delta_text(raw)
        if item_id is None or not isinstance(delta, str):
            return Ignored(event_type, "missing item id or delta")
        return UserTranscriptionDelta(item_id, delta)

    if event_type == "input_audio_buffer.speech_started":
        item_id = _item_id(raw)
        if item_id is None:
            return Ignored(event_type, "missing item id")
        return SpeechStarted(item_id)

    if event_type == "conversation.item.input_audio_transcription.completed":
        item_id = _item_id(raw)
        transcript = raw.get("transcript", "")
        if item_id is None or not isinstance(transcript, str):
            return Ignored(event_type, "missing item id or transcript")
        return TranscriptionCompleted(item_id, transcript)

    if event_type == "response.done":
        return TurnFinished()

    if event_type == "guardrail_tripped":
        return _decode_guardrail(raw)

    if event_type == "history_added":
        return decode_history_item(raw.get("item"))

    if event_type == "history_updated":
        history = raw.get("history", raw.get("items"))
        if not isinstance(history, list):
            return Ignored(event_type, "history is not a list")
        items = []
        for entry in history:
            decoded = decode_history_item(entry)
            if isinstance(decoded, Ignored):
                logger.debug(f"Skipping history entry: {decoded.reason}")
                continue
            items.append(decoded)
        return HistorySnapshot(tuple(items))

    return Ignored(event_type, "unknown event type")
