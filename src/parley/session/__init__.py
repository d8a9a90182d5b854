"""
Realtime session core.

Decodes transport events, reduces them into a transcript, tracks agent
handoffs and guardrail verdicts, and owns the session lifecycle.
"""

from parley.session.transcript import (
    Role,
    ItemKind,
    ItemStatus,
    GuardrailStatus,
    GuardrailVerdict,
    PASS_VERDICT,
    IN_PROGRESS_VERDICT,
    TranscriptItem,
    TranscriptStore,
    DuplicateItemError,
)
from parley.session.events import (
    ContentPart,
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
    SessionEvent,
    decode_event,
    decode_history_item,
)
from parley.session.handoff import AgentRoster, parse_handoff_target
from parley.session.guardrails import (
    GuardrailClassification,
    GuardrailOutcome,
    OutputGuardrail,
)
from parley.session.reducer import SessionEventReducer, TRANSCRIBING_PLACEHOLDER
from parley.session.controller import (
    RealtimeTransport,
    SessionController,
    SessionNotConnected,
    SessionStatus,
)

__all__ = [
    # Transcript
    "Role",
    "ItemKind",
    "ItemStatus",
    "GuardrailStatus",
    "GuardrailVerdict",
    "PASS_VERDICT",
    "IN_PROGRESS_VERDICT",
    "TranscriptItem",
    "TranscriptStore",
    "DuplicateItemError",
    # Events
    "ContentPart",
    "AssistantDelta",
    "UserTranscriptionDelta",
    "SpeechStarted",
    "TranscriptionCompleted",
    "TurnFinished",
    "GuardrailTripped",
    "HistoryMessage",
    "FunctionCall",
    "HistorySnapshot",
    "Ignored",
    "SessionEvent",
    "decode_event",
    "decode_history_item",
    # Handoff
    "AgentRoster",
    "parse_handoff_target",
    # Guardrails
    "GuardrailClassification",
    "GuardrailOutcome",
    "OutputGuardrail",
    # Reducer / controller
    "SessionEventReducer",
    "TRANSCRIBING_PLACEHOLDER",
    "RealtimeTransport",
    "SessionController",
    "SessionNotConnected",
    "SessionStatus",
]
