"""Reduces session events into transcript mutations."""

from __future__ import annotations

import logging
from typing import Any

from parley.session.events import (
    AssistantDelta,
    FunctionCall,
    GuardrailTripped,
    HistoryMessage,
    HistorySnapshot,
    Ignored,
    SessionEvent,
    SpeechStarted,
    TranscriptionCompleted,
    TurnFinished,
    UserTranscriptionDelta,
    decode_event,
)
from parley.session.handoff import AgentRoster
from parley.session.transcript import (
    GuardrailStatus,
    GuardrailVerdict,
    IN_PROGRESS_VERDICT,
    ItemStatus,
    PASS_VERDICT,
    Role,
    TranscriptItem,
    TranscriptStore,
)

logger = logging.getLogger(__name__)

TRANSCRIBING_PLACEHOLDER = "Transcribing…"


def _needs_default_verdict(item: TranscriptItem) -> bool:
    return item.guardrail is None or not item.guardrail.is_terminal


class SessionEventReducer:
    """
    Applies session events to a TranscriptStore.

    Every handler is idempotent under replay of history snapshots, which
    repeat already-seen items on every update. A tool call is surfaced as
    a breadcrumb once per item id for the life of the session. A tripped
    guardrail verdict is final for its item.

    The reducer is the only writer of the store. It never raises out of
    apply_raw(); a bad event is logged and dropped.
    """

    def __init__(self, store: TranscriptStore, roster: AgentRoster | None = None):
        self.store = store
        self.roster = roster
        # tool call item id -> breadcrumb item id
        self._surfaced_calls: dict[str, str] = {}
        self._handlers = {
            AssistantDelta: self._on_assistant_delta,
            UserTranscriptionDelta: self._on_user_delta,
            SpeechStarted: self._on_speech_started,
            TranscriptionCompleted: self._on_transcription_completed,
            GuardrailTripped: self._on_guardrail_tripped,
            TurnFinished: self._on_turn_finished,
            HistoryMessage: self._on_history_message,
            FunctionCall: self._on_function_call,
            HistorySnapshot: self._on_snapshot,
            Ignored: self._on_ignored,
        }

    @property
    def surfaced_calls(self) -> frozenset[str]:
        """Item ids of tool calls already shown as breadcrumbs."""
        return frozenset(self._surfaced_calls)

    def apply_raw(self, raw: Any) -> bool:
        """
        Decode and apply one raw transport event.

        Returns:
            True if the transcript or active agent changed.
        """
        try:
            event = decode_event(raw)
        except Exception:
            logger.exception("Failed to decode session event; dropping it")
            return False
        return self.apply(event)

    def apply(self, event: SessionEvent) -> bool:
        """
        Apply one decoded event.

        Returns:
            True if the transcript or active agent changed.
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning(f"No handler for session event {event!r}")
            return False
        try:
            return handler(event)
        except Exception:
            logger.exception(f"Failed to apply {type(event).__name__}; dropping it")
            return False

    def add_breadcrumb(self, title: str, data: Any = None) -> TranscriptItem:
        return self.store.add_breadcrumb(title, data)

    def add_user_message(self, item_id: str, text: str) -> TranscriptItem:
        """Record a user message that was sent directly rather than transcribed."""
        return self.store.add_message(item_id, Role.USER, text, ItemStatus.DONE)

    def reset(self) -> None:
        """Forget everything; used when the session is rebuilt."""
        self.store.clear()
        self._surfaced_calls.clear()

    def _message(self, item_id: str) -> TranscriptItem | None:
        item = self.store.get(item_id)
        if item is not None and not item.is_message:
            raise ValueError(f"Item {item_id} is a breadcrumb, not a message")
        return item

    def _on_ignored(self, event: Ignored) -> bool:
        logger.debug(f"Ignoring session event {event.type or '<untyped>'}: {event.reason}")
        return False

    def _on_assistant_delta(self, event: AssistantDelta) -> bool:
        item = self._message(event.item_id)
        if item is None:
            self.store.add_message(
                event.item_id,
                Role.ASSISTANT,
                "",
                ItemStatus.IN_PROGRESS,
                guardrail=IN_PROGRESS_VERDICT,
            )
        elif item.status == ItemStatus.DONE:
            logger.debug(f"Late delta for finished item {event.item_id} dropped")
            return False

        self.store.append_text(event.item_id, event.delta)
        return True

    def _add_user_placeholder(self, item_id: str) -> None:
        self.store.add_message(
            item_id,
            Role.USER,
            TRANSCRIBING_PLACEHOLDER,
            ItemStatus.IN_PROGRESS,
        )

    def _on_user_delta(self, event: UserTranscriptionDelta) -> bool:
        item = self._message(event.item_id)
        created = item is None
        if created:
            self._add_user_placeholder(event.item_id)
            text = TRANSCRIBING_PLACEHOLDER
        elif item.status == ItemStatus.DONE:
            # The completed transcript is authoritative
            logger.debug(f"Late transcription delta for {event.item_id} dropped")
            return False
        else:
            text = item.text

        if not event.delta:
            return created

        if text == TRANSCRIBING_PLACEHOLDER:
            self.store.replace_text(event.item_id, event.delta)
        else:
            self.store.append_text(event.item_id, event.delta)
        return True

    def _on_speech_started(self, event: SpeechStarted) -> bool:
        if event.item_id in self.store:
            return False
        self._add_user_placeholder(event.item_id)
        return True

    def _on_transcription_completed(self, event: TranscriptionCompleted) -> bool:
        final_text = event.transcript.strip()
        item = self._message(event.item_id)
        if item is None:
            self.store.add_message(event.item_id, Role.USER, final_text, ItemStatus.DONE)
            return True

        changed = self.store.replace_text(event.item_id, final_text)
        return self.store.update(event.item_id, status=ItemStatus.DONE) or changed

    def _on_guardrail_tripped(self, event: GuardrailTripped) -> bool:
        if event.item_id is not None:
            target = self.store.get(event.item_id)
            if target is None or target.role != Role.ASSISTANT:
                # Verdict for a message this session does not hold
                logger.warning(f"Guardrail trip for unknown assistant item {event.item_id} dropped")
                return False
        else:
            target = self.store.last_message(Role.ASSISTANT)
        if target is None:
            logger.warning("Guardrail tripped with no assistant message to flag")
            return False

        if target.guardrail is not None and target.guardrail.is_trip:
            return False

        verdict = GuardrailVerdict(GuardrailStatus.DONE, event.category, event.rationale)
        logger.info(f"Guardrail tripped on {target.item_id}: {event.category}")
        return self.store.update(target.item_id, guardrail=verdict)

    def _on_turn_finished(self, event: TurnFinished) -> bool:
        target = self.store.last_message(Role.ASSISTANT)
        if target is None or not _needs_default_verdict(target):
            return False
        return self.store.update(target.item_id, guardrail=PASS_VERDICT)

    def _on_history_message(self, event: HistoryMessage) -> bool:
        text = event.text
        if not text:
            return False

        item = self._message(event.item_id)
        if item is None:
            status = ItemStatus.DONE if event.completed else ItemStatus.IN_PROGRESS
            guardrail = IN_PROGRESS_VERDICT if event.role == Role.ASSISTANT else None
            self.store.add_message(event.item_id, event.role, text, status, guardrail)
            changed = True
        else:
            changed = self.store.replace_text(event.item_id, text)
            if event.completed is not None:
                status = ItemStatus.DONE if event.completed else ItemStatus.IN_PROGRESS
                changed = self.store.update(event.item_id, status=status) or changed

        if event.completed and event.role == Role.ASSISTANT:
            current = self.store.get(event.item_id)
            if _needs_default_verdict(current):
                changed = self.store.update(event.item_id, guardrail=PASS_VERDICT) or changed

        return changed

    def _on_function_call(self, event: FunctionCall) -> bool:
        breadcrumb_id = self._surfaced_calls.get(event.item_id)
        if breadcrumb_id is not None:
            return self._patch_call_output(breadcrumb_id, event)

        crumb = self.store.add_breadcrumb(
            f"Tool call: {event.name}",
            {"arguments": event.arguments, "output": event.output},
        )
        self._surfaced_calls[event.item_id] = crumb.item_id

        if self.roster is not None:
            self.roster.apply_handoff(event.name)
        return True

    def _patch_call_output(self, breadcrumb_id: str, event: FunctionCall) -> bool:
        if event.output is None:
            return False
        crumb = self.store.get(breadcrumb_id)
        if crumb is None or not isinstance(crumb.data, dict):
            return False
        if crumb.data.get("output") == event.output:
            return False
        return self.store.update(breadcrumb_id, data={**crumb.data, "output": event.output})

    def _on_snapshot(self, event: HistorySnapshot) -> bool:
        changed = False
        for item in event.items:
            changed = self.apply(item) or changed
        return changed
