"""Session controller: lifecycle of one realtime conversation."""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Protocol

from parley.session.events import GuardrailTripped
from parley.session.guardrails import OutputGuardrail
from parley.session.handoff import AgentRoster
from parley.session.reducer import SessionEventReducer
from parley.session.transcript import Role, TranscriptItem, TranscriptStore

logger = logging.getLogger(__name__)


class RealtimeTransport(Protocol):
    """The vendor realtime session as seen by the controller."""

    async def connect(self, api_key: str) -> None: ...

    def close(self) -> None: ...

    def send_event(self, event: dict[str, Any]) -> None: ...

    def send_message(self, text: str) -> None: ...

    def interrupt(self) -> None: ...

    def mute(self, muted: bool) -> None: ...

    def on_event(self, callback: Callable[[dict[str, Any]], None]) -> None: ...


class SessionStatus(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()

    def __str__(self) -> str:
        return self.name


class SessionNotConnected(RuntimeError):
    """Raised when a message is sent without a live session."""


# Builds a transport rooted at the given agent
TransportFactory = Callable[[str], RealtimeTransport]
# Returns an ephemeral key, or None when none could be issued
CredentialProvider = Callable[[], Awaitable[str | None]]

SERVER_VAD_TURN_DETECTION: dict[str, Any] = {
    "type": "server_vad",
    "threshold": 0.9,
    "prefix_padding_ms": 300,
    "silence_duration_ms": 500,
    "create_response": True,
}

SUBSCRIPTION_EVENTS = (
    "connection_change",
    "transcript_changed",
    "history_updated",
    "agent_changed",
)


class SessionController:
    """
    Owns the realtime session and feeds its events through the reducer.

    The controller is the single writer of the session status. Subscribers
    registered with on() receive snapshots only:

    - connection_change: SessionStatus
    - transcript_changed: list[TranscriptItem]
    - history_updated: list[TranscriptItem]
    - agent_changed: str (new active agent)
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        credential_provider: CredentialProvider,
        roster: AgentRoster,
        guardrail: OutputGuardrail | None = None,
        push_to_talk: bool = False,
    ):
        self._transport_factory = transport_factory
        self._credential_provider = credential_provider
        self.roster = roster
        self._guardrail = guardrail
        self._push_to_talk = push_to_talk

        self._store = TranscriptStore()
        self.reducer = SessionEventReducer(self._store, roster)
        self._transport: RealtimeTransport | None = None
        self._status = SessionStatus.DISCONNECTED
        self._ptt_speaking = False
        self._muted = False
        self._guardrail_tasks: set[asyncio.Task] = set()
        # Bumped on every connect and teardown; a connect that sees a newer
        # generation after an await has been superseded
        self._generation = 0
        self._subscribers: dict[str, list[Callable[[Any], None]]] = {
            name: [] for name in SUBSCRIPTION_EVENTS
        }

        self._store.on_change(lambda _item_id: self._emit("transcript_changed", self.transcript()))
        roster.on_change(lambda _old, new: self._emit("agent_changed", new))

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def active_agent(self) -> str:
        return self.roster.active

    @property
    def push_to_talk(self) -> bool:
        return self._push_to_talk

    @property
    def is_muted(self) -> bool:
        return self._muted

    def transcript(self) -> list[TranscriptItem]:
        """Snapshot of the transcript."""
        return self._store.snapshot()

    def on(self, name: str, callback: Callable[[Any], None]) -> None:
        """Subscribe to one of SUBSCRIPTION_EVENTS."""
        if name not in self._subscribers:
            raise ValueError(f"Unknown session event: {name}")
        self._subscribers[name].append(callback)

    def off(self, name: str, callback: Callable[[Any], None]) -> None:
        if name not in self._subscribers:
            raise ValueError(f"Unknown session event: {name}")
        try:
            self._subscribers[name].remove(callback)
        except ValueError:
            pass

    def _emit(self, name: str, payload: Any) -> None:
        for callback in list(self._subscribers[name]):
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Subscriber for {name} failed")

    def _set_status(self, status: SessionStatus) -> None:
        if status == self._status:
            return
        logger.info(f"Session {self._status} -> {status}")
        self._status = status
        self._emit("connection_change", status)

    async def connect(self) -> bool:
        """
        Open a session for the active agent.

        Returns:
            True if the session is CONNECTED afterwards.
        """
        if self._status != SessionStatus.DISCONNECTED:
            return self._status == SessionStatus.CONNECTED

        self._generation += 1
        generation = self._generation
        self._set_status(SessionStatus.CONNECTING)

        try:
            api_key = await self._credential_provider()
        except Exception:
            logger.exception("Fetching the session key failed")
            if generation == self._generation:
                self._set_status(SessionStatus.DISCONNECTED)
            return False

        if generation != self._generation:
            logger.info("Connect abandoned while fetching the session key")
            return False

        if not api_key:
            logger.error("No ephemeral key provided; not connecting")
            self._set_status(SessionStatus.DISCONNECTED)
            return False

        self._cancel_guardrails()
        self.reducer.reset()
        transport = self._transport_factory(self.roster.active)
        transport.on_event(self._handle_transport_event)
        self._transport = transport

        try:
            await transport.connect(api_key)
        except Exception:
            logger.exception("Realtime transport failed to connect")
            if self._transport is transport:
                self._drop_transport()
                self._set_status(SessionStatus.DISCONNECTED)
            return False

        if self._transport is not transport or generation != self._generation:
            # Disconnected while the transport was still connecting
            return False

        self._set_status(SessionStatus.CONNECTED)
        self.add_breadcrumb(f"Agent: {self.roster.active}")
        self._send_session_update()
        return True

    def disconnect(self) -> None:
        """Close the session. Safe to call when already disconnected."""
        self._generation += 1
        self._drop_transport()
        self._ptt_speaking = False
        self._cancel_guardrails()
        self._set_status(SessionStatus.DISCONNECTED)

    def _cancel_guardrails(self) -> None:
        for task in list(self._guardrail_tasks):
            task.cancel()
        self._guardrail_tasks.clear()

    def _drop_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()

    def _require_transport(self) -> RealtimeTransport:
        if self._transport is None or self._status != SessionStatus.CONNECTED:
            raise SessionNotConnected("No realtime session is connected")
        return self._transport

    def _handle_transport_event(self, raw: dict[str, Any]) -> None:
        event_type = raw.get("type") if isinstance(raw, dict) else None

        if event_type == "connection_change":
            if raw.get("status") == "disconnected" and self._transport is not None:
                logger.warning("Realtime transport reported a disconnect")
                self._generation += 1
                self._transport = None
                self._ptt_speaking = False
                self._cancel_guardrails()
                self._set_status(SessionStatus.DISCONNECTED)
            return

        self.reducer.apply_raw(raw)

        if event_type in ("history_added", "history_updated"):
            self._emit("history_updated", self.transcript())
        elif event_type == "response.done" and self._guardrail is not None:
            self._schedule_guardrail()

    def _schedule_guardrail(self) -> None:
        target = self._store.last_message(Role.ASSISTANT)
        if target is None or not target.text:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; output guardrail skipped")
            return
        task = loop.create_task(self._run_guardrail(target.item_id, target.text))
        self._guardrail_tasks.add(task)
        task.add_done_callback(self._guardrail_tasks.discard)

    async def _run_guardrail(self, item_id: str, text: str) -> None:
        outcome = await self._guardrail.evaluate(text)
        if outcome.tripwire_triggered:
            self.reducer.apply(
                GuardrailTripped(
                    category=outcome.category,
                    rationale=outcome.rationale or "Guardrail triggered",
                    item_id=item_id,
                )
            )

    async def drain_guardrails(self) -> None:
        """Wait for all scheduled guardrail evaluations."""
        if self._guardrail_tasks:
            await asyncio.gather(*list(self._guardrail_tasks), return_exceptions=True)

    def send_user_text(self, text: str) -> None:
        """Interrupt the assistant and send a typed user message."""
        text = text.strip()
        if not text:
            return
        transport = self._require_transport()
        transport.interrupt()
        transport.send_message(text)

    def send_simulated_user_message(self, text: str) -> str:
        """
        Inject a user message as if the user had typed it.

        Returns:
            The item id used for the message.
        """
        transport = self._require_transport()
        item_id = uuid.uuid4().hex[:32]
        self.reducer.add_user_message(item_id, text)
        transport.send_event(
            {
                "type": "conversation.item.create",
                "item": {
                    "id": item_id,
                    "type": "message",
                    "role": "user",
                    "content": [{"type": "input_text", "text": text}],
                },
            }
        )
        transport.send_event({"type": "response.create"})
        return item_id

    def push_to_talk_start(self) -> None:
        if self._status != SessionStatus.CONNECTED or self._transport is None:
            return
        self._transport.interrupt()
        self._ptt_speaking = True
        self._transport.send_event({"type": "input_audio_buffer.clear"})

    def push_to_talk_stop(self) -> None:
        if (
            self._status != SessionStatus.CONNECTED
            or self._transport is None
            or not self._ptt_speaking
        ):
            return
        self._ptt_speaking = False
        self._transport.send_event({"type": "input_audio_buffer.commit"})
        self._transport.send_event({"type": "response.create"})

    def set_push_to_talk(self, enabled: bool) -> None:
        """Switch between push-to-talk and server voice activity detection."""
        self._push_to_talk = enabled
        if self._status == SessionStatus.CONNECTED:
            self._send_session_update()

    def _send_session_update(self) -> None:
        if self._transport is None:
            return
        turn_detection = None if self._push_to_talk else dict(SERVER_VAD_TURN_DETECTION)
        self._transport.send_event(
            {"type": "session.update", "session": {"turn_detection": turn_detection}}
        )

    def mute(self, muted: bool) -> None:
        self._muted = muted
        if self._transport is not None:
            self._transport.mute(muted)

    def interrupt(self) -> None:
        if self._transport is not None:
            self._transport.interrupt()

    async def select_agent(self, name: str) -> None:
        """
        Make another agent active. A live session is rebuilt around it.

        Raises:
            KeyError: If the agent is unknown.
        """
        previous = self.roster.active
        self.roster.select(name)
        if self.roster.active == previous:
            return
        if self._status != SessionStatus.DISCONNECTED:
            self.disconnect()
            await self.connect()

    def add_breadcrumb(self, title: str, data: Any = None) -> TranscriptItem:
        return self.reducer.add_breadcrumb(title, data)
