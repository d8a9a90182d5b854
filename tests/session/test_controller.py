"""Tests for the session controller."""

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from parley.session.controller import (
    SERVER_VAD_TURN_DETECTION,
    SessionController,
    SessionNotConnected,
    SessionStatus,
)
from parley.session.guardrails import GuardrailClassification, OutputGuardrail
from parley.session.handoff import AgentRoster
from parley.session.transcript import GuardrailStatus, ItemKind, ItemStatus, Role


class FakeRealtimeTransport:
    """Records everything the controller does to the realtime session."""

    def __init__(self, agent: str, fail_connect: bool = False):
        self.agent = agent
        self.fail_connect = fail_connect
        self.api_key = None
        self.closed = False
        self.calls: list[tuple] = []
        self._callback = None

    async def connect(self, api_key):
        if self.fail_connect:
            raise OSError("handshake refused")
        self.api_key = api_key

    def close(self):
        self.closed = True

    def send_event(self, event):
        self.calls.append(("send_event", event))

    def send_message(self, text):
        self.calls.append(("send_message", text))

    def interrupt(self):
        self.calls.append(("interrupt",))

    def mute(self, muted):
        self.calls.append(("mute", muted))

    def on_event(self, callback):
        self._callback = callback

    def emit(self, raw):
        self._callback(raw)

    @property
    def sent_events(self):
        return [call[1] for call in self.calls if call[0] == "send_event"]


class TransportFactory:
    def __init__(self, fail_connect: bool = False):
        self.fail_connect = fail_connect
        self.created: list[FakeRealtimeTransport] = []

    def __call__(self, agent):
        transport = FakeRealtimeTransport(agent, fail_connect=self.fail_connect)
        self.created.append(transport)
        return transport

    @property
    def last(self):
        return self.created[-1]


@pytest.fixture
def factory():
    return TransportFactory()


@pytest.fixture
def credentials():
    return AsyncMock(return_value="ek_test_123")


@pytest.fixture
def controller(factory, credentials):
    return SessionController(factory, credentials, AgentRoster(["greeter", "billing"]))


@pytest_asyncio.fixture
async def connected(controller):
    assert await controller.connect() is True
    return controller


def session_updates(transport):
    return [e for e in transport.sent_events if e["type"] == "session.update"]


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_success(self, controller, factory):
        statuses = []
        controller.on("connection_change", statuses.append)

        assert await controller.connect() is True

        assert controller.status == SessionStatus.CONNECTED
        assert statuses == [SessionStatus.CONNECTING, SessionStatus.CONNECTED]
        assert factory.last.agent == "greeter"
        assert factory.last.api_key == "ek_test_123"

    @pytest.mark.asyncio
    async def test_connect_adds_agent_breadcrumb_and_session_update(self, connected, factory):
        items = connected.transcript()
        assert [item.title for item in items if item.kind == ItemKind.BREADCRUMB] == ["Agent: greeter"]
        updates = session_updates(factory.last)
        assert updates == [
            {"type": "session.update", "session": {"turn_detection": SERVER_VAD_TURN_DETECTION}}
        ]

    @pytest.mark.asyncio
    async def test_missing_key_stays_disconnected(self, factory):
        controller = SessionController(factory, AsyncMock(return_value=None), AgentRoster(["greeter"]))
        statuses = []
        controller.on("connection_change", statuses.append)

        assert await controller.connect() is False
        assert controller.status == SessionStatus.DISCONNECTED
        assert statuses == [SessionStatus.CONNECTING, SessionStatus.DISCONNECTED]
        assert factory.created == []

    @pytest.mark.asyncio
    async def test_credential_failure_stays_disconnected(self, factory):
        provider = AsyncMock(side_effect=RuntimeError("token endpoint down"))
        controller = SessionController(factory, provider, AgentRoster(["greeter"]))
        assert await controller.connect() is False
        assert controller.status == SessionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_while_fetching_key_abandons_connect(self, factory):
        release = asyncio.Event()

        async def slow_key():
            await release.wait()
            return "ek_late"

        controller = SessionController(factory, slow_key, AgentRoster(["greeter"]))
        pending = asyncio.create_task(controller.connect())
        await asyncio.sleep(0)
        assert controller.status == SessionStatus.CONNECTING

        controller.disconnect()
        release.set()

        assert await pending is False
        assert controller.status == SessionStatus.DISCONNECTED
        assert factory.created == []

    @pytest.mark.asyncio
    async def test_transport_failure_stays_disconnected(self, credentials):
        factory = TransportFactory(fail_connect=True)
        controller = SessionController(factory, credentials, AgentRoster(["greeter"]))

        assert await controller.connect() is False
        assert controller.status == SessionStatus.DISCONNECTED
        assert factory.last.closed

    @pytest.mark.asyncio
    async def test_connect_when_connected_is_noop(self, connected, factory):
        assert await connected.connect() is True
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_connect_resets_transcript(self, connected, factory):
        factory.last.emit({"type": "response.text.delta", "item_id": "a1", "delta": "Hi"})
        connected.disconnect()
        await connected.connect()

        assert all(item.item_id != "a1" for item in connected.transcript())

    @pytest.mark.asyncio
    async def test_disconnect(self, connected, factory):
        connected.disconnect()
        assert connected.status == SessionStatus.DISCONNECTED
        assert factory.last.closed

    def test_disconnect_when_idle(self, controller):
        controller.disconnect()
        assert controller.status == SessionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_transport_reported_disconnect(self, connected, factory):
        factory.last.emit({"type": "connection_change", "status": "disconnected"})
        assert connected.status == SessionStatus.DISCONNECTED
        with pytest.raises(SessionNotConnected):
            connected.send_user_text("hello?")


class TestEventFlow:
    @pytest.mark.asyncio
    async def test_events_reach_transcript(self, connected, factory):
        snapshots = []
        connected.on("transcript_changed", snapshots.append)

        factory.last.emit({"type": "response.text.delta", "item_id": "a1", "delta": "Sure,"})
        factory.last.emit({"type": "response.text.delta", "item_id": "a1", "delta": " here"})

        assert snapshots[-1][-1].text == "Sure, here"

    @pytest.mark.asyncio
    async def test_history_updated_emitted(self, connected, factory):
        received = []
        connected.on("history_updated", received.append)
        factory.last.emit(
            {
                "type": "history_updated",
                "history": [
                    {
                        "type": "message",
                        "itemId": "u1",
                        "role": "user",
                        "status": "completed",
                        "content": [{"type": "input_text", "text": "hi"}],
                    }
                ],
            }
        )
        assert len(received) == 1
        assert received[0][-1].text == "hi"

    @pytest.mark.asyncio
    async def test_handoff_emits_agent_changed(self, connected, factory):
        agents = []
        connected.on("agent_changed", agents.append)
        factory.last.emit(
            {
                "type": "history_added",
                "item": {"type": "function_call", "itemId": "f1", "name": "transfer_to_billing"},
            }
        )
        assert connected.active_agent == "billing"
        assert agents == ["billing"]

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_others(self, connected, factory):
        seen = []

        def broken(_snapshot):
            raise RuntimeError("ui gone")

        connected.on("transcript_changed", broken)
        connected.on("transcript_changed", seen.append)
        factory.last.emit({"type": "response.text.delta", "item_id": "a1", "delta": "Hi"})
        assert len(seen) == 1

    def test_unknown_subscription_rejected(self, controller):
        with pytest.raises(ValueError):
            controller.on("nope", print)

    @pytest.mark.asyncio
    async def test_off(self, connected, factory):
        seen = []
        connected.on("transcript_changed", seen.append)
        connected.off("transcript_changed", seen.append)
        factory.last.emit({"type": "response.text.delta", "item_id": "a1", "delta": "Hi"})
        assert seen == []


class TestMessaging:
    @pytest.mark.asyncio
    async def test_send_user_text_interrupts_first(self, connected, factory):
        factory.last.calls.clear()
        connected.send_user_text("  What's my fee?  ")
        assert factory.last.calls == [("interrupt",), ("send_message", "What's my fee?")]

    @pytest.mark.asyncio
    async def test_blank_text_is_ignored(self, connected, factory):
        factory.last.calls.clear()
        connected.send_user_text("   ")
        assert factory.last.calls == []

    def test_send_without_session(self, controller):
        with pytest.raises(SessionNotConnected):
            controller.send_user_text("hello")

    @pytest.mark.asyncio
    async def test_simulated_user_message(self, connected, factory):
        factory.last.calls.clear()
        item_id = connected.send_simulated_user_message("hi")

        item = next(i for i in connected.transcript() if i.item_id == item_id)
        assert item.role == Role.USER
        assert item.text == "hi"
        assert item.status == ItemStatus.DONE

        assert factory.last.sent_events == [
            {
                "type": "conversation.item.create",
                "item": {
                    "id": item_id,
                    "type": "message",
                    "role": "user",
                    "content": [{"type": "input_text", "text": "hi"}],
                },
            },
            {"type": "response.create"},
        ]

    @pytest.mark.asyncio
    async def test_mute_and_interrupt(self, connected, factory):
        factory.last.calls.clear()
        connected.mute(True)
        connected.interrupt()
        assert connected.is_muted
        assert factory.last.calls == [("mute", True), ("interrupt",)]


class TestPushToTalk:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, connected, factory):
        factory.last.calls.clear()
        connected.push_to_talk_start()
        connected.push_to_talk_stop()

        assert factory.last.calls == [
            ("interrupt",),
            ("send_event", {"type": "input_audio_buffer.clear"}),
            ("send_event", {"type": "input_audio_buffer.commit"}),
            ("send_event", {"type": "response.create"}),
        ]

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, connected, factory):
        factory.last.calls.clear()
        connected.push_to_talk_stop()
        assert factory.last.calls == []

    def test_start_when_disconnected_is_noop(self, controller):
        controller.push_to_talk_start()
        controller.push_to_talk_stop()

    @pytest.mark.asyncio
    async def test_enable_push_to_talk_disables_vad(self, connected, factory):
        connected.set_push_to_talk(True)
        assert session_updates(factory.last)[-1] == {
            "type": "session.update",
            "session": {"turn_detection": None},
        }

        connected.set_push_to_talk(False)
        assert session_updates(factory.last)[-1]["session"]["turn_detection"] == SERVER_VAD_TURN_DETECTION

    def test_toggle_while_disconnected_only_records(self, controller):
        controller.set_push_to_talk(True)
        assert controller.push_to_talk is True


class TestOutputGuardrail:
    def make(self, factory, credentials, classifier):
        return SessionController(
            factory,
            credentials,
            AgentRoster(["greeter"]),
            guardrail=OutputGuardrail(classifier),
        )

    @pytest.mark.asyncio
    async def test_trip_flags_the_evaluated_message(self, factory, credentials):
        classifier = AsyncMock(return_value=GuardrailClassification("OFF_BRAND", "competitor"))
        controller = self.make(factory, credentials, classifier)
        await controller.connect()

        factory.last.emit({"type": "response.text.delta", "item_id": "a1", "delta": "Try BankCo"})
        factory.last.emit({"type": "response.done"})
        await controller.drain_guardrails()

        item = next(i for i in controller.transcript() if i.item_id == "a1")
        assert item.guardrail.status == GuardrailStatus.DONE
        assert item.guardrail.category == "OFF_BRAND"
        assert item.guardrail.rationale == "competitor"
        classifier.assert_awaited_once_with("Try BankCo")

    @pytest.mark.asyncio
    async def test_classifier_failure_keeps_pass(self, factory, credentials):
        classifier = AsyncMock(side_effect=RuntimeError("down"))
        controller = self.make(factory, credentials, classifier)
        await controller.connect()

        factory.last.emit({"type": "response.text.delta", "item_id": "a1", "delta": "Hello"})
        factory.last.emit({"type": "response.done"})
        await controller.drain_guardrails()

        item = next(i for i in controller.transcript() if i.item_id == "a1")
        assert item.guardrail.category == "NONE"
        assert not item.guardrail.is_trip

    @pytest.mark.asyncio
    async def test_verdict_from_dropped_session_is_discarded(self, factory, credentials):
        release = asyncio.Event()

        async def classifier(text):
            await release.wait()
            return GuardrailClassification("OFF_BRAND", f"flagged {text}")

        controller = self.make(factory, credentials, classifier)
        await controller.connect()
        factory.last.emit({"type": "response.text.delta", "item_id": "a1", "delta": "old"})
        factory.last.emit({"type": "response.done"})
        factory.last.emit({"type": "connection_change", "status": "disconnected"})

        await controller.connect()
        # The new session reuses the item id
        factory.last.emit({"type": "response.text.delta", "item_id": "a1", "delta": "new"})
        release.set()
        await controller.drain_guardrails()
        await asyncio.sleep(0)

        item = next(i for i in controller.transcript() if i.item_id == "a1")
        assert item.text == "new"
        assert not item.guardrail.is_trip

    @pytest.mark.asyncio
    async def test_disconnect_cancels_pending_evaluations(self, factory, credentials):
        release = asyncio.Event()
        finished = []

        async def classifier(text):
            await release.wait()
            finished.append(text)
            return GuardrailClassification("OFF_BRAND", "late")

        controller = self.make(factory, credentials, classifier)
        await controller.connect()
        factory.last.emit({"type": "response.text.delta", "item_id": "a1", "delta": "Hello"})
        factory.last.emit({"type": "response.done"})
        await asyncio.sleep(0)

        controller.disconnect()
        release.set()
        await controller.drain_guardrails()
        await asyncio.sleep(0)

        assert finished == []

    @pytest.mark.asyncio
    async def test_no_assistant_message_skips_evaluation(self, factory, credentials):
        classifier = AsyncMock()
        controller = self.make(factory, credentials, classifier)
        await controller.connect()

        factory.last.emit({"type": "response.done"})
        await controller.drain_guardrails()
        classifier.assert_not_awaited()


class TestSelectAgent:
    @pytest.mark.asyncio
    async def test_select_while_connected_rebuilds_session(self, connected, factory):
        await connected.select_agent("billing")

        assert len(factory.created) == 2
        assert factory.created[0].closed
        assert factory.last.agent == "billing"
        assert connected.status == SessionStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_select_while_disconnected_does_not_connect(self, controller, factory):
        await controller.select_agent("billing")
        assert controller.active_agent == "billing"
        assert factory.created == []

    @pytest.mark.asyncio
    async def test_select_same_agent_is_noop(self, connected, factory):
        await connected.select_agent("greeter")
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_select_unknown_agent(self, controller):
        with pytest.raises(KeyError):
            await controller.select_agent("legal")
