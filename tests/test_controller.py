"""Tests for Call Session Controller.

Tests cover:
- Start, join and remote-joined handling
- Budget-driven termination (no manual end)
- Provisioning failures and retry
- Single teardown under concurrent/late end requests
- Late resources discarded after teardown began
- Transport events driving the lifecycle
- Transcript gating and evaluation on the result
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from interview_call.clock.store import MemoryClockStore
from interview_call.conversation.models import ConversationResource
from interview_call.conversation.resource_manager import ConversationResourceManager
from interview_call.exceptions import (
    ErrorKind,
    GenericProvisioningError,
    QuotaExhaustedError,
    SessionStateError,
    TransportError,
    TransportJoinFailedError,
)
from interview_call.orchestrator.cancellation import CancelReason
from interview_call.orchestrator.controller import CallSessionController, ControllerConfig
from interview_call.orchestrator.state_machine import SessionPhase
from interview_call.transport import (
    AppMessage,
    MediaState,
    ParticipantJoined,
    ParticipantLeft,
    RelayTransport,
    TranscriptionMessage,
    TransportFailure,
)

LOCAL_ID = "local-1"
REMOTE_ID = "replica-1"


def make_controller(resource_manager, transport=None, clock_store=None, **config):
    transport = transport or RelayTransport(local_participant_id=LOCAL_ID)
    settings = {"unmute_grace_s": 0.0, **config}
    controller = CallSessionController(
        session_id="ctl-session",
        resource_manager=resource_manager,
        transport_factory=lambda: transport,
        clock_store=clock_store,
        config=ControllerConfig(**settings),
    )
    return controller, transport


async def deliver(transport, *events):
    """Push events and wait until the controller has dispatched them."""
    for event in events:
        transport.push(event)
    await asyncio.wait_for(transport.events.join(), timeout=2.0)


def phases(controller):
    return [t.new_phase for t in controller.history]


class TestStart:
    """Provisioning and joining."""

    @pytest.mark.asyncio
    async def test_start_joins_with_video_only(self, resource_manager, session_input):
        controller, transport = make_controller(resource_manager)

        await controller.start(session_input)

        assert controller.phase is SessionPhase.JOINING
        assert transport.url == "https://call.test/c0001"
        assert transport.media == MediaState(audio=False, video=True)
        assert controller.media == MediaState(audio=False, video=True)
        assert phases(controller) == [SessionPhase.PROVISIONING, SessionPhase.JOINING]
        await controller.end()

    @pytest.mark.asyncio
    async def test_start_while_running_raises(self, resource_manager, session_input):
        controller, _ = make_controller(resource_manager)
        await controller.start(session_input)

        with pytest.raises(SessionStateError):
            await controller.start(session_input)
        await controller.end()

    @pytest.mark.asyncio
    async def test_status_while_joining(self, resource_manager, session_input):
        controller, _ = make_controller(resource_manager, budget_s=600)
        await controller.start(session_input)

        status = controller.status()

        assert status.phase is SessionPhase.JOINING
        assert status.conversation_url == "https://call.test/c0001"
        assert status.elapsed_s == 0.0
        assert status.remaining_s == 600
        assert status.error_kind is None
        await controller.end()


class TestRemoteJoined:
    """Interviewer presence."""

    @pytest.mark.asyncio
    async def test_goes_live_and_arms_clock(self, resource_manager, session_input):
        store = MemoryClockStore()
        controller, transport = make_controller(resource_manager, clock_store=store)
        await controller.start(session_input)

        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))

        assert controller.phase is SessionPhase.LIVE
        assert controller.clock.is_armed
        assert store.load("ctl-session") is not None
        await controller.end()

    @pytest.mark.asyncio
    async def test_second_join_is_noop(self, resource_manager, session_input):
        controller, transport = make_controller(resource_manager)
        await controller.start(session_input)
        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))
        start_instant = controller.clock.start_instant

        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))
        await controller.on_remote_joined(REMOTE_ID)

        assert phases(controller).count(SessionPhase.LIVE) == 1
        assert controller.clock.start_instant == start_instant
        await controller.end()

    @pytest.mark.asyncio
    async def test_local_join_does_not_go_live(self, resource_manager, session_input):
        controller, transport = make_controller(resource_manager)
        await controller.start(session_input)

        await deliver(transport, ParticipantJoined(participant_id=LOCAL_ID, local=True))

        assert controller.phase is SessionPhase.JOINING
        await controller.end()

    @pytest.mark.asyncio
    async def test_ignored_outside_joining(self, resource_manager):
        controller, _ = make_controller(resource_manager)
        await controller.on_remote_joined(REMOTE_ID)
        assert controller.phase is SessionPhase.IDLE

    @pytest.mark.asyncio
    async def test_unmute_after_grace(self, resource_manager, session_input):
        controller, transport = make_controller(resource_manager, unmute_grace_s=0.05)
        await controller.start(session_input)
        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))

        assert controller.media.audio is False
        await asyncio.sleep(0.15)

        assert controller.media.audio is True
        assert "audio:on" in transport.calls
        await controller.end()

    @pytest.mark.asyncio
    async def test_no_unmute_after_end(self, resource_manager, session_input):
        controller, transport = make_controller(resource_manager, unmute_grace_s=0.1)
        await controller.start(session_input)
        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))

        await controller.end()
        await asyncio.sleep(0.2)

        assert "audio:on" not in transport.calls


class TestBudget:
    """Scenario: the budget ends the session without a manual end()."""

    @pytest.mark.asyncio
    async def test_budget_terminates_and_evaluates(self, resource_manager, conversation_service, session_input):
        controller, transport = make_controller(
            resource_manager,
            budget_s=0.1,
            clock_tick_s=0.01,
        )
        completed = asyncio.Event()
        results = []

        def on_done(result):
            results.append(result)
            completed.set()

        controller.on_complete(on_done)
        await controller.start(session_input)
        await deliver(
            transport,
            ParticipantJoined(participant_id=REMOTE_ID),
            AppMessage(participant_id=REMOTE_ID, data={"properties": {"speech": "Tell me about your project."}}),
            TranscriptionMessage(participant_id=LOCAL_ID, text="I built a Python compiler because I like parsers."),
        )

        await asyncio.wait_for(completed.wait(), timeout=2.0)

        assert controller.phase is SessionPhase.TERMINATED
        assert phases(controller)[-2:] == [SessionPhase.TERMINATING, SessionPhase.TERMINATED]
        result = results[0]
        assert result.reason == "budget_exceeded"
        assert [m.text for m in result.transcript] == [
            "Tell me about your project.",
            "I built a Python compiler because I like parsers.",
        ]
        assert result.evaluation.aggregate > 0
        assert conversation_service.ended == ["c0001"]
        assert transport.is_destroyed
        assert controller.clock.is_armed is False


class TestProvisioningFailure:
    """Scenario: provisioning fails with a typed cause."""

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, resource_manager, conversation_service, session_input):
        conversation_service.create_status = 402
        controller, transport = make_controller(resource_manager)

        await controller.start(session_input)

        assert controller.phase is SessionPhase.ERROR
        assert isinstance(controller.error, QuotaExhaustedError)
        assert transport.calls == []
        status = controller.status()
        assert status.error_kind == "quota_exhausted"
        assert status.user_action == "manage_account"

    @pytest.mark.asyncio
    async def test_generic_failure_suggests_retry(self, resource_manager, conversation_service, session_input):
        conversation_service.create_status = 500
        controller, _ = make_controller(resource_manager)

        await controller.start(session_input)

        assert isinstance(controller.error, GenericProvisioningError)
        assert controller.status().user_action == "retry"

    @pytest.mark.asyncio
    async def test_join_failure_destroys_resource(self, resource_manager, conversation_service, session_input):
        transport = RelayTransport(join_error=TransportError("no route to host"))
        controller, _ = make_controller(resource_manager, transport=transport)

        await controller.start(session_input)

        assert controller.phase is SessionPhase.ERROR
        assert isinstance(controller.error, TransportJoinFailedError)
        assert controller.error.kind is ErrorKind.TRANSPORT_JOIN_FAILED
        assert conversation_service.ended == ["c0001"]
        assert transport.is_destroyed
        assert controller.resource is None

    @pytest.mark.asyncio
    async def test_join_timeout(self, resource_manager, conversation_service, session_input):
        transport = RelayTransport(join_delay_s=1.0)
        controller, _ = make_controller(resource_manager, transport=transport, join_timeout_s=0.05)

        await controller.start(session_input)

        assert isinstance(controller.error, TransportJoinFailedError)
        assert conversation_service.ended == ["c0001"]

    @pytest.mark.asyncio
    async def test_transport_failure_while_joining(self, resource_manager, conversation_service, session_input):
        controller, transport = make_controller(resource_manager)
        await controller.start(session_input)

        await deliver(transport, TransportFailure(reason="ice failed"))

        assert controller.phase is SessionPhase.ERROR
        assert isinstance(controller.error, TransportJoinFailedError)
        assert conversation_service.ended == ["c0001"]


class TestRetry:
    """retry() is valid only from error."""

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, resource_manager, conversation_service, session_input):
        conversation_service.create_status = 500
        controller, _ = make_controller(resource_manager)
        await controller.start(session_input)
        assert controller.phase is SessionPhase.ERROR

        conversation_service.create_status = 200
        await controller.retry()

        assert controller.phase is SessionPhase.JOINING
        assert controller.error is None
        assert conversation_service.payloads()[-1]["custom_greeting"].startswith("Hello Ada Lovelace")
        await controller.end()

    @pytest.mark.asyncio
    async def test_retry_after_quota_is_allowed(self, resource_manager, conversation_service, session_input):
        conversation_service.create_status = 402
        controller, _ = make_controller(resource_manager)
        await controller.start(session_input)

        await controller.retry()

        assert controller.phase is SessionPhase.ERROR
        assert isinstance(controller.error, QuotaExhaustedError)

    @pytest.mark.asyncio
    async def test_retry_outside_error_raises(self, resource_manager, session_input):
        controller, _ = make_controller(resource_manager)
        with pytest.raises(SessionStateError):
            await controller.retry()

        await controller.start(session_input)
        with pytest.raises(SessionStateError):
            await controller.retry()
        await controller.end()


class TestSingleTeardown:
    """Concurrent and late termination requests collapse to one teardown."""

    @pytest.mark.asyncio
    async def test_end_then_budget(self, resource_manager, conversation_service, session_input):
        controller, transport = make_controller(resource_manager, budget_s=0.2, clock_tick_s=0.01)
        completions = []
        controller.on_complete(completions.append)
        await controller.start(session_input)
        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))

        first = await controller.end()
        await asyncio.sleep(0.05)
        await controller.on_clock_budget_exceeded()
        await asyncio.sleep(0.25)

        assert conversation_service.ended == ["c0001"]
        assert phases(controller).count(SessionPhase.TERMINATED) == 1
        assert completions == [first]
        assert first.reason == "user_hang_up"

    @pytest.mark.asyncio
    async def test_concurrent_end(self, resource_manager, conversation_service, session_input):
        controller, transport = make_controller(resource_manager)
        completions = []
        controller.on_complete(completions.append)
        await controller.start(session_input)
        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))

        results = await asyncio.gather(controller.end(), controller.end(), controller.end())

        assert conversation_service.ended == ["c0001"]
        assert len(completions) == 1
        assert results[0] is completions[0]
        assert transport.calls.count("destroy") == 1

    @pytest.mark.asyncio
    async def test_end_is_idempotent(self, resource_manager, session_input):
        controller, _ = make_controller(resource_manager)
        await controller.start(session_input)

        first = await controller.end()
        second = await controller.end()

        assert second is first

    @pytest.mark.asyncio
    async def test_end_from_idle(self, resource_manager):
        controller, _ = make_controller(resource_manager)
        assert await controller.end() is None
        assert controller.phase is SessionPhase.IDLE


class TestLateResource:
    """A resource arriving after teardown began is destroyed, not adopted."""

    @pytest.mark.asyncio
    async def test_end_during_provisioning(self, service_config, session_input):
        gate = asyncio.Event()
        ended = []

        async def handler(request):
            path = request.url.path
            if request.method == "GET":
                return httpx.Response(200, json={})
            if path.endswith("/end"):
                ended.append(path.split("/")[-2])
                return httpx.Response(200, json={})
            await gate.wait()
            return httpx.Response(200, json={"conversation_id": "late1", "conversation_url": "https://call.test/late1"})

        manager = ConversationResourceManager(
            service_config,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=service_config.base_url),
        )
        controller, transport = make_controller(manager)

        start_task = asyncio.create_task(controller.start(session_input))
        await asyncio.sleep(0.02)
        assert controller.phase is SessionPhase.PROVISIONING

        result = await controller.end()
        assert controller.phase is SessionPhase.TERMINATED
        assert result.transcript == ()

        gate.set()
        await asyncio.wait_for(start_task, timeout=2.0)

        assert ended == ["late1"]
        assert controller.resource is None
        assert transport.calls == []
        assert controller.phase is SessionPhase.TERMINATED

    @pytest.mark.asyncio
    async def test_end_during_join(self, resource_manager, conversation_service, session_input):
        transport = RelayTransport(join_delay_s=0.1)
        controller, _ = make_controller(resource_manager, transport=transport)

        start_task = asyncio.create_task(controller.start(session_input))
        await asyncio.sleep(0.02)
        assert controller.phase is SessionPhase.JOINING

        await controller.end()
        await asyncio.wait_for(start_task, timeout=2.0)

        assert controller.phase is SessionPhase.TERMINATED
        assert conversation_service.ended == ["c0001"]
        assert controller.media == MediaState(audio=False, video=False)
        assert transport.is_joined is False
        assert transport.calls[-2:] == ["leave", "destroy"]


class TestTransportEvents:
    """The inbound queue drives the lifecycle."""

    @pytest.mark.asyncio
    async def test_remote_left_ends_session(self, resource_manager, conversation_service, session_input):
        controller, transport = make_controller(resource_manager)
        await controller.start(session_input)

        await deliver(
            transport,
            ParticipantJoined(participant_id=REMOTE_ID),
            ParticipantLeft(participant_id=REMOTE_ID),
        )

        assert controller.phase is SessionPhase.TERMINATED
        assert controller.result.reason == "remote_left"
        assert conversation_service.ended == ["c0001"]

    @pytest.mark.asyncio
    async def test_transport_failure_while_live(self, resource_manager, session_input):
        controller, transport = make_controller(resource_manager)
        await controller.start(session_input)

        await deliver(
            transport,
            ParticipantJoined(participant_id=REMOTE_ID),
            TransportFailure(reason="connection lost"),
        )

        assert controller.phase is SessionPhase.TERMINATED
        assert controller.result.reason == "remote_error"

    @pytest.mark.asyncio
    async def test_messages_only_collected_while_live(self, resource_manager, session_input):
        controller, transport = make_controller(resource_manager)
        await controller.start(session_input)

        await deliver(
            transport,
            TranscriptionMessage(participant_id=REMOTE_ID, text="before live"),
            ParticipantJoined(participant_id=REMOTE_ID),
            TranscriptionMessage(participant_id=REMOTE_ID, text="Welcome to the interview."),
            TranscriptionMessage(participant_id=LOCAL_ID, text="Thank you."),
        )
        result = await controller.end()

        assert [m.text for m in result.transcript] == ["Welcome to the interview.", "Thank you."]
        assert [m.speaker.value for m in result.transcript] == ["interviewer", "user"]

    @pytest.mark.asyncio
    async def test_both_sources_kept(self, resource_manager, session_input):
        controller, transport = make_controller(resource_manager)
        await controller.start(session_input)

        await deliver(
            transport,
            ParticipantJoined(participant_id=REMOTE_ID),
            AppMessage(participant_id=LOCAL_ID, data={"properties": {"speech": "I led the team."}}),
            TranscriptionMessage(participant_id=LOCAL_ID, text="I led the team."),
        )

        assert len(controller.transcript) == 2
        await controller.end()


class TestMedia:
    @pytest.mark.asyncio
    async def test_toggle_while_live(self, resource_manager, session_input):
        controller, transport = make_controller(resource_manager, unmute_grace_s=10.0)
        await controller.start(session_input)
        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))

        media = await controller.set_local_video(False)

        assert media == MediaState(audio=False, video=False)
        assert transport.media.video is False
        await controller.end()

    @pytest.mark.asyncio
    async def test_toggle_without_call_raises(self, resource_manager):
        controller, _ = make_controller(resource_manager)
        with pytest.raises(SessionStateError):
            await controller.set_local_audio(True)


class TestRestart:
    @pytest.mark.asyncio
    async def test_start_after_terminated(self, resource_manager, conversation_service, session_input):
        first_transport = RelayTransport(local_participant_id=LOCAL_ID)
        second_transport = RelayTransport(local_participant_id=LOCAL_ID)
        transports = iter([first_transport, second_transport])
        controller = CallSessionController(
            session_id="restart",
            resource_manager=resource_manager,
            transport_factory=lambda: next(transports),
            config=ControllerConfig(unmute_grace_s=0.0),
        )

        await controller.start(session_input)
        await deliver(first_transport, ParticipantJoined(participant_id=REMOTE_ID))
        await deliver(first_transport, TranscriptionMessage(participant_id=LOCAL_ID, text="first call"))
        await controller.end()

        await controller.start(session_input)

        assert controller.phase is SessionPhase.JOINING
        assert controller.result is None
        assert controller.transcript == ()
        assert second_transport.url == "https://call.test/c0002"
        await controller.end(CancelReason.USER_HANG_UP)
        assert conversation_service.ended == ["c0001", "c0002"]


class TestSubscribers:
    @pytest.mark.asyncio
    async def test_subscribe_sees_transitions(self, resource_manager, session_input):
        controller, transport = make_controller(resource_manager)
        seen = []
        controller.subscribe(lambda t: seen.append(t.new_phase.value))

        await controller.start(session_input)
        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))
        await controller.end()

        assert seen == ["provisioning", "joining", "live", "terminating", "terminated"]

    @pytest.mark.asyncio
    async def test_failing_complete_callback_does_not_break_end(self, resource_manager, session_input):
        controller, _ = make_controller(resource_manager)

        def broken(result):
            raise RuntimeError("subscriber bug")

        controller.on_complete(broken)
        await controller.start(session_input)

        result = await controller.end()

        assert result is not None
        assert controller.phase is SessionPhase.TERMINATED


class TestResourceOwnership:
    @pytest.mark.asyncio
    async def test_destroy_awaited_once(self, session_input):
        resources = AsyncMock(spec=ConversationResourceManager)
        resources.create.return_value = ConversationResource(
            conversation_id="mock1",
            conversation_url="https://call.test/mock1",
            created_at=datetime.now(timezone.utc),
        )
        controller, transport = make_controller(resources)
        await controller.start(session_input)
        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))

        await asyncio.gather(controller.end(), controller.end())
        await controller.on_clock_budget_exceeded()

        resources.create.assert_awaited_once_with(session_input)
        resources.destroy.assert_awaited_once_with("mock1")


class RejectingAudioTransport(RelayTransport):
    """Relay whose microphone cannot be enabled."""

    async def set_local_audio(self, enabled: bool) -> None:
        self.calls.append("audio:rejected")
        raise TransportError("microphone unavailable")


class TestOverlappingAttempts:
    """Work from one attempt never touches the next."""

    @pytest.mark.asyncio
    async def test_retry_from_error_callback_keeps_new_attempt(
        self, resource_manager, conversation_service, session_input
    ):
        failing = RelayTransport(local_participant_id=LOCAL_ID, join_error=TransportError("no route to host"))
        healthy = RelayTransport(local_participant_id=LOCAL_ID)
        transports = iter([failing, healthy])
        controller = CallSessionController(
            session_id="retry-in-callback",
            resource_manager=resource_manager,
            transport_factory=lambda: next(transports),
            config=ControllerConfig(unmute_grace_s=0.0),
        )
        retries = []

        async def retry_on_error(transition):
            if transition.new_phase is SessionPhase.ERROR and not retries:
                retries.append(asyncio.create_task(controller.retry()))
                await asyncio.sleep(0.05)

        controller.subscribe(retry_on_error)
        await controller.start(session_input)
        await asyncio.wait_for(retries[0], timeout=2.0)

        assert controller.phase is SessionPhase.JOINING
        assert controller.resource.conversation_id == "c0002"
        assert controller.transport is healthy
        assert healthy.is_joined is True
        assert healthy.is_destroyed is False
        assert failing.is_destroyed is True
        assert conversation_service.ended == ["c0001"]

        await controller.end()
        assert conversation_service.ended == ["c0001", "c0002"]

    @pytest.mark.asyncio
    async def test_remote_joins_before_join_ack(self, resource_manager, session_input):
        transport = RelayTransport(local_participant_id=LOCAL_ID, join_delay_s=0.1)
        controller, _ = make_controller(resource_manager, transport=transport)

        start_task = asyncio.create_task(controller.start(session_input))
        await asyncio.sleep(0.02)
        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))

        assert controller.phase is SessionPhase.LIVE
        assert controller.media == MediaState(audio=False, video=True)

        await asyncio.wait_for(start_task, timeout=2.0)
        await asyncio.sleep(0.05)

        assert controller.media == MediaState(audio=True, video=True)
        assert transport.media == MediaState(audio=True, video=True)
        assert transport.calls[:2] == ["join", "audio:on"]
        await controller.end()

    @pytest.mark.asyncio
    async def test_unmute_failure_is_contained(self, resource_manager, session_input):
        transport = RejectingAudioTransport(local_participant_id=LOCAL_ID)
        controller, _ = make_controller(resource_manager, transport=transport)
        await controller.start(session_input)
        await deliver(transport, ParticipantJoined(participant_id=REMOTE_ID))

        unmute_task = controller._unmute_task
        await asyncio.wait_for(unmute_task, timeout=2.0)

        assert unmute_task.exception() is None
        assert "audio:rejected" in transport.calls
        assert controller.media.audio is False
        assert controller.phase is SessionPhase.LIVE
        await controller.end()
