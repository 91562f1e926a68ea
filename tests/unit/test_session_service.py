"""Tests for SessionOrchestrator.

Collaborators are stubs (tests/stubs.py); the retry policy runs on a fake
sleep, so every test completes in simulated time.
"""

import asyncio

import pytest

from src.core.exceptions import (
    InvalidActionError,
    InvalidTransitionError,
    LLMServiceUnavailableError,
    OpeningFailedError,
    SessionBusyError,
    ValidationError,
)
from src.domain.models.analysis import NOT_SAVED, UNWRITTEN_TITLE
from src.domain.models.notice import NoticeLevel
from src.domain.models.session import QuitDialogState, SessionStatus
from src.domain.models.story import SaveResult
from src.domain.models.turn import GameMode, Speaker

from tests.stubs import RecordingGateway, ScriptedGenerator, StubAnalysisGenerators


async def _playing(make_orchestrator, noir, **kwargs):
    """Orchestrator with an interactive story already started."""
    orchestrator = make_orchestrator(**kwargs)
    await orchestrator.start_session(noir, 60)
    return orchestrator


# ============ LOADING AND ONBOARDING ============


class TestBoot:
    def test_returning_visitor_goes_to_menu(self, make_orchestrator):
        orchestrator = make_orchestrator(boot=False)
        assert orchestrator.status == SessionStatus.LOADING

        assert orchestrator.boot() == SessionStatus.MENU

    def test_first_visit_walks_through_onboarding(self, make_orchestrator):
        orchestrator = make_orchestrator(boot=False)
        orchestrator.boot(first_visit=True)
        assert orchestrator.status == SessionStatus.ONBOARDING

        assert orchestrator.advance_onboarding() == 1
        assert orchestrator.advance_onboarding() == 2
        assert orchestrator.status == SessionStatus.ONBOARDING
        orchestrator.advance_onboarding()

        assert orchestrator.status == SessionStatus.MENU

    def test_onboarding_can_be_skipped(self, make_orchestrator):
        orchestrator = make_orchestrator(boot=False)
        orchestrator.boot(first_visit=True)
        orchestrator.complete_onboarding()
        assert orchestrator.status == SessionStatus.MENU

    def test_boot_twice_is_rejected(self, make_orchestrator):
        orchestrator = make_orchestrator()
        with pytest.raises(InvalidTransitionError):
            orchestrator.boot()


# ============ OPENING ============


class TestStartSession:
    async def test_opening_line_starts_play(self, make_orchestrator, noir):
        generator = ScriptedGenerator(["The neon sign buzzed like a dying wasp."])
        orchestrator = make_orchestrator(generator=generator)

        opening = await orchestrator.start_session(noir, 60)

        assert opening.speaker == Speaker.GENERATOR
        assert opening.text == "The neon sign buzzed like a dying wasp."
        snapshot = orchestrator.snapshot()
        assert snapshot.status == SessionStatus.PLAYING
        assert snapshot.next_speaker == Speaker.USER
        assert snapshot.transcript == [opening]
        assert snapshot.settings.duration_seconds == 60

    async def test_opening_request(self, make_orchestrator, noir, persona_pair):
        generator = ScriptedGenerator()
        orchestrator = make_orchestrator(generator=generator)

        await orchestrator.start_session(noir, 120)

        request = generator.requests[0]
        assert request.is_opening is True
        assert request.history == ()
        assert request.duration_seconds == 120
        assert request.persona_a == persona_pair.first
        assert request.persona_b == persona_pair.second
        assert request.latest_input in ("", "a stolen violin")

    async def test_default_duration(self, make_orchestrator, noir):
        orchestrator = make_orchestrator()
        await orchestrator.start_session(noir)
        assert orchestrator.snapshot().settings.duration_seconds == 60

    async def test_rejects_unknown_duration(self, make_orchestrator, noir):
        orchestrator = make_orchestrator()

        with pytest.raises(ValidationError):
            await orchestrator.start_session(noir, 45)

        assert orchestrator.status == SessionStatus.MENU

    async def test_zero_duration_is_rejected_not_defaulted(self, make_orchestrator, noir):
        orchestrator = make_orchestrator()

        with pytest.raises(ValidationError, match="got 0"):
            await orchestrator.start_session(noir, 0)

        assert orchestrator.status == SessionStatus.MENU
        assert orchestrator.snapshot().settings is None

    async def test_failed_opening_returns_to_menu(self, make_orchestrator, noir):
        generator = ScriptedGenerator([ValueError("prompt rejected")])
        orchestrator = make_orchestrator(generator=generator)

        with pytest.raises(OpeningFailedError):
            await orchestrator.start_session(noir, 60)

        snapshot = orchestrator.snapshot()
        assert snapshot.status == SessionStatus.MENU
        assert snapshot.transcript == []
        assert orchestrator.in_flight is None
        assert [n.level for n in orchestrator.notices] == [NoticeLevel.ERROR]

    async def test_opening_retries_transient_failures(self, make_orchestrator, noir, fake_sleep):
        generator = ScriptedGenerator([LLMServiceUnavailableError("503"), "Fog rolled in."])
        orchestrator = make_orchestrator(generator=generator)

        opening = await orchestrator.start_session(noir, 60)

        assert opening.text == "Fog rolled in."
        assert fake_sleep.delays == [1.0]

    async def test_cannot_start_while_playing(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)
        with pytest.raises(InvalidTransitionError):
            await orchestrator.start_session(noir, 60)

    async def test_second_start_while_opening_is_busy(self, make_orchestrator, noir):
        hold = asyncio.Event()
        orchestrator = make_orchestrator(generator=ScriptedGenerator(hold=hold))

        first = asyncio.create_task(orchestrator.start_session(noir, 60))
        await asyncio.sleep(0)
        assert orchestrator.status == SessionStatus.GENERATING_OPENING

        with pytest.raises(SessionBusyError):
            await orchestrator.start_session(noir, 60)

        hold.set()
        await first
        assert orchestrator.status == SessionStatus.PLAYING


# ============ TURNS ============


class TestSubmitLine:
    async def test_appends_user_then_generator_turn(self, make_orchestrator, noir):
        generator = ScriptedGenerator(["Opening.", "The door creaked open."])
        orchestrator = await _playing(make_orchestrator, noir, generator=generator)

        reply = await orchestrator.submit_line("  She lit a cigarette.  ")

        assert reply.text == "The door creaked open."
        transcript = orchestrator.snapshot().transcript
        assert [t.speaker for t in transcript] == [
            Speaker.GENERATOR,
            Speaker.USER,
            Speaker.GENERATOR,
        ]
        assert transcript[1].text == "She lit a cigarette."
        assert orchestrator.snapshot().next_speaker == Speaker.USER

    async def test_request_excludes_the_new_line_from_history(self, make_orchestrator, noir):
        generator = ScriptedGenerator()
        orchestrator = await _playing(make_orchestrator, noir, generator=generator)

        await orchestrator.submit_line("A shot rang out.")

        request = generator.requests[-1]
        assert request.latest_input == "A shot rang out."
        assert request.target_word_count == 4
        assert [t.speaker for t in request.history] == [Speaker.GENERATOR]
        assert request.is_opening is False

    async def test_transcript_alternates(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)

        for line in ("One.", "Two.", "Three."):
            await orchestrator.submit_line(line)

        speakers = [t.speaker for t in orchestrator.snapshot().transcript]
        assert speakers == [Speaker.GENERATOR, Speaker.USER] * 3 + [Speaker.GENERATOR]

    async def test_paste_flag_is_kept(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)
        await orchestrator.submit_line("Pasted paragraph.", is_paste=True)
        assert orchestrator.snapshot().transcript[1].is_paste is True

    async def test_empty_line_rejected(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)
        with pytest.raises(ValidationError):
            await orchestrator.submit_line("   ")
        assert len(orchestrator.snapshot().transcript) == 1

    async def test_failed_reply_keeps_line_and_notifies(self, make_orchestrator, noir):
        generator = ScriptedGenerator(["Opening.", ValueError("content filter")])
        orchestrator = await _playing(make_orchestrator, noir, generator=generator)

        reply = await orchestrator.submit_line("He never came back.")

        assert reply is None
        snapshot = orchestrator.snapshot()
        assert snapshot.status == SessionStatus.PLAYING
        assert snapshot.transcript[-1].text == "He never came back."
        assert snapshot.next_speaker == Speaker.USER
        assert orchestrator.in_flight is None
        assert orchestrator.notices[-1].level == NoticeLevel.WARNING

    async def test_second_line_while_pending_is_busy(self, make_orchestrator, noir):
        generator = ScriptedGenerator()
        orchestrator = await _playing(make_orchestrator, noir, generator=generator)
        generator.hold = asyncio.Event()

        pending = asyncio.create_task(orchestrator.submit_line("First."))
        await asyncio.sleep(0)

        with pytest.raises(SessionBusyError):
            await orchestrator.submit_line("Second.")

        generator.hold.set()
        assert (await pending) is not None

    async def test_not_playing(self, make_orchestrator):
        orchestrator = make_orchestrator()
        with pytest.raises(InvalidTransitionError):
            await orchestrator.submit_line("Hello.")

    async def test_turn_timing_uses_clock(self, make_orchestrator, noir):
        ticks = iter([10.0, 14.5, 15.0, 15.0])
        orchestrator = await _playing(make_orchestrator, noir, clock=lambda: next(ticks))
        assert orchestrator.snapshot().turn_started_at == 10.0

        await orchestrator.submit_line("Four words right here.")

        assert orchestrator.snapshot().turn_started_at == 15.0


class TestStaleTurns:
    async def test_reply_after_end_is_discarded(self, make_orchestrator, noir):
        generator = ScriptedGenerator()
        orchestrator = await _playing(make_orchestrator, noir, generator=generator)
        generator.hold = asyncio.Event()

        pending = asyncio.create_task(orchestrator.submit_line("Then the lights went out."))
        await asyncio.sleep(0)

        record = await orchestrator.end_session()
        assert orchestrator.status == SessionStatus.COMPLETE

        generator.hold.set()
        assert (await pending) is None

        transcript = orchestrator.snapshot().transcript
        assert len(transcript) == 2
        assert transcript[-1].speaker == Speaker.USER
        assert len(record.transcript) == 2

    async def test_reply_after_quit_is_discarded(self, make_orchestrator, noir):
        generator = ScriptedGenerator()
        orchestrator = await _playing(make_orchestrator, noir, generator=generator)
        generator.hold = asyncio.Event()

        pending = asyncio.create_task(orchestrator.submit_line("Run."))
        await asyncio.sleep(0)
        orchestrator.request_quit()
        orchestrator.confirm_quit()
        orchestrator.discard_and_quit()

        generator.hold.set()
        assert (await pending) is None
        snapshot = orchestrator.snapshot()
        assert snapshot.status == SessionStatus.MENU
        assert snapshot.transcript == []


# ============ DUOLOGUE ============


class TestDuologue:
    async def test_opening_embodies_first_persona_with_seed(
        self, make_orchestrator, noir, persona_pair
    ):
        generator = ScriptedGenerator()
        orchestrator = make_orchestrator(generator=generator)

        opening = await orchestrator.start_duologue(noir)

        assert opening.persona_label == persona_pair.first.name
        request = generator.requests[0]
        assert request.mode == GameMode.DUOLOGUE
        assert request.embodied == persona_pair.first
        assert request.latest_input == "a stolen violin"
        snapshot = orchestrator.snapshot()
        assert snapshot.mode == GameMode.DUOLOGUE
        assert snapshot.settings.duration_seconds == 30
        assert snapshot.next_speaker == Speaker.GENERATOR

    async def test_personas_alternate(self, make_orchestrator, noir, persona_pair):
        generator = ScriptedGenerator()
        orchestrator = make_orchestrator(generator=generator)
        await orchestrator.start_duologue(noir)

        second = await orchestrator.generate_duologue_turn()
        third = await orchestrator.generate_duologue_turn()

        assert second.persona_label == persona_pair.second.name
        assert third.persona_label == persona_pair.first.name
        assert generator.requests[1].embodied == persona_pair.second
        assert generator.requests[1].latest_input == "Line 1."

    async def test_human_lines_rejected(self, make_orchestrator, noir):
        orchestrator = make_orchestrator()
        await orchestrator.start_duologue(noir)
        with pytest.raises(InvalidActionError):
            await orchestrator.submit_line("Me too.")

    async def test_interactive_session_has_no_duologue_turns(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)
        with pytest.raises(InvalidActionError):
            await orchestrator.generate_duologue_turn()

    async def test_duologue_analysis_uses_session_personas(
        self, make_orchestrator, noir, persona_pair
    ):
        analysis_generators = StubAnalysisGenerators()
        orchestrator = make_orchestrator(analysis_generators=analysis_generators)
        await orchestrator.start_duologue(noir)

        record = await orchestrator.end_session()

        assert record.game_mode == GameMode.DUOLOGUE
        assert record.style.primary_match == persona_pair.first.name
        assert "mood" not in analysis_generators.calls


# ============ ENDING ============


class TestEndSession:
    async def test_end_runs_analysis_and_saves(self, make_orchestrator, noir):
        gateway = RecordingGateway()
        orchestrator = await _playing(make_orchestrator, noir, gateway=gateway)
        await orchestrator.submit_line("The dame had trouble written all over her.")

        record = await orchestrator.end_session()

        assert orchestrator.status == SessionStatus.COMPLETE
        assert orchestrator.analysis == record
        assert record.title == "The Lighthouse Keeper"
        assert record.persisted_id == "story-1"
        assert len(gateway.saved) == 1
        assert gateway.saved[0].creator_id == "user-1"

    async def test_unwritten_story(self, make_orchestrator, noir):
        gateway = RecordingGateway()
        analysis_generators = StubAnalysisGenerators()
        orchestrator = await _playing(
            make_orchestrator, noir, gateway=gateway, analysis_generators=analysis_generators
        )

        record = await orchestrator.end_session()

        assert record.title == UNWRITTEN_TITLE
        assert record.persisted_id == NOT_SAVED
        assert analysis_generators.calls == []
        assert gateway.saved == []

    async def test_timer_expiry_ends_once(self, make_orchestrator, noir):
        analysis_generators = StubAnalysisGenerators()
        orchestrator = await _playing(
            make_orchestrator, noir, analysis_generators=analysis_generators
        )
        await orchestrator.submit_line("Rain again.")

        first = await orchestrator.expire_timer()
        second = await orchestrator.expire_timer()

        assert first is not None
        assert second is None
        assert analysis_generators.calls.count("title") == 1

    async def test_expiry_outside_play_is_ignored(self, make_orchestrator):
        orchestrator = make_orchestrator()
        assert await orchestrator.expire_timer() is None
        assert orchestrator.status == SessionStatus.MENU

    async def test_end_closes_quit_dialog(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)
        orchestrator.request_quit()

        await orchestrator.end_session()

        assert orchestrator.snapshot().quit_dialog == QuitDialogState.NONE

    async def test_end_from_menu_is_rejected(self, make_orchestrator):
        with pytest.raises(InvalidTransitionError):
            await make_orchestrator().end_session()

    async def test_reset_returns_to_menu(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)
        await orchestrator.end_session()

        orchestrator.reset()

        snapshot = orchestrator.snapshot()
        assert snapshot.status == SessionStatus.MENU
        assert snapshot.analysis is None
        assert snapshot.transcript == []

    async def test_analysis_notices_reach_the_session(self, make_orchestrator, noir):
        analysis_generators = StubAnalysisGenerators(failures={"quote": ValueError("x")})
        orchestrator = await _playing(
            make_orchestrator, noir, analysis_generators=analysis_generators
        )
        await orchestrator.submit_line("Something happened.")

        await orchestrator.end_session()

        assert any(n.title == "Analysis Step Failed" for n in orchestrator.notices)


# ============ QUIT FLOW ============


class TestQuitFlow:
    async def test_cancel_keeps_playing(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)

        assert orchestrator.request_quit() == QuitDialogState.CONFIRM_QUIT
        assert orchestrator.cancel_quit() == QuitDialogState.NONE
        assert orchestrator.status == SessionStatus.PLAYING

    async def test_lines_blocked_while_dialog_open(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)
        orchestrator.request_quit()
        with pytest.raises(InvalidActionError):
            await orchestrator.submit_line("Wait.")

    async def test_save_and_quit_saves_exactly_once(self, make_orchestrator, noir):
        gateway = RecordingGateway()
        orchestrator = await _playing(make_orchestrator, noir, gateway=gateway)
        await orchestrator.submit_line("I kept the letter.")
        orchestrator.request_quit()
        assert orchestrator.confirm_quit() == QuitDialogState.CONFIRM_SAVE_CHOICE

        result = await orchestrator.save_and_quit()

        assert result.success is True
        assert len(gateway.saved) == 1
        assert "USER: I kept the letter." in gateway.saved[0].content
        snapshot = orchestrator.snapshot()
        assert snapshot.status == SessionStatus.MENU
        assert snapshot.transcript == []
        assert snapshot.quit_dialog == QuitDialogState.NONE

    async def test_discard_never_saves(self, make_orchestrator, noir):
        gateway = RecordingGateway()
        orchestrator = await _playing(make_orchestrator, noir, gateway=gateway)
        orchestrator.request_quit()
        orchestrator.confirm_quit()

        orchestrator.discard_and_quit()

        assert gateway.saved == []
        assert orchestrator.status == SessionStatus.MENU

    async def test_failed_save_still_returns_to_menu(self, make_orchestrator, noir):
        gateway = RecordingGateway(
            result=SaveResult(success=False, error="A user ID is required to save a story.")
        )
        orchestrator = await _playing(make_orchestrator, noir, gateway=gateway)
        orchestrator.request_quit()
        orchestrator.confirm_quit()

        result = await orchestrator.save_and_quit()

        assert result.success is False
        assert orchestrator.status == SessionStatus.MENU
        assert orchestrator.notices[-1].message == "A user ID is required to save a story."

    async def test_gateway_exception_is_reported(self, make_orchestrator, noir):
        gateway = RecordingGateway(error=RuntimeError("disk full"))
        orchestrator = await _playing(make_orchestrator, noir, gateway=gateway)
        orchestrator.request_quit()
        orchestrator.confirm_quit()

        result = await orchestrator.save_and_quit()

        assert result.success is False
        assert len(gateway.saved) == 1
        assert orchestrator.status == SessionStatus.MENU

    async def test_save_requires_confirmation(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)
        orchestrator.request_quit()
        with pytest.raises(InvalidActionError):
            await orchestrator.save_and_quit()


# ============ OBSERVERS AND SNAPSHOTS ============


class TestObservers:
    async def test_observer_sees_every_transition(self, make_orchestrator, noir):
        orchestrator = make_orchestrator(boot=False)
        seen = []
        orchestrator.subscribe(lambda prev, cur, session: seen.append((prev, cur)))

        orchestrator.boot()
        await orchestrator.start_session(noir, 60)
        await orchestrator.end_session()

        assert seen == [
            (SessionStatus.LOADING, SessionStatus.MENU),
            (SessionStatus.MENU, SessionStatus.GENERATING_OPENING),
            (SessionStatus.GENERATING_OPENING, SessionStatus.PLAYING),
            (SessionStatus.PLAYING, SessionStatus.GENERATING_ANALYSIS),
            (SessionStatus.GENERATING_ANALYSIS, SessionStatus.COMPLETE),
        ]

    def test_failing_observer_does_not_block(self, make_orchestrator):
        orchestrator = make_orchestrator(boot=False)

        def broken(prev, cur, session):
            raise RuntimeError("observer bug")

        orchestrator.subscribe(broken)
        orchestrator.boot()
        assert orchestrator.status == SessionStatus.MENU

    def test_unsubscribe(self, make_orchestrator):
        orchestrator = make_orchestrator(boot=False)
        seen = []
        unsubscribe = orchestrator.subscribe(lambda *args: seen.append(args))
        unsubscribe()
        orchestrator.boot()
        assert seen == []

    async def test_snapshot_is_a_copy(self, make_orchestrator, noir):
        orchestrator = await _playing(make_orchestrator, noir)
        snapshot = orchestrator.snapshot()
        snapshot.transcript.clear()
        assert len(orchestrator.snapshot().transcript) == 1

    def test_drain_notices(self, make_orchestrator):
        orchestrator = make_orchestrator()
        orchestrator.notices.append("n")
        assert orchestrator.drain_notices() == ["n"]
        assert orchestrator.drain_notices() == []
