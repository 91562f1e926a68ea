"""
Session orchestration service.

SessionOrchestrator owns one Session and is the only component that mutates
it. It drives the story from the menu through the opening, the alternating
turns (or the automated duologue), and the post-session analysis, and it
runs the quit confirmation flow.

Concurrency model (single event loop):
- Only one async-bearing operation (opening, analysis, quit-save) runs at
  a time; a second trigger raises SessionBusyError.
- A turn may be pending when the story ends (explicit end or timer). The
  end bumps the session epoch, and the pending result is discarded when it
  arrives.
- Observers are notified synchronously after every status transition.
"""

import random
import time
from typing import Callable, List, Optional

import structlog

from src.core.config import StoryConfig, story_config
from src.core.exceptions import (
    InvalidActionError,
    InvalidTransitionError,
    OpeningFailedError,
    SessionBusyError,
    ValidationError,
)
from src.core.genre_loader import pick_narrative_hook
from src.core.persona_loader import sample_persona_pair
from src.domain.models.analysis import AnalysisRecord
from src.domain.models.genre import Genre
from src.domain.models.notice import Notice, NoticeLevel
from src.domain.models.persona import Persona, PersonaPair
from src.domain.models.session import (
    QuitDialogState,
    Session,
    SessionSettings,
    SessionStatus,
    can_transition,
    full_story_text,
)
from src.domain.models.story import SaveResult, StoryRecord
from src.domain.models.turn import GameMode, GenerationRequest, Speaker, Turn
from src.services.analysis_pipeline import AnalysisPipeline
from src.services.protocols import IPersistenceGateway, ITransitionObserver
from src.services.turn_engine import TurnEngine

log = structlog.get_logger(__name__)

PersonaSampler = Callable[[Genre, random.Random], PersonaPair]
HookPicker = Callable[[Genre, random.Random], Optional[str]]

# In-flight operation markers
OP_OPENING = "opening"
OP_TURN = "turn"
OP_ANALYSIS = "analysis"
OP_SAVE = "save"

UNFINISHED_TITLE = "Untitled Story"


class SessionOrchestrator:
    """State machine for one collaborative story session.

    Collaborators are injected so the core runs without network access:
    the turn engine wraps the content generator, the analysis pipeline
    wraps the analysis generators, and the gateway stores quit-saves.
    """

    def __init__(
        self,
        turn_engine: TurnEngine,
        analysis_pipeline: AnalysisPipeline,
        gateway: Optional[IPersistenceGateway] = None,
        creator_id: Optional[str] = None,
        session_id: Optional[str] = None,
        persona_sampler: Optional[PersonaSampler] = None,
        hook_picker: Optional[HookPicker] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        config: Optional[StoryConfig] = None,
    ):
        """
        Initialize the orchestrator in the loading state.

        Args:
            turn_engine: Produces generator lines with retry
            analysis_pipeline: Builds the post-session record
            gateway: Persistence gateway for save-on-quit (None disables it)
            creator_id: Owner id attached to saved stories
            session_id: Explicit session id (generated if None)
            persona_sampler: Draws the persona pair for a genre
            hook_picker: Draws a narrative hook seed for a genre
            rng: Random source for personas and hooks
            clock: Monotonic clock for turn timing
            config: Story configuration (default from story_config.yaml)
        """
        self.turn_engine = turn_engine
        self.analysis_pipeline = analysis_pipeline
        self.gateway = gateway
        self.config = config or story_config
        self._persona_sampler = persona_sampler or sample_persona_pair
        self._hook_picker = hook_picker or pick_narrative_hook
        self._rng = rng or random.Random()
        self._clock = clock

        session_kwargs = {"creator_id": creator_id}
        if session_id:
            session_kwargs["id"] = session_id
        self._session = Session(**session_kwargs)

        self._observers: List[ITransitionObserver] = []
        self._in_flight: Optional[str] = None
        self.notices: List[Notice] = []

        log.info(
            "session_orchestrator_initialized",
            session_id=self._session.id,
            creator_id=creator_id,
        )

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def session_id(self) -> str:
        return self._session.id

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def in_flight(self) -> Optional[str]:
        """Name of the async operation currently running, if any."""
        return self._in_flight

    @property
    def analysis(self) -> Optional[AnalysisRecord]:
        return self._session.analysis

    def snapshot(self) -> Session:
        """Deep copy of the session for readers."""
        return self._session.model_copy(deep=True)

    def drain_notices(self) -> List[Notice]:
        """Return and forget pending notices."""
        notices, self.notices = self.notices, []
        return notices

    def subscribe(self, observer: ITransitionObserver) -> Callable[[], None]:
        """
        Register a transition observer.

        Returns:
            Callable that unsubscribes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    # =========================================================================
    # Loading and onboarding
    # =========================================================================

    def boot(self, first_visit: bool = False) -> SessionStatus:
        """Leave the loading state: onboarding on a first visit, else menu."""
        self._require_status(SessionStatus.LOADING, "boot")
        if first_visit:
            self._transition(SessionStatus.ONBOARDING)
        else:
            self._transition(SessionStatus.MENU)
        return self._session.status

    def advance_onboarding(self) -> int:
        """Move to the next onboarding step; the last step opens the menu."""
        self._require_status(SessionStatus.ONBOARDING, "advance onboarding")
        self._session.onboarding_step += 1
        if self._session.onboarding_step >= self.config.session.onboarding_steps:
            self._transition(SessionStatus.MENU)
        return self._session.onboarding_step

    def complete_onboarding(self) -> None:
        self._require_status(SessionStatus.ONBOARDING, "complete onboarding")
        self._transition(SessionStatus.MENU)

    # =========================================================================
    # Starting a story
    # =========================================================================

    async def start_session(
        self, genre: Genre, duration_seconds: Optional[int] = None
    ) -> Turn:
        """
        Start an interactive story and generate its opening line.

        Args:
            genre: Selected genre
            duration_seconds: Session length, one of the configured options

        Returns:
            The generator-authored opening turn

        Raises:
            SessionBusyError: Another async operation is running
            InvalidTransitionError: Not in the menu
            ValidationError: Duration is not an allowed option
            OpeningFailedError: Opening failed; the session is back in the menu
        """
        self._require_idle()
        self._require_status(SessionStatus.MENU, "start a story")

        duration = duration_seconds
        if duration is None:
            duration = self.config.session.default_duration_seconds
        if duration not in self.config.session.duration_options:
            raise ValidationError(
                f"Duration must be one of {self.config.session.duration_options} seconds, "
                f"got {duration}"
            )
        return await self._open_story(genre, duration, GameMode.INTERACTIVE)

    async def start_duologue(self, genre: Genre) -> Turn:
        """
        Start an automated duologue between the two session personas.

        Raises:
            SessionBusyError: Another async operation is running
            InvalidTransitionError: Not in the menu
            OpeningFailedError: Opening failed; the session is back in the menu
        """
        self._require_idle()
        self._require_status(SessionStatus.MENU, "start a duologue")
        return await self._open_story(
            genre, self.config.duologue.duration_seconds, GameMode.DUOLOGUE
        )

    async def _open_story(self, genre: Genre, duration: int, mode: GameMode) -> Turn:
        pair = self._persona_sampler(genre, self._rng)
        session = self._session
        session.settings = SessionSettings(genre=genre, duration_seconds=duration)
        session.persona_pair = pair
        session.mode = mode
        session.transcript = []
        session.next_speaker = Speaker.GENERATOR

        self._transition(SessionStatus.GENERATING_OPENING)
        self._in_flight = OP_OPENING

        seed = None
        if mode == GameMode.DUOLOGUE or self._rng.random() < 0.5:
            seed = self._hook_picker(genre, self._rng)
        embodied = pair.first if mode == GameMode.DUOLOGUE else None

        request = GenerationRequest(
            genre=genre,
            duration_seconds=duration,
            latest_input=seed or "",
            history=(),
            persona_a=pair.first,
            persona_b=pair.second,
            mode=mode,
            is_opening=True,
            embodied=embodied,
        )

        log.info(
            "story_opening_requested",
            session_id=session.id,
            genre=genre.value,
            mode=mode.value,
            duration_seconds=duration,
            personas=list(pair.names),
            seeded=seed is not None,
        )

        try:
            text = await self.turn_engine.take_turn(request)
        except Exception as e:
            self._in_flight = None
            log.error(
                "story_opening_failed",
                session_id=session.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            self._add_notice(
                Notice(
                    level=NoticeLevel.ERROR,
                    title="Could Not Start Story",
                    message="The story could not begin. Please try again.",
                )
            )
            self._transition(SessionStatus.MENU)
            raise OpeningFailedError("Opening line could not be generated") from e

        self._in_flight = None
        opening = Turn(
            speaker=Speaker.GENERATOR,
            text=text,
            persona_label=embodied.name if embodied else None,
        )
        session.transcript.append(opening)
        session.next_speaker = (
            Speaker.USER if mode == GameMode.INTERACTIVE else Speaker.GENERATOR
        )
        self._transition(SessionStatus.PLAYING)
        return opening

    # =========================================================================
    # Turns
    # =========================================================================

    async def submit_line(self, text: str, is_paste: bool = False) -> Optional[Turn]:
        """
        Append the human's line and request the generator's reply.

        Args:
            text: Line typed (or pasted) by the human
            is_paste: Line was pasted rather than typed

        Returns:
            The generator's reply turn, or None when the reply failed (a
            notice is recorded) or arrived after the story ended

        Raises:
            InvalidTransitionError: Not playing
            InvalidActionError: Duologue mode, or quit confirmation open
            SessionBusyError: A reply is still pending
            ValidationError: Empty line
        """
        self._require_status(SessionStatus.PLAYING, "submit a line")
        if self._session.mode != GameMode.INTERACTIVE:
            raise InvalidActionError("Lines cannot be submitted during a duologue")
        if self._session.quit_dialog != QuitDialogState.NONE:
            raise InvalidActionError("Finish the quit confirmation first")
        if self._in_flight is not None:
            raise SessionBusyError("Still waiting for the previous reply")

        text = text.strip()
        if not text:
            raise ValidationError("Line cannot be empty")

        session = self._session
        history = tuple(session.transcript)
        user_turn = Turn(speaker=Speaker.USER, text=text, is_paste=is_paste)
        self._log_turn_timing(user_turn)
        session.transcript.append(user_turn)
        session.next_speaker = Speaker.GENERATOR

        request = GenerationRequest(
            genre=session.settings.genre,
            duration_seconds=session.settings.duration_seconds,
            latest_input=text,
            history=history,
            persona_a=session.persona_pair.first,
            persona_b=session.persona_pair.second,
            mode=GameMode.INTERACTIVE,
        )
        return await self._run_turn(
            request,
            persona_label=None,
            failure_notice=Notice(
                level=NoticeLevel.WARNING,
                title="No Reply",
                message="Could not get a response. Please continue the story.",
            ),
        )

    def next_duologue_persona(self) -> Persona:
        """Persona to embody next: the one that did not write the last turn."""
        pair = self._session.persona_pair
        if pair is None:
            raise InvalidActionError("No personas drawn for this session")
        transcript = self._session.transcript
        if transcript and transcript[-1].persona_label == pair.first.name:
            return pair.second
        return pair.first

    async def generate_duologue_turn(self) -> Optional[Turn]:
        """
        Generate the next duologue line.

        Returns:
            The new turn, or None when generation failed or went stale

        Raises:
            InvalidTransitionError: Not playing
            InvalidActionError: Not a duologue
            SessionBusyError: A line is still pending
        """
        self._require_status(SessionStatus.PLAYING, "continue the duologue")
        if self._session.mode != GameMode.DUOLOGUE:
            raise InvalidActionError("Session is not a duologue")
        if self._in_flight is not None:
            raise SessionBusyError("Still waiting for the previous line")

        session = self._session
        embodied = self.next_duologue_persona()
        transcript = tuple(session.transcript)
        request = GenerationRequest(
            genre=session.settings.genre,
            duration_seconds=session.settings.duration_seconds,
            latest_input=transcript[-1].text if transcript else "",
            history=transcript,
            persona_a=session.persona_pair.first,
            persona_b=session.persona_pair.second,
            mode=GameMode.DUOLOGUE,
            embodied=embodied,
        )
        return await self._run_turn(
            request,
            persona_label=embodied.name,
            failure_notice=Notice(
                level=NoticeLevel.WARNING,
                title="Duologue Paused",
                message="The duologue paused due to an error.",
            ),
        )

    async def _run_turn(
        self,
        request: GenerationRequest,
        persona_label: Optional[str],
        failure_notice: Notice,
    ) -> Optional[Turn]:
        session = self._session
        epoch = session.epoch
        self._in_flight = OP_TURN

        try:
            text = await self.turn_engine.take_turn(request)
        except Exception as e:
            if session.epoch != epoch:
                log.info("stale_turn_failure_ignored", session_id=session.id, error=str(e))
                return None
            log.warning(
                "turn_failed",
                session_id=session.id,
                mode=request.mode.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            self._add_notice(failure_notice)
            session.next_speaker = (
                Speaker.USER if request.mode == GameMode.INTERACTIVE else Speaker.GENERATOR
            )
            return None
        finally:
            if session.epoch == epoch and self._in_flight == OP_TURN:
                self._in_flight = None

        if session.epoch != epoch:
            log.info(
                "stale_turn_discarded",
                session_id=session.id,
                turn_epoch=epoch,
                current_epoch=session.epoch,
            )
            return None

        turn = Turn(speaker=Speaker.GENERATOR, text=text, persona_label=persona_label)
        session.transcript.append(turn)
        session.next_speaker = (
            Speaker.USER if request.mode == GameMode.INTERACTIVE else Speaker.GENERATOR
        )
        session.turn_started_at = self._clock()

        log.info(
            "turn_appended",
            session_id=session.id,
            speaker=turn.label,
            turns=len(session.transcript),
            word_count=turn.word_count,
        )
        return turn

    def _log_turn_timing(self, turn: Turn) -> None:
        started = self._session.turn_started_at
        turn_time = self._clock() - started if started is not None else None
        log.info(
            "user_turn_submitted",
            session_id=self._session.id,
            turn_time_seconds=round(turn_time, 2) if turn_time is not None else None,
            word_count=turn.word_count,
            is_paste=turn.is_paste,
        )

    # =========================================================================
    # Ending a story
    # =========================================================================

    async def end_session(self) -> AnalysisRecord:
        """
        End the story and run the analysis pipeline.

        A pending turn does not block ending; its result is discarded.

        Returns:
            The composed analysis record

        Raises:
            SessionBusyError: Analysis, opening or quit-save already running
            InvalidTransitionError: Not playing
        """
        if self._in_flight not in (None, OP_TURN):
            raise SessionBusyError(f"Cannot end the story while {self._in_flight} is running")
        self._require_status(SessionStatus.PLAYING, "end the story")

        session = self._session
        self._transition(SessionStatus.GENERATING_ANALYSIS)
        self._in_flight = OP_ANALYSIS

        try:
            record = await self.analysis_pipeline.analyze(
                tuple(session.transcript),
                session.settings.genre,
                session.persona_pair,
                mode=session.mode,
                creator_id=session.creator_id,
                on_notice=self._add_notice,
            )
        finally:
            self._in_flight = None

        session.analysis = record
        self._transition(SessionStatus.COMPLETE)
        return record

    async def expire_timer(self) -> Optional[AnalysisRecord]:
        """
        Timer expiry: end the story if it is still being played.

        Returns:
            The analysis record, or None when there was nothing to end
        """
        if self._session.status != SessionStatus.PLAYING or self._in_flight not in (
            None,
            OP_TURN,
        ):
            log.info(
                "timer_expiry_ignored",
                session_id=self._session.id,
                status=self._session.status.value,
                in_flight=self._in_flight,
            )
            return None
        log.info("session_timer_expired", session_id=self._session.id)
        return await self.end_session()

    def reset(self) -> None:
        """Play again: leave the completed story for the menu."""
        self._require_idle()
        self._require_status(SessionStatus.COMPLETE, "play again")
        self._transition(SessionStatus.MENU)

    # =========================================================================
    # Quit flow
    # =========================================================================

    def request_quit(self) -> QuitDialogState:
        self._require_status(SessionStatus.PLAYING, "quit")
        self._require_quit_state(QuitDialogState.NONE)
        return self._set_quit_state(QuitDialogState.CONFIRM_QUIT)

    def cancel_quit(self) -> QuitDialogState:
        self._require_quit_state(QuitDialogState.CONFIRM_QUIT)
        return self._set_quit_state(QuitDialogState.NONE)

    def confirm_quit(self) -> QuitDialogState:
        self._require_quit_state(QuitDialogState.CONFIRM_QUIT)
        return self._set_quit_state(QuitDialogState.CONFIRM_SAVE_CHOICE)

    async def save_and_quit(self) -> SaveResult:
        """
        Save the unfinished story once, then return to the menu.

        A failed save is reported as a notice and in the result; the session
        still returns to the menu.
        """
        self._require_quit_state(QuitDialogState.CONFIRM_SAVE_CHOICE)
        if self._in_flight not in (None, OP_TURN):
            raise SessionBusyError(f"Cannot save while {self._in_flight} is running")

        session = self._session
        self._in_flight = OP_SAVE
        record = StoryRecord(
            title=UNFINISHED_TITLE,
            content=full_story_text(session.transcript),
            creator_id=session.creator_id,
            genre=session.settings.genre,
            game_mode=session.mode,
        )

        try:
            if self.gateway is None:
                result = SaveResult(success=False, error="Story storage is not configured.")
            else:
                result = await self.gateway.save_story(record)
        except Exception as e:
            log.warning("quit_save_failed", session_id=session.id, error=str(e), exc_info=True)
            result = SaveResult(success=False, error=str(e))
        finally:
            self._in_flight = None

        if result.success:
            log.info("quit_save_complete", session_id=session.id, story_id=result.id)
        else:
            self._add_notice(
                Notice(
                    level=NoticeLevel.WARNING,
                    title="Save Failed",
                    message=result.error or "Your story could not be saved.",
                )
            )

        self._set_quit_state(QuitDialogState.NONE)
        self._transition(SessionStatus.MENU)
        return result

    def discard_and_quit(self) -> None:
        """Drop the unfinished story and return to the menu without saving."""
        self._require_quit_state(QuitDialogState.CONFIRM_SAVE_CHOICE)
        if self._in_flight not in (None, OP_TURN):
            raise SessionBusyError(f"Cannot quit while {self._in_flight} is running")
        self._set_quit_state(QuitDialogState.NONE)
        self._transition(SessionStatus.MENU)

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_idle(self) -> None:
        if self._in_flight is not None:
            raise SessionBusyError(f"Operation already in progress: {self._in_flight}")

    def _require_status(self, expected: SessionStatus, action: str) -> None:
        if self._session.status != expected:
            raise InvalidTransitionError(
                f"Cannot {action} while session is {self._session.status.value}"
            )

    def _require_quit_state(self, expected: QuitDialogState) -> None:
        if self._session.quit_dialog != expected:
            raise InvalidActionError(
                f"Quit dialog is {self._session.quit_dialog.value}, expected {expected.value}"
            )

    def _set_quit_state(self, state: QuitDialogState) -> QuitDialogState:
        previous = self._session.quit_dialog
        self._session.quit_dialog = state
        log.info(
            "quit_dialog_changed",
            session_id=self._session.id,
            from_state=previous.value,
            to_state=state.value,
        )
        return state

    def _add_notice(self, notice: Notice) -> None:
        self.notices.append(notice)

    def _transition(self, target: SessionStatus) -> None:
        session = self._session
        previous = session.status
        if not can_transition(previous, target):
            raise InvalidTransitionError(
                f"Illegal transition {previous.value} -> {target.value}"
            )

        session.status = target
        self._on_enter(target)

        log.info(
            "session_transition",
            session_id=session.id,
            from_status=previous.value,
            to_status=target.value,
            epoch=session.epoch,
        )

        if not self._observers:
            return
        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(previous, target, snapshot)
            except Exception as e:
                log.warning(
                    "transition_observer_failed",
                    session_id=session.id,
                    error=str(e),
                    exc_info=True,
                )

    def _on_enter(self, status: SessionStatus) -> None:
        session = self._session
        if status == SessionStatus.PLAYING:
            session.turn_started_at = self._clock()
        elif status == SessionStatus.MENU:
            session.clear_story()
            session.epoch += 1
            self._in_flight = None
        elif status == SessionStatus.GENERATING_ANALYSIS:
            session.epoch += 1
            session.quit_dialog = QuitDialogState.NONE
        elif status in (
            SessionStatus.LOADING,
            SessionStatus.ONBOARDING,
            SessionStatus.GENERATING_OPENING,
            SessionStatus.COMPLETE,
        ):
            pass
        else:
            raise ValueError(f"Unhandled session status: {status}")
