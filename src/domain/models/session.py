"""Session domain models for the story state machine.

Core Models:
    - SessionStatus: Top-level lifecycle state
    - QuitDialogState: Confirmation sub-state of the quit flow
    - SessionSettings: Genre and duration chosen from the menu
    - Session: Authoritative mutable state, owned by SessionOrchestrator

Status Transitions:
    loading -> onboarding | menu
    onboarding -> menu
    menu -> generating_opening
    generating_opening -> playing | menu (opening failed)
    playing -> generating_analysis (end or timer) | menu (quit)
    generating_analysis -> complete
    complete -> menu (play again)

Only the orchestrator mutates a Session. Everyone else reads snapshots.
"""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from src.domain.models.analysis import AnalysisRecord
from src.domain.models.genre import Genre
from src.domain.models.persona import PersonaPair
from src.domain.models.turn import GameMode, Speaker, Turn


class SessionStatus(str, Enum):
    """Lifecycle state of a session. MENU is the idle state between stories."""

    LOADING = "loading"
    ONBOARDING = "onboarding"
    MENU = "menu"
    GENERATING_OPENING = "generating_opening"
    PLAYING = "playing"
    GENERATING_ANALYSIS = "generating_analysis"
    COMPLETE = "complete"


ALLOWED_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.LOADING: frozenset({SessionStatus.ONBOARDING, SessionStatus.MENU}),
    SessionStatus.ONBOARDING: frozenset({SessionStatus.MENU}),
    SessionStatus.MENU: frozenset({SessionStatus.GENERATING_OPENING}),
    SessionStatus.GENERATING_OPENING: frozenset(
        {SessionStatus.PLAYING, SessionStatus.MENU}
    ),
    SessionStatus.PLAYING: frozenset(
        {SessionStatus.GENERATING_ANALYSIS, SessionStatus.MENU}
    ),
    SessionStatus.GENERATING_ANALYSIS: frozenset({SessionStatus.COMPLETE}),
    SessionStatus.COMPLETE: frozenset({SessionStatus.MENU}),
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class QuitDialogState(str, Enum):
    """Quit confirmation sub-state.

    none -> confirm_quit -> (cancel -> none)
                         -> confirm_save_choice -> (save | discard) -> none
    """

    NONE = "none"
    CONFIRM_QUIT = "confirm_quit"
    CONFIRM_SAVE_CHOICE = "confirm_save_choice"


class SessionSettings(BaseModel):
    """Genre and duration chosen for one story."""

    model_config = {"frozen": True}

    genre: Genre
    duration_seconds: int = Field(gt=0, description="Session length in seconds")


class Session(BaseModel):
    """Authoritative session state.

    Attributes:
        - status: Lifecycle state
        - mode: Interactive (human + generator) or duologue (two personas)
        - settings / persona_pair: Fixed for the lifetime of one story
        - transcript: Append-only ordered turns
        - next_speaker: Who is expected to contribute next
        - epoch: Bumped whenever pending turn results become stale
        - turn_started_at: Monotonic timestamp of the current turn's start
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    status: SessionStatus = SessionStatus.LOADING
    mode: GameMode = GameMode.INTERACTIVE
    settings: Optional[SessionSettings] = None
    persona_pair: Optional[PersonaPair] = None
    transcript: List[Turn] = Field(default_factory=list)
    next_speaker: Speaker = Speaker.GENERATOR
    quit_dialog: QuitDialogState = QuitDialogState.NONE
    onboarding_step: int = 0
    analysis: Optional[AnalysisRecord] = None
    creator_id: Optional[str] = None
    epoch: int = 0
    turn_started_at: Optional[float] = None

    def clear_story(self) -> None:
        """Drop everything tied to the current story."""
        self.mode = GameMode.INTERACTIVE
        self.settings = None
        self.persona_pair = None
        self.transcript = []
        self.next_speaker = Speaker.GENERATOR
        self.quit_dialog = QuitDialogState.NONE
        self.analysis = None
        self.turn_started_at = None


def user_content(transcript) -> str:
    """Typed (non-pasted) human lines of a transcript, joined by newlines."""
    return "\n".join(
        turn.text
        for turn in transcript
        if turn.speaker == Speaker.USER and not turn.is_paste
    )


def full_story_text(transcript) -> str:
    """Whole transcript as "LABEL: line" rows."""
    return "\n".join(f"{turn.label}: {turn.text}" for turn in transcript)
