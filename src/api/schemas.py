"""
API request/response schemas.

Pydantic models for API validation and serialization.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from src.domain.models.analysis import AnalysisRecord
from src.domain.models.genre import Genre
from src.domain.models.notice import Notice
from src.domain.models.session import QuitDialogState, Session, SessionStatus
from src.domain.models.story import SaveResult, StoredStory
from src.domain.models.turn import GameMode, Speaker, Turn


# ============ SESSION SCHEMAS ============


class SessionCreate(BaseModel):
    """Request to create (and boot) a new session."""

    creator_id: Optional[str] = Field(default=None, description="Owner of saved stories")
    first_visit: bool = Field(default=False, description="Show onboarding first")


class TurnSchema(BaseModel):
    """One transcript turn."""

    speaker: Speaker
    label: str
    text: str
    is_paste: bool = False
    word_count: int

    @classmethod
    def from_turn(cls, turn: Turn) -> "TurnSchema":
        return cls(
            speaker=turn.speaker,
            label=turn.label,
            text=turn.text,
            is_paste=turn.is_paste,
            word_count=turn.word_count,
        )


class SessionResponse(BaseModel):
    """Session snapshot response."""

    id: str
    status: SessionStatus
    mode: GameMode
    genre: Optional[Genre] = None
    duration_seconds: Optional[int] = None
    remaining_seconds: Optional[float] = None
    personas: List[str] = Field(default_factory=list)
    transcript: List[TurnSchema] = Field(default_factory=list)
    next_speaker: Speaker
    quit_dialog: QuitDialogState
    onboarding_step: int = 0
    in_flight: Optional[str] = None
    has_analysis: bool = False

    @classmethod
    def from_session(
        cls,
        session: Session,
        in_flight: Optional[str] = None,
        remaining_seconds: Optional[float] = None,
    ) -> "SessionResponse":
        return cls(
            id=session.id,
            status=session.status,
            mode=session.mode,
            genre=session.settings.genre if session.settings else None,
            duration_seconds=session.settings.duration_seconds if session.settings else None,
            remaining_seconds=remaining_seconds,
            personas=list(session.persona_pair.names) if session.persona_pair else [],
            transcript=[TurnSchema.from_turn(t) for t in session.transcript],
            next_speaker=session.next_speaker,
            quit_dialog=session.quit_dialog,
            onboarding_step=session.onboarding_step,
            in_flight=in_flight,
            has_analysis=session.analysis is not None,
        )


class StartStoryRequest(BaseModel):
    """Request to start an interactive story."""

    genre: Genre
    duration_seconds: Optional[int] = Field(
        default=None, description="One of the configured duration options"
    )


class StartDuologueRequest(BaseModel):
    """Request to start a duologue."""

    genre: Genre


# ============ TURN SCHEMAS ============


class TurnRequest(BaseModel):
    """Request to submit a human line."""

    text: str = Field(..., min_length=1, max_length=5000, description="Story line")
    is_paste: bool = Field(default=False, description="Line was pasted, not typed")


class TurnResponse(BaseModel):
    """Result of a turn: the generator's reply (if any) and the new snapshot."""

    turn: Optional[TurnSchema] = None
    session: SessionResponse
    notices: List[Notice] = Field(default_factory=list)


# ============ ANALYSIS SCHEMAS ============


class AnalysisResponse(BaseModel):
    """Completed analysis record with its share text."""

    analysis: AnalysisRecord
    share_text: str
    notices: List[Notice] = Field(default_factory=list)


class QuitResponse(BaseModel):
    """State of the quit flow after an action."""

    status: SessionStatus
    quit_dialog: QuitDialogState
    save: Optional[SaveResult] = None
    notices: List[Notice] = Field(default_factory=list)


class NoticeListResponse(BaseModel):
    notices: List[Notice]


# ============ STORY SCHEMAS ============


class StoryListResponse(BaseModel):
    """A list of unexpired stories, newest first."""

    stories: List[StoredStory]
    total: int


class PublishRequest(BaseModel):
    """Request to publish a saved story."""

    user_id: Optional[str] = None
    author_name: Optional[str] = None
