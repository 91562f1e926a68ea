"""Domain models package."""

from .genre import Genre, GenreProfile
from .persona import Persona, PersonaPair
from .turn import GameMode, GenerationRequest, Speaker, Turn
from .analysis import AnalysisRecord, Emotion, FamousQuote, Mood, StyleMatch
from .notice import Notice, NoticeLevel
from .session import QuitDialogState, Session, SessionSettings, SessionStatus
from .story import PublicStory, PublishResult, SaveResult, StoredStory, StoryRecord

__all__ = [
    "Genre",
    "GenreProfile",
    "Persona",
    "PersonaPair",
    "GameMode",
    "GenerationRequest",
    "Speaker",
    "Turn",
    "AnalysisRecord",
    "Emotion",
    "FamousQuote",
    "Mood",
    "StyleMatch",
    "Notice",
    "NoticeLevel",
    "QuitDialogState",
    "Session",
    "SessionSettings",
    "SessionStatus",
    "PublishResult",
    "SaveResult",
    "PublicStory",
    "StoredStory",
    "StoryRecord",
]
