"""Post-session analysis models.

The AnalysisRecord is the composite summary built once per completed
session by the AnalysisPipeline. Every property is resolved (from its
generator or from a named fallback) before the record is composed, and the
record is read-only afterwards.

Fallback and template values live here so the pipeline, the tests and
the export layer agree on them.
"""

from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from src.domain.models.genre import Genre
from src.domain.models.turn import GameMode, Turn

NOT_SAVED = "not_saved"
ERROR_STATE = "error_state"


class Emotion(str, Enum):
    """Primary emotion detected in a story."""

    JOY = "Joy"
    HOPE = "Hope"
    AWE = "Awe"
    SERENITY = "Serenity"
    MELANCHOLY = "Melancholy"
    TENSION = "Tension"
    FEAR = "Fear"
    SADNESS = "Sadness"
    MOROSE = "Morose"


class Mood(BaseModel):
    """Primary emotion with a confidence score in [0, 1]."""

    model_config = {"frozen": True}

    primary_emotion: Emotion
    confidence_score: float = Field(ge=0.0, le=1.0)


class StyleMatch(BaseModel):
    """Winner and runner-up persona names for the human's writing style."""

    model_config = {"frozen": True}

    primary_match: str
    secondary_match: str


class FamousQuote(BaseModel):
    model_config = {"frozen": True}

    author: str
    quote: str


class AnalysisRecord(BaseModel):
    """Composite post-session summary.

    Attributes:
        title: Story title (under 8 words)
        quote_banner: One memorable line, 10-20 words
        mood: Primary emotion of the human's writing
        style: Persona names closest to the human's writing
        famous_quote: Quote attributed to style.primary_match, if any
        keywords: Title-case single words
        final_script: Polished prose version of the transcript
        transcript: The session transcript (shared, read-only)
        persisted_id: Durable id, or NOT_SAVED / ERROR_STATE sentinel
    """

    model_config = {"frozen": True}

    title: str
    genre: Genre
    game_mode: GameMode = GameMode.INTERACTIVE
    quote_banner: str
    mood: Mood
    style: StyleMatch
    famous_quote: Optional[FamousQuote] = None
    keywords: List[str]
    final_script: str
    transcript: Tuple[Turn, ...] = ()
    persisted_id: str = NOT_SAVED

    @property
    def is_saved(self) -> bool:
        return self.persisted_id not in (NOT_SAVED, ERROR_STATE)


# =============================================================================
# Fallback values (one per analysis property)
# =============================================================================

DEFAULT_TITLE = "A Story"
DEFAULT_QUOTE = "Every story has an end."
DEFAULT_MOOD = Mood(primary_emotion=Emotion.MELANCHOLY, confidence_score=0.5)
DEFAULT_STYLE = StyleMatch(primary_match="The Storyteller", secondary_match="The Dreamer")
DEFAULT_KEYWORDS: Tuple[str, ...] = ("Mystery", "Suspense", "Hope", "Wonder", "Resolve")

# Duologue sessions have no human text to analyse
DUOLOGUE_MOOD = Mood(primary_emotion=Emotion.SERENITY, confidence_score=0.5)

# =============================================================================
# Unwritten story template (interactive session with no human text)
# =============================================================================

UNWRITTEN_TITLE = "An Unwritten Tale"
UNWRITTEN_TEXT = (
    "The story was left unwritten, a silent testament to a moment of quiet "
    "contemplation."
)
UNWRITTEN_MOOD = Mood(primary_emotion=Emotion.SERENITY, confidence_score=0.8)
UNWRITTEN_STYLE = StyleMatch(
    primary_match="The Silent Observer", secondary_match="The Patient Chronicler"
)
UNWRITTEN_KEYWORDS: Tuple[str, ...] = (
    "Reflection",
    "Silence",
    "Stillness",
    "Pause",
    "Contemplation",
    "End",
)

# =============================================================================
# Critical failure record
# =============================================================================

UNTOLD_TITLE = "A Story Untold"
UNTOLD_QUOTE = "The story ended, a universe of feeling left in its wake."
UNTOLD_MOOD = Mood(primary_emotion=Emotion.MELANCHOLY, confidence_score=0.7)
