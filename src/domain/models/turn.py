"""Turn and generation-request models.

Turns are the append-only units of a story transcript. A GenerationRequest
is the frozen context handed to the content generator for one call; it is
built fresh for every call and never mutated afterwards.
"""

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field

from src.domain.models.genre import Genre
from src.domain.models.persona import Persona


class Speaker(str, Enum):
    """Author of a turn.

    Values:
        - USER: the human co-author
        - GENERATOR: the content generator (in duologue mode the embodied
          persona's name is carried in Turn.persona_label)
    """

    USER = "user"
    GENERATOR = "generator"


class GameMode(str, Enum):
    """Session mode."""

    INTERACTIVE = "interactive"
    DUOLOGUE = "duologue"


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    return len(text.split())


class Turn(BaseModel):
    """One contributed line of story text. Immutable once appended."""

    model_config = {"frozen": True}

    speaker: Speaker
    text: str
    persona_label: Optional[str] = Field(
        default=None, description="Embodied persona name (duologue turns)"
    )
    is_paste: bool = Field(
        default=False, description="User pasted this block rather than typing it"
    )

    @property
    def label(self) -> str:
        """Display label: persona name when present, else the speaker role."""
        return self.persona_label or self.speaker.value.upper()

    @property
    def word_count(self) -> int:
        return count_words(self.text)


class GenerationRequest(BaseModel):
    """Structured context for one content generator call."""

    model_config = {"frozen": True}

    genre: Genre
    duration_seconds: int = Field(gt=0)
    latest_input: str = ""
    history: Tuple[Turn, ...] = ()
    persona_a: Persona
    persona_b: Persona
    mode: GameMode = GameMode.INTERACTIVE
    is_opening: bool = False
    embodied: Optional[Persona] = Field(
        default=None, description="Persona voiced by the generator (duologue)"
    )

    @property
    def duration_minutes(self) -> float:
        return self.duration_seconds / 60

    @property
    def target_word_count(self) -> int:
        """Word count of the most recent human-authored (or prior) line."""
        return count_words(self.latest_input)
