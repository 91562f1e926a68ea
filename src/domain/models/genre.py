"""Genre domain models.

A genre (trope) is the fixed, user-selectable narrative style of a session.
Its profile (description, opening instruction, narrative hooks) is loaded
from config/genres.yaml by src.core.genre_loader.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class Genre(str, Enum):
    """Selectable story genres.

    Values are the display names used throughout prompts, the persona
    catalog and stored stories.
    """

    NOIR_DETECTIVE = "Noir Detective"
    COSMIC_WANDERER = "Cosmic Wanderer"
    GOTHIC_ROMANCE = "Gothic Romance"
    FREEFLOW = "Freeflow"


class GenreProfile(BaseModel):
    """Prompt material for one genre."""

    model_config = {"frozen": True}

    genre: Genre
    description: str = Field(description="Tone and style summary used in prompts")
    opening_prompt: str = Field(
        description="Instruction for the generator-authored opening line"
    )
    hooks: List[str] = Field(
        default_factory=list, description="Narrative hook seeds for openings"
    )
