"""Persistence payloads for finished stories.

StoryRecord is what the session core hands to the persistence gateway;
StoredStory is what the repository reads back. Public stories are the
published, read-only copies shown in the gallery.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from src.domain.models.analysis import AnalysisRecord
from src.domain.models.genre import Genre
from src.domain.models.turn import GameMode


class StoryRecord(BaseModel):
    """Finished story submitted to the persistence gateway."""

    model_config = {"frozen": True}

    title: str
    content: str = Field(description="Polished final script")
    creator_id: Optional[str] = None
    mood: Optional[str] = None
    style_match: Optional[str] = None
    genre: Genre
    game_mode: GameMode = GameMode.INTERACTIVE
    quote_banner: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)

    @classmethod
    def from_analysis(
        cls, analysis: AnalysisRecord, creator_id: Optional[str]
    ) -> "StoryRecord":
        return cls(
            title=analysis.title,
            content=analysis.final_script,
            creator_id=creator_id,
            mood=analysis.mood.primary_emotion.value,
            style_match=analysis.style.primary_match,
            genre=analysis.genre,
            game_mode=analysis.game_mode,
            quote_banner=analysis.quote_banner,
            keywords=list(analysis.keywords),
        )


class SaveResult(BaseModel):
    """Outcome of a persistence gateway write."""

    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


class StoredStory(BaseModel):
    """Story row as read back from storage."""

    id: str
    creator_id: str
    title: str
    content: str
    mood: Optional[str] = None
    style_match: Optional[str] = None
    genre: Genre
    game_mode: GameMode
    quote_banner: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    created_at: datetime
    expire_at: datetime

    model_config = {"from_attributes": True}


class PublishResult(BaseModel):
    success: bool
    id: str
    url: str


class PublicStory(BaseModel):
    """Published copy of a story, readable by anyone."""

    id: str
    title: str
    content: str
    tagline: str
    mood: str
    style_match: str
    keywords: List[str] = Field(default_factory=list)
    original_creator_id: str
    author_name: str
    created_at: datetime
    views: int = 0
    likes: int = 0
