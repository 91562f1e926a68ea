"""Repository implementations."""

from src.persistence.repositories.story_repo import StoryRepository

__all__ = ["StoryRepository"]
