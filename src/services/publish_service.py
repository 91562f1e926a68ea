"""Publishing of saved stories to the public gallery.

Only the story's creator may publish it, and stories containing a
forbidden word are rejected. Publishing copies the story into the
public_stories table under the same id.
"""

from typing import List, Optional

import structlog

from src.core.config import story_config
from src.core.exceptions import AuthorizationError, ContentFlaggedError, StoryNotFoundError
from src.domain.models.story import PublicStory, PublishResult
from src.persistence.repositories.story_repo import StoryRepository

log = structlog.get_logger(__name__)

DEFAULT_PUBLIC_TITLE = "Untitled Story"
DEFAULT_TAGLINE = "A story from Storyloom."
DEFAULT_AUTHOR = "Storyloom Writer"
UNKNOWN = "Unknown"


def find_forbidden_word(text: str, forbidden_words: List[str]) -> Optional[str]:
    """First forbidden word contained in text (case-insensitive), if any."""
    lowered = text.lower()
    for word in forbidden_words:
        if word and word.lower() in lowered:
            return word
    return None


class PublishService:
    """Moves a private story into the public gallery."""

    def __init__(
        self,
        story_repo: StoryRepository,
        forbidden_words: Optional[List[str]] = None,
    ):
        """
        Args:
            story_repo: Repository holding private and public stories
            forbidden_words: Words that block publishing (default from story_config.yaml)
        """
        self.story_repo = story_repo
        self.forbidden_words = (
            story_config.publish.forbidden_words if forbidden_words is None else forbidden_words
        )

    async def publish(
        self,
        story_id: str,
        user_id: Optional[str],
        author_name: Optional[str] = None,
    ) -> PublishResult:
        """
        Publish a saved story.

        Args:
            story_id: Private story id
            user_id: Id of the requesting user
            author_name: Display name shown in the gallery

        Returns:
            PublishResult with the public reading URL

        Raises:
            AuthorizationError: No user, or the user does not own the story
            StoryNotFoundError: No story with this id, or it has expired
            ContentFlaggedError: Story text contains a forbidden word
        """
        if not user_id:
            raise AuthorizationError("You must be logged in to publish.")

        now = self.story_repo.now()
        story = await self.story_repo.get(story_id)
        if story is None or story.expire_at <= now:
            raise StoryNotFoundError(f"Story {story_id} not found")

        if story.creator_id != user_id:
            log.warning("publish_unauthorized", story_id=story_id, user_id=user_id)
            raise AuthorizationError("Unauthorized: You do not own this story.")

        flagged = find_forbidden_word(story.content, self.forbidden_words)
        if flagged is not None:
            log.warning("publish_content_flagged", story_id=story_id)
            raise ContentFlaggedError(
                "Story contains flagged content and cannot be published."
            )

        public = PublicStory(
            id=story.id,
            title=story.title or DEFAULT_PUBLIC_TITLE,
            content=story.content,
            tagline=story.quote_banner or DEFAULT_TAGLINE,
            mood=story.mood or UNKNOWN,
            style_match=story.style_match or UNKNOWN,
            keywords=list(story.keywords),
            original_creator_id=user_id,
            author_name=author_name or DEFAULT_AUTHOR,
            created_at=now,
        )
        await self.story_repo.insert_public_story(public)

        log.info("story_published", story_id=story_id, user_id=user_id)
        return PublishResult(success=True, id=story_id, url=f"/read/{story_id}")
