"""Story repository for database operations.

Implements the persistence gateway used by the session core (save_story)
plus the reads behind the story routes. Stories expire a fixed number of
hours after they are saved.
"""

import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import aiosqlite
import structlog

from src.core.config import settings
from src.domain.models.story import PublicStory, SaveResult, StoredStory, StoryRecord

log = structlog.get_logger(__name__)

MISSING_CREATOR_ERROR = "A user ID is required to save a story."
SAVE_FAILED_ERROR = "The story could not be saved."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoryRepository:
    """Repository for story CRUD operations."""

    def __init__(
        self,
        db_path: str,
        ttl_hours: Optional[int] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.db_path = db_path
        self.ttl = timedelta(hours=settings.story_ttl_hours if ttl_hours is None else ttl_hours)
        self.now = now

    async def save_story(self, record: StoryRecord) -> SaveResult:
        """
        Save a finished story with an expiry timestamp.

        Returns:
            SaveResult with the new id, or success=False with an error
            message (missing creator, database failure)
        """
        if not record.creator_id:
            return SaveResult(success=False, error=MISSING_CREATOR_ERROR)

        story_id = str(uuid.uuid4())
        created_at = self.now()
        expire_at = created_at + self.ttl

        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """INSERT INTO stories (
                        id, creator_id, title, content, mood, style_match,
                        genre, game_mode, quote_banner, keywords,
                        created_at, expire_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        story_id,
                        record.creator_id,
                        record.title,
                        record.content,
                        record.mood,
                        record.style_match,
                        record.genre.value,
                        record.game_mode.value,
                        record.quote_banner,
                        json.dumps(record.keywords),
                        created_at.isoformat(),
                        expire_at.isoformat(),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            log.error("story_save_failed", creator_id=record.creator_id, error=str(e))
            return SaveResult(success=False, error=SAVE_FAILED_ERROR)

        log.info(
            "story_saved",
            story_id=story_id,
            creator_id=record.creator_id,
            expire_at=expire_at.isoformat(),
        )
        return SaveResult(success=True, id=story_id)

    async def get(self, story_id: str) -> Optional[StoredStory]:
        """Get a story by ID, expired or not."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM stories WHERE id = ?", (story_id,))
            row = await cursor.fetchone()
            if not row:
                return None
            return self._row_to_story(row)

    async def list_by_creator(self, creator_id: str) -> List[StoredStory]:
        """Unexpired stories of one creator, newest first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM stories WHERE creator_id = ? AND expire_at > ? "
                "ORDER BY created_at DESC",
                (creator_id, self.now().isoformat()),
            )
            rows = await cursor.fetchall()
            return [self._row_to_story(row) for row in rows]

    async def list_recent(self, limit: int = 100) -> List[StoredStory]:
        """Newest unexpired stories across all creators (the hall of fame)."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM stories WHERE expire_at > ? "
                "ORDER BY created_at DESC LIMIT ?",
                (self.now().isoformat(), limit),
            )
            rows = await cursor.fetchall()
            return [self._row_to_story(row) for row in rows]

    async def purge_expired(self) -> int:
        """Delete expired stories. Returns the number removed."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM stories WHERE expire_at <= ?", (self.now().isoformat(),)
            )
            await db.commit()
            removed = cursor.rowcount
        if removed:
            log.info("expired_stories_purged", count=removed)
        return removed

    async def insert_public_story(self, story: PublicStory) -> None:
        """Insert or replace the published copy of a story."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO public_stories (
                    id, title, content, tagline, mood, style_match, keywords,
                    original_creator_id, author_name, created_at, views, likes
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    story.id,
                    story.title,
                    story.content,
                    story.tagline,
                    story.mood,
                    story.style_match,
                    json.dumps(story.keywords),
                    story.original_creator_id,
                    story.author_name,
                    story.created_at.isoformat(),
                    story.views,
                    story.likes,
                ),
            )
            await db.commit()

    async def get_public_story(self, story_id: str) -> Optional[PublicStory]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM public_stories WHERE id = ?", (story_id,)
            )
            row = await cursor.fetchone()
            if not row:
                return None
            data = dict(row)
            data["keywords"] = json.loads(data["keywords"] or "[]")
            data["created_at"] = datetime.fromisoformat(data["created_at"])
            return PublicStory(**data)

    def _row_to_story(self, row: aiosqlite.Row) -> StoredStory:
        return StoredStory(
            id=row["id"],
            creator_id=row["creator_id"],
            title=row["title"],
            content=row["content"],
            mood=row["mood"],
            style_match=row["style_match"],
            genre=row["genre"],
            game_mode=row["game_mode"],
            quote_banner=row["quote_banner"],
            keywords=json.loads(row["keywords"] or "[]"),
            created_at=datetime.fromisoformat(row["created_at"]),
            expire_at=datetime.fromisoformat(row["expire_at"]),
        )
