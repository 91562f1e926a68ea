"""
Story API routes.

Endpoints for saved stories: listing a creator's unexpired stories or the
newest stories of everyone (hall of fame), reading one, publishing it to
the public gallery, and exporting it.
"""

from fastapi import APIRouter, Query
from fastapi.responses import Response
import structlog

from src.api.dependencies import ExportServiceDep, PublishServiceDep, StoryRepoDep
from src.api.routes.sessions import EXPORT_MEDIA_TYPES
from src.api.schemas import PublishRequest, StoryListResponse
from src.core.exceptions import StoryNotFoundError
from src.domain.models.story import PublicStory, PublishResult, StoredStory

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/stories", tags=["stories"])


@router.get("", response_model=StoryListResponse)
async def list_stories(
    story_repo: StoryRepoDep,
    creator_id: str = Query(..., description="Owner whose stories to list"),
):
    """Unexpired stories of one creator, newest first."""
    stories = await story_repo.list_by_creator(creator_id)
    return StoryListResponse(stories=stories, total=len(stories))


@router.get("/recent", response_model=StoryListResponse)
async def list_recent_stories(
    story_repo: StoryRepoDep,
    limit: int = Query(100, ge=1, le=100, description="Maximum stories to return"),
):
    """Hall of fame: the newest unexpired stories from every creator."""
    stories = await story_repo.list_recent(limit)
    return StoryListResponse(stories=stories, total=len(stories))


@router.get("/public/{story_id}", response_model=PublicStory)
async def get_public_story(story_id: str, story_repo: StoryRepoDep):
    """Read a published story."""
    story = await story_repo.get_public_story(story_id)
    if story is None:
        raise StoryNotFoundError(f"Public story {story_id} not found")
    return story


@router.get("/{story_id}", response_model=StoredStory)
async def get_story(story_id: str, story_repo: StoryRepoDep):
    story = await story_repo.get(story_id)
    if story is None:
        raise StoryNotFoundError(f"Story {story_id} not found")
    return story


@router.post("/{story_id}/publish", response_model=PublishResult)
async def publish_story(
    story_id: str, request: PublishRequest, publish_service: PublishServiceDep
):
    """Publish a saved story to the public gallery (owner only)."""
    return await publish_service.publish(story_id, request.user_id, request.author_name)


@router.get("/{story_id}/export", response_class=Response)
async def export_story(
    story_id: str,
    story_repo: StoryRepoDep,
    export_service: ExportServiceDep,
    format: str = Query(
        "json",
        description="Export format: json, markdown, or csv",
        pattern="^(json|markdown|csv)$",
    ),
) -> Response:
    story = await story_repo.get(story_id)
    if story is None:
        raise StoryNotFoundError(f"Story {story_id} not found")

    data = export_service.export_story(story, format)
    content_type, extension = EXPORT_MEDIA_TYPES[format]
    log.info("story_exported", story_id=story_id, format=format)
    return Response(
        content=data,
        media_type=content_type,
        headers={
            "Content-Disposition": f'attachment; filename="story_{story_id[:8]}.{extension}"',
        },
    )
