"""Dependency injection for API routes."""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Request

from src.core.config import settings
from src.llm.client import LLMClient, get_analysis_llm_client, get_story_llm_client
from src.persistence.repositories.story_repo import StoryRepository
from src.services.analysis_generators import LLMAnalysisGenerators
from src.services.analysis_pipeline import AnalysisPipeline
from src.services.content_generator import LLMContentGenerator
from src.services.export_service import ExportService
from src.services.publish_service import PublishService
from src.services.session_registry import SessionRegistry
from src.services.session_service import SessionOrchestrator
from src.services.turn_engine import TurnEngine


def get_story_repository() -> StoryRepository:
    """FastAPI dependency injection for StoryRepository.

    Each request gets a new repository bound to the configured database path.
    """
    return StoryRepository(str(settings.database_path))


@lru_cache(maxsize=1)
def get_shared_story_client() -> LLMClient:
    """Cached LLM client for story lines, created once per process."""
    return get_story_llm_client()


@lru_cache(maxsize=1)
def get_shared_analysis_client() -> LLMClient:
    """Cached LLM client for post-session analysis, created once per process."""
    return get_analysis_llm_client()


def build_orchestrator(creator_id: Optional[str] = None) -> SessionOrchestrator:
    """Wire a SessionOrchestrator with the production collaborators."""
    story_repo = get_story_repository()
    turn_engine = TurnEngine(LLMContentGenerator(get_shared_story_client()))
    pipeline = AnalysisPipeline(
        LLMAnalysisGenerators(get_shared_analysis_client()),
        gateway=story_repo,
    )
    return SessionOrchestrator(
        turn_engine, pipeline, gateway=story_repo, creator_id=creator_id
    )


def get_session_registry(request: Request) -> SessionRegistry:
    """The application-wide registry created in the lifespan handler."""
    return request.app.state.session_registry


def get_publish_service(
    story_repo: StoryRepository = Depends(get_story_repository),
) -> PublishService:
    return PublishService(story_repo)


def get_export_service() -> ExportService:
    return ExportService()


# Type aliases for dependency injection
StoryRepoDep = Annotated[StoryRepository, Depends(get_story_repository)]
RegistryDep = Annotated[SessionRegistry, Depends(get_session_registry)]
PublishServiceDep = Annotated[PublishService, Depends(get_publish_service)]
ExportServiceDep = Annotated[ExportService, Depends(get_export_service)]
