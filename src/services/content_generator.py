"""LLM-backed content generator.

Builds interactive or duologue prompts for a GenerationRequest and returns
one cleaned story line. Makes exactly one LLM call per request; retrying is
the TurnEngine's job.
"""

from typing import Optional

import structlog

from src.core.config import story_config
from src.core.exceptions import LLMContentError
from src.core.genre_loader import get_genre_profile
from src.domain.models.turn import GameMode, GenerationRequest
from src.llm.client import LLMClient, get_story_llm_client
from src.llm.prompts.duologue import (
    get_duologue_system_prompt,
    get_duologue_user_prompt,
)
from src.llm.prompts.story import (
    get_story_system_prompt,
    get_story_user_prompt,
    parse_story_line,
)

log = structlog.get_logger(__name__)


class LLMContentGenerator:
    """Generates story lines with the story LLM client."""

    def __init__(self, llm_client: Optional[LLMClient] = None):
        """
        Args:
            llm_client: LLM client (creates the story client if None)
        """
        self.llm_client = llm_client or get_story_llm_client()

    async def generate_line(self, request: GenerationRequest) -> str:
        """
        Generate one story line.

        Args:
            request: Frozen generation context

        Returns:
            Cleaned line text

        Raises:
            LLMContentError: If the model returned no usable text
            LLMError: Provider failures, unchanged, for retry classification
        """
        profile = get_genre_profile(request.genre)
        temperature = None

        if request.mode == GameMode.DUOLOGUE:
            system_prompt = get_duologue_system_prompt(request, profile)
            user_prompt = get_duologue_user_prompt(request)
            temperature = story_config.duologue.temperature
        elif request.mode == GameMode.INTERACTIVE:
            system_prompt = get_story_system_prompt(request, profile)
            user_prompt = get_story_user_prompt(request, profile)
        else:
            raise ValueError(f"Unknown game mode: {request.mode}")

        response = await self.llm_client.complete(
            prompt=user_prompt,
            system=system_prompt,
            temperature=temperature,
        )

        line = parse_story_line(response.content)
        if not line:
            raise LLMContentError("Story LLM returned an empty line")

        log.debug(
            "story_line_generated",
            genre=request.genre.value,
            mode=request.mode.value,
            is_opening=request.is_opening,
            embodied=request.embodied.name if request.embodied else None,
            word_count=len(line.split()),
            latency_ms=round(response.latency_ms, 2),
        )
        return line
