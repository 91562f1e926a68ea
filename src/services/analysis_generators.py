"""LLM-backed analysis generators.

One method per analysis property. Each makes its own LLM call and parses
the result; failures propagate so the AnalysisPipeline can substitute the
property's fallback. Title and final script go through the shared retry
policy, since they are the most visible properties of the record.
"""

import asyncio
from typing import List, Optional, Sequence

import structlog

from src.domain.models.analysis import Mood, StyleMatch
from src.domain.models.turn import Turn
from src.llm.client import LLMClient, get_analysis_llm_client
from src.llm.prompts.analysis import (
    ANALYSIS_SYSTEM_PROMPT,
    get_final_script_prompt,
    get_keywords_prompt,
    get_mood_prompt,
    get_quote_prompt,
    get_style_match_prompt,
    get_title_prompt,
    parse_final_script,
    parse_keywords,
    parse_mood,
    parse_quote,
    parse_style_match,
    parse_title,
)
from src.services.turn_engine import RetryPolicy, SleepFn, call_with_retry

log = structlog.get_logger(__name__)


class LLMAnalysisGenerators:
    """Analysis generators backed by the analysis LLM client."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        """
        Args:
            llm_client: LLM client (creates the analysis client if None)
            retry_policy: Policy for title and script calls
            sleep: Awaitable sleep used between retries
        """
        self.llm_client = llm_client or get_analysis_llm_client()
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.sleep = sleep

    async def _complete(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        response = await self.llm_client.complete(
            prompt=prompt, system=ANALYSIS_SYSTEM_PROMPT, max_tokens=max_tokens
        )
        return response.content

    async def generate_title(self, full_story: str) -> str:
        async def attempt() -> str:
            return parse_title(await self._complete(get_title_prompt(full_story), 64))

        return await call_with_retry(
            attempt, self.retry_policy, sleep=self.sleep, label="generate_title"
        )

    async def generate_quote(self, full_story: str) -> str:
        return parse_quote(await self._complete(get_quote_prompt(full_story), 128))

    async def generate_mood(self, user_content: str) -> Mood:
        return parse_mood(await self._complete(get_mood_prompt(user_content), 128))

    async def generate_style_match(
        self, user_content: str, personas_json: str
    ) -> StyleMatch:
        raw = await self._complete(get_style_match_prompt(user_content, personas_json), 128)
        return parse_style_match(raw)

    async def generate_keywords(self, user_content: str) -> List[str]:
        return parse_keywords(await self._complete(get_keywords_prompt(user_content), 128))

    async def generate_final_script(self, transcript: Sequence[Turn]) -> str:
        async def attempt() -> str:
            return parse_final_script(
                await self._complete(get_final_script_prompt(transcript))
            )

        script = await call_with_retry(
            attempt, self.retry_policy, sleep=self.sleep, label="generate_final_script"
        )
        log.debug("final_script_generated", length=len(script), turns=len(transcript))
        return script
