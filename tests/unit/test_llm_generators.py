"""Tests for the LLM-backed content and analysis generators."""

import pytest
from unittest.mock import AsyncMock

from src.core.exceptions import LLMContentError, LLMRateLimitError
from src.domain.models.analysis import Emotion
from src.domain.models.genre import Genre
from src.domain.models.turn import GameMode, GenerationRequest, Speaker, Turn
from src.llm.client import LLMResponse
from src.services.analysis_generators import LLMAnalysisGenerators
from src.services.content_generator import LLMContentGenerator
from src.services.turn_engine import RetryPolicy

from tests.stubs import FakeSleep


def _client(*contents):
    """Mock LLM client answering with `contents` in order."""
    client = AsyncMock()
    client.complete.side_effect = [
        item if isinstance(item, Exception) else LLMResponse(content=item, model="test")
        for item in contents
    ]
    return client


@pytest.fixture
def interactive_request(persona_pair):
    return GenerationRequest(
        genre=Genre.NOIR_DETECTIVE,
        duration_seconds=60,
        latest_input="I lit my last cigarette.",
        persona_a=persona_pair.first,
        persona_b=persona_pair.second,
    )


class TestLLMContentGenerator:
    """Tests for LLMContentGenerator."""

    async def test_interactive_line(self, interactive_request):
        client = _client('GENERATOR: "Somewhere a siren answered."')

        line = await LLMContentGenerator(client).generate_line(interactive_request)

        assert line == "Somewhere a siren answered."
        call = client.complete.call_args.kwargs
        assert "Never break character" in call["system"]
        assert "I lit my last cigarette." in call["prompt"]
        assert call["temperature"] is None

    async def test_duologue_line_uses_duologue_temperature(self, persona_pair):
        client = _client("The fog held its breath.")
        request = GenerationRequest(
            genre=Genre.NOIR_DETECTIVE,
            duration_seconds=30,
            persona_a=persona_pair.first,
            persona_b=persona_pair.second,
            mode=GameMode.DUOLOGUE,
            is_opening=True,
            embodied=persona_pair.first,
        )

        await LLMContentGenerator(client).generate_line(request)

        call = client.complete.call_args.kwargs
        assert "Name: Raymond Chandler" in call["system"]
        assert call["temperature"] == 0.75

    async def test_empty_line_is_a_content_error(self, interactive_request):
        with pytest.raises(LLMContentError):
            await LLMContentGenerator(_client('  ""  ')).generate_line(interactive_request)

    async def test_provider_errors_propagate(self, interactive_request):
        with pytest.raises(LLMRateLimitError):
            await LLMContentGenerator(_client(LLMRateLimitError("429"))).generate_line(
                interactive_request
            )


class TestLLMAnalysisGenerators:
    """Tests for LLMAnalysisGenerators."""

    def _generators(self, client, sleep=None):
        return LLMAnalysisGenerators(client, retry_policy=RetryPolicy(), sleep=sleep or FakeSleep())

    async def test_title_is_parsed(self):
        generators = self._generators(_client('"The Last Ferry"'))

        assert await generators.generate_title("story") == "The Last Ferry"

    async def test_title_retries_rate_limits(self):
        sleep = FakeSleep()
        generators = self._generators(
            _client(LLMRateLimitError("429"), "The Last Ferry"), sleep
        )

        assert await generators.generate_title("story") == "The Last Ferry"
        assert sleep.delays == [5.0]

    async def test_quote_is_not_retried(self):
        generators = self._generators(_client(LLMRateLimitError("429"), "unused"))

        with pytest.raises(LLMRateLimitError):
            await generators.generate_quote("story")

    async def test_mood(self):
        generators = self._generators(
            _client('{"primaryEmotion": "Awe", "confidenceScore": 0.6}')
        )

        mood = await generators.generate_mood("I looked up at the stars.")

        assert mood.primary_emotion == Emotion.AWE

    async def test_style_match_receives_catalog(self):
        client = _client('{"styleMatches": ["Raymond Chandler", "Ross Macdonald"]}')

        style = await self._generators(client).generate_style_match("text", '{"catalog": 1}')

        assert style.secondary_match == "Ross Macdonald"
        assert '{"catalog": 1}' in client.complete.call_args.kwargs["prompt"]

    async def test_keywords_parse_failure_propagates(self):
        with pytest.raises(LLMContentError):
            await self._generators(_client('{"keywords": ["one"]}')).generate_keywords("text")

    async def test_final_script(self):
        client = _client("A polished story.")
        transcript = (
            Turn(speaker=Speaker.GENERATOR, text="Opening."),
            Turn(speaker=Speaker.USER, text="Pasted.", is_paste=True),
        )

        script = await self._generators(client).generate_final_script(transcript)

        assert script == "A polished story."
        assert "```paste\nPasted.\n```" in client.complete.call_args.kwargs["prompt"]
