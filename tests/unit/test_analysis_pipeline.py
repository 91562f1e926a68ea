"""Tests for the post-session analysis pipeline."""

import asyncio

import pytest

from src.domain.models.analysis import (
    DEFAULT_KEYWORDS,
    DEFAULT_MOOD,
    DEFAULT_QUOTE,
    DEFAULT_STYLE,
    DEFAULT_TITLE,
    DUOLOGUE_MOOD,
    ERROR_STATE,
    NOT_SAVED,
    UNTOLD_TITLE,
    UNWRITTEN_KEYWORDS,
    UNWRITTEN_TITLE,
    Emotion,
    FamousQuote,
    Mood,
    StyleMatch,
)
from src.domain.models.genre import Genre
from src.domain.models.notice import NoticeLevel
from src.domain.models.story import SaveResult
from src.domain.models.turn import GameMode, Speaker, Turn
from src.services.analysis_pipeline import AnalysisPipeline

from tests.stubs import RecordingGateway, StubAnalysisGenerators

# What StubAnalysisGenerators answers, keyed by AnalysisRecord field
STUB_OUTPUTS = {
    "title": "The Lighthouse Keeper",
    "quote_banner": "The light turned, and with it every ship's hope.",
    "mood": Mood(primary_emotion=Emotion.TENSION, confidence_score=0.8),
    "style": StyleMatch(primary_match="Raymond Chandler", secondary_match="Dashiell Hammett"),
    "keywords": ["Rain", "Neon", "Alibi", "Smoke", "Debt"],
    "final_script": "A polished story.",
}


@pytest.fixture
def transcript():
    return (
        Turn(speaker=Speaker.GENERATOR, text="The rain came down like regret."),
        Turn(speaker=Speaker.USER, text="I lit my last cigarette."),
        Turn(speaker=Speaker.GENERATOR, text="Somewhere a siren answered."),
        Turn(speaker=Speaker.USER, text="Pasted block.", is_paste=True),
    )


def _pipeline(generators=None, gateway=None, **kwargs):
    kwargs.setdefault("personas_json", lambda: "[]")
    kwargs.setdefault("quote_lookup", lambda name: None)
    return AnalysisPipeline(
        generators or StubAnalysisGenerators(),
        gateway=gateway,
        auto_persist=True,
        **kwargs,
    )


class TestHappyPath:
    async def test_composes_every_property(self, transcript, persona_pair):
        record = await _pipeline().analyze(transcript, Genre.NOIR_DETECTIVE, persona_pair)

        assert record.title == "The Lighthouse Keeper"
        assert record.quote_banner.startswith("The light turned")
        assert record.mood.confidence_score == 0.8
        assert record.style.primary_match == "Raymond Chandler"
        assert record.keywords == ["Rain", "Neon", "Alibi", "Smoke", "Debt"]
        assert record.final_script == "A polished story."
        assert record.transcript == transcript
        assert record.persisted_id == NOT_SAVED

    async def test_human_only_generators_see_typed_lines(self, transcript, persona_pair):
        seen = {}

        class Capturing(StubAnalysisGenerators):
            async def generate_mood(self, user_content):
                seen["mood"] = user_content
                return await super().generate_mood(user_content)

            async def generate_title(self, full_story):
                seen["title"] = full_story
                return await super().generate_title(full_story)

        await _pipeline(Capturing()).analyze(transcript, Genre.NOIR_DETECTIVE, persona_pair)

        assert seen["mood"] == "I lit my last cigarette."
        assert "GENERATOR: Somewhere a siren answered." in seen["title"]

    async def test_famous_quote_attached(self, transcript, persona_pair):
        quote = FamousQuote(author="Raymond Chandler", quote="Trouble is my business.")
        pipeline = _pipeline(
            quote_lookup=lambda name: quote if name == "Raymond Chandler" else None
        )

        record = await pipeline.analyze(transcript, Genre.NOIR_DETECTIVE, persona_pair)

        assert record.famous_quote == quote

    async def test_generators_run_concurrently(self, transcript, persona_pair):
        started = []
        release = asyncio.Event()

        class Slow(StubAnalysisGenerators):
            async def generate_title(self, full_story):
                started.append("title")
                await release.wait()
                return "Slow Title"

            async def generate_quote(self, full_story):
                started.append("quote")
                release.set()
                return "A quote arrives before the title finishes."

        record = await _pipeline(Slow()).analyze(transcript, Genre.NOIR_DETECTIVE, persona_pair)

        assert started == ["title", "quote"]
        assert record.title == "Slow Title"

    async def test_same_transcript_gives_identical_records(self, transcript, persona_pair):
        pipeline = _pipeline()

        first = await pipeline.analyze(transcript, Genre.NOIR_DETECTIVE, persona_pair)
        second = await pipeline.analyze(transcript, Genre.NOIR_DETECTIVE, persona_pair)

        assert first == second
        assert first.model_dump_json() == second.model_dump_json()


class TestFallbacks:
    @pytest.mark.parametrize(
        "failed, attribute, expected",
        [
            ("title", "title", DEFAULT_TITLE),
            ("quote", "quote_banner", DEFAULT_QUOTE),
            ("mood", "mood", DEFAULT_MOOD),
            ("style", "style", DEFAULT_STYLE),
            ("keywords", "keywords", list(DEFAULT_KEYWORDS)),
        ],
    )
    async def test_single_failure_uses_its_fallback(
        self, transcript, persona_pair, failed, attribute, expected
    ):
        generators = StubAnalysisGenerators(failures={failed: RuntimeError("boom")})
        notices = []

        record = await _pipeline(generators).analyze(
            transcript, Genre.NOIR_DETECTIVE, persona_pair, on_notice=notices.append
        )

        assert getattr(record, attribute) == expected
        assert len(notices) == 1
        assert notices[0].level == NoticeLevel.WARNING

        # Every other property keeps its generator output
        untouched = {
            name: value for name, value in STUB_OUTPUTS.items() if name != attribute
        }
        for name, value in untouched.items():
            assert getattr(record, name) == value, name

    async def test_script_falls_back_to_transcript(self, transcript, persona_pair):
        generators = StubAnalysisGenerators(failures={"script": RuntimeError("boom")})

        record = await _pipeline(generators).analyze(
            transcript, Genre.NOIR_DETECTIVE, persona_pair
        )

        assert record.final_script.startswith("GENERATOR: The rain came down like regret.")
        assert "USER: I lit my last cigarette." in record.final_script

    async def test_every_generator_failing(self, transcript, persona_pair):
        failures = {
            name: RuntimeError(name)
            for name in ("title", "quote", "mood", "style", "keywords", "script")
        }
        notices = []

        record = await _pipeline(StubAnalysisGenerators(failures)).analyze(
            transcript, Genre.NOIR_DETECTIVE, persona_pair, on_notice=notices.append
        )

        assert record.title == DEFAULT_TITLE
        assert record.mood == DEFAULT_MOOD
        assert len(notices) == 6

    async def test_catalog_failure_counts_as_style_failure(self, transcript, persona_pair):
        def broken_catalog():
            raise ValueError("catalog unreadable")

        record = await _pipeline(personas_json=broken_catalog).analyze(
            transcript, Genre.NOIR_DETECTIVE, persona_pair
        )

        assert record.style == DEFAULT_STYLE
        assert record.title == "The Lighthouse Keeper"


class TestSpecialRecords:
    async def test_no_typed_lines_gives_unwritten_record(self, persona_pair):
        generators = StubAnalysisGenerators()
        gateway = RecordingGateway()
        transcript = (
            Turn(speaker=Speaker.GENERATOR, text="Opening."),
            Turn(speaker=Speaker.USER, text="Only a paste.", is_paste=True),
        )

        record = await _pipeline(generators, gateway).analyze(
            transcript, Genre.GOTHIC_ROMANCE, persona_pair
        )

        assert record.title == UNWRITTEN_TITLE
        assert record.keywords == list(UNWRITTEN_KEYWORDS)
        assert record.persisted_id == NOT_SAVED
        assert generators.calls == []
        assert gateway.saved == []

    async def test_duologue_derives_human_properties(self, persona_pair):
        generators = StubAnalysisGenerators()
        transcript = (
            Turn(speaker=Speaker.GENERATOR, text="One.", persona_label="Raymond Chandler"),
            Turn(speaker=Speaker.GENERATOR, text="Two.", persona_label="Dashiell Hammett"),
        )

        record = await _pipeline(generators).analyze(
            transcript, Genre.NOIR_DETECTIVE, persona_pair, mode=GameMode.DUOLOGUE
        )

        assert record.mood == DUOLOGUE_MOOD
        assert record.style.primary_match == "Raymond Chandler"
        assert record.style.secondary_match == "Dashiell Hammett"
        assert record.keywords == list(DEFAULT_KEYWORDS)
        assert sorted(generators.calls) == ["quote", "script", "title"]

    async def test_critical_failure_gives_untold_record(self, transcript, persona_pair):
        notices = []

        def exploding_lookup(name):
            raise KeyError(name)

        record = await _pipeline(quote_lookup=exploding_lookup).analyze(
            transcript, Genre.NOIR_DETECTIVE, persona_pair, on_notice=notices.append
        )

        assert record.title == UNTOLD_TITLE
        assert record.persisted_id == ERROR_STATE
        assert record.final_script == " ".join(t.text for t in transcript)
        assert notices[-1].level == NoticeLevel.ERROR


class TestPersistence:
    async def test_saved_id_recorded(self, transcript, persona_pair):
        gateway = RecordingGateway(result=SaveResult(success=True, id="abc123"))

        record = await _pipeline(gateway=gateway).analyze(
            transcript, Genre.NOIR_DETECTIVE, persona_pair, creator_id="user-9"
        )

        assert record.persisted_id == "abc123"
        assert record.is_saved
        saved = gateway.saved[0]
        assert saved.creator_id == "user-9"
        assert saved.title == "The Lighthouse Keeper"
        assert saved.content == "A polished story."
        assert saved.mood == "Tension"

    async def test_rejected_save_keeps_sentinel(self, transcript, persona_pair):
        gateway = RecordingGateway(
            result=SaveResult(success=False, error="A user ID is required to save a story.")
        )
        notices = []

        record = await _pipeline(gateway=gateway).analyze(
            transcript, Genre.NOIR_DETECTIVE, persona_pair, on_notice=notices.append
        )

        assert record.persisted_id == NOT_SAVED
        assert notices[-1].title == "Save Failed"

    async def test_gateway_exception_keeps_sentinel(self, transcript, persona_pair):
        gateway = RecordingGateway(error=RuntimeError("db locked"))

        record = await _pipeline(gateway=gateway).analyze(
            transcript, Genre.NOIR_DETECTIVE, persona_pair
        )

        assert record.persisted_id == NOT_SAVED
        assert record.title == "The Lighthouse Keeper"

    async def test_auto_persist_disabled(self, transcript, persona_pair):
        gateway = RecordingGateway()
        pipeline = AnalysisPipeline(
            StubAnalysisGenerators(),
            gateway=gateway,
            auto_persist=False,
            personas_json=lambda: "[]",
            quote_lookup=lambda name: None,
        )

        record = await pipeline.analyze(transcript, Genre.NOIR_DETECTIVE, persona_pair)

        assert gateway.saved == []
        assert record.persisted_id == NOT_SAVED
