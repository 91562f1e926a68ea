"""
Shared test fixtures.

Temporary database and an orchestrator factory wired to the stubs in
tests/stubs.py.
"""

import random
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from src.domain.models.genre import Genre
from src.domain.models.persona import Persona, PersonaPair
from src.persistence.database import init_database
from src.persistence.repositories.story_repo import StoryRepository
from src.services.analysis_pipeline import AnalysisPipeline
from src.services.session_service import SessionOrchestrator
from src.services.turn_engine import RetryPolicy, TurnEngine

from tests.stubs import (
    FakeSleep,
    RecordingGateway,
    ScriptedGenerator,
    StubAnalysisGenerators,
)


# ============ DATABASE ============


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from src.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("src.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path


@pytest.fixture
async def story_repo(test_db):
    """Story repository on the test database."""
    return StoryRepository(str(test_db), ttl_hours=24)


# ============ SESSION CORE ============


@pytest.fixture
def noir():
    return Genre.NOIR_DETECTIVE


@pytest.fixture
def persona_pair():
    return PersonaPair(
        first=Persona(name="Raymond Chandler", description="Hard-boiled similes."),
        second=Persona(name="Dashiell Hammett", description="Lean, objective prose."),
    )


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def make_orchestrator(persona_pair, fake_sleep):
    """Factory for orchestrators wired to stubs, booted to the menu."""

    def _make(
        generator=None,
        analysis_generators=None,
        gateway=None,
        creator_id="user-1",
        hook="a stolen violin",
        boot=True,
        **kwargs,
    ) -> SessionOrchestrator:
        generator = generator or ScriptedGenerator()
        analysis_generators = analysis_generators or StubAnalysisGenerators()
        engine = TurnEngine(generator, policy=RetryPolicy(), sleep=fake_sleep)
        pipeline = AnalysisPipeline(
            analysis_generators,
            gateway=gateway,
            auto_persist=True,
            personas_json=lambda: "[]",
            quote_lookup=lambda name: None,
        )
        orchestrator = SessionOrchestrator(
            engine,
            pipeline,
            gateway=gateway,
            creator_id=creator_id,
            persona_sampler=lambda genre, rng: persona_pair,
            hook_picker=lambda genre, rng: hook,
            rng=random.Random(7),
            **kwargs,
        )
        if boot:
            orchestrator.boot()
        return orchestrator

    return _make
