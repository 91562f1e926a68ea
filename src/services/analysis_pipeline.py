"""
Post-session analysis pipeline.

Turns a finished transcript into one AnalysisRecord:

1. Interactive story with no human-typed text: return the "unwritten story"
   template without calling any generator.
2. Otherwise run every analysis generator concurrently. Duologue stories
   have no human text, so mood, style match and keywords are derived from
   the session instead of generated.
3. Substitute a named fallback for every failed property and emit one
   notice per failure.
4. Compose the record and attach the famous quote of the winning style.
5. Hand the story to the persistence gateway; a failed or rejected save
   keeps the NOT_SAVED sentinel and emits a notice.

Generator failures never escape analyze(). An unexpected error while
composing yields the critical-failure record instead.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from src.core.config import settings
from src.core.persona_loader import catalog_as_json
from src.core.quote_loader import find_famous_quote
from src.domain.models.analysis import (
    DEFAULT_KEYWORDS,
    DEFAULT_MOOD,
    DEFAULT_QUOTE,
    DEFAULT_STYLE,
    DEFAULT_TITLE,
    DUOLOGUE_MOOD,
    ERROR_STATE,
    NOT_SAVED,
    UNTOLD_MOOD,
    UNTOLD_QUOTE,
    UNTOLD_TITLE,
    UNWRITTEN_KEYWORDS,
    UNWRITTEN_MOOD,
    UNWRITTEN_STYLE,
    UNWRITTEN_TEXT,
    UNWRITTEN_TITLE,
    AnalysisRecord,
    FamousQuote,
    StyleMatch,
)
from src.domain.models.genre import Genre
from src.domain.models.notice import Notice, NoticeLevel
from src.domain.models.persona import PersonaPair
from src.domain.models.session import full_story_text, user_content
from src.domain.models.story import StoryRecord
from src.domain.models.turn import GameMode, Turn
from src.services.protocols import IAnalysisGenerators, IPersistenceGateway

log = structlog.get_logger(__name__)

NoticeSink = Callable[[Notice], None]

# Property name -> display name used in notices
PROPERTY_LABELS: Dict[str, str] = {
    "title": "Title",
    "quote": "Quote",
    "mood": "Mood",
    "style": "Style",
    "keywords": "Keywords",
    "script": "Final Script",
}


def build_unwritten_record(genre: Genre, transcript: Sequence[Turn] = ()) -> AnalysisRecord:
    """Fixed record for an interactive story the human never wrote in."""
    return AnalysisRecord(
        title=UNWRITTEN_TITLE,
        genre=genre,
        game_mode=GameMode.INTERACTIVE,
        quote_banner=UNWRITTEN_TEXT,
        mood=UNWRITTEN_MOOD,
        style=UNWRITTEN_STYLE,
        famous_quote=None,
        keywords=list(UNWRITTEN_KEYWORDS),
        final_script=UNWRITTEN_TEXT,
        transcript=tuple(transcript),
        persisted_id=NOT_SAVED,
    )


def build_untold_record(
    genre: Genre, mode: GameMode, transcript: Sequence[Turn] = ()
) -> AnalysisRecord:
    """Record used when analysis itself breaks down."""
    return AnalysisRecord(
        title=UNTOLD_TITLE,
        genre=genre,
        game_mode=mode,
        quote_banner=UNTOLD_QUOTE,
        mood=UNTOLD_MOOD,
        style=DEFAULT_STYLE,
        famous_quote=None,
        keywords=list(DEFAULT_KEYWORDS),
        final_script=" ".join(turn.text for turn in transcript),
        transcript=tuple(transcript),
        persisted_id=ERROR_STATE,
    )


async def _resolved(value: Any) -> Any:
    return value


class AnalysisPipeline:
    """Fans out to the analysis generators and composes the record."""

    def __init__(
        self,
        generators: IAnalysisGenerators,
        gateway: Optional[IPersistenceGateway] = None,
        auto_persist: Optional[bool] = None,
        personas_json: Optional[Callable[[], str]] = None,
        quote_lookup: Optional[Callable[[str], Optional[FamousQuote]]] = None,
    ):
        """
        Args:
            generators: The six analysis generators
            gateway: Persistence gateway (None disables saving)
            auto_persist: Save after analysis (default settings.auto_persist_analysis)
            personas_json: Provider of the serialized persona catalog
            quote_lookup: Persona name -> FamousQuote lookup
        """
        self.generators = generators
        self.gateway = gateway
        self.auto_persist = (
            settings.auto_persist_analysis if auto_persist is None else auto_persist
        )
        self.personas_json = personas_json or catalog_as_json
        self.quote_lookup = quote_lookup or find_famous_quote

    async def analyze(
        self,
        transcript: Sequence[Turn],
        genre: Genre,
        persona_pair: Optional[PersonaPair],
        mode: GameMode = GameMode.INTERACTIVE,
        creator_id: Optional[str] = None,
        on_notice: Optional[NoticeSink] = None,
    ) -> AnalysisRecord:
        """
        Build the analysis record for a finished story.

        Args:
            transcript: Finished transcript (not modified)
            genre: Session genre
            persona_pair: Session personas (style match in duologue mode)
            mode: Session mode
            creator_id: Owner passed to the persistence gateway
            on_notice: Receives one notice per degraded property

        Returns:
            Composed AnalysisRecord; never raises for generator or gateway
            failures
        """
        transcript = tuple(transcript)
        notify = on_notice or (lambda notice: None)
        start = time.perf_counter()

        if mode == GameMode.INTERACTIVE and not user_content(transcript).strip():
            log.info("analysis_unwritten_story", genre=genre.value, turns=len(transcript))
            return build_unwritten_record(genre, transcript)

        try:
            record = await self._compose(transcript, genre, persona_pair, mode, notify)
        except Exception as e:
            log.error(
                "analysis_critical_failure",
                genre=genre.value,
                error=str(e),
                exc_info=True,
            )
            notify(
                Notice(
                    level=NoticeLevel.ERROR,
                    title="Analysis Error",
                    message="Could not generate the full story analysis.",
                )
            )
            return build_untold_record(genre, mode, transcript)

        record = await self._persist(record, creator_id, notify)

        log.info(
            "analysis_complete",
            genre=genre.value,
            mode=mode.value,
            turns=len(transcript),
            mood=record.mood.primary_emotion.value,
            persisted_id=record.persisted_id,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return record

    async def _compose(
        self,
        transcript: Tuple[Turn, ...],
        genre: Genre,
        persona_pair: Optional[PersonaPair],
        mode: GameMode,
        notify: NoticeSink,
    ) -> AnalysisRecord:
        full_story = full_story_text(transcript)
        content = user_content(transcript)

        calls: Dict[str, Awaitable[Any]] = {
            "title": self.generators.generate_title(full_story),
            "quote": self.generators.generate_quote(full_story),
        }

        if mode == GameMode.INTERACTIVE:
            calls["mood"] = self.generators.generate_mood(content)
            calls["style"] = self._style_match(content)
            calls["keywords"] = self.generators.generate_keywords(content)
        elif mode == GameMode.DUOLOGUE:
            calls["mood"] = _resolved(DUOLOGUE_MOOD)
            if persona_pair is not None:
                first, second = persona_pair.names
                calls["style"] = _resolved(
                    StyleMatch(primary_match=first, secondary_match=second)
                )
            else:
                calls["style"] = _resolved(DEFAULT_STYLE)
            calls["keywords"] = _resolved(list(DEFAULT_KEYWORDS))
        else:
            raise ValueError(f"Unknown game mode: {mode}")

        calls["script"] = self.generators.generate_final_script(transcript)

        names = list(calls)
        results = await asyncio.gather(*calls.values(), return_exceptions=True)
        outcomes = dict(zip(names, results))

        fallbacks: Dict[str, Any] = {
            "title": DEFAULT_TITLE,
            "quote": DEFAULT_QUOTE,
            "mood": DEFAULT_MOOD,
            "style": DEFAULT_STYLE,
            "keywords": list(DEFAULT_KEYWORDS),
            "script": full_story,
        }

        resolved: Dict[str, Any] = {}
        failed: List[str] = []
        for name in names:
            outcome = outcomes[name]
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome  # cancellation and friends
                failed.append(name)
                resolved[name] = fallbacks[name]
                log.warning(
                    "analysis_fallback_used",
                    property=name,
                    error_type=type(outcome).__name__,
                    error=str(outcome),
                )
                notify(
                    Notice(
                        level=NoticeLevel.WARNING,
                        title="Analysis Step Failed",
                        message=f"Could not generate {PROPERTY_LABELS[name].lower()}.",
                    )
                )
            else:
                resolved[name] = outcome

        style: StyleMatch = resolved["style"]
        record = AnalysisRecord(
            title=resolved["title"],
            genre=genre,
            game_mode=mode,
            quote_banner=resolved["quote"],
            mood=resolved["mood"],
            style=style,
            famous_quote=self.quote_lookup(style.primary_match),
            keywords=list(resolved["keywords"]),
            final_script=resolved["script"],
            transcript=transcript,
            persisted_id=NOT_SAVED,
        )

        log.debug("analysis_composed", failed_properties=failed)
        return record

    async def _style_match(self, content: str) -> StyleMatch:
        # Catalog serialization failures count as a style-match failure
        return await self.generators.generate_style_match(content, self.personas_json())

    async def _persist(
        self,
        record: AnalysisRecord,
        creator_id: Optional[str],
        notify: NoticeSink,
    ) -> AnalysisRecord:
        """Save through the gateway; failures keep the NOT_SAVED sentinel."""
        if self.gateway is None or not self.auto_persist:
            return record

        try:
            result = await self.gateway.save_story(
                StoryRecord.from_analysis(record, creator_id)
            )
        except Exception as e:
            log.warning("analysis_persist_failed", error=str(e), exc_info=True)
            notify(
                Notice(
                    level=NoticeLevel.WARNING,
                    title="Save Failed",
                    message="Your story could not be saved, but the analysis is ready.",
                )
            )
            return record

        if not result.success or not result.id:
            log.warning("analysis_persist_rejected", error=result.error)
            notify(
                Notice(
                    level=NoticeLevel.WARNING,
                    title="Save Failed",
                    message=result.error or "Your story could not be saved.",
                )
            )
            return record

        return record.model_copy(update={"persisted_id": result.id})
