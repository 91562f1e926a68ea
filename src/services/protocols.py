"""
Service protocol definitions (interfaces).

The session core depends only on these protocols, so generators and the
persistence gateway can be swapped for stubs in tests or for other
providers in production.
"""

from typing import List, Protocol, Sequence

from src.domain.models.analysis import Mood, StyleMatch
from src.domain.models.session import Session, SessionStatus
from src.domain.models.story import SaveResult, StoryRecord
from src.domain.models.turn import GenerationRequest, Turn


class IContentGenerator(Protocol):
    """
    Protocol for the content generator.

    Produces one story line for a generation request.
    """

    async def generate_line(self, request: GenerationRequest) -> str:
        """
        Generate the next story line.

        Args:
            request: Frozen generation context

        Returns:
            Generated line text

        Raises:
            LLMRateLimitError: Provider signalled too many requests
            LLMServiceUnavailableError: Provider temporarily unavailable
            Exception: Any other failure (not retried)
        """
        ...


class IAnalysisGenerators(Protocol):
    """
    Protocol for the six post-session analysis generators.

    Each method is independent; a failure in one must not affect the others.
    """

    async def generate_title(self, full_story: str) -> str:
        """Story title, under 8 words."""
        ...

    async def generate_quote(self, full_story: str) -> str:
        """One memorable quote of 10-20 words."""
        ...

    async def generate_mood(self, user_content: str) -> Mood:
        """Primary emotion and confidence of the human's writing."""
        ...

    async def generate_style_match(
        self, user_content: str, personas_json: str
    ) -> StyleMatch:
        """Two persona names closest to the human's style."""
        ...

    async def generate_keywords(self, user_content: str) -> List[str]:
        """Five to seven Title-Case single words."""
        ...

    async def generate_final_script(self, transcript: Sequence[Turn]) -> str:
        """Polished prose version of the transcript."""
        ...


class IPersistenceGateway(Protocol):
    """
    Protocol for durable story storage.

    Implementations return SaveResult(success=False, ...) rather than raising
    for rejected writes (e.g. missing creator id).
    """

    async def save_story(self, record: StoryRecord) -> SaveResult:
        """
        Persist a finished story.

        Args:
            record: Story with its analysis summary

        Returns:
            SaveResult with the durable id on success
        """
        ...


class ITransitionObserver(Protocol):
    """
    Callable notified after every session state transition.

    Used for side flows layered around the core (timers, ad gates,
    reward unlocks, API bookkeeping).
    """

    def __call__(
        self, previous: SessionStatus, current: SessionStatus, session: Session
    ) -> None:
        ...
