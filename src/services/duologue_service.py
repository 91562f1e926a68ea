"""Automated duologue runner.

Drives a duologue session: after the opening, the two personas take turns
continuing the story with a fixed pause between turns. The runner stops as
soon as the session leaves the playing state (timer expiry, quit, manual
end) or a turn fails.

Usage:
    - The SessionRegistry starts a runner task when a duologue enters playing
    - The runner only calls SessionOrchestrator.generate_duologue_turn; the
      orchestrator decides which persona writes next
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from src.core.config import story_config
from src.domain.models.session import SessionStatus
from src.domain.models.turn import GameMode
from src.services.session_service import SessionOrchestrator
from src.services.turn_engine import SleepFn

log = structlog.get_logger(__name__)

STOP_SESSION_ENDED = "session_ended"
STOP_TURN_FAILED = "turn_failed"
STOP_MAX_TURNS = "max_turns_reached"


@dataclass
class DuologueRunResult:
    """Outcome of one duologue run."""

    session_id: str
    turns_generated: int
    stop_reason: str


class DuologueRunner:
    """Paced turn loop for a duologue session."""

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        pacing_seconds: Optional[float] = None,
        sleep: SleepFn = asyncio.sleep,
        max_turns: Optional[int] = None,
    ):
        """
        Args:
            orchestrator: Orchestrator owning the duologue session
            pacing_seconds: Pause before each turn (default from story_config.yaml)
            sleep: Awaitable sleep, injectable for simulated time
            max_turns: Optional safety cap on generated turns
        """
        self.orchestrator = orchestrator
        self.pacing_seconds = (
            story_config.duologue.pacing_seconds if pacing_seconds is None else pacing_seconds
        )
        self.sleep = sleep
        self.max_turns = max_turns

    def _still_playing(self) -> bool:
        snapshot = self.orchestrator.snapshot()
        return (
            snapshot.status == SessionStatus.PLAYING
            and snapshot.mode == GameMode.DUOLOGUE
        )

    async def run(self) -> DuologueRunResult:
        """
        Generate turns until the session stops playing.

        Returns:
            DuologueRunResult with the number of turns and why the loop stopped
        """
        session_id = self.orchestrator.session_id
        generated = 0

        log.info(
            "duologue_run_started",
            session_id=session_id,
            pacing_seconds=self.pacing_seconds,
        )

        stop_reason = STOP_SESSION_ENDED
        while self._still_playing():
            if self.max_turns is not None and generated >= self.max_turns:
                stop_reason = STOP_MAX_TURNS
                break

            await self.sleep(self.pacing_seconds)
            if not self._still_playing():
                break

            turn = await self.orchestrator.generate_duologue_turn()
            if turn is None:
                # Stale results also come back as None; only a live failure stops the run
                if self._still_playing():
                    stop_reason = STOP_TURN_FAILED
                break
            generated += 1

        log.info(
            "duologue_run_stopped",
            session_id=session_id,
            turns_generated=generated,
            stop_reason=stop_reason,
        )
        return DuologueRunResult(
            session_id=session_id, turns_generated=generated, stop_reason=stop_reason
        )
