"""Session countdown timer.

Counts down the configured session duration and then asks the orchestrator
to end the story. Expiry is a no-op when the story already ended, so a late
timer never double-triggers analysis.
"""

import asyncio
import time
from typing import Callable, Optional

import structlog

from src.services.session_service import SessionOrchestrator
from src.services.turn_engine import SleepFn

log = structlog.get_logger(__name__)


class SessionTimer:
    """One-shot countdown bound to an orchestrator."""

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.orchestrator = orchestrator
        self.sleep = sleep
        self.clock = clock
        self._task: Optional[asyncio.Task] = None
        self._deadline: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def remaining_seconds(self) -> Optional[float]:
        """Seconds left on the countdown, or None when not running."""
        if not self.running or self._deadline is None:
            return None
        return max(0.0, self._deadline - self.clock())

    def start(self, duration_seconds: float) -> asyncio.Task:
        """
        Start (or restart) the countdown.

        Must be called from a running event loop.
        """
        self.cancel()
        self._deadline = self.clock() + duration_seconds
        self._task = asyncio.create_task(self._countdown(duration_seconds))
        log.info(
            "session_timer_started",
            session_id=self.orchestrator.session_id,
            duration_seconds=duration_seconds,
        )
        return self._task

    def cancel(self) -> None:
        """Stop the countdown. Safe to call from the timer's own task."""
        task = self._task
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()
        self._task = None
        self._deadline = None
        log.debug("session_timer_cancelled", session_id=self.orchestrator.session_id)

    async def _countdown(self, duration_seconds: float) -> None:
        await self.sleep(duration_seconds)
        try:
            await self.orchestrator.expire_timer()
        except Exception as e:
            log.error(
                "session_timer_expiry_failed",
                session_id=self.orchestrator.session_id,
                error=str(e),
                exc_info=True,
            )
