"""In-memory registry of live story sessions.

Holds one SessionOrchestrator per session id and attaches the background
machinery each session needs:

- a SessionTimer, started when the session enters playing and cancelled
  when it leaves
- a DuologueRunner task for duologue sessions, started on entering playing
  and cancelled when the session leaves it

Both are wired as transition observers, so the orchestrator stays unaware
of timers and background tasks.

Every lookup and transition stamps the session's last activity. Sessions
idle longer than the configured TTL are evicted by evict_idle(), which
run_sweeper() calls on a fixed interval. A session that is playing or has
an operation in flight is never evicted.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import structlog

from src.core.exceptions import SessionNotFoundError
from src.domain.models.session import Session, SessionStatus
from src.domain.models.turn import GameMode
from src.services.duologue_service import DuologueRunner
from src.services.session_service import SessionOrchestrator
from src.services.session_timer import SessionTimer
from src.services.turn_engine import SleepFn

log = structlog.get_logger(__name__)

OrchestratorFactory = Callable[[Optional[str]], SessionOrchestrator]


@dataclass
class SessionHandle:
    """A live session and its background machinery."""

    orchestrator: SessionOrchestrator
    timer: SessionTimer
    duologue_task: Optional[asyncio.Task] = None
    last_activity: float = 0.0
    unsubscribe: List[Callable[[], None]] = field(default_factory=list)

    def cancel_duologue(self) -> None:
        task = self.duologue_task
        self.duologue_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


class SessionRegistry:
    """Creates, tracks and tears down sessions."""

    def __init__(
        self,
        factory: OrchestratorFactory,
        sleep: SleepFn = asyncio.sleep,
        duologue_pacing_seconds: Optional[float] = None,
        idle_ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            factory: Builds an orchestrator for a creator id
            sleep: Awaitable sleep shared by timers, duologue runners and the sweeper
            duologue_pacing_seconds: Override for the pause between duologue turns
            idle_ttl_seconds: Idle time after which a session may be evicted
                (None keeps sessions until removed)
            clock: Monotonic time source for activity stamps
        """
        self.factory = factory
        self.sleep = sleep
        self.duologue_pacing_seconds = duologue_pacing_seconds
        self.idle_ttl_seconds = idle_ttl_seconds
        self.clock = clock
        self._handles: Dict[str, SessionHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def create(self, creator_id: Optional[str] = None) -> SessionOrchestrator:
        """Create and register a new session."""
        orchestrator = self.factory(creator_id)
        handle = SessionHandle(
            orchestrator=orchestrator,
            timer=SessionTimer(orchestrator, sleep=self.sleep),
            last_activity=self.clock(),
        )
        handle.unsubscribe.append(orchestrator.subscribe(self._make_observer(handle)))
        self._handles[orchestrator.session_id] = handle

        log.info(
            "session_registered",
            session_id=orchestrator.session_id,
            creator_id=creator_id,
            live_sessions=len(self._handles),
        )
        return orchestrator

    def get(self, session_id: str) -> SessionOrchestrator:
        return self.get_handle(session_id).orchestrator

    def get_handle(self, session_id: str) -> SessionHandle:
        handle = self._handles.get(session_id)
        if handle is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        handle.last_activity = self.clock()
        return handle

    def remove(self, session_id: str) -> None:
        """Stop a session's background work and forget it."""
        handle = self._handles.pop(session_id, None)
        if handle is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        self._teardown(handle)
        log.info("session_removed", session_id=session_id, live_sessions=len(self._handles))

    def evict_idle(self) -> int:
        """
        Remove sessions idle for at least the TTL.

        Returns:
            Number of sessions evicted
        """
        if self.idle_ttl_seconds is None:
            return 0

        cutoff = self.clock() - self.idle_ttl_seconds
        stale = [
            session_id
            for session_id, handle in self._handles.items()
            if handle.last_activity <= cutoff and self._is_evictable(handle.orchestrator)
        ]
        for session_id in stale:
            self._teardown(self._handles.pop(session_id))

        if stale:
            log.info(
                "idle_sessions_evicted",
                count=len(stale),
                live_sessions=len(self._handles),
            )
        return len(stale)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Evict idle sessions every interval until cancelled."""
        log.info(
            "session_sweeper_started",
            interval_seconds=interval_seconds,
            idle_ttl_seconds=self.idle_ttl_seconds,
        )
        while True:
            await self.sleep(interval_seconds)
            self.evict_idle()

    def shutdown(self) -> None:
        """Tear down every live session."""
        for handle in self._handles.values():
            self._teardown(handle)
        count = len(self._handles)
        self._handles.clear()
        log.info("session_registry_shutdown", sessions_closed=count)

    @staticmethod
    def _is_evictable(orchestrator: SessionOrchestrator) -> bool:
        # A playing session still has its timer running and ends on its own
        return orchestrator.in_flight is None and orchestrator.status != SessionStatus.PLAYING

    def _teardown(self, handle: SessionHandle) -> None:
        handle.timer.cancel()
        handle.cancel_duologue()
        for unsubscribe in handle.unsubscribe:
            unsubscribe()
        handle.unsubscribe.clear()

    def _make_observer(self, handle: SessionHandle):
        def on_transition(
            previous: SessionStatus, current: SessionStatus, session: Session
        ) -> None:
            handle.last_activity = self.clock()
            if current == SessionStatus.PLAYING:
                handle.timer.start(session.settings.duration_seconds)
                if session.mode == GameMode.DUOLOGUE:
                    runner = DuologueRunner(
                        handle.orchestrator,
                        pacing_seconds=self.duologue_pacing_seconds,
                        sleep=self.sleep,
                    )
                    handle.duologue_task = asyncio.create_task(runner.run())
            elif previous == SessionStatus.PLAYING:
                handle.timer.cancel()
                handle.cancel_duologue()

        return on_transition
