"""Tests for the session countdown timer."""

import asyncio

from src.domain.models.session import SessionStatus
from src.services.session_timer import SessionTimer

from tests.stubs import FakeSleep, GatedSleep


async def test_expiry_ends_the_story(make_orchestrator, noir):
    orchestrator = make_orchestrator()
    await orchestrator.start_session(noir, 60)
    await orchestrator.submit_line("Clock's ticking.")
    sleep = FakeSleep()
    timer = SessionTimer(orchestrator, sleep=sleep)

    await timer.start(60)

    assert sleep.delays == [60]
    assert orchestrator.status == SessionStatus.COMPLETE
    assert orchestrator.analysis is not None


async def test_expiry_after_manual_end_is_a_no_op(make_orchestrator, noir):
    orchestrator = make_orchestrator()
    await orchestrator.start_session(noir, 60)
    sleep = GatedSleep()
    timer = SessionTimer(orchestrator, sleep=sleep)
    task = timer.start(60)

    record = await orchestrator.end_session()
    sleep.release.set()
    await task

    assert orchestrator.analysis is record


async def test_cancel_stops_the_countdown(make_orchestrator, noir):
    orchestrator = make_orchestrator()
    await orchestrator.start_session(noir, 60)
    timer = SessionTimer(orchestrator, sleep=GatedSleep())
    task = timer.start(60)
    await asyncio.sleep(0)
    assert timer.running

    timer.cancel()
    await asyncio.sleep(0)

    assert task.cancelled()
    assert not timer.running
    assert orchestrator.status == SessionStatus.PLAYING


async def test_remaining_seconds(make_orchestrator, noir):
    now = [100.0]
    orchestrator = make_orchestrator()
    timer = SessionTimer(orchestrator, sleep=GatedSleep(), clock=lambda: now[0])
    assert timer.remaining_seconds() is None

    timer.start(30)
    now[0] = 112.5
    assert timer.remaining_seconds() == 17.5

    now[0] = 200.0
    assert timer.remaining_seconds() == 0.0
    timer.cancel()


async def test_restart_replaces_previous_countdown(make_orchestrator):
    orchestrator = make_orchestrator()
    timer = SessionTimer(orchestrator, sleep=GatedSleep())

    first = timer.start(60)
    second = timer.start(30)
    await asyncio.sleep(0)

    assert first.cancelled()
    assert not second.done()
    timer.cancel()
