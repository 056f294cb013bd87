import asyncio

import pytest

from conftest import make_question
from nepal_mcq.categories import CATEGORIES
from nepal_mcq.errors import AnswerRejectedError
from nepal_mcq.quiz_run import DailyQuizRun
from nepal_mcq.utils.advance_timer import AdvanceTimer
from nepal_mcq.utils.run_store import DailyRunSession, DailyRunStore


def started_run():
    run = DailyQuizRun("2024-05-01", [make_question(i, CATEGORIES[i % 9]) for i in range(1, 11)])
    run.start()
    return run


def test_timer_fires_once_after_delay():
    fired = []

    async def scenario():
        timer = AdvanceTimer(0.01, lambda: fired.append(True))
        timer.start()
        assert timer.pending
        await asyncio.sleep(0.05)
        return timer

    timer = asyncio.run(scenario())
    assert fired == [True]
    assert timer.fired and not timer.pending


def test_cancelled_timer_never_fires():
    fired = []

    async def scenario():
        timer = AdvanceTimer(0.01, lambda: fired.append(True))
        timer.start()
        timer.cancel()
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert fired == []


def test_timer_cannot_be_reused():
    async def scenario():
        timer = AdvanceTimer(0.01, lambda: None)
        timer.start()
        with pytest.raises(RuntimeError):
            timer.start()
        timer.cancel()

    asyncio.run(scenario())


def test_feedback_window_then_auto_advance():
    async def scenario():
        session = DailyRunSession(1, started_run(), advance_delay=0.02)
        first = session.run.questions[0]
        session.answer(first.id, "A")
        view = session.view()
        assert view['position'] == 0
        assert view['feedback'].question_id == first.id
        with pytest.raises(AnswerRejectedError):
            session.answer(session.run.questions[1].id, "A")
        await asyncio.sleep(0.06)
        view = session.view()
        assert view['feedback'] is None
        assert view['position'] == 1
        assert view['question'].id == session.run.questions[1].id

    asyncio.run(scenario())


def test_teardown_stops_pending_advance():
    async def scenario():
        session = DailyRunSession(1, started_run(), advance_delay=0.02)
        session.answer(session.run.questions[0].id, "A")
        assert session.advance_pending
        session.teardown()
        await asyncio.sleep(0.06)
        assert session.closed
        assert not session.advance_pending
        with pytest.raises(AnswerRejectedError):
            session.answer(session.run.questions[1].id, "A")

    asyncio.run(scenario())


def test_zero_delay_advances_immediately():
    session = DailyRunSession(1, started_run(), advance_delay=0)
    session.answer(session.run.questions[0].id, "A")
    assert session.view()['position'] == 1
    assert not session.advance_pending


def test_store_replaces_and_discards_sessions():
    store = DailyRunStore(ttl_seconds=3600)
    old = store.put(DailyRunSession(7, started_run(), advance_delay=0))
    new = store.put(DailyRunSession(7, started_run(), advance_delay=0))
    assert old.closed
    assert store.get(7) is new
    assert store.discard(7) is True
    assert new.closed
    assert store.get(7) is None
    assert store.discard(7) is False


def test_store_expires_abandoned_runs():
    store = DailyRunStore(ttl_seconds=60)
    session = store.put(DailyRunSession(3, started_run(), advance_delay=0))
    session.created_at -= 120
    assert store.get(3) is None
    assert session.closed
    assert len(store) == 0
