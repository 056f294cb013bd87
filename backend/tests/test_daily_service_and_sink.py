import logging

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, select

from conftest import FULL_DAY, SHORT_DAY
from nepal_mcq import models
from nepal_mcq.categories import QuizType
from nepal_mcq.daily_quiz import FixedClock
from nepal_mcq.errors import InsufficientQuestionsError, RepositoryError, RunStateError, SinkError
from nepal_mcq.repositories import LeaderboardRepository, QuestionRepository, ResultSink
from nepal_mcq.services import DailyQuizService


def add_user(session, username="sita@example.com", full_name=None):
    user = models.User(username=username, password_hash="x", full_name=full_name)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def play(run, correct_count):
    run.start()
    for n, q in enumerate(list(run.questions)):
        wrong = "B" if q.correct_option != "B" else "C"
        run.submit_answer(q.id, q.correct_option if n < correct_count else wrong)
    return run


def test_fetch_by_category_is_ordered_and_empty_is_not_an_error(db_session, seed_questions):
    seed_questions(db_session, default=3)
    repo = QuestionRepository(db_session)
    pool = repo.fetch_by_category("economy")
    assert [q.id for q in pool] == sorted(q.id for q in pool)
    assert len(pool) == 3
    assert repo.fetch_by_category("no-such-category") == []


def test_fetch_failure_raises_repository_error():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    with Session(engine) as session:
        with pytest.raises(RepositoryError):
            QuestionRepository(session).fetch_by_category("economy")


def test_load_daily_quiz_survives_a_broken_store(caplog):
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    with Session(engine) as session:
        with caplog.at_level(logging.WARNING):
            assert DailyQuizService(session, FixedClock(FULL_DAY)).load_daily_quiz() == []
    assert "fetch failed" in caplog.text


def test_load_daily_quiz_is_idempotent(db_session, seed_questions):
    seed_questions(db_session, default=6, double=6)
    svc = DailyQuizService(db_session, FixedClock(FULL_DAY))
    first = [q.id for q in svc.load_daily_quiz()]
    second = [q.id for q in svc.load_daily_quiz()]
    assert first == second
    assert len(first) <= 10


def test_short_day_cannot_start(db_session, seed_questions):
    seed_questions(db_session)
    run = DailyQuizService(db_session, FixedClock(SHORT_DAY)).new_run()
    assert run.total == 9
    with pytest.raises(InsufficientQuestionsError):
        run.start()


def test_complete_run_saves_result_and_points(db_session, seed_questions):
    seed_questions(db_session)
    user = add_user(db_session)
    svc = DailyQuizService(db_session, FixedClock(FULL_DAY))
    run = play(svc.new_run(), 7)

    result = svc.complete_run(user.id, run)

    assert (result.score, result.total, result.points_awarded) == (7, 10, 3.5)
    assert result.submission_error is None
    stored = db_session.exec(select(models.QuizResult)).all()
    assert len(stored) == 1
    assert stored[0].quiz_type == "daily"
    assert stored[0].score == 7
    items = db_session.exec(select(models.QuizResultItem)).all()
    assert len(items) == 10
    assert sum(1 for i in items if i.is_correct) == 7
    entry = LeaderboardRepository(db_session).get(user.id)
    assert entry.total_points == 3.5
    assert entry.daily_quiz_points == 3.5
    assert entry.quiz_points == 0
    assert entry.total_daily_quizzes_completed == 1


def test_complete_run_submits_only_once(db_session, seed_questions):
    seed_questions(db_session)
    user = add_user(db_session)
    svc = DailyQuizService(db_session, FixedClock(FULL_DAY))
    run = play(svc.new_run(), 4)
    svc.complete_run(user.id, run)
    with pytest.raises(RunStateError):
        svc.complete_run(user.id, run)
    assert len(db_session.exec(select(models.QuizResult)).all()) == 1


def test_sink_failure_still_returns_score_and_leaves_no_partial_writes(db_session, seed_questions, monkeypatch, caplog):
    seed_questions(db_session)
    user = add_user(db_session)
    svc = DailyQuizService(db_session, FixedClock(FULL_DAY))
    run = play(svc.new_run(), 7)

    def broken_increment(*args, **kwargs):
        raise SinkError("leaderboard unavailable")

    monkeypatch.setattr(svc.sink, "increment_leaderboard", broken_increment)
    with caplog.at_level(logging.WARNING):
        result = svc.complete_run(user.id, run)

    assert (result.score, result.total, result.points_awarded) == (7, 10, 3.5)
    assert result.submission_error == "leaderboard unavailable"
    assert db_session.exec(select(models.QuizResult)).all() == []
    assert db_session.exec(select(models.QuizResultItem)).all() == []
    assert LeaderboardRepository(db_session).get(user.id) is None
    assert "not saved" in caplog.text


def test_append_failure_skips_leaderboard(db_session, seed_questions, monkeypatch):
    seed_questions(db_session)
    user = add_user(db_session)
    svc = DailyQuizService(db_session, FixedClock(FULL_DAY))
    run = play(svc.new_run(), 2)
    calls = []

    def broken_append(*args, **kwargs):
        raise SinkError("results table unavailable")

    monkeypatch.setattr(svc.sink, "append_result", broken_append)
    monkeypatch.setattr(svc.sink, "increment_leaderboard", lambda *a, **k: calls.append(a))
    result = svc.complete_run(user.id, run)
    assert result.submission_error == "results table unavailable"
    assert result.score == 2
    assert calls == []


def test_leaderboard_increments_accumulate(db_session):
    user = add_user(db_session)
    sink = ResultSink(db_session)
    sink.increment_leaderboard(user.id, QuizType.DAILY, 6, 10)
    sink.increment_leaderboard(user.id, QuizType.REGULAR, 8, 10)
    sink.increment_leaderboard(user.id, "daily", 0, 10)
    sink.commit()
    entry = LeaderboardRepository(db_session).get(user.id)
    db_session.refresh(entry)
    assert entry.total_points == 5.0
    assert entry.daily_quiz_points == 3.0
    assert entry.quiz_points == 2.0
    assert entry.total_daily_quizzes_completed == 2
    assert entry.total_quizzes_completed == 1
    assert entry.total_correct_answers == 14
    assert entry.total_questions_answered == 30


def test_sink_reports_database_failure():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    with Session(engine) as session:
        with pytest.raises(SinkError):
            ResultSink(session).increment_leaderboard(1, QuizType.DAILY, 1, 10)
