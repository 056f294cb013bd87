"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints used by the Nepal MCQ quiz
backend. Controllers are intentionally thin: they accept requests,
delegate to services, and return JSON responses.

Endpoints implemented:
- POST /auth/register
- POST /auth/login
- GET /categories
- GET /quiz/{category}
- POST /quiz/grade
- GET /daily
- POST /daily/start
- GET /daily/run
- POST /daily/answer
- POST /daily/complete
- DELETE /daily/run
- GET /leaderboard
"""

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool
import json
import logging
import time
import uuid
from typing import List
from zoneinfo import ZoneInfo
from .database import create_db_and_tables, get_session
from . import services, repositories, models
from .auth import get_current_user
from .categories import DAILY_QUIZ_SIZE, is_known_category
from .config import settings
from .daily_quiz import Clock, LocalClock, format_countdown, time_until_next_quiz
from .errors import InsufficientQuestionsError, InvalidOptionError, RepositoryError, RunStateError, SinkError
from .quiz_run import RunStatus
from .schemas import (
    AnswerIn, AnswerOut, CompletionOut, DailyQuizOut, QuestionOut, QuizSubmission, RegisterIn, RunOut, TokenOut,
)
from .utils.run_store import DailyRunSession, DailyRunStore

app = FastAPI(title="Nepal MCQ API")
logger = logging.getLogger("nepal_mcq.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

_clock = LocalClock(ZoneInfo(settings.QUIZ_TIMEZONE) if settings.QUIZ_TIMEZONE else None)
_runs = DailyRunStore(ttl_seconds=settings.RUN_TTL_SECONDS)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


def get_clock() -> Clock:
    """Clock used to derive the daily key; overridden in tests."""
    return _clock


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    if request.url.path.startswith("/daily"):
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
    return response


def _answer_out(outcome) -> AnswerOut:
    return AnswerOut(
        question_id=outcome.question_id,
        chosen_option=outcome.chosen_option,
        correct=outcome.correct,
        correct_option=outcome.correct_option,
        explanation=outcome.explanation,
        completed=outcome.completed,
    )


def _run_out(session: DailyRunSession) -> RunOut:
    view = session.view()
    question = view['question']
    feedback = view['feedback']
    return RunOut(
        date_key=view['date_key'],
        status=view['status'],
        position=view['position'],
        total=view['total'],
        score=view['score'],
        question=QuestionOut.from_model(question) if question is not None else None,
        feedback=_answer_out(feedback) if feedback is not None else None,
    )


def _require_run(user: models.User) -> DailyRunSession:
    session = _runs.get(user.id)
    if session is None:
        raise HTTPException(status_code=404, detail='no daily quiz in progress')
    return session


@app.post('/auth/register')
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new user (idempotent).

    Returns the existing user if the username is already taken so the
    operation can be repeated safely by automation and tests.
    """
    existing = repositories.UserRepository(db).get_by_username(payload.username)
    if existing:
        return {'id': existing.id, 'username': existing.username}
    user = services.AuthService(db).register(payload.username, payload.password, payload.full_name)
    return {'id': user.id, 'username': user.username}


@app.post('/auth/login', response_model=TokenOut)
def login(payload: RegisterIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a short-lived JWT token."""
    token = services.AuthService(db).authenticate(payload.username, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return {'access_token': token}


@app.get('/categories')
def list_categories(db: Session = Depends(get_session)):
    """Categories in their fixed order with question counts."""
    try:
        return services.CatalogService(db).categories()
    except RepositoryError as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.get('/quiz/{category}', response_model=List[QuestionOut])
def category_quiz(category: str, limit: int = 10, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Return up to `limit` random questions from `category` for practice."""
    if not is_known_category(category):
        raise HTTPException(status_code=404, detail=f'unknown category: {category}')
    if limit < 1:
        raise HTTPException(status_code=400, detail='limit must be >= 1')
    try:
        qs = repositories.QuestionRepository(db).get_random(category, limit=limit)
    except RepositoryError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return [QuestionOut.from_model(q) for q in qs]


@app.post('/quiz/grade')
def grade(submission: QuizSubmission, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Grade a regular category quiz and add its points to the leaderboard."""
    answers = [{'question_id': a.question_id, 'chosen_option': a.chosen_option} for a in submission.answers]
    try:
        return services.GradingService(db).grade(user.id, submission.category, answers)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SinkError as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.get('/daily', response_model=DailyQuizOut)
def daily_quiz(db: Session = Depends(get_session), clock: Clock = Depends(get_clock)):
    """Return today's daily quiz without the answers.

    `ready` is false when fewer than ten questions could be assembled;
    the client should offer a retry instead of a start button.
    """
    now = clock.now()
    svc = services.DailyQuizService(db, clock)
    questions = svc.load_daily_quiz(now)
    return DailyQuizOut(
        date_key=svc.get_daily_quiz_key(now),
        next_quiz_in=format_countdown(time_until_next_quiz(now)),
        available=len(questions),
        ready=len(questions) == DAILY_QUIZ_SIZE,
        questions=[QuestionOut.from_model(q) for q in questions],
    )


@app.post('/daily/start', response_model=RunOut)
async def start_daily(db: Session = Depends(get_session), clock: Clock = Depends(get_clock), user: models.User = Depends(get_current_user)):
    """Start a new daily run for the user, replacing any unfinished one.

    Stays async so the advance timer binds to the running loop; the
    question fetches go to the threadpool.
    """
    run = await run_in_threadpool(services.DailyQuizService(db, clock).new_run)
    try:
        run.start()
    except InsufficientQuestionsError as e:
        raise HTTPException(
            status_code=409,
            detail={'message': str(e), 'available': e.available, 'required': e.required, 'retry': True},
        )
    session = _runs.put(DailyRunSession(user.id, run, settings.DAILY_ADVANCE_DELAY_SECONDS))
    logger.info("daily quiz %s started by user %s", run.date_key, user.id)
    return _run_out(session)


@app.get('/daily/run', response_model=RunOut)
async def get_daily_run(user: models.User = Depends(get_current_user)):
    return _run_out(_require_run(user))


@app.post('/daily/answer', response_model=AnswerOut)
async def answer_daily(payload: AnswerIn, user: models.User = Depends(get_current_user)):
    """Submit the answer to the current question; the first answer is final."""
    session = _require_run(user)
    try:
        outcome = session.answer(payload.question_id, payload.chosen_option)
    except InvalidOptionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RunStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _answer_out(outcome)


@app.post('/daily/complete', response_model=CompletionOut)
async def complete_daily(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Score the finished run, save it and drop the in-memory state.

    A failed save is reported in `submission_error`; the score is still
    returned and the run is not kept for another attempt.
    """
    session = _require_run(user)
    if session.run.status is not RunStatus.COMPLETED:
        raise HTTPException(status_code=409, detail='daily quiz not finished')
    try:
        svc = services.DailyQuizService(db)
        result = await run_in_threadpool(svc.complete_run, user.id, session.run)
    except RunStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    finally:
        _runs.discard(user.id)
    return CompletionOut(
        score=result.score,
        total=result.total,
        points_awarded=result.points_awarded,
        percentage=result.percentage,
        submission_error=result.submission_error,
    )


@app.delete('/daily/run')
async def abandon_daily(user: models.User = Depends(get_current_user)):
    """Throw away an unfinished run; nothing is saved."""
    if not _runs.discard(user.id):
        raise HTTPException(status_code=404, detail='no daily quiz in progress')
    return {'status': 'discarded'}


@app.get('/leaderboard')
def leaderboard(limit: int = settings.LEADERBOARD_LIMIT, db: Session = Depends(get_session)):
    """Top users by total points."""
    if limit < 1:
        raise HTTPException(status_code=400, detail='limit must be >= 1')
    return services.LeaderboardService(db).top(limit)


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
