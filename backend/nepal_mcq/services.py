"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories and
the daily quiz engine. Services are intentionally thin: they perform
validation, execute domain logic and persist aggregates via repositories.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from passlib.context import CryptContext
import jwt
from typing import List, Optional
from . import models, repositories
from sqlmodel import Session
from .categories import CATEGORIES, CATEGORY_PLAN, QuizType, is_known_category, points_for
from .config import settings
from .daily_quiz import Clock, LocalClock, build_daily_quiz, daily_key
from .errors import SinkError
from .quiz_run import DailyQuizRun, RunSummary, normalize_option

logger = logging.getLogger(__name__)

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
JWT_SECRET = settings.JWT_SECRET
JWT_ALGORITHM = settings.JWT_ALGORITHM
JWT_EXPIRE_HOURS = settings.JWT_EXPIRE_HOURS


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, username: str, password: str, full_name: Optional[str] = None) -> models.User:
        """Create a new user with a hashed password.

        Returns the persisted `User` instance.
        """
        hashed = PWD_CTX.hash(password)
        u = models.User(username=username, password_hash=hashed, full_name=full_name)
        return self.user_repo.create(u)

    def authenticate(self, username: str, password: str):
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_username(username)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        expire = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "username": user.username, "exp": int(expire.timestamp())}
        token = jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)
        return token


@dataclass
class CompletionResult:
    """Summary returned when a daily run finishes.

    `submission_error` is set when the result could not be saved; the
    score is still valid and shown to the user.
    """
    score: int
    total: int
    points_awarded: float
    percentage: int
    submission_error: Optional[str] = None

    @classmethod
    def from_summary(cls, summary: RunSummary, submission_error: Optional[str] = None):
        return cls(summary.score, summary.total, summary.points_awarded, summary.percentage, submission_error)


class DailyQuizService:
    """Load today's deterministic quiz and submit finished runs."""
    def __init__(self, session: Session, clock: Optional[Clock] = None):
        self.session = session
        self.clock = clock or LocalClock()
        self.q_repo = repositories.QuestionRepository(session)
        self.sink = repositories.ResultSink(session)

    def get_daily_quiz_key(self, now: Optional[datetime] = None) -> str:
        return daily_key(now or self.clock.now())

    def load_daily_quiz(self, now: Optional[datetime] = None) -> List[models.Question]:
        """Return today's ordered questions (at most 10).

        Categories that fail to load are skipped, so this never raises for
        fetch failures; callers check for a full set before starting.
        """
        return build_daily_quiz(self.get_daily_quiz_key(now), self.q_repo)

    def new_run(self, now: Optional[datetime] = None) -> DailyQuizRun:
        key = self.get_daily_quiz_key(now)
        return DailyQuizRun(key, build_daily_quiz(key, self.q_repo))

    def complete_run(self, user_id: int, run: DailyQuizRun) -> CompletionResult:
        """Score a completed run and save it once.

        The result row and the leaderboard increment are committed
        together; if either write fails both are rolled back and the error
        is reported in the returned result instead of raised.
        """
        summary = run.summary()
        run.claim_submission()
        try:
            self.sink.append_result(user_id, summary.score, summary.total, run.breakdown(), quiz_type=QuizType.DAILY)
            self.sink.increment_leaderboard(user_id, QuizType.DAILY, summary.score, summary.total)
            self.sink.commit()
        except SinkError as exc:
            self.sink.rollback()
            logger.warning("daily quiz %s: result for user %s not saved: %s", run.date_key, user_id, exc)
            return CompletionResult.from_summary(summary, submission_error=str(exc))
        logger.info("daily quiz %s: user %s scored %d/%d (+%.2f points)",
                    run.date_key, user_id, summary.score, summary.total, summary.points_awarded)
        return CompletionResult.from_summary(summary)


class GradingService:
    """Grade regular category quizzes and persist results."""
    def __init__(self, session: Session):
        self.session = session
        self.q_repo = repositories.QuestionRepository(session)
        self.sink = repositories.ResultSink(session)

    def grade(self, user_id: int, category: str, answers: List[dict]):
        """Grade a list of `{question_id, chosen_option}` dicts.

        Every question must exist and belong to `category`. The result and
        per-question items are persisted, the leaderboard gains the regular
        quiz weight per correct answer, and a summary payload is returned.
        Raises `ValueError` on invalid input and `SinkError` if saving fails.
        """
        if not is_known_category(category):
            raise ValueError(f"unknown category: {category}")
        if not answers:
            raise ValueError("answers must not be empty")
        total = len(answers)
        correct = 0
        breakdown = []
        payload_items = []
        seen = set()
        for a in answers:
            q = self.q_repo.get(a['question_id'])
            if not q:
                raise ValueError(f"question not found: {a['question_id']}")
            if q.category != category:
                raise ValueError(f"question {q.id} is not in category {category}")
            if q.id in seen:
                raise ValueError(f"question {q.id} answered twice")
            seen.add(q.id)
            chosen = normalize_option(a.get('chosen_option'))
            is_correct = chosen == q.correct_option.strip().upper()
            if is_correct:
                correct += 1
            breakdown.append({'question_id': q.id, 'user_answer': chosen, 'is_correct': is_correct})
            payload_items.append({
                'question_id': q.id,
                'given': chosen,
                'correct': is_correct,
                'correct_option': q.correct_option,
                'explanation': q.explanation,
            })
        try:
            created = self.sink.append_result(user_id, correct, total, breakdown, quiz_type=QuizType.REGULAR, category=category)
            self.sink.increment_leaderboard(user_id, QuizType.REGULAR, correct, total)
            self.sink.commit()
        except SinkError:
            self.sink.rollback()
            raise
        return {
            'result_id': created.id,
            'score': correct,
            'total': total,
            'percentage': created.percentage,
            'points_awarded': points_for(QuizType.REGULAR, correct),
            'items': payload_items,
        }


class CatalogService:
    """Category overview for the home screen."""
    def __init__(self, session: Session):
        self.q_repo = repositories.QuestionRepository(session)

    def categories(self):
        counts = self.q_repo.count_by_category()
        return [
            {'id': c, 'questions': counts.get(c, 0), 'daily_questions': CATEGORY_PLAN[c]}
            for c in CATEGORIES
        ]


def display_name(user: Optional[models.User], user_id: int) -> str:
    """Best available leaderboard name for a user."""
    if user and user.full_name and user.full_name.strip():
        return user.full_name.strip()
    if user and user.username:
        return user.username.split('@')[0]
    return f"User {user_id}"


class LeaderboardService:
    """Ranked point totals joined with user display names."""
    def __init__(self, session: Session):
        self.board_repo = repositories.LeaderboardRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def top(self, limit: int = 50):
        entries = self.board_repo.top(limit)
        users = {u.id: u for u in self.user_repo.list_by_ids([e.user_id for e in entries])}
        out = []
        for rank, e in enumerate(entries, start=1):
            out.append({
                'rank': rank,
                'user_id': e.user_id,
                'display_name': display_name(users.get(e.user_id), e.user_id),
                'total_points': e.total_points,
                'quiz_points': e.quiz_points,
                'daily_quiz_points': e.daily_quiz_points,
                'total_quizzes_completed': e.total_quizzes_completed,
                'total_daily_quizzes_completed': e.total_daily_quizzes_completed,
            })
        return out
