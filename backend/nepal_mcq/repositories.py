"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
questions, results, leaderboard). Repositories return SQLModel objects.
Database failures are re-raised as `RepositoryError` or `SinkError` so
callers can tell them apart from an empty result.
"""

from datetime import datetime, timezone
from typing import List, Optional
from sqlmodel import Session, select
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from . import models
from .categories import QuizType, points_for
from .errors import RepositoryError, SinkError


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def list_by_ids(self, user_ids: List[int]) -> List[models.User]:
        if not user_ids:
            return []
        stmt = select(models.User).where(models.User.id.in_(user_ids))
        return self.session.exec(stmt).all()


class QuestionRepository:
    """Read access to the question bank, plus `create` for seeding."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, question: models.Question) -> models.Question:
        self.session.add(question)
        self.session.commit()
        self.session.refresh(question)
        return question

    def fetch_by_category(self, category: str) -> List[models.Question]:
        """Return the full pool for `category` ordered by id.

        The id order keeps the pool stable between calls, which daily
        selection relies on. An empty list means the category has no
        questions; a database failure raises `RepositoryError`.
        """
        stmt = select(models.Question).where(models.Question.category == category).order_by(models.Question.id)
        try:
            return list(self.session.exec(stmt).all())
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise RepositoryError(f"could not load questions for {category}: {exc}") from exc

    def count_by_category(self) -> dict:
        """Return `{category: question_count}` for categories that have questions."""
        stmt = select(models.Question.category, func.count(models.Question.id)).group_by(models.Question.category)
        try:
            return {category: count for category, count in self.session.exec(stmt).all()}
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise RepositoryError(f"could not count questions: {exc}") from exc

    def get_random(self, category: str, limit: int = 10) -> List[models.Question]:
        """Return up to `limit` random questions for `category`."""
        stmt = select(models.Question).where(models.Question.category == category).order_by(func.random()).limit(limit)
        try:
            return list(self.session.exec(stmt).all())
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise RepositoryError(f"could not load questions for {category}: {exc}") from exc

    def get(self, question_id: int) -> Optional[models.Question]:
        """Fetch a question by id."""
        return self.session.get(models.Question, question_id)


class ResultSink:
    """Append quiz results and bump leaderboard totals.

    Neither write commits on its own; call `commit()` once both succeeded
    so a result row never lands without its leaderboard increment.
    """
    def __init__(self, session: Session):
        self.session = session

    def append_result(self, user_id: int, score: int, total_questions: int, breakdown: List[dict],
                      quiz_type: QuizType = QuizType.DAILY, category: Optional[str] = None) -> models.QuizResult:
        """Add a `QuizResult` with one `QuizResultItem` per breakdown entry."""
        quiz_type = QuizType(quiz_type)
        result = models.QuizResult(
            user_id=user_id,
            quiz_type=quiz_type.value,
            category=category,
            score=score,
            total_questions=total_questions,
            percentage=(score / total_questions) * 100 if total_questions > 0 else 0.0,
            points_awarded=points_for(quiz_type, score),
        )
        try:
            self.session.add(result)
            self.session.flush()
            for item in breakdown:
                self.session.add(models.QuizResultItem(
                    quiz_result_id=result.id,
                    question_id=item['question_id'],
                    user_answer=item.get('user_answer'),
                    is_correct=bool(item.get('is_correct')),
                ))
            self.session.flush()
        except SQLAlchemyError as exc:
            raise SinkError(f"could not store quiz result: {exc}") from exc
        return result

    def increment_leaderboard(self, user_id: int, quiz_type: QuizType, correct_answers: int, total_questions: int) -> None:
        """Add points and counters for one finished quiz in a single statement.

        Uses an upsert whose update clause adds to the stored columns, so
        concurrent completions for the same user cannot lose an update.
        """
        quiz_type = QuizType(quiz_type)
        points = points_for(quiz_type, correct_answers)
        is_daily = quiz_type is QuizType.DAILY
        table = models.LeaderboardEntry.__table__
        now = datetime.now(timezone.utc)
        values = {
            'user_id': user_id,
            'total_points': points,
            'quiz_points': 0.0 if is_daily else points,
            'daily_quiz_points': points if is_daily else 0.0,
            'total_quizzes_completed': 0 if is_daily else 1,
            'total_daily_quizzes_completed': 1 if is_daily else 0,
            'total_correct_answers': correct_answers,
            'total_questions_answered': total_questions,
            'updated_at': now,
        }
        insert = pg_insert if self.session.get_bind().dialect.name == 'postgresql' else sqlite_insert
        stmt = insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id],
            set_={
                'total_points': table.c.total_points + values['total_points'],
                'quiz_points': table.c.quiz_points + values['quiz_points'],
                'daily_quiz_points': table.c.daily_quiz_points + values['daily_quiz_points'],
                'total_quizzes_completed': table.c.total_quizzes_completed + values['total_quizzes_completed'],
                'total_daily_quizzes_completed': table.c.total_daily_quizzes_completed + values['total_daily_quizzes_completed'],
                'total_correct_answers': table.c.total_correct_answers + correct_answers,
                'total_questions_answered': table.c.total_questions_answered + total_questions,
                'updated_at': now,
            },
        )
        try:
            self.session.exec(stmt)
        except SQLAlchemyError as exc:
            raise SinkError(f"could not update leaderboard: {exc}") from exc

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            raise SinkError(f"could not commit quiz result: {exc}") from exc

    def rollback(self) -> None:
        self.session.rollback()


class LeaderboardRepository:
    """Read-side queries for leaderboard entries."""
    def __init__(self, session: Session):
        self.session = session

    def top(self, limit: int = 50) -> List[models.LeaderboardEntry]:
        """Return up to `limit` entries, highest total points first."""
        stmt = select(models.LeaderboardEntry).order_by(
            models.LeaderboardEntry.total_points.desc(),
            models.LeaderboardEntry.updated_at,
        ).limit(limit)
        return self.session.exec(stmt).all()

    def get(self, user_id: int) -> Optional[models.LeaderboardEntry]:
        return self.session.get(models.LeaderboardEntry, user_id)
