"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
"""

from typing import Optional
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, timezone
from typing import List


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `username`: unique login name (often an email address)
    - `password_hash`: hashed password string (never store plaintext)
    - `full_name`: optional display name shown on the leaderboard
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    full_name: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Question(SQLModel, table=True):
    """A four-option multiple-choice question belonging to one category.

    `correct_option` holds one of the option tags `A`-`D`. Subject,
    difficulty and language are descriptive metadata only.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    category: str = Field(index=True)
    question: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_option: str
    explanation: Optional[str] = None
    subject: Optional[str] = None
    difficulty: Optional[str] = None
    language: str = "en"

    def options(self) -> dict:
        """Return the options keyed by their tag."""
        return {"A": self.option_a, "B": self.option_b, "C": self.option_c, "D": self.option_d}


class QuizResult(SQLModel, table=True):
    """A completed quiz attempt. Rows are append-only."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    quiz_type: str = Field(index=True)
    category: Optional[str] = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    score: int = 0
    total_questions: int = 0
    percentage: Optional[float] = None
    points_awarded: float = 0.0
    items: List['QuizResultItem'] = Relationship(back_populates='quiz_result')


class QuizResultItem(SQLModel, table=True):
    """A single question outcome inside a `QuizResult`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_result_id: int = Field(foreign_key='quizresult.id')
    question_id: int = Field(foreign_key='question.id')
    user_answer: Optional[str] = None
    is_correct: bool = False
    quiz_result: Optional[QuizResult] = Relationship(back_populates='items')


class LeaderboardEntry(SQLModel, table=True):
    """Running point totals for one user.

    Rows are only ever changed through the atomic increment in
    `ResultSink.increment_leaderboard`; values never decrease.
    """
    user_id: int = Field(foreign_key='user.id', primary_key=True)
    total_points: float = 0.0
    quiz_points: float = 0.0
    daily_quiz_points: float = 0.0
    total_quizzes_completed: int = 0
    total_daily_quizzes_completed: int = 0
    total_correct_answers: int = 0
    total_questions_answered: int = 0
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
