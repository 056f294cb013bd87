"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Question payloads sent before an answer
never include the correct option.
"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class RegisterIn(BaseModel):
    """Payload for user registration/login endpoints."""
    username: str
    password: str
    full_name: Optional[str] = None


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class QuestionOut(BaseModel):
    """A question as shown while it is still unanswered."""
    id: int
    category: str
    question: str
    options: Dict[str, str]

    @classmethod
    def from_model(cls, q):
        return cls(id=q.id, category=q.category, question=q.question, options=q.options())


class DailyQuizOut(BaseModel):
    date_key: str
    next_quiz_in: str
    available: int
    ready: bool
    questions: List[QuestionOut]


class AnswerIn(BaseModel):
    """One answer to the current daily question."""
    question_id: int
    chosen_option: str = Field(min_length=1, max_length=1)


class AnswerOut(BaseModel):
    question_id: int
    chosen_option: str
    correct: bool
    correct_option: str
    explanation: Optional[str] = None
    completed: bool


class RunOut(BaseModel):
    """Current state of the user's daily run."""
    date_key: str
    status: str
    position: int
    total: int
    score: int
    question: Optional[QuestionOut] = None
    feedback: Optional[AnswerOut] = None


class CompletionOut(BaseModel):
    score: int
    total: int
    points_awarded: float
    percentage: int
    submission_error: Optional[str] = None


class QuizSubmissionItem(BaseModel):
    """Single submitted answer item used when grading a regular quiz."""
    question_id: int
    chosen_option: str


class QuizSubmission(BaseModel):
    """Request model for grading a regular category quiz."""
    category: str
    answers: List[QuizSubmissionItem]
