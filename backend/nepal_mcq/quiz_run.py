"""In-memory state of one daily quiz attempt."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .categories import DAILY_QUIZ_SIZE, OPTION_TAGS, QuizType, points_for
from .errors import AnswerRejectedError, InsufficientQuestionsError, InvalidOptionError, RunStateError
from . import models


class RunStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(slots=True)
class AnswerOutcome:
    """Result of one accepted answer."""

    question_id: int
    chosen_option: str
    correct: bool
    correct_option: str
    explanation: Optional[str]
    completed: bool


@dataclass(slots=True)
class RunSummary:
    score: int
    total: int
    points_awarded: float
    percentage: int


def normalize_option(chosen_option: str) -> str:
    """Return the upper-case option tag or raise `InvalidOptionError`."""
    tag = (chosen_option or "").strip().upper()
    if tag not in OPTION_TAGS:
        raise InvalidOptionError(f"option must be one of {', '.join(OPTION_TAGS)}")
    return tag


class DailyQuizRun:
    """One attempt at the daily quiz.

    `not_started -> in_progress -> completed`. Questions are answered in
    order, each exactly once; there is no skipping or going back. The run
    is never persisted itself, only its summary.
    """

    def __init__(self, date_key: str, questions: List[models.Question]):
        if len(questions) > DAILY_QUIZ_SIZE:
            raise ValueError(f"a daily run holds at most {DAILY_QUIZ_SIZE} questions")
        self.date_key = date_key
        self.questions = list(questions)
        self.status = RunStatus.NOT_STARTED
        self.current_index = 0
        self.correct_count = 0
        self._answers: Dict[int, str] = {}
        self._results: Dict[int, bool] = {}
        self._submission_claimed = False

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[models.Question]:
        if self.status is not RunStatus.IN_PROGRESS:
            return None
        return self.questions[self.current_index]

    def start(self) -> None:
        if self.status is not RunStatus.NOT_STARTED:
            raise RunStateError(f"run already {self.status.value}")
        if len(self.questions) != DAILY_QUIZ_SIZE:
            raise InsufficientQuestionsError(len(self.questions), DAILY_QUIZ_SIZE)
        self.status = RunStatus.IN_PROGRESS

    def submit_answer(self, question_id: int, chosen_option: str) -> AnswerOutcome:
        """Record the answer to the current question and advance.

        The first answer to a question is final; a repeat, or an answer to
        any question other than the current one, raises
        `AnswerRejectedError` and leaves the run untouched.
        """
        if self.status is not RunStatus.IN_PROGRESS:
            raise RunStateError(f"cannot answer while run is {self.status.value}")
        tag = normalize_option(chosen_option)
        if question_id in self._answers:
            raise AnswerRejectedError(f"question {question_id} already answered")
        question = self.questions[self.current_index]
        if question.id != question_id:
            raise AnswerRejectedError(f"question {question_id} is not the current question")

        correct = tag == question.correct_option.strip().upper()
        self._answers[question_id] = tag
        self._results[question_id] = correct
        if correct:
            self.correct_count += 1
        self.current_index += 1
        if self.current_index == len(self.questions):
            self.status = RunStatus.COMPLETED
        return AnswerOutcome(
            question_id=question_id,
            chosen_option=tag,
            correct=correct,
            correct_option=question.correct_option,
            explanation=question.explanation,
            completed=self.status is RunStatus.COMPLETED,
        )

    def breakdown(self) -> List[dict]:
        """Per-question outcome in run order; unanswered questions included."""
        return [
            {
                'question_id': q.id,
                'user_answer': self._answers.get(q.id),
                'is_correct': self._results.get(q.id, False),
            }
            for q in self.questions
        ]

    def summary(self) -> RunSummary:
        if self.status is not RunStatus.COMPLETED:
            raise RunStateError("run is not completed")
        total = len(self.questions)
        return RunSummary(
            score=self.correct_count,
            total=total,
            points_awarded=points_for(QuizType.DAILY, self.correct_count),
            percentage=round(self.correct_count / total * 100) if total else 0,
        )

    def claim_submission(self) -> None:
        """Mark the completed run as submitted; allowed once."""
        if self.status is not RunStatus.COMPLETED:
            raise RunStateError("run is not completed")
        if self._submission_claimed:
            raise RunStateError("run result already submitted")
        self._submission_claimed = True
