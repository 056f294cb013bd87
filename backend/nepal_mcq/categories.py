"""Fixed category enumeration, daily plan and point weights.

The order of `CATEGORIES` is load-bearing: daily selection walks it
verbatim, so reordering it changes every day's quiz. Never derive it from
stored data.
"""

from enum import Enum

CATEGORIES = (
    "universe",
    "geography",
    "world-history",
    "nepal-history",
    "culture-society",
    "economy",
    "health-technology",
    "eco-system",
    "international-relations",
)

DOUBLE_CATEGORY = "nepal-history"

CATEGORY_PLAN = {c: (2 if c == DOUBLE_CATEGORY else 1) for c in CATEGORIES}

DAILY_QUIZ_SIZE = 10

OPTION_TAGS = ("A", "B", "C", "D")


class QuizType(str, Enum):
    DAILY = "daily"
    REGULAR = "regular"


POINT_WEIGHTS = {
    QuizType.DAILY: 0.5,
    QuizType.REGULAR: 0.25,
}


def points_for(quiz_type: QuizType, correct_answers: int) -> float:
    """Points earned for `correct_answers` in a quiz of `quiz_type`."""
    return correct_answers * POINT_WEIGHTS[QuizType(quiz_type)]


def is_known_category(category: str) -> bool:
    return category in CATEGORY_PLAN
