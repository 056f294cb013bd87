"""Deterministic daily quiz selection.

Every client that asks for the quiz on the same local calendar day gets
the same ten questions in the same order, without any server-side state:
the date key is the only seed. The pieces are kept as plain functions so
they can be exercised with a pinned clock and an in-memory repository.

The date key follows the clock's own timezone. Two users on either side
of a timezone boundary switch to the next quiz at different instants;
this is accepted behaviour and is not normalised here.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Dict, List, Optional, Protocol

from .categories import CATEGORIES, CATEGORY_PLAN, DAILY_QUIZ_SIZE
from .errors import RepositoryError
from . import models

logger = logging.getLogger(__name__)

_MASK_32 = 0xFFFFFFFF
_TWO_31 = 0x80000000


class Clock(Protocol):
    def now(self) -> datetime: ...


class LocalClock:
    """Wall clock in `tz`, or in the process's local timezone when unset.

    Without `tz` the returned datetime carries a fixed UTC offset, so a
    countdown that spans a DST change is off by the shift; configure an
    IANA zone to avoid that.
    """

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz

    def now(self) -> datetime:
        if self.tz is not None:
            return datetime.now(self.tz)
        return datetime.now().astimezone()


class FixedClock:
    """Clock pinned to a given moment; used by tests and replays."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment


class QuestionSource(Protocol):
    def fetch_by_category(self, category: str) -> List[models.Question]: ...


def daily_key(now: datetime) -> str:
    """Return the `YYYY-MM-DD` key of the calendar day `now` falls on."""
    return now.date().isoformat()


def _to_int32(value: int) -> int:
    value &= _MASK_32
    return value - 0x100000000 if value & _TWO_31 else value


def _utf16_units(text: str):
    raw = text.encode("utf-16-le")
    for i in range(0, len(raw), 2):
        yield raw[i] | (raw[i + 1] << 8)


def _finalize(h: int) -> int:
    # murmur3 fmix32; seeds differing only in their last character would
    # otherwise land on adjacent accumulator values. Values therefore do
    # not match a bare h*31 hash of the same seed.
    h &= _MASK_32
    h ^= h >> 16
    h = (h * 0x85EBCA6B) & _MASK_32
    h ^= h >> 13
    h = (h * 0xC2B2AE35) & _MASK_32
    h ^= h >> 16
    return h


def string_hash(seed: str) -> int:
    """Rolling `h * 31 + unit` hash of `seed` as a signed 32-bit integer."""
    h = 0
    for unit in _utf16_units(seed):
        h = _to_int32(h * 31 + unit)
    return h


def deterministic_random(seed: str) -> float:
    """Map `seed` to a reproducible float in ``[0, 1)``."""
    mixed = _to_int32(_finalize(string_hash(seed)))
    return (abs(mixed) % _TWO_31) / _TWO_31


def select_daily(
    date_key: str,
    category_plan: Dict[str, int],
    repository: QuestionSource,
    random_fn: Callable[[str], float] = deterministic_random,
) -> List[models.Question]:
    """Pick the day's questions, grouped by category in `CATEGORIES` order.

    A category whose pool is empty or cannot be fetched is skipped. When a
    slot's index lands on a question already picked, the slot is dropped
    rather than retried, so the result may hold fewer questions than the
    plan asks for.
    """
    selected: List[models.Question] = []
    seen_ids = set()
    for category in CATEGORIES:
        required = category_plan.get(category, 0)
        if required <= 0:
            continue
        try:
            pool = repository.fetch_by_category(category)
        except RepositoryError as exc:
            logger.warning("daily quiz: skipping category %s, fetch failed: %s", category, exc)
            continue
        if not pool:
            logger.warning("daily quiz: no questions found for category %s", category)
            continue
        for i in range(required):
            index = int(random_fn(f"{date_key}-{category}-{i}") * len(pool))
            question = pool[index]
            if question.id in seen_ids:
                logger.debug("daily quiz: slot %s-%d collided on question %s", category, i, question.id)
                continue
            seen_ids.add(question.id)
            selected.append(question)
    return selected


def shuffle_daily(
    date_key: str,
    questions: List[models.Question],
    random_fn: Callable[[str], float] = deterministic_random,
) -> List[models.Question]:
    """Fisher-Yates shuffle seeded by `date_key`; the input is not modified."""
    shuffled = list(questions)
    for i in range(len(shuffled) - 1, 0, -1):
        j = int(random_fn(f"{date_key}-shuffle-{i}") * (i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled[:DAILY_QUIZ_SIZE]


def build_daily_quiz(
    date_key: str,
    repository: QuestionSource,
    category_plan: Optional[Dict[str, int]] = None,
) -> List[models.Question]:
    """Select and shuffle the quiz for `date_key`."""
    plan = CATEGORY_PLAN if category_plan is None else category_plan
    questions = shuffle_daily(date_key, select_daily(date_key, plan, repository))
    logger.info("daily quiz %s: %d questions selected", date_key, len(questions))
    return questions


def time_until_next_quiz(now: datetime) -> timedelta:
    """Time left until the next local midnight, when the key rolls over.

    The difference is taken in UTC so a zone-aware `now` accounts for a
    DST change before midnight.
    """
    tomorrow = datetime.combine(now.date() + timedelta(days=1), time(), tzinfo=now.tzinfo)
    return tomorrow.astimezone(timezone.utc) - now.astimezone(timezone.utc)


def format_countdown(delta: timedelta) -> str:
    """Render a countdown as zero-padded ``HH:MM``."""
    minutes = int(delta.total_seconds()) // 60
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
