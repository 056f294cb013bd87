import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

# point the app at a throw-away database before any nepal_mcq module is imported
_TEST_DB = Path(tempfile.mkdtemp(prefix="nepal_mcq_tests_")) / "test.db"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DB}"
os.environ["DAILY_ADVANCE_DELAY_SECONDS"] = "0"

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from nepal_mcq import models
from nepal_mcq.categories import CATEGORIES, DOUBLE_CATEGORY
from nepal_mcq.errors import RepositoryError

NEPAL_TZ = timezone(timedelta(hours=5, minutes=45))
# minimal pools (one question per category, two for the double category)
# give a full ten-question quiz on FULL_DAY and only nine on SHORT_DAY
FULL_DAY = datetime(2024, 5, 1, 9, 30, tzinfo=NEPAL_TZ)
SHORT_DAY = datetime(2024, 5, 2, 9, 30, tzinfo=NEPAL_TZ)


def make_question(qid, category, correct="A"):
    return models.Question(
        id=qid,
        category=category,
        question=f"{category} question {qid}?",
        option_a=f"{qid}-a",
        option_b=f"{qid}-b",
        option_c=f"{qid}-c",
        option_d=f"{qid}-d",
        correct_option=correct,
        explanation=f"because {qid}",
    )


def build_pools(sizes=None, default=1, double=2):
    """Return `{category: [Question, ...]}` with globally unique ids."""
    sizes = sizes or {}
    pools = {}
    next_id = 1
    for category in CATEGORIES:
        size = sizes.get(category, double if category == DOUBLE_CATEGORY else default)
        pools[category] = [make_question(next_id + i, category) for i in range(size)]
        next_id += size
    return pools


class FakeQuestionRepository:
    def __init__(self, pools, failing=()):
        self.pools = pools
        self.failing = set(failing)
        self.calls = []

    def fetch_by_category(self, category):
        self.calls.append(category)
        if category in self.failing:
            raise RepositoryError(f"{category} unavailable")
        return list(self.pools.get(category, []))


@pytest.fixture
def db_session():
    """Session on a private in-memory database."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def seed_questions():
    """Insert pools built by `build_pools` into a session."""
    def _seed(session, **kwargs):
        pools = build_pools(**kwargs)
        for pool in pools.values():
            for q in pool:
                session.add(q)
        session.commit()
        return pools
    return _seed


@pytest.fixture
def app_db():
    """Reset the application database used by the API tests."""
    from nepal_mcq.database import engine
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
