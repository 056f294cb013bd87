"""In-memory store of live daily quiz runs, one per user."""

from __future__ import annotations

import threading
import time
from typing import Optional

from ..errors import AnswerRejectedError
from ..quiz_run import AnswerOutcome, DailyQuizRun, RunStatus
from .advance_timer import AdvanceTimer


class DailyRunSession:
    """A user's run plus the feedback window shown after each answer.

    After an answer the answered question stays on screen with its
    feedback until the advance timer fires; only then does the visible
    position move on. A torn-down session ignores its timer.
    """

    def __init__(self, user_id: int, run: DailyQuizRun, advance_delay: float):
        self.user_id = user_id
        self.run = run
        self.advance_delay = advance_delay
        self.feedback: Optional[AnswerOutcome] = None
        self.created_at = time.time()
        self.closed = False
        self._timer: Optional[AdvanceTimer] = None

    def answer(self, question_id: int, chosen_option: str) -> AnswerOutcome:
        if self.closed:
            raise AnswerRejectedError("run was discarded")
        if self.feedback is not None:
            raise AnswerRejectedError("previous answer still showing")
        outcome = self.run.submit_answer(question_id, chosen_option)
        if self.advance_delay > 0 and not outcome.completed:
            self.feedback = outcome
            self._timer = AdvanceTimer(self.advance_delay, self._advance)
            self._timer.start()
        return outcome

    def _advance(self) -> None:
        if self.closed:
            return
        self.feedback = None
        self._timer = None

    @property
    def advance_pending(self) -> bool:
        return self._timer is not None and self._timer.pending

    def view(self) -> dict:
        """Snapshot of what the quiz screen should show right now."""
        run = self.run
        position = run.current_index
        if self.feedback is not None:
            position -= 1
        question = run.questions[position] if run.status is not RunStatus.NOT_STARTED and position < run.total else None
        return {
            'date_key': run.date_key,
            'status': run.status.value,
            'position': position,
            'total': run.total,
            'score': run.correct_count,
            'question': question,
            'feedback': self.feedback,
        }

    def teardown(self) -> None:
        self.closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.feedback = None


class DailyRunStore:
    """Per-user live sessions with TTL cleanup of abandoned runs."""

    def __init__(self, ttl_seconds: int = 3600):
        self._sessions: dict[int, DailyRunSession] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds

    def put(self, session: DailyRunSession) -> DailyRunSession:
        """Register `session`, tearing down any run the user had before."""
        self._cleanup()
        with self._lock:
            previous = self._sessions.get(session.user_id)
            self._sessions[session.user_id] = session
        if previous is not None:
            previous.teardown()
        return session

    def get(self, user_id: int) -> Optional[DailyRunSession]:
        self._cleanup()
        with self._lock:
            return self._sessions.get(user_id)

    def discard(self, user_id: int) -> bool:
        with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        session.teardown()
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _cleanup(self) -> None:
        cutoff = time.time() - self._ttl_seconds
        with self._lock:
            expired = [uid for uid, s in self._sessions.items() if s.created_at < cutoff]
            stale = [self._sessions.pop(uid) for uid in expired]
        for session in stale:
            session.teardown()
