"""Domain exceptions raised by repositories, the quiz engine and services.

The HTTP layer maps these to status codes; none of them is fatal to the
process.
"""


class RepositoryError(RuntimeError):
    """Question pool could not be read (transport or database failure)."""


class SinkError(RuntimeError):
    """A result row or leaderboard increment could not be written."""


class RunStateError(RuntimeError):
    """Operation is not allowed in the run's current state."""


class InsufficientQuestionsError(RunStateError):
    """A daily run cannot start without a full question set."""

    def __init__(self, available: int, required: int):
        super().__init__(f"need {required} questions to start, only {available} available; retry loading")
        self.available = available
        self.required = required


class AnswerRejectedError(RunStateError):
    """Answer was refused (already answered, wrong question or feedback pending)."""


class InvalidOptionError(ValueError):
    """Chosen option is not one of the four option tags."""
