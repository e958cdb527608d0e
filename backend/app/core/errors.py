from __future__ import annotations


class FraudServiceError(Exception):
    """Base class for fraud-check failures the service knows how to classify."""


class InvalidSubmission(FraudServiceError):
    """A required submission field is missing or malformed. Surfaces as HTTP 400."""

    def __init__(self, message: str = "Missing required fields: userId, quizId, answers, timeSpent"):
        super().__init__(message)
        self.message = message


class HistoryUnavailable(FraudServiceError):
    """The submission history could not be read. Callers degrade to an empty history."""


class PersistenceFailure(FraudServiceError):
    """A submission or fraud log could not be written. Logged, never surfaced."""
