from app.models.fraud import FraudLog, QuizAnswerKey, QuizSubmission

__all__ = [
    "FraudLog",
    "QuizAnswerKey",
    "QuizSubmission",
]
