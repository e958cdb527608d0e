"""Heuristic fraud-risk scoring for quiz submissions.

Everything here is pure: the scorer reads a submission, the same user's prior
submissions and (optionally) the quiz answer key, and returns an explainable
risk score. Loading history and persisting results belongs to the caller
(see ``app.services.fraud_check``).

Rules, each adding points independently; the total is clamped to 100 once:

1. fast completion (< 15s per question +30, < 5s another +40)
2. identical answers to a prior attempt of the same quiz (+25)
3. accuracy vs. time, only when an answer key is known (+35 or +25)
4. retry volume on the same quiz (+20)
5. near-constant timing across recent submissions (+15)
6. submission volume within one client session (+10)

Rules 4-6 all raise ``suspicious_pattern``.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Sequence

from app.core.errors import InvalidSubmission


@dataclass(frozen=True)
class FraudPolicy:
    fast_seconds_per_question: float = 15.0
    fast_penalty: int = 30
    very_fast_seconds_per_question: float = 5.0
    very_fast_penalty: int = 40

    identical_retry_penalty: int = 25

    perfect_accuracy_seconds: float = 20.0
    perfect_accuracy_penalty: int = 35
    high_accuracy_percent: float = 90.0
    high_accuracy_seconds: float = 10.0
    high_accuracy_penalty: int = 25

    max_retries: int = 5
    retry_penalty: int = 20

    timing_window: int = 5
    timing_min_samples: int = 3
    timing_stddev_seconds: float = 2.0
    timing_penalty: int = 15

    max_session_submissions: int = 10
    session_penalty: int = 10

    block_threshold: int = 70
    warning_low: int = 30
    warning_medium: int = 50
    warning_high: int = 70
    warning_critical: int = 80
    certification_max_risk: int = 50

    @classmethod
    def from_settings(cls, settings) -> "FraudPolicy":
        return cls(
            fast_seconds_per_question=float(settings.fraud_fast_seconds_per_question),
            fast_penalty=int(settings.fraud_fast_penalty),
            very_fast_seconds_per_question=float(settings.fraud_very_fast_seconds_per_question),
            very_fast_penalty=int(settings.fraud_very_fast_penalty),
            identical_retry_penalty=int(settings.fraud_identical_retry_penalty),
            perfect_accuracy_seconds=float(settings.fraud_perfect_accuracy_seconds),
            perfect_accuracy_penalty=int(settings.fraud_perfect_accuracy_penalty),
            high_accuracy_percent=float(settings.fraud_high_accuracy_percent),
            high_accuracy_seconds=float(settings.fraud_high_accuracy_seconds),
            high_accuracy_penalty=int(settings.fraud_high_accuracy_penalty),
            max_retries=int(settings.fraud_max_retries),
            retry_penalty=int(settings.fraud_retry_penalty),
            timing_window=int(settings.fraud_timing_window),
            timing_min_samples=int(settings.fraud_timing_min_samples),
            timing_stddev_seconds=float(settings.fraud_timing_stddev_seconds),
            timing_penalty=int(settings.fraud_timing_penalty),
            max_session_submissions=int(settings.fraud_max_session_submissions),
            session_penalty=int(settings.fraud_session_penalty),
            block_threshold=int(settings.fraud_risk_threshold),
            warning_low=int(settings.fraud_warning_low),
            warning_medium=int(settings.fraud_warning_medium),
            warning_high=int(settings.fraud_warning_high),
            warning_critical=int(settings.fraud_warning_critical),
            certification_max_risk=int(settings.fraud_certification_max_risk),
        )


DEFAULT_POLICY = FraudPolicy()


@dataclass(frozen=True)
class SubmissionRecord:
    user_id: str
    quiz_id: str
    answers: tuple[int, ...]
    time_spent: float
    session_id: str
    start_time: int | None = None
    end_time: int | None = None
    submitted_at: datetime | None = None

    @property
    def seconds_per_question(self) -> float | None:
        if not self.answers or not self.time_spent or self.time_spent <= 0:
            return None
        return float(self.time_spent) / len(self.answers)


@dataclass(frozen=True)
class FraudFlags:
    fast_completion: bool = False
    identical_retries: bool = False
    impossible_accuracy: bool = False
    suspicious_pattern: bool = False

    def count(self) -> int:
        return sum(
            1
            for v in (self.fast_completion, self.identical_retries, self.impossible_accuracy, self.suspicious_pattern)
            if v
        )


@dataclass(frozen=True)
class FraudDetection:
    user_id: str
    session_id: str
    quiz_id: str
    risk_score: int
    flags: FraudFlags
    time_spent: float
    average_time_per_question: float
    retry_count: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class FraudDecision:
    detection: FraudDetection
    blocked: bool
    warning_level: str
    message: str
    allow_certification: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class RiskProfile:
    level: str
    average_risk: float
    flag_count: int


def _recency_key(s: SubmissionRecord) -> float:
    ts = s.submitted_at
    if ts is None:
        return float("-inf")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.timestamp()


def _accuracy_percent(answers: Sequence[int], answer_key: Sequence[int]) -> float:
    correct = sum(1 for i, a in enumerate(answers) if i < len(answer_key) and int(answer_key[i]) == int(a))
    return (correct / len(answers)) * 100.0


def timing_stddev(submissions: Iterable[SubmissionRecord]) -> float | None:
    """Population standard deviation of seconds-per-question, or None below two samples."""
    timings = [t for t in (s.seconds_per_question for s in submissions) if t is not None]
    if len(timings) < 2:
        return None
    return statistics.pstdev(timings)


def score_submission(
    submission: SubmissionRecord,
    history: Sequence[SubmissionRecord],
    *,
    answer_key: Sequence[int] | None = None,
    policy: FraudPolicy = DEFAULT_POLICY,
) -> FraudDetection:
    """Score one submission against the same user's prior submissions.

    ``history`` is sorted most-recent-first by ``submitted_at``. Entries without a
    timestamp sort as oldest and keep their relative order, so untimestamped history
    must already be passed most-recent-first.
    """
    if not submission.answers:
        raise InvalidSubmission("answers must not be empty")
    time_spent = float(submission.time_spent or 0.0)
    if not math.isfinite(time_spent) or time_spent <= 0:
        raise InvalidSubmission("timeSpent must be greater than 0")

    # Untimestamped entries sort as oldest and keep their given order.
    prior = sorted(history, key=_recency_key, reverse=True)
    combined = [submission, *prior]

    score = 0
    fast_completion = False
    identical_retries = False
    impossible_accuracy = False
    suspicious_pattern = False

    avg = float(submission.time_spent) / len(submission.answers)

    if avg < policy.fast_seconds_per_question:
        fast_completion = True
        score += policy.fast_penalty
        if avg < policy.very_fast_seconds_per_question:
            score += policy.very_fast_penalty

    same_quiz_prior = [s for s in prior if s.quiz_id == submission.quiz_id]
    current = tuple(int(a) for a in submission.answers)
    if any(tuple(int(a) for a in s.answers) == current for s in same_quiz_prior):
        identical_retries = True
        score += policy.identical_retry_penalty

    if answer_key:
        accuracy = _accuracy_percent(submission.answers, answer_key)
        if accuracy >= 100.0 and avg < policy.perfect_accuracy_seconds:
            impossible_accuracy = True
            score += policy.perfect_accuracy_penalty
        elif accuracy >= policy.high_accuracy_percent and avg < policy.high_accuracy_seconds:
            impossible_accuracy = True
            score += policy.high_accuracy_penalty

    retry_count = len(same_quiz_prior) + 1
    if retry_count > policy.max_retries:
        suspicious_pattern = True
        score += policy.retry_penalty

    recent = combined[: max(0, int(policy.timing_window))]
    if len(recent) >= policy.timing_min_samples:
        spread = timing_stddev(recent)
        if spread is not None and spread < policy.timing_stddev_seconds:
            suspicious_pattern = True
            score += policy.timing_penalty

    session_count = sum(1 for s in combined if s.session_id == submission.session_id)
    if session_count > policy.max_session_submissions:
        suspicious_pattern = True
        score += policy.session_penalty

    return FraudDetection(
        user_id=submission.user_id,
        session_id=submission.session_id,
        quiz_id=submission.quiz_id,
        risk_score=max(0, min(int(score), 100)),
        flags=FraudFlags(
            fast_completion=fast_completion,
            identical_retries=identical_retries,
            impossible_accuracy=impossible_accuracy,
            suspicious_pattern=suspicious_pattern,
        ),
        time_spent=float(submission.time_spent),
        average_time_per_question=avg,
        retry_count=retry_count,
    )


def warning_level(risk_score: int, policy: FraudPolicy = DEFAULT_POLICY) -> str:
    if risk_score >= policy.warning_critical:
        return "critical"
    if risk_score >= policy.warning_high:
        return "high"
    if risk_score >= policy.warning_medium:
        return "medium"
    if risk_score >= policy.warning_low:
        return "low"
    return "none"


def fraud_message(detection: FraudDetection, blocked: bool, policy: FraudPolicy = DEFAULT_POLICY) -> str:
    flags = detection.flags
    if blocked:
        reasons: list[str] = []
        if flags.fast_completion:
            reasons.append("unusually fast completion")
        if flags.identical_retries:
            reasons.append("identical answer patterns")
        if flags.impossible_accuracy:
            reasons.append("suspicious accuracy vs time ratio")
        if flags.suspicious_pattern:
            reasons.append("irregular submission patterns")
        return f"Submission blocked due to: {', '.join(reasons)}. Please retake the quiz at a normal pace."

    if detection.risk_score >= policy.warning_medium:
        return "Your submission has been flagged for review. Certification may be delayed pending verification."
    if detection.risk_score >= policy.warning_low:
        return "Please ensure you're taking adequate time to read and understand each question."
    return "Submission looks good! Keep up the great work."


def decide(detection: FraudDetection, policy: FraudPolicy = DEFAULT_POLICY) -> FraudDecision:
    blocked = detection.risk_score >= policy.block_threshold
    return FraudDecision(
        detection=detection,
        blocked=blocked,
        warning_level=warning_level(detection.risk_score, policy),
        message=fraud_message(detection, blocked, policy),
        allow_certification=(not blocked) and detection.risk_score < policy.certification_max_risk,
    )


def unscored_decision(submission: SubmissionRecord) -> FraudDecision:
    """Fail-open result for when scoring could not run at all."""
    n = len(submission.answers or ())
    avg = float(submission.time_spent) / n if n and submission.time_spent else 0.0
    detection = FraudDetection(
        user_id=submission.user_id,
        session_id=submission.session_id,
        quiz_id=submission.quiz_id,
        risk_score=0,
        flags=FraudFlags(),
        time_spent=float(submission.time_spent or 0.0),
        average_time_per_question=avg,
        retry_count=0,
    )
    return FraudDecision(
        detection=detection,
        blocked=False,
        warning_level="none",
        message="Fraud detection unavailable",
        allow_certification=True,
    )


def risk_profile(detections: Sequence[FraudDetection]) -> RiskProfile:
    if not detections:
        return RiskProfile(level="new", average_risk=0.0, flag_count=0)

    average_risk = sum(d.risk_score for d in detections) / len(detections)
    flag_count = sum(d.flags.count() for d in detections)

    level = "low"
    if average_risk >= 70 or flag_count >= 10:
        level = "critical"
    elif average_risk >= 50 or flag_count >= 6:
        level = "high"
    elif average_risk >= 30 or flag_count >= 3:
        level = "medium"

    return RiskProfile(level=level, average_risk=float(average_risk), flag_count=int(flag_count))
