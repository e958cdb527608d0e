from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import HistoryUnavailable, InvalidSubmission, PersistenceFailure
from app.services.fraud_scoring import (
    FraudDecision,
    FraudDetection,
    FraudPolicy,
    RiskProfile,
    SubmissionRecord,
    decide,
    risk_profile,
    score_submission,
)
from app.services.fraud_stores import (
    AnswerKeyStore,
    FraudLogStore,
    SqlAnswerKeyStore,
    SqlFraudLogStore,
    SqlSubmissionHistoryStore,
    SubmissionHistoryStore,
)


log = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Missing required fields: userId, quizId, answers, timeSpent"


def _opt_int(value: Any, name: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidSubmission(f"{name} must be a number")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InvalidSubmission(f"{name} must be a number") from e


def validate_submission(payload: Mapping[str, Any]) -> SubmissionRecord:
    """Turn a camelCase request payload into a SubmissionRecord or raise InvalidSubmission."""
    if not isinstance(payload, Mapping):
        raise InvalidSubmission(REQUIRED_FIELDS_MESSAGE)

    user_id = str(payload.get("userId") or "").strip()
    quiz_id = str(payload.get("quizId") or "").strip()
    answers_raw = payload.get("answers")
    time_spent_raw = payload.get("timeSpent")

    if not user_id or not quiz_id or not answers_raw or not time_spent_raw:
        raise InvalidSubmission(REQUIRED_FIELDS_MESSAGE)

    if not isinstance(answers_raw, (list, tuple)):
        raise InvalidSubmission("answers must be a list of option indexes")
    answers: list[int] = []
    for a in answers_raw:
        if isinstance(a, bool) or not isinstance(a, (int, float)) or int(a) != a or a < 0:
            raise InvalidSubmission("answers must be non-negative integers")
        answers.append(int(a))

    if isinstance(time_spent_raw, bool):
        raise InvalidSubmission("timeSpent must be a number")
    try:
        time_spent = float(time_spent_raw)
    except (TypeError, ValueError) as e:
        raise InvalidSubmission("timeSpent must be a number") from e
    if not math.isfinite(time_spent):
        raise InvalidSubmission("timeSpent must be a finite number")
    if time_spent <= 0:
        raise InvalidSubmission("timeSpent must be greater than 0")

    session_id = str(payload.get("sessionId") or "").strip() or f"session_{int(time.time() * 1000)}"

    return SubmissionRecord(
        user_id=user_id,
        quiz_id=quiz_id,
        answers=tuple(answers),
        time_spent=time_spent,
        session_id=session_id,
        start_time=_opt_int(payload.get("startTime"), "startTime"),
        end_time=_opt_int(payload.get("endTime"), "endTime"),
    )


@dataclass
class FraudHistory:
    detections: list[FraudDetection]
    submissions: list[SubmissionRecord]
    profile: RiskProfile


class FraudCheckService:
    def __init__(
        self,
        *,
        history_store: SubmissionHistoryStore,
        log_store: FraudLogStore,
        answer_keys: AnswerKeyStore | None = None,
        policy: FraudPolicy | None = None,
        history_limit: int | None = None,
    ):
        self.history_store = history_store
        self.log_store = log_store
        self.answer_keys = answer_keys
        self.policy = policy or FraudPolicy.from_settings(settings)
        self.history_limit = int(history_limit if history_limit is not None else settings.fraud_history_limit)

    @classmethod
    def for_session(cls, db: Session) -> "FraudCheckService":
        return cls(
            history_store=SqlSubmissionHistoryStore(db),
            log_store=SqlFraudLogStore(db, retention_days=int(settings.fraud_log_retention_days)),
            answer_keys=SqlAnswerKeyStore(db),
        )

    def _load_history(self, user_id: str) -> list[SubmissionRecord]:
        try:
            return list(self.history_store.load_recent(user_id, self.history_limit))
        except HistoryUnavailable:
            log.warning("submission history unavailable for user=%s; scoring without history", user_id, exc_info=True)
            return []

    def _answer_key(self, quiz_id: str) -> tuple[int, ...] | None:
        if self.answer_keys is None:
            return None
        try:
            return self.answer_keys.get(quiz_id)
        except Exception:
            log.warning("answer key lookup failed for quiz=%s; skipping accuracy check", quiz_id, exc_info=True)
            return None

    def check(self, submission: SubmissionRecord) -> FraudDecision:
        history = self._load_history(submission.user_id)
        answer_key = self._answer_key(submission.quiz_id)

        detection = score_submission(submission, history, answer_key=answer_key, policy=self.policy)
        decision = decide(detection, self.policy)

        try:
            self.history_store.append(submission)
        except PersistenceFailure:
            log.warning("failed to append submission for user=%s quiz=%s", submission.user_id, submission.quiz_id, exc_info=True)

        try:
            self.log_store.append(detection)
        except PersistenceFailure:
            log.warning("failed to store fraud log for user=%s quiz=%s", submission.user_id, submission.quiz_id, exc_info=True)

        if decision.blocked:
            log.info(
                "submission blocked user=%s quiz=%s risk=%s",
                submission.user_id,
                submission.quiz_id,
                detection.risk_score,
            )
        return decision

    def history(self, user_id: str) -> FraudHistory:
        detections = self.log_store.list_for_user(user_id, self.history_limit)
        submissions = self._load_history(user_id)
        return FraudHistory(detections=detections, submissions=submissions, profile=risk_profile(detections))
