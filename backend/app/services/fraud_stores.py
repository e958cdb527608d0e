from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Protocol, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.errors import HistoryUnavailable, PersistenceFailure
from app.models.fraud import FraudLog, QuizAnswerKey, QuizSubmission
from app.services.fraud_scoring import FraudDetection, FraudFlags, SubmissionRecord


log = logging.getLogger(__name__)


class SubmissionHistoryStore(Protocol):
    def load_recent(self, user_id: str, limit: int) -> list[SubmissionRecord]: ...

    def append(self, submission: SubmissionRecord) -> None: ...


class FraudLogStore(Protocol):
    def append(self, detection: FraudDetection) -> None: ...

    def list_for_user(self, user_id: str, limit: int) -> list[FraudDetection]: ...


class AnswerKeyStore(Protocol):
    def get(self, quiz_id: str) -> tuple[int, ...] | None: ...

    def put(self, quiz_id: str, correct_answers: Sequence[int]) -> None: ...


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _decode_answers(raw: str | None) -> tuple[int, ...]:
    try:
        items = json.loads(raw or "[]")
    except (TypeError, ValueError):
        return ()
    if not isinstance(items, list):
        return ()
    out: list[int] = []
    for x in items:
        try:
            out.append(int(x))
        except (TypeError, ValueError):
            continue
    return tuple(out)


def _submission_from_row(row: QuizSubmission) -> SubmissionRecord:
    return SubmissionRecord(
        user_id=row.user_id,
        quiz_id=row.quiz_id,
        answers=_decode_answers(row.answers),
        time_spent=float(row.time_spent or 0.0),
        session_id=row.session_id,
        start_time=row.start_time,
        end_time=row.end_time,
        submitted_at=_as_utc(row.created_at),
    )


def _detection_from_row(row: FraudLog) -> FraudDetection:
    return FraudDetection(
        user_id=row.user_id,
        session_id=row.session_id,
        quiz_id=row.quiz_id,
        risk_score=int(row.risk_score or 0),
        flags=FraudFlags(
            fast_completion=bool(row.fast_completion),
            identical_retries=bool(row.identical_retries),
            impossible_accuracy=bool(row.impossible_accuracy),
            suspicious_pattern=bool(row.suspicious_pattern),
        ),
        time_spent=float(row.time_spent or 0.0),
        average_time_per_question=float(row.average_time_per_question or 0.0),
        retry_count=int(row.retry_count or 0),
        timestamp=_as_utc(row.created_at) or datetime.now(timezone.utc),
    )


class SqlSubmissionHistoryStore:
    def __init__(self, db: Session):
        self.db = db

    def load_recent(self, user_id: str, limit: int) -> list[SubmissionRecord]:
        try:
            rows = self.db.scalars(
                select(QuizSubmission)
                .where(QuizSubmission.user_id == str(user_id))
                .order_by(QuizSubmission.created_at.desc())
                .limit(max(0, int(limit)))
            ).all()
        except Exception as e:
            self.db.rollback()
            raise HistoryUnavailable(f"failed to load submission history: {e}") from e
        return [_submission_from_row(r) for r in rows]

    def append(self, submission: SubmissionRecord) -> None:
        created_at = submission.submitted_at or datetime.now(timezone.utc)
        try:
            self.db.add(
                QuizSubmission(
                    user_id=submission.user_id,
                    quiz_id=submission.quiz_id,
                    session_id=submission.session_id,
                    answers=json.dumps([int(a) for a in submission.answers]),
                    time_spent=float(submission.time_spent),
                    start_time=submission.start_time,
                    end_time=submission.end_time,
                    created_at=created_at,
                )
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise PersistenceFailure(f"failed to store submission: {e}") from e


class SqlFraudLogStore:
    def __init__(self, db: Session, *, retention_days: int = 90):
        self.db = db
        self.retention_days = int(retention_days)

    def append(self, detection: FraudDetection) -> None:
        created_at = _as_utc(detection.timestamp) or datetime.now(timezone.utc)
        expires_at = created_at + timedelta(days=self.retention_days) if self.retention_days > 0 else None
        flags = detection.flags
        try:
            self.db.add(
                FraudLog(
                    user_id=detection.user_id,
                    quiz_id=detection.quiz_id,
                    session_id=detection.session_id,
                    risk_score=int(detection.risk_score),
                    fast_completion=flags.fast_completion,
                    identical_retries=flags.identical_retries,
                    impossible_accuracy=flags.impossible_accuracy,
                    suspicious_pattern=flags.suspicious_pattern,
                    time_spent=float(detection.time_spent),
                    average_time_per_question=float(detection.average_time_per_question),
                    retry_count=int(detection.retry_count),
                    created_at=created_at,
                    expires_at=expires_at,
                )
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise PersistenceFailure(f"failed to store fraud log: {e}") from e

    def list_for_user(self, user_id: str, limit: int) -> list[FraudDetection]:
        try:
            rows = self.db.scalars(
                select(FraudLog)
                .where(FraudLog.user_id == str(user_id))
                .order_by(FraudLog.created_at.desc())
                .limit(max(0, int(limit)))
            ).all()
        except Exception as e:
            self.db.rollback()
            raise HistoryUnavailable(f"failed to load fraud logs: {e}") from e
        return [_detection_from_row(r) for r in rows]


class SqlAnswerKeyStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, quiz_id: str) -> tuple[int, ...] | None:
        row = self.db.get(QuizAnswerKey, str(quiz_id))
        if row is None:
            return None
        key = _decode_answers(row.correct_answers)
        return key or None

    def put(self, quiz_id: str, correct_answers: Sequence[int]) -> None:
        payload = json.dumps([int(a) for a in correct_answers])
        row = self.db.get(QuizAnswerKey, str(quiz_id))
        if row is None:
            self.db.add(QuizAnswerKey(quiz_id=str(quiz_id), correct_answers=payload))
        else:
            row.correct_answers = payload
            row.updated_at = datetime.now(timezone.utc)
        self.db.commit()


def purge_expired(db: Session, *, retention_days: int, now: datetime | None = None) -> dict[str, int]:
    """Delete fraud logs past their expiry and submissions older than the retention window."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=int(retention_days))

    logs = db.execute(
        delete(FraudLog)
        .where(FraudLog.expires_at.is_not(None), FraudLog.expires_at <= now)
        .execution_options(synchronize_session=False)
    )
    subs = db.execute(
        delete(QuizSubmission).where(QuizSubmission.created_at <= cutoff).execution_options(synchronize_session=False)
    )
    db.commit()

    out = {"fraud_logs": int(logs.rowcount or 0), "submissions": int(subs.rowcount or 0)}
    log.info("purged expired fraud data: %s", out)
    return out
