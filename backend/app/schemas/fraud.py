from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.services.fraud_scoring import FraudDecision, FraudDetection, RiskProfile, SubmissionRecord


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FraudCheckRequest(_CamelModel):
    user_id: str | None = Field(default=None, alias="userId")
    quiz_id: str | None = Field(default=None, alias="quizId")
    answers: list[int] | None = None
    time_spent: float | None = Field(default=None, alias="timeSpent", allow_inf_nan=False)
    start_time: int | None = Field(default=None, alias="startTime")
    end_time: int | None = Field(default=None, alias="endTime")
    session_id: str | None = Field(default=None, alias="sessionId")


class FraudFlagsOut(_CamelModel):
    fast_completion: bool = Field(alias="fastCompletion")
    identical_retries: bool = Field(alias="identicalRetries")
    impossible_accuracy: bool = Field(alias="impossibleAccuracy")
    suspicious_pattern: bool = Field(alias="suspiciousPattern")


class FraudDetectionOut(_CamelModel):
    user_id: str = Field(alias="userId")
    session_id: str = Field(alias="sessionId")
    quiz_id: str = Field(alias="quizId")
    risk_score: int = Field(alias="riskScore")
    flags: FraudFlagsOut
    time_spent: float = Field(alias="timeSpent")
    average_time_per_question: float = Field(alias="averageTimePerQuestion")
    retry_count: int = Field(alias="retryCount")
    timestamp: datetime

    @classmethod
    def from_detection(cls, d: FraudDetection) -> "FraudDetectionOut":
        return cls(
            user_id=d.user_id,
            session_id=d.session_id,
            quiz_id=d.quiz_id,
            risk_score=d.risk_score,
            flags=FraudFlagsOut(
                fast_completion=d.flags.fast_completion,
                identical_retries=d.flags.identical_retries,
                impossible_accuracy=d.flags.impossible_accuracy,
                suspicious_pattern=d.flags.suspicious_pattern,
            ),
            time_spent=d.time_spent,
            average_time_per_question=d.average_time_per_question,
            retry_count=d.retry_count,
            timestamp=d.timestamp,
        )


class FraudCheckResponse(_CamelModel):
    fraud_detection: FraudDetectionOut = Field(alias="fraudDetection")
    blocked: bool
    warning_level: str = Field(alias="warningLevel")
    message: str
    allow_certification: bool = Field(alias="allowCertification")
    timestamp: datetime

    @classmethod
    def from_decision(cls, decision: FraudDecision) -> "FraudCheckResponse":
        return cls(
            fraud_detection=FraudDetectionOut.from_detection(decision.detection),
            blocked=decision.blocked,
            warning_level=decision.warning_level,
            message=decision.message,
            allow_certification=decision.allow_certification,
            timestamp=decision.timestamp,
        )


class SubmissionOut(_CamelModel):
    user_id: str = Field(alias="userId")
    quiz_id: str = Field(alias="quizId")
    answers: list[int]
    time_spent: float = Field(alias="timeSpent")
    start_time: int | None = Field(default=None, alias="startTime")
    end_time: int | None = Field(default=None, alias="endTime")
    session_id: str = Field(alias="sessionId")
    submitted_at: datetime | None = Field(default=None, alias="submittedAt")

    @classmethod
    def from_record(cls, s: SubmissionRecord) -> "SubmissionOut":
        return cls(
            user_id=s.user_id,
            quiz_id=s.quiz_id,
            answers=list(s.answers),
            time_spent=s.time_spent,
            start_time=s.start_time,
            end_time=s.end_time,
            session_id=s.session_id,
            submitted_at=s.submitted_at,
        )


class RiskProfileOut(_CamelModel):
    level: str
    average_risk: float = Field(alias="averageRisk")
    flag_count: int = Field(alias="flagCount")

    @classmethod
    def from_profile(cls, p: RiskProfile) -> "RiskProfileOut":
        return cls(level=p.level, average_risk=p.average_risk, flag_count=p.flag_count)


class FraudHistoryResponse(_CamelModel):
    fraud_history: list[FraudDetectionOut] = Field(alias="fraudHistory")
    submission_history: list[SubmissionOut] = Field(alias="submissionHistory")
    risk_profile: RiskProfileOut = Field(alias="riskProfile")


class FraudJobEnqueued(_CamelModel):
    ok: bool = True
    job_id: str = Field(alias="jobId")


class FraudJobStatus(_CamelModel):
    id: str
    status: str
    result: dict | None = None


class AnswerKeyIn(_CamelModel):
    correct_answers: list[int] = Field(alias="correctAnswers", min_length=1)


class AnswerKeyOut(_CamelModel):
    quiz_id: str = Field(alias="quizId")
    correct_answers: list[int] = Field(alias="correctAnswers")
