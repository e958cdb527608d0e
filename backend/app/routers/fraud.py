from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.queue import get_queue, job_status
from app.core.rate_limit import rate_limit
from app.core.security import require_admin_secret
from app.db.session import get_db
from app.schemas.fraud import (
    AnswerKeyIn,
    AnswerKeyOut,
    FraudCheckRequest,
    FraudCheckResponse,
    FraudDetectionOut,
    FraudHistoryResponse,
    FraudJobEnqueued,
    FraudJobStatus,
    RiskProfileOut,
    SubmissionOut,
)
from app.services.fraud_check import FraudCheckService, validate_submission
from app.services.fraud_jobs import run_fraud_check_job
from app.services.fraud_stores import SqlAnswerKeyStore

router = APIRouter(prefix="/api/fraud", tags=["fraud"])


@router.post("/check", response_model=FraudCheckResponse)
def check_submission(
    request: Request,
    body: FraudCheckRequest,
    db: Session = Depends(get_db),
    _: object = rate_limit(key_prefix="fraud_check"),
):
    submission = validate_submission(body.model_dump(by_alias=True))
    request.state.user_id = submission.user_id

    decision = FraudCheckService.for_session(db).check(submission)
    return FraudCheckResponse.from_decision(decision)


@router.get("/check", response_model=FraudHistoryResponse)
def fraud_history(
    db: Session = Depends(get_db),
    x_user_id: str | None = Header(default=None, alias="x-user-id"),
    user_id_q: str | None = Query(default=None, alias="userId"),
):
    user_id = str(x_user_id or user_id_q or "").strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID required")

    hist = FraudCheckService.for_session(db).history(user_id)
    return FraudHistoryResponse(
        fraud_history=[FraudDetectionOut.from_detection(d) for d in hist.detections],
        submission_history=[SubmissionOut.from_record(s) for s in hist.submissions],
        risk_profile=RiskProfileOut.from_profile(hist.profile),
    )


@router.post("/check/async", response_model=FraudJobEnqueued)
def check_submission_async(
    body: FraudCheckRequest,
    _: object = rate_limit(key_prefix="fraud_check_async"),
):
    # Reject bad payloads up front instead of in the worker.
    validate_submission(body.model_dump(by_alias=True))

    q = get_queue(str(settings.rq_queue_default))
    job = q.enqueue(
        run_fraud_check_job,
        body.model_dump(by_alias=True),
        job_timeout=60,
        result_ttl=60 * 60,
        failure_ttl=60 * 60,
    )
    return FraudJobEnqueued(job_id=str(job.id))


@router.get("/jobs/{job_id}", response_model=FraudJobStatus)
def get_fraud_job(job_id: str):
    return FraudJobStatus(**job_status(job_id))


@router.put("/answer-keys/{quiz_id}", response_model=AnswerKeyOut)
def put_answer_key(
    quiz_id: str,
    body: AnswerKeyIn,
    request: Request,
    db: Session = Depends(get_db),
):
    require_admin_secret(request)

    if any(int(a) < 0 for a in body.correct_answers):
        raise HTTPException(status_code=400, detail="correctAnswers must be non-negative integers")

    SqlAnswerKeyStore(db).put(quiz_id, body.correct_answers)
    return AnswerKeyOut(quiz_id=quiz_id, correct_answers=list(body.correct_answers))
