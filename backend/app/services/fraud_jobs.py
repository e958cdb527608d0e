from __future__ import annotations

import logging

from app.core.config import settings
from app.core.errors import InvalidSubmission
from app.db.session import SessionLocal
from app.schemas.fraud import FraudCheckResponse
from app.services.fraud_check import FraudCheckService, validate_submission
from app.services.fraud_scoring import unscored_decision
from app.services.fraud_stores import purge_expired


log = logging.getLogger(__name__)


def run_fraud_check_job(payload: dict) -> dict:
    """Worker-side fraud check. Same scoring as the HTTP path, but never raises.

    Invalid payloads come back as ``{"ok": False, "error": ...}``; any other failure
    degrades to an unscored, allowed result.
    """
    try:
        submission = validate_submission(payload)
    except InvalidSubmission as e:
        return {"ok": False, "error": e.message}

    try:
        with SessionLocal() as db:
            decision = FraudCheckService.for_session(db).check(submission)
    except Exception:
        log.exception("fraud check job failed user=%s quiz=%s", submission.user_id, submission.quiz_id)
        decision = unscored_decision(submission)

    out = FraudCheckResponse.from_decision(decision).model_dump(mode="json", by_alias=True)
    out["ok"] = True
    return out


def purge_expired_fraud_data_job(*, retention_days: int | None = None) -> dict:
    days = int(retention_days if retention_days is not None else settings.fraud_log_retention_days)
    with SessionLocal() as db:
        return purge_expired(db, retention_days=days)
