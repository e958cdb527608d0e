from fastapi import APIRouter, HTTPException, Request
from sqlalchemy import text

from app.core.config import settings
from app.core.queue import get_queue
from app.core.redis_client import get_redis
from app.core.security import require_cron_secret
from app.db import session as session_module
from app.services.fraud_jobs import purge_expired_fraud_data_job

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/live")
def live():
    return {"status": "live"}


@router.get("/health/ready")
def ready():
    try:
        db = session_module.SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as e:
        raise HTTPException(status_code=503, detail="db not ready") from e

    try:
        r = get_redis()
        r.ping()
    except Exception as e:
        raise HTTPException(status_code=503, detail="redis not ready") from e

    return {"status": "ready"}


@router.post("/health/cron/fraud-purge")
def cron_fraud_purge(request: Request):
    require_cron_secret(request)

    interval_seconds = max(60, int(getattr(settings, "fraud_purge_interval_minutes", 60 * 24)) * 60)
    lock_key = "locks:fraud_purge"
    lock_ttl = max(60, interval_seconds - 5)

    r = get_redis()
    acquired = r.set(lock_key, "1", nx=True, ex=int(lock_ttl))
    if not acquired:
        return {"ok": True, "enqueued": False, "reason": "locked"}

    q = get_queue(str(settings.rq_queue_default))
    job = q.enqueue(
        purge_expired_fraud_data_job,
        retention_days=int(settings.fraud_log_retention_days),
        job_timeout=60 * 10,
        result_ttl=60 * 60,
        failure_ttl=60 * 60,
    )
    return {"ok": True, "enqueued": True, "job_id": str(job.id)}
