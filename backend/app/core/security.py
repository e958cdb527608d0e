from __future__ import annotations

import hmac

from fastapi import HTTPException, Request

from app.core.config import settings


def _require_header_secret(request: Request, *, configured: str | None, header: str) -> None:
    secret = str(configured or "").strip()
    if not secret:
        raise HTTPException(status_code=404, detail="not found")

    provided = str(request.headers.get(header) or "").strip()
    if not provided or not hmac.compare_digest(provided, secret):
        raise HTTPException(status_code=403, detail="forbidden")


def require_admin_secret(request: Request) -> None:
    """Guard for operator endpoints. Hidden (404) unless ADMIN_SECRET is configured."""
    _require_header_secret(request, configured=getattr(settings, "admin_secret", None), header="x-admin-secret")


def require_cron_secret(request: Request) -> None:
    _require_header_secret(request, configured=getattr(settings, "cron_secret", None), header="x-cron-secret")
