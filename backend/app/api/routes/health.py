import os
from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, Response
from sqlalchemy import text

from app.core.config import get_settings
from app.db.session import engine

router = APIRouter(tags=["health"])

SERVICE = "finance-admin-backend"


def _release() -> str | None:
    return os.getenv("GIT_SHA") or None


def _status() -> dict:
    settings = get_settings()
    return {
        "status": "ok",
        "service": SERVICE,
        "environment": settings.environment,
        "release": _release(),
        "time": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/")
def root() -> dict:
    # Load balancers may hit "/" (GET/HEAD). Keep it cheap and 200.
    return _status()


@router.get("/health")
@router.get("/healthz")
def health() -> dict:
    return _status()


@router.get("/readyz")
def readyz(response: Response) -> dict:
    """
    Readiness check: database connectivity, Alembic version (production only)
    and a writable local upload root when the local backend is enabled.
    Returns 503 when not ready.
    """
    settings = get_settings()
    checks: dict[str, object] = {}
    ok = True

    try:
        with engine.connect() as conn:
            conn.execute(text("select 1"))
        checks["db"] = "ok"
    except Exception as e:
        ok = False
        checks["db"] = "error"
        checks["db_error"] = str(e)[:250]

    try:
        with engine.connect() as conn:
            v = conn.execute(text("select version_num from alembic_version limit 1")).scalar()
        checks["alembic_version"] = v or None
        if settings.environment == "production" and not v:
            ok = False
    except Exception as e:
        checks["alembic_version"] = None
        checks["alembic_error"] = str(e)[:250]
        if settings.environment == "production":
            ok = False

    backends = settings.storage_backends.split(",")
    checks["storage_backends"] = backends
    checks["remote_storage"] = bool(settings.storage_remote_enabled and settings.github_token)
    if "local" in backends:
        root = Path(settings.storage_local_root)
        writable = os.access(root if root.exists() else root.parent, os.W_OK)
        checks["local_storage"] = "ok" if writable else "not_writable"
        if not writable and not checks["remote_storage"]:
            ok = False

    if not ok:
        response.status_code = 503
    return {
        **_status(),
        "status": "ok" if ok else "not_ready",
        "checks": checks,
    }
