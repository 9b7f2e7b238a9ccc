"""Liveness, readiness and version endpoints."""

from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from vidtube.config import get_settings
from vidtube.database import get_session, ping

logger = structlog.get_logger()

router = APIRouter()


def _media_check() -> str:
    settings = get_settings()
    if settings.media_provider.lower() != "local":
        return "ok" if settings.cloudinary_cloud_name else "error: cloudinary not configured"
    root = Path(settings.media_root)
    if root.exists() and not root.is_dir():
        return f"error: {root} is not a directory"
    return "ok"


@router.get("/health")
async def health() -> dict[str, str]:
    """The process is up."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    response: Response,
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Database reachable and media storage configured. 503 when either is not."""
    checks: dict[str, str] = {}
    try:
        await ping(db)
        checks["database"] = "ok"
    except Exception as exc:
        logger.warning("readiness_database_failed", error=str(exc))
        checks["database"] = f"error: {type(exc).__name__}"
    checks["media"] = _media_check()

    ready = all(v == "ok" for v in checks.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "ready" if ready else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Build version and deployment environment."""
    settings = get_settings()
    return {"name": "vidtube-api", "version": settings.app_version, "environment": settings.environment}
