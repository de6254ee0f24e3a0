"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nbhd.config import get_settings
from nbhd.database import get_session
from nbhd.redis_client import get_redis, redis_initialized

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe, returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe. Checks DB and Redis connectivity."""
    checks: dict[str, object] = {}

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        checks["database"] = "ok"
    except SQLAlchemyError as exc:
        checks["database"] = f"error: {exc}"

    if not redis_initialized():
        checks["redis"] = "not initialized"
    else:
        try:
            await get_redis().ping()
            checks["redis"] = "ok"
        except (RedisError, OSError) as exc:
            checks["redis"] = f"error: {exc}"

    all_ok = all(v == "ok" for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version, environment and presence backend."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
        "presence_backend": settings.presence_backend,
    }
