"""Health check endpoint.

Learn: Verifies the server is running, the database answers, and (when a
relay is configured) Redis is reachable. Also reports live realtime
connection counts so a load balancer dashboard can see socket spread.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from homedesk import __version__
from homedesk.api.deps import get_bus
from homedesk.config import settings
from homedesk.db.engine import get_db
from homedesk.realtime.bus import EventBus

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db), bus: EventBus = Depends(get_bus)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    # Check Redis, only when the relay is enabled
    if settings.redis_url:
        try:
            from redis.asyncio import from_url

            r = from_url(settings.redis_url)
            await r.ping()
            await r.aclose()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"
    else:
        checks["redis"] = "disabled"

    status = "healthy" if all(
        v in ("ok", "disabled") for k, v in checks.items() if k != "version"
    ) else "degraded"

    return {"status": status, **checks, "realtime": bus.stats()}
