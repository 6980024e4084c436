"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running
and dependencies (database, Redis) are reachable. Redis is optional —
without it only rate limiting is disabled — so it never makes the
status "degraded".
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text

from invoiceportal import __version__
from invoiceportal.db.engine import engine
from invoiceportal.realtime.hub import LiveUpdateHub, get_live_hub

router = APIRouter()


@router.get("/health")
async def health_check(hub: LiveUpdateHub = Depends(get_live_hub)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    # Check database
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    # Check Redis
    from invoiceportal.middleware.rate_limit import get_redis

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"unavailable: {e}"

    status = "healthy" if checks["database"] == "ok" else "degraded"

    return {
        "status": status,
        "live_connections": len(hub.registry),
        **checks,
    }
