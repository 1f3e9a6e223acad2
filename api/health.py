from fastapi import APIRouter, Request
from datetime import datetime
import httpx
from sqlalchemy import text

from models.schemas import HealthCheckResponse
from config.database import get_async_engine
from config.redis_client import redis_client
from config.settings import settings

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Basic health check for all services"""

    services = {}

    # Check PostgreSQL
    try:
        async with get_async_engine().begin() as conn:
            await conn.execute(text("SELECT 1"))
        services["postgres"] = "connected"
    except Exception as e:
        services["postgres"] = f"disconnected: {str(e)}"

    # Check Redis
    try:
        await redis_client.cache_client.ping()
        services["redis"] = "connected"
    except Exception as e:
        services["redis"] = f"disconnected: {str(e)}"

    # Check tutoring platform
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{settings.PLATFORM_API_URL}/api/health", timeout=5.0)
            if response.status_code == 200:
                services["platform"] = "connected"
            else:
                services["platform"] = f"unhealthy: {response.status_code}"
    except Exception as e:
        services["platform"] = f"disconnected: {str(e)}"

    status = "ok" if all(s == "connected" for s in services.values()) else "degraded"

    return HealthCheckResponse(
        status=status,
        timestamp=datetime.utcnow().isoformat(),
        services=services
    )


@router.get("/health/scheduler")
async def scheduler_health(request: Request):
    """Outcome of the most recent engagement batch"""
    scheduler = getattr(request.app.state, "engagement_scheduler", None)
    if scheduler is None or scheduler.last_report is None:
        return {"running": bool(scheduler and scheduler.is_running), "last_run": None}

    report = scheduler.last_report
    return {
        "running": scheduler.is_running,
        "last_run": {
            "started_at": report.started_at.isoformat(),
            "duration_seconds": report.duration_seconds,
            "students_checked": report.students_checked,
            "nudges_sent": report.nudges_sent,
            "failures": report.failures,
        },
    }
