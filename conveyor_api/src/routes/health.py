from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select
from typing import Any, Dict
import redis.asyncio as redis

from conveyor_api.src.db.database import get_db
from conveyor_api.src.config import get_settings
from conveyor_api.src.models.pipeline import WorkflowRun
from conveyor_api.src.services.queue import get_queue_length

settings = get_settings()

router = APIRouter(tags=["health"])

async def check_database(db: AsyncSession) -> Dict[str, Any]:
    """The run tables are written by the controller; reading them is the check."""
    try:
        running = await db.scalar(
            select(func.count(WorkflowRun.id)).where(WorkflowRun.status == "running")
        )
        return {"status": "healthy", "running_runs": running or 0}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

async def check_queue() -> Dict[str, Any]:
    try:
        client = redis.from_url(settings.redis_url)
        try:
            await client.ping()
        finally:
            await client.aclose()
        return {"status": "healthy", "queued_events": await get_queue_length()}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "conveyor-api"}

@router.get("/health/db")
async def db_health_check(db: AsyncSession = Depends(get_db)):
    return await check_database(db)

@router.get("/health/queue")
async def queue_health_check():
    return await check_queue()

@router.get("/health/all")
async def full_health_check(db: AsyncSession = Depends(get_db)):
    """Combined health of the database and the event queue."""
    services = {
        "database": await check_database(db),
        "queue": await check_queue(),
    }
    healthy = all(check["status"] == "healthy" for check in services.values())
    return {"status": "healthy" if healthy else "degraded", "services": services}
