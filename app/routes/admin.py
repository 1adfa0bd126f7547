from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.enums import REPORT_TYPES
from app.core.exceptions import ValidationError
from app.core.resilience import BreakerRegistry
from app.core.security import get_current_username
from app.dependencies import get_breakers, get_cache, get_queue
from app.services.cache_service import CacheService
from app.services.queue_service import QueueService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/breakers")
async def breaker_status(breakers: BreakerRegistry = Depends(get_breakers)):
    """State of every circuit breaker created so far"""
    return breakers.status()


@router.post("/breakers/reset")
async def reset_breakers(
    name: Optional[str] = None,
    breakers: BreakerRegistry = Depends(get_breakers),
):
    """Close one breaker (by name) or all of them"""
    if name is not None and name not in breakers.names():
        raise HTTPException(status_code=404, detail=f"Circuit breaker {name} not found")
    count = breakers.reset(name)
    return {"message": f"Reset {count} circuit breaker(s)", "reset": count}


@router.get("/queue")
async def queue_status(
    failed_limit: int = Query(20, ge=0, le=500),
    queue: QueueService = Depends(get_queue),
):
    counts = await queue.get_job_counts()
    failed = await queue.list_failed(failed_limit) if failed_limit else []
    return {"counts": counts, "failed": failed}


@router.post("/cache/flush")
async def flush_cache(cache: CacheService = Depends(get_cache)):
    await cache.flush()
    return {"message": "Cache flushed"}


@router.post("/reports", status_code=202)
async def request_report(
    report_type: str = "catalogue",
    username: str = Depends(get_current_username),
    queue: QueueService = Depends(get_queue),
):
    """Queue a report; the worker emails it to the admin address"""
    if report_type not in REPORT_TYPES:
        raise ValidationError(f"Unknown report type: {report_type}")
    job_id = await queue.add_report_job(username, report_type)
    return {"job_id": job_id, "report_type": report_type}
