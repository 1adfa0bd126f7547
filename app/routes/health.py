from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.resilience import BreakerRegistry
from app.dependencies import get_breakers, get_cache, get_queue
from app.services.cache_service import CacheService
from app.services.queue_service import QueueService

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check"""
    return {"status": "healthy", "service": "Storefront Sync"}


@router.get("/health/ready")
async def readiness_check(
    cache: CacheService = Depends(get_cache),
    queue: QueueService = Depends(get_queue),
    breakers: BreakerRegistry = Depends(get_breakers),
):
    """Cache and queue reachability plus a summary of open circuits"""
    cache_ok = await cache.ping()
    queue_ok = await queue.ping()
    breaker_status = breakers.status()

    ready = cache_ok and queue_ok
    body = {
        "status": "ready" if ready else "unavailable",
        "cache": "connected" if cache_ok else "error",
        "queue": "connected" if queue_ok else "error",
        "circuits": breaker_status["health"],
        "open_circuits": breaker_status["open_circuits"],
    }
    return JSONResponse(status_code=200 if ready else 503, content=body)
