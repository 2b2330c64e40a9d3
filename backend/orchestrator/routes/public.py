# /orchestrator/routes/public.py

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest
from datetime import datetime

from orchestrator.config.settings import settings
from orchestrator.utils.dependencies import verify_metrics_access
from orchestrator.services.db_service import db_service
from orchestrator.services.cache_service import cache_service
from orchestrator.models.api import APIResponse

# Unauthenticated endpoints: service banner and health probes. /metrics is
# protected by the API key when one is configured.

router = APIRouter()

@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Agent Orchestrator",
        "version": "1.0.0",
        "status": "operational",
        "environment": settings.environment
    }

@router.get("/health", summary="Basic Health Check")
async def health_check():
    """Basic health check for load balancers."""
    return {"status": "healthy", "timestamp": datetime.utcnow()}

@router.get("/health/ready", summary="Readiness Probe")
async def readiness_check():
    """Readiness probe: the document store must answer; the cache is optional."""
    if not await db_service.health_check():
        raise HTTPException(status_code=503, detail="Service not ready: database unavailable")
    return {"status": "ready"}

@router.get("/health/live", summary="Liveness Probe")
async def liveness_check():
    """Liveness probe."""
    return {"status": "alive"}

@router.get("/health/detailed", response_model=APIResponse, tags=["Monitoring"])
async def comprehensive_health_check(request: Request, _: bool = Depends(verify_metrics_access)):
    """Status of every collaborator the orchestrator depends on."""
    health_status = {"status": "healthy", "services": {}}

    if await db_service.health_check():
        health_status["services"]["database"] = "connected"
    else:
        health_status["services"]["database"] = "error"
        health_status["status"] = "degraded"

    try:
        await cache_service.redis.ping()
        health_status["services"]["cache"] = "connected"
    except Exception:
        health_status["services"]["cache"] = "error"
        health_status["status"] = "degraded"

    completion_configured = bool(settings.gemini_api_key or settings.openai_api_key)
    health_status["services"]["completion"] = "configured" if completion_configured else "not_configured"
    health_status["services"]["channel_gateway"] = "configured" if settings.channel_gateway_url else "not_configured"

    return APIResponse(
        success=True,
        message="Comprehensive health status retrieved.",
        data=health_status,
        version=settings.api_version
    )


@router.get("/metrics", tags=["Monitoring"])
async def metrics(request: Request, _: bool = Depends(verify_metrics_access)):
    """Secured Prometheus metrics endpoint."""
    return PlainTextResponse(generate_latest(), media_type="text/plain")
