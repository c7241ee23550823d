"""Kubernetes probes. Redis is optional, so readiness only reports it."""

from fastapi import APIRouter

from token_broker.core.cache import cache_service

router = APIRouter()


@router.get("/live", summary="Liveness Probe")
async def liveness():
    return {"status": "alive"}


@router.get("/ready", summary="Readiness Probe")
async def readiness():
    # Configuration was validated at import time; nothing else gates serving.
    cache = await cache_service.health_check()
    cache_state = "connected" if cache.get("status") == "healthy" else "unavailable (degraded mode)"
    return {"status": "ready", "components": {"cache": cache_state}}
