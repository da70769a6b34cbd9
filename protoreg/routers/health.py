"""
Health check endpoints for the API.
"""
from fastapi import APIRouter, Depends
from typing import Dict, Any
from datetime import datetime

from protoreg.config import settings
from protoreg.dependencies import get_artifact_cache
from protoreg.services.codegen.artifact_cache import LocalArtifactCache

router = APIRouter()

@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint.
    Returns API status and version information.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "codegen_version": settings.CODEGEN_VERSION,
    }

@router.get("/health/cache")
async def cache_health(
    cache: LocalArtifactCache = Depends(get_artifact_cache)
) -> Dict[str, Any]:
    """
    Check artifact cache health.
    Verifies the cache directory is accessible and returns cache statistics.
    """
    try:
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "enabled": settings.ENABLE_CACHE,
            "namespace": settings.CACHE_NAMESPACE,
            "cache_root": str(cache.cache_root),
            "cache_stats": cache.stats(),
        }

    except OSError as e:
        return {
            "status": "unhealthy",
            "timestamp": datetime.now().isoformat(),
            "error": str(e)
        }
