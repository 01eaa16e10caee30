"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...config import settings
from ...db.supabase import get_supabase_client
from ...services.geocoding import CoordinateCache
from ...services.routing.distance_client import DrivingDistanceProvider, check_health
from ...services.routing.estimator import DistanceEstimator
from ..dependencies import get_coordinate_cache, get_distance_provider, get_estimator

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/providers", status_code=status.HTTP_200_OK)
async def health_providers(
    provider: DrivingDistanceProvider | None = Depends(get_distance_provider),
    estimator: DistanceEstimator = Depends(get_estimator),
    cache: CoordinateCache = Depends(get_coordinate_cache),
) -> dict:
    """Report which collaborators are configured and whether the distance provider answers."""
    try:
        distance_healthy = await check_health(provider) if provider is not None else False
        distance_error = None
    except Exception as e:
        distance_healthy = False
        distance_error = str(e)

    return {
        "geocoding": {
            "enabled": settings.geocoding_enabled,
            "google": bool(settings.google_maps_api_key),
            "nominatim": settings.geocoding_enabled,
        },
        "distance": {
            "configured_mode": settings.distance_mode,
            "mode": estimator.mode,
            "provider": settings.distance_provider if provider is not None else None,
            "healthy": distance_healthy,
            "error": distance_error,
        },
        "database": {"configured": get_supabase_client() is not None},
        "cached_coordinates": len(cache),
    }
