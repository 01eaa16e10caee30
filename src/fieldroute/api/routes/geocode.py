"""Geocoding and distance proxy endpoints."""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, status

from ...models.domain import Coordinate
from ...schemas.geocode import DistanceData, DistanceRequest, DistanceResponse, GeocodeRequest, GeocodeResponse
from ...schemas.routing import CoordinateModel, SegmentModel
from ...services.geocoding import AddressResolver
from ...services.routing.estimator import DistanceEstimator
from ...services.routing.models import StopInput
from ..dependencies import get_estimator, get_resolver

router = APIRouter(tags=["geocoding"])


def _waypoint_label(waypoint: CoordinateModel | str) -> str:
    if isinstance(waypoint, CoordinateModel):
        return f"{waypoint.lat},{waypoint.lng}"
    return waypoint


@router.post("/geocode", response_model=GeocodeResponse, status_code=status.HTTP_200_OK)
async def geocode(payload: GeocodeRequest, resolver: AddressResolver = Depends(get_resolver)) -> GeocodeResponse:
    if resolver.geocoder is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Geocoding is disabled.")
    try:
        coordinate = await resolver.geocoder.geocode(payload.address.strip())
    except (httpx.HTTPError, ConnectionError) as exc:
        logging.warning(f"Upstream geocoding error for '{payload.address}': {exc}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Upstream error: {exc}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return GeocodeResponse(success=True, data=CoordinateModel.from_coordinate(coordinate))


@router.post("/distance/calculate", response_model=DistanceResponse, status_code=status.HTTP_200_OK)
async def calculate_distance(
    payload: DistanceRequest,
    estimator: DistanceEstimator = Depends(get_estimator),
) -> DistanceResponse:
    stops = []
    for waypoint in payload.waypoints:
        label = _waypoint_label(waypoint)
        if isinstance(waypoint, CoordinateModel):
            stops.append(StopInput(label, Coordinate(waypoint.lat, waypoint.lng)))
        else:
            stops.append(StopInput(label, None, waypoint))
    try:
        estimate = await estimator.estimate_segments(stops)
    except Exception as exc:
        logging.exception(f"Error calculating distances: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to calculate distances",
        ) from exc

    return DistanceResponse(
        success=True,
        data=DistanceData(
            segments=[
                SegmentModel(
                    from_id=segment.from_identity,
                    to_id=segment.to_identity,
                    distance=segment.distance_km,
                    duration=segment.duration_min,
                    error=segment.error,
                )
                for segment in estimate.segments
            ],
            total_distance=estimate.total_distance_km,
            total_duration=estimate.total_duration_min,
            mode=estimate.mode,
        ),
    )
