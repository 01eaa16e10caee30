"""Route planning endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...models.domain import Coordinate
from ...persistence.routes import DraftStore, RouteRepository
from ...schemas.routing import (
    CoordinateModel,
    DeclutterRequest,
    DeclutterResponse,
    PlanRequest,
    PlanResponse,
    RelocateRequest,
    RelocateResponse,
    RenderedMarkerModel,
    RouteDraftModel,
    RouteStopModel,
    SavedRouteModel,
    SegmentModel,
)
from ...services.geocoding import AddressResolver
from ...services.markers import MarkerPoint, Viewport, declutter
from ...services.routing.estimator import DistanceEstimator
from ...services.routing.service import navigation_url, plan_route
from ..dependencies import get_draft_store, get_estimator, get_resolver, get_route_repository

router = APIRouter(prefix="/routes", tags=["routes"])


@router.post("/plan", response_model=PlanResponse, status_code=status.HTTP_200_OK)
async def plan(
    payload: PlanRequest,
    resolver: AddressResolver = Depends(get_resolver),
    estimator: DistanceEstimator = Depends(get_estimator),
) -> PlanResponse:
    try:
        planned = await plan_route(
            [customer.to_record() for customer in payload.customers],
            resolver,
            estimator,
            start=payload.start.to_coordinate() if payload.start else None,
            optimize=payload.optimize,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error planning route: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to plan route: {str(exc)}"
        ) from exc

    return PlanResponse(
        stops=[RouteStopModel.from_stop(stop) for stop in planned.route.stops],
        segments=[
            SegmentModel(
                from_id=segment.from_identity,
                to_id=segment.to_identity,
                distance=segment.distance_km,
                duration=segment.duration_min,
                error=segment.error,
            )
            for segment in planned.estimate.segments
        ],
        total_distance=planned.route.total_distance,
        total_duration=planned.route.total_duration,
        mode=planned.estimate.mode,
        optimized=planned.sequence.optimized if planned.sequence else False,
        degraded=planned.estimate.has_errors,
        unresolved=planned.unresolved,
        navigation_url=navigation_url(planned.route.stops),
    )


@router.post("/declutter", response_model=DeclutterResponse, status_code=status.HTTP_200_OK)
def declutter_markers(payload: DeclutterRequest) -> DeclutterResponse:
    """Render positions for markers; true coordinates are never modified."""
    try:
        points = [MarkerPoint(point.id, Coordinate(point.lat, point.lng), point.group_key()) for point in payload.points]
        viewport = Viewport(
            center=payload.viewport.center.to_coordinate(),
            zoom=payload.viewport.zoom,
            width_px=payload.viewport.width_px,
            height_px=payload.viewport.height_px,
        )
        rendered = declutter(points, viewport)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return DeclutterResponse(
        markers=[
            RenderedMarkerModel(
                id=marker.identity,
                lat=marker.coordinate.latitude,
                lng=marker.coordinate.longitude,
                displaced=marker.displaced,
            )
            for marker in rendered
        ]
    )


@router.post("/relocate", response_model=RelocateResponse, status_code=status.HTTP_200_OK)
async def relocate(
    payload: RelocateRequest,
    resolver: AddressResolver = Depends(get_resolver),
) -> RelocateResponse:
    """Precise re-locate: drop every cached coordinate and resolve the customers again."""
    try:
        found = await resolver.relocate([customer.to_record() for customer in payload.customers])
    except Exception as exc:
        logging.exception(f"Error re-locating customers: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to re-locate customers: {str(exc)}"
        ) from exc
    return RelocateResponse(
        coordinates={identity: CoordinateModel.from_coordinate(coord) for identity, coord in found.items()},
        unresolved=[identity for identity, coord in found.items() if coord is None],
    )


@router.get("/saved", response_model=list[SavedRouteModel], status_code=status.HTTP_200_OK)
def list_saved_routes(
    user_id: str | None = Query(default=None, description="Only routes created by this user"),
    repository: RouteRepository = Depends(get_route_repository),
) -> list[SavedRouteModel]:
    return repository.list_routes(user_id=user_id)


@router.post("/saved", response_model=SavedRouteModel, status_code=status.HTTP_200_OK)
def save_route(
    payload: SavedRouteModel,
    user_id: str | None = Query(default=None, description="User saving the route"),
    repository: RouteRepository = Depends(get_route_repository),
    drafts: DraftStore = Depends(get_draft_store),
) -> SavedRouteModel:
    """Save a route as new (no id) or update an existing one (id set)."""
    try:
        saved = repository.save_route(payload, user_id=user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if user_id:
        drafts.clear(user_id)
    return saved


@router.delete("/saved/{route_id}", status_code=status.HTTP_200_OK)
def delete_saved_route(route_id: str, repository: RouteRepository = Depends(get_route_repository)) -> dict:
    if not repository.delete_route(route_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Route {route_id} not found")
    return {"success": True, "message": f"Route {route_id} deleted"}


@router.get("/drafts/{user_id}", response_model=RouteDraftModel, status_code=status.HTTP_200_OK)
def get_draft(user_id: str, drafts: DraftStore = Depends(get_draft_store)) -> RouteDraftModel:
    draft = drafts.load(user_id)
    if draft is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No route draft for user {user_id}")
    return draft


@router.put("/drafts/{user_id}", response_model=RouteDraftModel, status_code=status.HTTP_200_OK)
def put_draft(user_id: str, payload: RouteDraftModel, drafts: DraftStore = Depends(get_draft_store)) -> RouteDraftModel:
    return drafts.save(user_id, payload)


@router.delete("/drafts/{user_id}", status_code=status.HTTP_200_OK)
def delete_draft(user_id: str, drafts: DraftStore = Depends(get_draft_store)) -> dict:
    return {"success": True, "deleted": drafts.clear(user_id)}
