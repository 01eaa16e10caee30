"""Process-wide service instances handed to the routers through ``Depends``."""

from __future__ import annotations

from functools import lru_cache

from ..persistence.filesystem import FileStorage
from ..persistence.routes import DraftStore, RouteRepository
from ..services.geocoding import AddressResolver, CoordinateCache, build_geocoder
from ..services.routing.distance_client import DrivingDistanceProvider, build_distance_provider
from ..services.routing.estimator import DistanceEstimator


@lru_cache()
def get_storage() -> FileStorage:
    return FileStorage()


@lru_cache()
def get_coordinate_cache() -> CoordinateCache:
    return CoordinateCache(get_storage())


@lru_cache()
def get_resolver() -> AddressResolver:
    return AddressResolver(get_coordinate_cache(), geocoder=build_geocoder())


@lru_cache()
def get_distance_provider() -> DrivingDistanceProvider | None:
    return build_distance_provider()


@lru_cache()
def get_estimator() -> DistanceEstimator:
    return DistanceEstimator(get_distance_provider())


@lru_cache()
def get_route_repository() -> RouteRepository:
    return RouteRepository(get_storage())


@lru_cache()
def get_draft_store() -> DraftStore:
    return DraftStore(get_storage())
