"""Persistence for saved route records and per-user route drafts.

Saved routes go to the Supabase ``saved_routes`` table when Supabase is
configured. Any database failure falls back to the JSON blob kept by
``FileStorage`` so a flaky connection never loses a route. Drafts always live in
file storage, one key per user.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..config import settings
from ..db.supabase import get_supabase_client
from ..schemas.routing import RouteDraftModel, RouteStopModel, SavedRouteModel
from .filesystem import FileStorage

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_row(route: SavedRouteModel) -> dict[str, Any]:
    return {
        "id": route.id,
        "name": route.name,
        "route_date": route.date,
        "route_time": route.time,
        "customers": [stop.model_dump(by_alias=True, mode="json") for stop in route.stops],
        "total_distance": route.total_distance,
        "total_duration": route.total_duration,
        "created_by": route.created_by,
        "created_at": route.created_at,
        "updated_at": route.updated_at,
    }


def _from_row(row: dict[str, Any]) -> SavedRouteModel:
    return SavedRouteModel(
        id=str(row.get("id")) if row.get("id") is not None else None,
        name=row.get("name") or "",
        date=row.get("route_date"),
        time=row.get("route_time"),
        stops=[RouteStopModel.model_validate(stop) for stop in (row.get("customers") or [])],
        total_distance=float(row.get("total_distance") or 0.0),
        total_duration=float(row.get("total_duration") or 0.0),
        created_by=row.get("created_by"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class RouteRepository:
    """List, save (insert or update by id) and delete saved route records."""

    def __init__(
        self,
        storage: FileStorage | None = None,
        client_factory: Callable[[], Any] = get_supabase_client,
    ) -> None:
        self.storage = storage or FileStorage()
        self._client_factory = client_factory
        self.table = settings.supabase_routes_table

    # File storage -------------------------------------------------------------

    def _read_file_routes(self) -> list[SavedRouteModel]:
        raw = self.storage.read(settings.saved_routes_key, default=[]) or []
        routes: list[SavedRouteModel] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                routes.append(SavedRouteModel.model_validate(item))
            except ValidationError as exc:
                logger.warning(f"Skipping malformed saved route: {exc}")
        return routes

    def _write_file_routes(self, routes: list[SavedRouteModel]) -> None:
        self.storage.write(
            settings.saved_routes_key,
            [route.model_dump(by_alias=True, mode="json") for route in routes],
        )

    # Public API ---------------------------------------------------------------

    def list_routes(self, user_id: str | None = None) -> list[SavedRouteModel]:
        supabase = self._client_factory()
        if supabase:
            try:
                query = supabase.table(self.table).select("*")
                if user_id:
                    query = query.eq("created_by", user_id)
                response = query.order("created_at", desc=True).execute()
                return [_from_row(row) for row in (response.data or [])]
            except Exception as e:
                logger.warning(f"Failed to load saved routes from database, using file storage: {e}")

        routes = self._read_file_routes()
        if user_id:
            routes = [route for route in routes if route.created_by in (None, user_id)]
        return sorted(routes, key=lambda route: route.created_at or "", reverse=True)

    def get_route(self, route_id: str) -> Optional[SavedRouteModel]:
        for route in self.list_routes():
            if route.id == route_id:
                return route
        return None

    def save_route(self, route: SavedRouteModel, user_id: str | None = None) -> SavedRouteModel:
        """Save ``route`` as new when it has no id, otherwise update the stored record."""

        if not route.name.strip():
            raise ValueError("Route name is required.")

        timestamp = _now()
        existing = self.get_route(route.id) if route.id else None
        record = route.model_copy(
            update={
                "id": route.id or str(uuid.uuid4()),
                "name": route.name.strip(),
                "created_by": route.created_by or (existing.created_by if existing else None) or user_id,
                "created_at": existing.created_at if existing and existing.created_at else (route.created_at or timestamp),
                "updated_at": timestamp,
            }
        )

        supabase = self._client_factory()
        if supabase:
            try:
                row = _to_row(record)
                if existing:
                    supabase.table(self.table).update(row).eq("id", record.id).execute()
                else:
                    supabase.table(self.table).insert(row).execute()
                logger.info(f"Saved route '{record.name}' ({record.id}) to database")
                return record
            except Exception as e:
                logger.warning(f"Failed to save route '{record.name}' to database, using file storage: {e}")

        routes = [stored for stored in self._read_file_routes() if stored.id != record.id]
        routes.append(record)
        self._write_file_routes(routes)
        logger.info(f"Saved route '{record.name}' ({record.id}) to file storage")
        return record

    def delete_route(self, route_id: str) -> bool:
        supabase = self._client_factory()
        if supabase:
            try:
                response = supabase.table(self.table).delete().eq("id", route_id).execute()
                if response.data:
                    return True
            except Exception as e:
                logger.warning(f"Failed to delete route {route_id} from database, using file storage: {e}")

        routes = self._read_file_routes()
        remaining = [route for route in routes if route.id != route_id]
        if len(remaining) == len(routes):
            return False
        self._write_file_routes(remaining)
        return True


class DraftStore:
    """Autosaved in-progress route, one per user under ``routeDraft:<user_id>``."""

    def __init__(self, storage: FileStorage | None = None) -> None:
        self.storage = storage or FileStorage()

    def key_for(self, user_id: str) -> str:
        if not user_id:
            raise ValueError("A user id is required for route drafts.")
        return f"{settings.route_draft_key_prefix}:{user_id}"

    def save(self, user_id: str, draft: RouteDraftModel) -> RouteDraftModel:
        stamped = draft.model_copy(update={"updated_at": _now()})
        self.storage.write(self.key_for(user_id), stamped.model_dump(by_alias=True, mode="json"))
        return stamped

    def load(self, user_id: str) -> Optional[RouteDraftModel]:
        raw = self.storage.read(self.key_for(user_id))
        if raw is None:
            return None
        try:
            return RouteDraftModel.model_validate(raw)
        except ValidationError as exc:
            logger.warning(f"Ignoring malformed route draft for user {user_id}: {exc}")
            return None

    def clear(self, user_id: str) -> bool:
        return self.storage.delete(self.key_for(user_id))
