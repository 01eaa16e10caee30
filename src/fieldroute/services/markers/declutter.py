"""Render-time separation of map markers that would overlap on screen."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from shapely.geometry import MultiPoint

from ...config import settings
from ...models.domain import Coordinate
from ..geospatial import mercator_latitude, mercator_pixel


@dataclass(frozen=True, slots=True)
class MarkerPoint:
    identity: str
    coordinate: Coordinate
    group: str = ""


@dataclass(frozen=True, slots=True)
class RenderedMarker:
    identity: str
    coordinate: Coordinate
    displaced: bool = False


@dataclass(frozen=True, slots=True)
class Viewport:
    center: Coordinate
    zoom: float
    width_px: int = 1024
    height_px: int = 768


@dataclass(frozen=True, slots=True)
class DeclutterConfig:
    threshold_px: float
    base_radius_deg: float
    radius_span_factor: float
    radius_growth_deg: float
    tile_size: int

    @classmethod
    def from_settings(cls) -> "DeclutterConfig":
        return cls(
            threshold_px=settings.declutter_threshold_px,
            base_radius_deg=settings.declutter_base_radius_deg,
            radius_span_factor=settings.declutter_radius_span_factor,
            radius_growth_deg=settings.declutter_radius_growth_deg,
            tile_size=settings.declutter_tile_size_px,
        )


def project(coordinate: Coordinate, viewport: Viewport, tile_size: int = 256) -> tuple[float, float]:
    """Pixel position of ``coordinate`` inside ``viewport`` (origin at the top-left corner)."""

    x, y = mercator_pixel(coordinate.latitude, coordinate.longitude, viewport.zoom, tile_size)
    cx, cy = mercator_pixel(viewport.center.latitude, viewport.center.longitude, viewport.zoom, tile_size)
    return x - cx + viewport.width_px / 2, y - cy + viewport.height_px / 2


def latitude_span(viewport: Viewport, tile_size: int = 256) -> float:
    _, cy = mercator_pixel(viewport.center.latitude, viewport.center.longitude, viewport.zoom, tile_size)
    north = mercator_latitude(cy - viewport.height_px / 2, viewport.zoom, tile_size)
    south = mercator_latitude(cy + viewport.height_px / 2, viewport.zoom, tile_size)
    return abs(north - south)


def cluster_radius(viewport: Viewport, size: int, config: DeclutterConfig | None = None) -> float:
    """Spread radius in degrees for a cluster of ``size`` markers."""

    config = config or DeclutterConfig.from_settings()
    base = max(config.base_radius_deg, latitude_span(viewport, config.tile_size) * config.radius_span_factor)
    return base + config.radius_growth_deg * max(0, size - 1)


def _single_link(pixels: Sequence[tuple[float, float]], members: Sequence[int], threshold: float) -> list[list[int]]:
    """Transitive clustering of ``members`` by pixel distance (union-find)."""

    parent = {index: index for index in members}

    def find(index: int) -> int:
        while parent[index] != index:
            parent[index] = parent[parent[index]]
            index = parent[index]
        return index

    for position, a in enumerate(members):
        ax, ay = pixels[a]
        for b in members[position + 1 :]:
            bx, by = pixels[b]
            if math.hypot(ax - bx, ay - by) <= threshold:
                root_a, root_b = find(a), find(b)
                if root_a != root_b:
                    # earliest index stays root
                    parent[max(root_a, root_b)] = min(root_a, root_b)

    clusters: dict[int, list[int]] = {}
    for index in members:
        clusters.setdefault(find(index), []).append(index)
    return list(clusters.values())


def _spread(points: Sequence[MarkerPoint], cluster: Sequence[int], radius: float) -> dict[int, Coordinate]:
    centroid = MultiPoint([(points[i].coordinate.longitude, points[i].coordinate.latitude) for i in cluster]).centroid
    center_lat, center_lon = centroid.y, centroid.x
    lon_scale = math.cos(math.radians(center_lat)) or 1e-12
    step = 2 * math.pi / len(cluster)
    placed: dict[int, Coordinate] = {}
    for slot, index in enumerate(cluster):
        angle = step * slot
        d_lat = radius * math.cos(angle)
        d_lon = radius * math.sin(angle) / lon_scale
        lat = max(-90.0, min(90.0, center_lat + d_lat))
        lon = ((center_lon + d_lon + 180.0) % 360.0) - 180.0
        placed[index] = Coordinate(lat, lon)
    return placed


def declutter(
    points: Sequence[MarkerPoint],
    viewport: Viewport,
    config: DeclutterConfig | None = None,
) -> list[RenderedMarker]:
    """Return one render position per point, spreading markers that collide on screen.

    Points are grouped by ``group`` (the normalized city label) and clustered
    inside each group when their pixel distance is within the threshold. Every
    multi-member cluster is laid out evenly on a circle around its geographic
    centroid. Singletons keep their true coordinate. Output order matches input
    order and the input points are never modified.
    """

    config = config or DeclutterConfig.from_settings()
    pixels = [project(point.coordinate, viewport, config.tile_size) for point in points]

    groups: dict[str, list[int]] = {}
    for index, point in enumerate(points):
        groups.setdefault(point.group, []).append(index)

    rendered: dict[int, Coordinate] = {}
    for members in groups.values():
        for cluster in _single_link(pixels, members, config.threshold_px):
            if len(cluster) > 1:
                rendered.update(_spread(points, cluster, cluster_radius(viewport, len(cluster), config)))

    return [
        RenderedMarker(point.identity, rendered.get(index, point.coordinate), index in rendered)
        for index, point in enumerate(points)
    ]
