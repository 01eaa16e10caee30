"""Map marker helpers."""

from .declutter import DeclutterConfig, MarkerPoint, RenderedMarker, Viewport, cluster_radius, declutter

__all__ = ["DeclutterConfig", "MarkerPoint", "RenderedMarker", "Viewport", "cluster_radius", "declutter"]
