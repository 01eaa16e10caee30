"""Route group exports."""

from . import geocode, health, routes

__all__ = ["geocode", "health", "routes"]
