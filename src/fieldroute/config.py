"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDROUTE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Field Route Planning API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for cache, drafts and saved routes.")
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )
    default_country: str = Field(default="España", description="Country appended to every geocoding query.")

    # Geocoding collaborator
    geocoding_enabled: bool = True
    nominatim_base_url: str = Field(default="https://nominatim.openstreetmap.org")
    nominatim_email: Optional[str] = Field(default=None, description="Contact email sent to Nominatim.")
    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="Google Maps key; when set, Google geocoding is tried before Nominatim.",
    )
    google_maps_base_url: str = Field(default="https://maps.googleapis.com/maps/api")
    geocoding_language: str = "es"
    geocoding_region: str = "es"
    http_user_agent: str = "fieldroute/1.0 (server-proxy)"
    http_timeout_seconds: float = Field(default=10.0, gt=0.0)
    http_max_retries: int = Field(default=1, ge=0)
    http_backoff_seconds: float = Field(default=0.5, ge=0.0)
    geocode_batch_size: int = Field(default=3, ge=1, description="Stops geocoded concurrently per batch.")
    geocode_batch_delay_seconds: float = Field(default=1.5, ge=0.0, description="Pause between geocoding batches.")

    # Driving-distance collaborator
    distance_mode: Literal["online", "offline"] = Field(
        default="offline",
        description="'online' asks the driving-distance provider, 'offline' uses haversine only.",
    )
    distance_provider: Literal["osrm", "google"] = "osrm"
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM profile to use when computing travel times.",
    )
    estimate_cache_size: int = Field(default=32, ge=1)

    # Marker declutter
    declutter_threshold_px: float = Field(default=34.0, gt=0.0, description="Roughly one marker diameter.")
    declutter_base_radius_deg: float = Field(default=0.0015, gt=0.0)
    declutter_radius_span_factor: float = Field(default=0.0025, ge=0.0)
    declutter_radius_growth_deg: float = Field(default=0.0002, ge=0.0)
    declutter_tile_size_px: int = Field(default=256, ge=1)

    # Persistence
    coordinate_cache_key: str = "customer-coords"
    route_draft_key_prefix: str = "routeDraft"
    saved_routes_key: str = "savedRoutes"
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    supabase_routes_table: str = "saved_routes"

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
