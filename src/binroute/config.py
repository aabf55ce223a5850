"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="BINROUTE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Bin Collection Router API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root log level applied by create_app().")
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Mapping service
    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="API key used for the Distance Matrix and Directions services.",
    )
    google_maps_base_url: str = Field(default="https://maps.googleapis.com/maps/api")
    maps_timeout_seconds: float = Field(default=30.0, gt=0.0)
    maps_travel_mode: str = Field(default="driving")
    maps_language: str = Field(default="en-AU")
    maps_max_origins_per_request: int = Field(default=25, ge=1)
    maps_max_destinations_per_request: int = Field(default=25, ge=1)
    maps_max_pairs_per_request: int = Field(default=100, ge=1)
    maps_max_waypoints_per_request: int = Field(default=25, ge=2)
    maps_max_retries: int = Field(default=2, ge=0)
    maps_backoff_seconds: float = Field(default=1.0, ge=0.0)

    # Smart bin feeds (GeoJSON)
    smart_bins_url: Optional[str] = Field(
        default=None,
        description="Feed listing every smart bin; the periodic refresh syncs the local copy from it.",
    )
    smart_bins_fill_levels_url: Optional[str] = Field(
        default=None,
        description="Feed with the latest fill level reported by each smart bin.",
    )
    smart_bins_timeout_seconds: float = Field(default=30.0, gt=0.0)

    # Scheduling
    fullness_ratio_threshold: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum currentFullness / threshold ratio for a smart bin to be collected.",
    )
    routing_solver_path: Path = Field(
        default=Path("routing_solver/bin/routing"),
        description="Location of the external route-optimization executable.",
    )
    routing_strategies: tuple[str, ...] = Field(
        default=(
            "AUTOMATIC",
            "GREEDY_DESCENT",
            "GUIDED_LOCAL_SEARCH",
            "SIMULATED_ANNEALING",
            "TABU_SEARCH",
        ),
        description="Strategies tried by every schedule build, in order.",
    )
    bin_search_distance_m: float = Field(
        default=1000.0,
        ge=0.0,
        description="Radius in which a dumb bin looks for its nearest smart bin.",
    )
    refresh_interval_minutes: int = Field(
        default=1440,
        ge=0,
        description="Period of the background cache and schedule refresh (0 disables it).",
    )
    refresh_on_startup: bool = False

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("routing_solver_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser()

    @field_validator("frontend_allowed_origins", "routing_strategies", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
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
