"""Application configuration and settings management."""

from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FSD_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Field Sales Dashboard API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Geofencing
    geofence_radius_meters: float = Field(
        default=150.0,
        gt=0.0,
        description="Radius applied to every outlet geofence.",
    )

    # Pricing
    ptr_markup_divisor: float = Field(
        default=1.3,
        gt=0.0,
        description="Divisor used to back PTR out of MRP when no PTR is recorded.",
    )
    scheme_tiers: tuple[tuple[int, float], ...] = Field(
        default=((21, 3.0), (6, 2.0), (1, 1.0)),
        description="(minimum cases, discount percent) pairs for the volume scheme.",
    )
    enforce_partial_payment_cap: bool = Field(
        default=False,
        description="Reject partial payments larger than the order total.",
    )
    stock_update_max_retries: int = Field(default=3, ge=1)

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

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

    @field_validator("scheme_tiers", mode="before")
    @classmethod
    def _parse_tiers_from_env(cls, value: Any) -> tuple[tuple[int, float], ...]:
        """Parse scheme tiers from a JSON array such as ``[[21, 3], [6, 2], [1, 1]]``."""
        if isinstance(value, str):
            value = json.loads(value) if value.strip() else []
        pairs = [(int(threshold), float(percent)) for threshold, percent in value]
        # Evaluated highest threshold first
        return tuple(sorted(pairs, key=lambda pair: pair[0], reverse=True))


settings = Settings()
