"""
config.py — pydantic-settings Settings class.

All environment variables for the censusdata seeder are declared here.
The pipeline imports `settings` from this module.

Usage:
    from censusdata_shared.config import settings
    print(settings.census_api_base_url)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_dotenv() -> Path | None:
    """Walk up from CWD to find the nearest .env file."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / ".env"
        if candidate.is_file():
            return candidate
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_dotenv() or ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Store
    # -------------------------------------------------------------------------
    duckdb_path: str = Field(default="./data/censusdata.duckdb")

    # -------------------------------------------------------------------------
    # Data sources
    # -------------------------------------------------------------------------
    census_api_base_url: str = Field(default="https://api.census.gov/data")
    # Directory holding the static seed snapshots. None -> censusdata_pipeline/data (package data)
    seed_data_dir: str | None = Field(default=None)

    # -------------------------------------------------------------------------
    # Fetch queue / retry
    # -------------------------------------------------------------------------
    fetch_requests_per_second: float = Field(default=10.0, gt=0)
    fetch_burst_limit: int = Field(default=5, ge=1)
    fetch_retry_attempts: int = Field(default=3, ge=0)
    fetch_retry_delay: float = Field(default=1.0, ge=0)
    fetch_timeout: float = Field(default=60.0, gt=0)

    # -------------------------------------------------------------------------
    # Upsert batching
    # -------------------------------------------------------------------------
    upsert_batch_size: int = Field(default=1000, ge=1)
    upsert_batch_pause: float = Field(default=0.1, ge=0)

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------
    # "full" adds county subdivisions, places and ZCTAs to the hierarchy
    seed_mode: Literal["standard", "full"] = Field(default="standard")
    # Fail instead of warn when a state has no region/division mapping
    strict_geography_relationships: bool = Field(default=False)

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="console")

    @field_validator("census_api_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Module-level singleton, imported everywhere
# ---------------------------------------------------------------------------
settings = Settings()
