"""Application configuration and environment helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

FRIDAY = 4
DEFAULT_STATE_DIR = Path.home() / ".evpm"


class Settings(BaseSettings):
    """Configuration options for the EVPM dashboard."""

    model_config = SettingsConfigDict(env_prefix="EVPM_", env_file=".env", extra="ignore")

    app_name: str = Field(default="EVPM Pro")
    sync_url: str = Field(default="", description="Script endpoint used for login and data sync.")
    state_dir: Path = Field(default=DEFAULT_STATE_DIR, description="Directory holding the persisted app state.")

    off_weekday: int = Field(default=FRIDAY, ge=0, le=6, description="Weekly holiday (Monday=0).")
    pacing_cap: float = Field(default=80.0, ge=0.0, le=100.0)
    top_n: int = Field(default=5, ge=1, le=50)

    http_timeout: float = Field(default=30.0, gt=0)
    log_level: str = Field(default="INFO")
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])


@lru_cache
def get_settings() -> Settings:
    return Settings()
