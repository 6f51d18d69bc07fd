"""
Business Hours Engine — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite — schedules and agents share one file
    DATABASE_PATH: str = "data/business_hours.db"

    # "single" → one default schedule for everyone
    # "multiple" → per-department custom schedules
    BUSINESS_HOUR_MODE: str = "single"
    BUSINESS_HOURS_ENABLED: bool = True

    # Overrides the process's own UTC offset when computing trigger keys
    SERVER_UTC_OFFSET_HOURS: float | None = None

    # Zone used when a schedule draft carries none (empty → server offset)
    DEFAULT_TIMEZONE: str = ""

    LOG_LEVEL: str = "INFO"

    @field_validator("BUSINESS_HOUR_MODE", mode="before")
    @classmethod
    def parse_mode(cls, v: str) -> str:
        mode = str(v).strip().lower()
        if mode not in ("single", "multiple"):
            raise ValueError(f"BUSINESS_HOUR_MODE must be 'single' or 'multiple', got {v!r}")
        return mode

    @field_validator("BUSINESS_HOURS_ENABLED", mode="before")
    @classmethod
    def parse_enabled(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in ("1", "true", "yes", "on")

    @field_validator("SERVER_UTC_OFFSET_HOURS", mode="before")
    @classmethod
    def parse_offset(cls, v: str | float | None) -> float | None:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return float(v)

    @field_validator("DEFAULT_TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        if v:
            try:
                ZoneInfo(v)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ValueError(f"Unknown timezone: {v!r}") from exc
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        return str(v).strip().upper() or "INFO"


def _load_settings() -> Settings:
    """Load settings from environment, exiting on invalid values."""
    try:
        return Settings(
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/business_hours.db"),
            BUSINESS_HOUR_MODE=os.getenv("BUSINESS_HOUR_MODE", "single"),
            BUSINESS_HOURS_ENABLED=os.getenv("BUSINESS_HOURS_ENABLED", "true"),
            SERVER_UTC_OFFSET_HOURS=os.getenv("SERVER_UTC_OFFSET_HOURS"),
            DEFAULT_TIMEZONE=os.getenv("DEFAULT_TIMEZONE", ""),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid configuration in .env:\n{exc}", file=sys.stderr)
        sys.exit(1)


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
