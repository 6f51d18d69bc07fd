"""Shared test fixtures and configuration.

Sets up deterministic environment variables before any src import (the
server offset is pinned to UTC+0) and provides temp SQLite stores.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("DATABASE_PATH", "data/test_business_hours.db")
os.environ.setdefault("BUSINESS_HOUR_MODE", "single")
os.environ.setdefault("BUSINESS_HOURS_ENABLED", "true")
os.environ["SERVER_UTC_OFFSET_HOURS"] = "0"
os.environ.setdefault("DEFAULT_TIMEZONE", "")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_business_hours.db")


@pytest.fixture
def schedule_db(tmp_db_path):
    """Return a ScheduleDB instance backed by a temp file."""
    from src.data.db import ScheduleDB
    return ScheduleDB(db_path=tmp_db_path)


@pytest.fixture
def agent_db(tmp_db_path):
    """Return an AgentDB sharing the schedule store's temp file."""
    from src.data.db import AgentDB
    return AgentDB(db_path=tmp_db_path)
