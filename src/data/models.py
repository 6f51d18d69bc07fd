"""
Business Hours Engine — Data Models.

Schedules are stored as JSON documents, so they (and their weekly windows)
are pydantic models validated on the way in and out of the store. Agents are
owned by the agent-management subsystem; this engine only touches their
schedule assignments and live status, so they stay plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field

WEEKDAYS = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
)


class AgentStatus(str, Enum):
    AVAILABLE = "available"
    NOT_AVAILABLE = "not-available"


class ScheduleKind(str, Enum):
    DEFAULT = "default"
    CUSTOM = "custom"


class TriggerAction(str, Enum):
    OPEN = "open"
    CLOSE = "close"


class DayTime(BaseModel):
    """A weekday plus a wall-clock time, e.g. ("Monday", "08:00")."""

    day_of_week: str
    time: str          # HH:MM


class WindowBoundary(BaseModel):
    """One edge (start or finish) of a weekly window in all three representations.

    JSON example (Europe/Madrid, winter, server at UTC+0):
    {
        "time": "09:00",
        "utc": {"day_of_week": "Monday", "time": "08:00"},
        "trigger": {"day_of_week": "Monday", "time": "08:00"}
    }
    """

    time: str                       # HH:MM as typed by the operator
    utc: DayTime | None = None
    trigger: DayTime | None = None  # server-local, used for trigger matching


class WeeklyWindow(BaseModel):
    """One weekday's business hours."""

    day: str
    open: bool = True
    start: WindowBoundary
    finish: WindowBoundary


class ScheduleTimezone(BaseModel):
    name: str | None = None   # IANA zone, e.g. "Europe/Madrid"
    utc: str = ""             # offset label at save time, e.g. "+01:00"


class Schedule(BaseModel):
    """A named, timezone-tagged weekly business-hours configuration."""

    id: str | None = None
    name: str
    kind: ScheduleKind = ScheduleKind.CUSTOM
    active: bool = True
    timezone: ScheduleTimezone = Field(default_factory=ScheduleTimezone)
    windows: list[WeeklyWindow] = Field(default_factory=list)
    is_default: bool = False
    department_ids: list[str] = Field(default_factory=list)

    def open_windows(self) -> list[WeeklyWindow]:
        return [w for w in self.windows if w.open]


@dataclass(frozen=True)
class TriggerKey:
    """Server-local (weekday, time) at which the job scheduler fires an action."""

    day_of_week: str
    time: str          # HH:MM
    action: TriggerAction


@dataclass(frozen=True)
class StatusGuard:
    """Conditions a status write must satisfy, evaluated atomically by the store.

    engine_managed_only: only touch agents whose status was last set by the engine.
    skip_manual_status: leave agents whose manual marker equals this value alone.
    outside_open_windows_only: only touch agents not inside any open active schedule.
    """

    engine_managed_only: bool = False
    skip_manual_status: AgentStatus | None = None
    outside_open_windows_only: bool = False


@dataclass
class Agent:
    """The facets of a support agent this engine reads and writes."""

    id: str
    schedule_ids: list[str] = field(default_factory=list)
    status: AgentStatus = AgentStatus.NOT_AVAILABLE
    status_system_modified: bool = False      # engine-managed marker
    manual_status: AgentStatus | None = None  # last status chosen by the agent
