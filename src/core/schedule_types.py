"""
Business Hours Engine — Schedule types.

The only way schedules get written. Each save normalizes all seven windows
first and writes once, so a bad window leaves the store untouched.

Kind-specific rules live in ``SCHEDULE_TYPES``, keyed by ``ScheduleKind``:

* default — the fallback schedule for new agents. There is only ever one: a
  default draft without an id updates the existing default, and no other
  schedule can be turned into (or out of) the default. It never has
  departments and cannot be removed.
* custom — a department schedule, removable, never the default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from src.config import settings
from src.core.errors import (
    DefaultScheduleConflict,
    DefaultScheduleRemovalError,
    ScheduleNotFound,
)
from src.core.time_normalizer import normalize_schedule, utc_offset_label
from src.data.models import Schedule, ScheduleKind, ScheduleTimezone

if TYPE_CHECKING:
    from src.core.behavior import BusinessHourBehavior
    from src.ports.schedule_repository import ScheduleRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleType:
    kind: ScheduleKind
    prepare: Callable[[Schedule], Schedule]
    removable: bool


def _prepare_default(schedule: Schedule) -> Schedule:
    return schedule.model_copy(update={"is_default": True, "department_ids": []})


def _prepare_custom(schedule: Schedule) -> Schedule:
    return schedule.model_copy(update={"is_default": False})


SCHEDULE_TYPES: dict[ScheduleKind, ScheduleType] = {
    ScheduleKind.DEFAULT: ScheduleType(ScheduleKind.DEFAULT, _prepare_default, removable=False),
    ScheduleKind.CUSTOM: ScheduleType(ScheduleKind.CUSTOM, _prepare_custom, removable=True),
}


class ScheduleTypeStrategy:
    """Validates, normalizes and persists schedule edits."""

    def __init__(
        self,
        schedules: ScheduleRepository,
        behavior: BusinessHourBehavior,
        server_offset_hours: float | None = None,
    ) -> None:
        self._schedules = schedules
        self._behavior = behavior
        self._server_offset_hours = server_offset_hours

    async def save(self, draft: Schedule | dict[str, Any]) -> str:
        """Normalize and store a schedule draft; returns its id.

        Raises:
            InvalidWindowOrder / InvalidWindowFormat / DuplicateWindowDay:
                nothing is written.
            ScheduleNotFound: the draft carries an id the store doesn't know.
            DefaultScheduleConflict: a default draft names another schedule while
                a default already exists.
            DefaultScheduleRemovalError: a custom draft carries the default's id.
        """
        if isinstance(draft, dict):
            draft = Schedule.model_validate(draft)

        schedule_type = SCHEDULE_TYPES[draft.kind]
        schedule = schedule_type.prepare(draft.model_copy(update={"active": bool(draft.active)}))

        existing = await self._schedules.find_default()
        if schedule.kind is ScheduleKind.DEFAULT and existing is not None:
            if not schedule.id:
                schedule = schedule.model_copy(update={"id": existing.id})
            elif schedule.id != existing.id:
                raise DefaultScheduleConflict(
                    f"Schedule {existing.id} is already the default schedule"
                )
        elif schedule.kind is ScheduleKind.CUSTOM and existing is not None:
            if schedule.id == existing.id:
                raise DefaultScheduleRemovalError(
                    f"Schedule {existing.id} is the default schedule"
                )

        tz_name = schedule.timezone.name or settings.DEFAULT_TIMEZONE or None
        schedule = schedule.model_copy(update={
            "timezone": ScheduleTimezone(name=tz_name, utc=utc_offset_label(tz_name)),
        })

        normalized = normalize_schedule(schedule, self._server_offset_hours)
        schedule_id = await self._schedules.upsert(normalized)
        logger.info(
            "Saved %s schedule %s '%s' (%s)",
            schedule.kind.value, schedule_id, schedule.name,
            "active" if schedule.active else "inactive",
        )

        await self._behavior.after_save(normalized.model_copy(update={"id": schedule_id}))
        return schedule_id

    async def get_by_id(self, schedule_id: str) -> Schedule | None:
        return await self._schedules.get(schedule_id)

    async def remove_by_id(self, schedule_id: str) -> None:
        """Detach a schedule from its agents and departments, then delete it."""
        schedule = await self._schedules.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFound(f"Schedule {schedule_id} not found")
        if not SCHEDULE_TYPES[schedule.kind].removable:
            raise DefaultScheduleRemovalError(f"Schedule {schedule_id} is the default schedule")

        await self._behavior.on_remove_schedule(schedule)
        await self._schedules.delete(schedule_id)
        logger.info("Schedule %s '%s' removed", schedule_id, schedule.name)
