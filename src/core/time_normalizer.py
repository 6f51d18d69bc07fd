"""Business hour time normalization — pure business logic.

Turns a weekly window typed in the business's own timezone into three
parallel representations per boundary:

* ``time``    — the literal HH:MM the operator typed,
* ``utc``     — weekday/time of the same instant in UTC,
* ``trigger`` — the UTC weekday/time shifted by the server's *current* UTC
  offset, which is what the job scheduler matches against.

The trigger shift is offset-only and deliberately ignores DST, so stored trigger
keys stay comparable with the ones produced by earlier releases.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.config import settings
from src.core.errors import (
    DuplicateWindowDay,
    FinishBeforeStart,
    FinishEqualsStart,
    InvalidWindowFormat,
)
from src.data.models import WEEKDAYS, DayTime, Schedule, WeeklyWindow, WindowBoundary

logger = logging.getLogger(__name__)

_MINUTES_PER_DAY = 24 * 60
_MINUTES_PER_WEEK = 7 * _MINUTES_PER_DAY


def server_utc_offset_hours() -> float:
    """Return the server process's current UTC offset in hours (e.g. 2.0, 5.5)."""
    if settings.SERVER_UTC_OFFSET_HOURS is not None:
        return settings.SERVER_UTC_OFFSET_HOURS
    offset = datetime.now().astimezone().utcoffset() or timedelta(0)
    return offset.total_seconds() / 3600


def utc_offset_label(timezone_name: str | None, now: datetime | None = None) -> str:
    """Describe a zone's current UTC offset, e.g. "+01:00".

    Without a zone name, falls back to the server offset in hours ("0", "5.5").
    """
    if not timezone_name:
        return f"{server_utc_offset_hours():g}"

    zone = _zone_from_name(timezone_name)
    offset = (now or datetime.now(timezone.utc)).astimezone(zone).utcoffset()
    total = int(offset.total_seconds() // 60)
    sign = "+" if total >= 0 else "-"
    hours, minutes = divmod(abs(total), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def weekday_index(day: str) -> int:
    """Map an English weekday name (any case) to 0=Monday … 6=Sunday."""
    normalized = str(day).strip().capitalize()
    if normalized not in WEEKDAYS:
        raise InvalidWindowFormat(f"Unknown weekday: {day!r}")
    return WEEKDAYS.index(normalized)


def local_to_utc(
    day: str,
    clock: str,
    timezone_name: str | None,
    reference: datetime | None = None,
    server_offset_hours: float | None = None,
) -> datetime:
    """Resolve "<day> <HH:MM> in <zone>" to an aware UTC datetime.

    The weekday is taken from the Monday-first week containing ``reference``
    (default: now) as seen in the authoring zone. A missing zone name means
    the server's own fixed UTC offset.
    """
    zone = _resolve_zone(timezone_name, server_offset_hours)
    hour, minute = _parse_clock(clock)
    reference_local = (reference or datetime.now(timezone.utc)).astimezone(zone)
    monday = reference_local.date() - timedelta(days=reference_local.weekday())
    target = monday + timedelta(days=weekday_index(day))
    local = datetime.combine(target, time(hour, minute), tzinfo=zone)
    return local.astimezone(timezone.utc)


def normalize_window(
    window: WeeklyWindow,
    timezone_name: str | None,
    server_offset_hours: float | None = None,
    reference: datetime | None = None,
) -> WeeklyWindow:
    """Return a new window carrying UTC and trigger representations.

    Raises:
        FinishEqualsStart / FinishBeforeStart: open day whose finish is not
            strictly after its start.
        InvalidWindowFormat: bad weekday, clock string or zone name.
    """
    if server_offset_hours is None:
        server_offset_hours = server_utc_offset_hours()

    start_utc = local_to_utc(
        window.day, window.start.time, timezone_name, reference, server_offset_hours,
    )
    finish_utc = local_to_utc(
        window.day, window.finish.time, timezone_name, reference, server_offset_hours,
    )

    if window.open and finish_utc < start_utc:
        raise FinishBeforeStart(
            f"{window.day}: finish {window.finish.time} is before start {window.start.time}"
        )
    if window.open and finish_utc == start_utc:
        raise FinishEqualsStart(
            f"{window.day}: finish {window.finish.time} equals start {window.start.time}"
        )

    return WeeklyWindow(
        day=WEEKDAYS[weekday_index(window.day)],
        open=window.open,
        start=_boundary(window.start.time, start_utc, server_offset_hours),
        finish=_boundary(window.finish.time, finish_utc, server_offset_hours),
    )


def normalize_schedule(
    schedule: Schedule,
    server_offset_hours: float | None = None,
    reference: datetime | None = None,
) -> Schedule:
    """Normalize every window of a schedule; fails on the first bad window.

    Returns a copy, the input schedule is left untouched.
    """
    if server_offset_hours is None:
        server_offset_hours = server_utc_offset_hours()

    seen: set[int] = set()
    for window in schedule.windows:
        idx = weekday_index(window.day)
        if idx in seen:
            raise DuplicateWindowDay(f"{WEEKDAYS[idx]} appears more than once")
        seen.add(idx)

    windows = [
        normalize_window(w, schedule.timezone.name, server_offset_hours, reference)
        for w in schedule.windows
    ]
    logger.debug(
        "Normalized %d windows for '%s' (tz=%s, server offset=%g)",
        len(windows), schedule.name, schedule.timezone.name, server_offset_hours,
    )
    return schedule.model_copy(update={"windows": windows})


def is_open_at(schedule: Schedule, now: datetime | None = None) -> bool:
    """Check whether ``now`` falls inside any open window of an active schedule.

    The windows are re-normalized against ``now`` so the current DST rules of
    the authoring zone apply. Windows are [start, finish) and may wrap past
    the end of the UTC week.
    """
    if not schedule.active:
        return False

    now = now or datetime.now(timezone.utc)
    now_utc = now.astimezone(timezone.utc)
    current = now_utc.weekday() * _MINUTES_PER_DAY + now_utc.hour * 60 + now_utc.minute

    normalized = normalize_schedule(schedule, reference=now)
    for window in normalized.open_windows():
        start = _week_minute(window.start.utc)
        finish = _week_minute(window.finish.utc)
        if _within(current, start, finish):
            return True
    return False


def filter_open_schedules(
    schedules: list[Schedule], now: datetime | None = None,
) -> list[Schedule]:
    """Return the schedules that must be open at ``now``."""
    now = now or datetime.now(timezone.utc)
    return [s for s in schedules if is_open_at(s, now)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _zone_from_name(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidWindowFormat(f"Unknown timezone: {name!r}") from exc


def _resolve_zone(name: str | None, server_offset_hours: float | None) -> tzinfo:
    if name:
        return _zone_from_name(name)
    if server_offset_hours is None:
        server_offset_hours = server_utc_offset_hours()
    return timezone(timedelta(hours=server_offset_hours))


def _parse_clock(clock: str) -> tuple[int, int]:
    try:
        parsed = datetime.strptime(str(clock).strip(), "%H:%M")
    except ValueError as exc:
        raise InvalidWindowFormat(f"Invalid time {clock!r}, expected HH:MM") from exc
    return parsed.hour, parsed.minute


def _format_week_minute(minute_of_week: int) -> DayTime:
    minute_of_week %= _MINUTES_PER_WEEK
    day, minute_of_day = divmod(minute_of_week, _MINUTES_PER_DAY)
    return DayTime(
        day_of_week=WEEKDAYS[day],
        time=f"{minute_of_day // 60:02d}:{minute_of_day % 60:02d}",
    )


def _week_minute(day_time: DayTime) -> int:
    hour, minute = _parse_clock(day_time.time)
    return weekday_index(day_time.day_of_week) * _MINUTES_PER_DAY + hour * 60 + minute


def _boundary(typed: str, instant_utc: datetime, server_offset_hours: float) -> WindowBoundary:
    utc_minute = (
        instant_utc.weekday() * _MINUTES_PER_DAY + instant_utc.hour * 60 + instant_utc.minute
    )
    shift = round(server_offset_hours * 60)
    return WindowBoundary(
        time=typed,
        utc=_format_week_minute(utc_minute),
        trigger=_format_week_minute(utc_minute + shift),
    )


def _within(current: int, start: int, finish: int) -> bool:
    if start <= finish:
        return start <= current < finish
    # wraps past Sunday → Monday
    return current >= start or current < finish
