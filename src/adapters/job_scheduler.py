"""APScheduler adapter — turns trigger keys into recurring cron jobs.

One CronTrigger per (day, time, action). Trigger keys are computed in the
server's UTC offset (``SERVER_UTC_OFFSET_HOURS`` when set), so every cron
trigger is pinned to that same fixed offset rather than the host's local
zone. Jobs run with max_instances=1 so firings of the same key never overlap.
"""

from __future__ import annotations

import logging
from datetime import timedelta, timezone
from typing import TYPE_CHECKING

from apscheduler.triggers.cron import CronTrigger

from src.core.time_normalizer import server_utc_offset_hours
from src.data.models import TriggerAction, TriggerKey

if TYPE_CHECKING:
    from apscheduler.schedulers.base import BaseScheduler

    from src.core.behavior import BusinessHourBehavior

logger = logging.getLogger(__name__)

JOB_PREFIX = "business-hour:trigger:"

_CRON_DAYS = {
    "Monday": "mon",
    "Tuesday": "tue",
    "Wednesday": "wed",
    "Thursday": "thu",
    "Friday": "fri",
    "Saturday": "sat",
    "Sunday": "sun",
}


def job_id(key: TriggerKey) -> str:
    return f"{JOB_PREFIX}{key.action.value}:{key.day_of_week}:{key.time}"


def build_cron_trigger(key: TriggerKey, offset_hours: float | None = None) -> CronTrigger:
    if offset_hours is None:
        offset_hours = server_utc_offset_hours()
    hour, minute = key.time.split(":")
    return CronTrigger(
        day_of_week=_CRON_DAYS[key.day_of_week],
        hour=int(hour),
        minute=int(minute),
        timezone=timezone(timedelta(hours=offset_hours)),
    )


async def register_trigger_jobs(scheduler: BaseScheduler, behavior: BusinessHourBehavior) -> int:
    """Replace all business hour jobs with one job per current trigger key.

    Returns the number of jobs registered.
    """
    keys = await behavior.find_trigger_keys()
    offset_hours = server_utc_offset_hours()

    for job in scheduler.get_jobs():
        if job.id.startswith(JOB_PREFIX):
            scheduler.remove_job(job.id)

    for key in sorted(keys, key=lambda k: (k.day_of_week, k.time, k.action.value)):
        callback = behavior.on_open if key.action is TriggerAction.OPEN else behavior.on_close
        scheduler.add_job(
            callback,
            build_cron_trigger(key, offset_hours),
            args=[key.day_of_week, key.time],
            id=job_id(key),
            name=f"business hours {key.action.value} {key.day_of_week} {key.time}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    logger.info(
        "Registered %d business hour trigger job(s) at UTC%+g", len(keys), offset_hours,
    )
    return len(keys)
