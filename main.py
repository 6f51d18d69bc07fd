"""
Business Hours Engine — Entry Point.

Single entry point: `python main.py` re-derives the current open/closed state,
registers one cron job per trigger key and keeps running.
"""

import asyncio
import logging
from datetime import timedelta, timezone

from src.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.adapters.job_scheduler import register_trigger_jobs
from src.core.behavior import create_behavior
from src.core.time_normalizer import server_utc_offset_hours
from src.data.db import AgentDB, ScheduleDB

logger = logging.getLogger(__name__)

_REFRESH_MINUTES = 5


async def run() -> None:
    behavior = create_behavior(ScheduleDB(), AgentDB())

    if not settings.BUSINESS_HOURS_ENABLED:
        await behavior.on_disable()
        logger.info("Business hours disabled, nothing to schedule")
        return

    await behavior.on_start()

    scheduler = AsyncIOScheduler(timezone=timezone(timedelta(hours=server_utc_offset_hours())))
    await register_trigger_jobs(scheduler, behavior)
    # Pick up schedules saved by other processes
    scheduler.add_job(
        register_trigger_jobs,
        "interval",
        minutes=_REFRESH_MINUTES,
        args=[scheduler, behavior],
        id="business-hour:refresh",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Business hours engine started in %s mode", behavior.mode.value)

    await asyncio.Event().wait()


if __name__ == "__main__":
    asyncio.run(run())
