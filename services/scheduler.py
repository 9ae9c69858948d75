"""In-process scheduling of the daily sweep."""
from __future__ import annotations

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from services.sweeper import Sweeper

SWEEP_JOB_ID = "daily-sweep"


def build_scheduler(sweeper: Sweeper, hour_utc: int) -> Optional[AsyncIOScheduler]:
    """Return a scheduler running ``sweeper`` daily at ``hour_utc``, or None when disabled.

    The scheduler is returned unstarted; start it once the event loop runs.
    """
    if hour_utc < 0:
        return None
    if hour_utc > 23:
        raise ValueError("Sweep hour must be between 0 and 23")

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        sweeper.run,
        CronTrigger(hour=hour_utc, minute=0, timezone="UTC"),
        id=SWEEP_JOB_ID,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=3600,
    )
    return scheduler
