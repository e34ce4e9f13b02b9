# app/core/scheduler.py
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.core.errors import PersistenceError

logger = logging.getLogger("scheduler")


# --------------------------------------------------------------------------------------
# Jobs
# --------------------------------------------------------------------------------------

def job_presence_sweep(presence) -> int:
    removed = presence.sweep()
    if removed:
        logger.info(f"[scheduler] presence sweep removed {removed} user(s)")
    return removed


def job_changelog_retention(audit_log, days_to_keep: int) -> int:
    try:
        result = audit_log.prune(days_to_keep)
    except PersistenceError as e:
        logger.error(f"[scheduler] changelog retention failed: {e}")
        return 0
    return result.removed_count


# --------------------------------------------------------------------------------------
# Scheduler wiring
# --------------------------------------------------------------------------------------

def build_scheduler(cfg, presence, audit_log) -> AsyncIOScheduler:
    """
    Register recurring jobs (not started).
    - Presence sweep every PRESENCE_SWEEP_SECONDS
    - Change log retention daily at 03:15 UTC when CHANGELOG_RETENTION_DAYS is set
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        job_presence_sweep,
        IntervalTrigger(seconds=max(1, cfg.PRESENCE_SWEEP_SECONDS)),
        args=[presence],
        id="presence_sweep",
        name="presence_sweep",
    )

    if cfg.CHANGELOG_RETENTION_DAYS is not None:
        scheduler.add_job(
            job_changelog_retention,
            CronTrigger(hour=3, minute=15),
            args=[audit_log, cfg.CHANGELOG_RETENTION_DAYS],
            id="changelog_retention",
            name="changelog_retention",
        )

    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    scheduler.start()
    logger.info("[scheduler] started.")


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("[scheduler] stopped.")
