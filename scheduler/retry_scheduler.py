import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from helpers import config

logger = logging.getLogger("retry_scheduler")

PATIENT_RETRY_JOB_ID = "patient-retries"

_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """
    Global singleton AsyncIOScheduler.
    """
    global _scheduler
    if _scheduler and _scheduler.running:
        return _scheduler

    _scheduler = AsyncIOScheduler(
        timezone=config.APS_TIMEZONE,
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": config.APS_MISFIRE_GRACE_SECONDS,
        },
    )
    _scheduler.start()
    return _scheduler


async def _patient_retry_tick():
    from helpers.patient_retries import run_patient_retries
    try:
        summary = await run_patient_retries()
        if summary["calls_initiated"]:
            logger.info("patient retry tick: %s", summary["message"])
    except Exception:
        logger.exception("patient retry tick crashed")


def schedule_patient_retry_job(minutes: int = config.PATIENT_RETRY_INTERVAL_MINUTES):
    """
    Run the patient retry pass every `minutes` in-process. Deployments that
    trigger POST /retries/patient from an external cron leave this off.
    """
    sch = get_scheduler()
    old = sch.get_job(PATIENT_RETRY_JOB_ID)
    if old:
        old.remove()

    sch.add_job(
        _patient_retry_tick,
        IntervalTrigger(minutes=max(1, minutes)),
        id=PATIENT_RETRY_JOB_ID,
        replace_existing=True,
    )
    logger.info("patient retry job scheduled every %s minute(s)", minutes)


def shutdown_scheduler(wait: bool = False):
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=wait)
    _scheduler = None
