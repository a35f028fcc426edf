"""
Scheduler APScheduler de la actualización diaria de volúmenes.

Por defecto corre dentro del proceso de la API (lifespan de main.py).
También puede arrancarse como proceso independiente, con SCHEDULER_ENABLED=false
en la API para no duplicar el job:

    python -m sync.scheduler
"""

import asyncio
from datetime import datetime, timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from core.config import settings
from core.logging import configure_logging
from sync.daily_update import DailyUpdateJob

logger = structlog.get_logger(__name__)

JOB_ID = "daily_volume_update"
MISFIRE_GRACE_SECONDS = 60 * 60


def build_trigger() -> CronTrigger:
    """Cada día a DAILY_UPDATE_HOUR:DAILY_UPDATE_MINUTE en la zona de reporting."""
    return CronTrigger(
        hour=settings.DAILY_UPDATE_HOUR,
        minute=settings.DAILY_UPDATE_MINUTE,
        timezone=settings.reporting_tz,
    )


def next_run_time(now: datetime | None = None) -> datetime:
    """Próxima ejecución del job, en UTC."""
    now = now or datetime.now(timezone.utc)
    fire_time = build_trigger().get_next_fire_time(None, now.astimezone(settings.reporting_tz))
    return fire_time.astimezone(timezone.utc)


def local_run_time() -> str:
    """Hora local de ejecución legible, p.ej. '7:01 AM'."""
    hour = settings.DAILY_UPDATE_HOUR % 12 or 12
    suffix = "AM" if settings.DAILY_UPDATE_HOUR < 12 else "PM"
    return f"{hour}:{settings.DAILY_UPDATE_MINUTE:02d} {suffix}"


def build_scheduler(job: DailyUpdateJob) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=settings.reporting_tz)
    scheduler.add_job(
        job.run,
        trigger=build_trigger(),
        id=JOB_ID,
        name="Daily volume update",
        coalesce=True,
        max_instances=1,
        misfire_grace_time=MISFIRE_GRACE_SECONDS,
        replace_existing=True,
    )
    logger.info(
        "scheduler.configured",
        job_id=JOB_ID,
        local_time=local_run_time(),
        timezone=settings.REPORTING_TIMEZONE,
    )
    return scheduler


async def _serve() -> None:
    scheduler = build_scheduler(DailyUpdateJob())
    scheduler.start()
    logger.info("scheduler.start", next_run=next_run_time().isoformat(), env=settings.APP_ENV)
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        logger.info("scheduler.stop")


def main() -> None:
    configure_logging()
    try:
        asyncio.run(_serve())
    except (KeyboardInterrupt, SystemExit):
        logger.info("scheduler.interrupted")


if __name__ == "__main__":
    main()
