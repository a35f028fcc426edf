"""
Router: /api/schedule-info
GET → hora actual y próxima ejecución del batch diario.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from core.config import settings
from core.responses import ok
from sync.scheduler import local_run_time, next_run_time

router = APIRouter()


def _utc_offset_label() -> str:
    """'UTC+7' para Asia/Bangkok; incluye minutos si la zona los tiene."""
    offset = datetime.now(settings.reporting_tz).utcoffset()
    total_minutes = int(offset.total_seconds() // 60) if offset else 0
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"UTC{sign}{hours}" + (f":{minutes:02d}" if minutes else "")


@router.get("/schedule-info")
async def get_schedule_info() -> dict:
    now = datetime.now(timezone.utc)
    return ok(
        data={
            "currentTime": now.isoformat(),
            "nextScheduledRun": next_run_time(now).isoformat(),
            "timezone": _utc_offset_label(),
            "localTime": local_run_time(),
            "schedulerEnabled": settings.SCHEDULER_ENABLED,
        }
    )
