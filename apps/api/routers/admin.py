"""
Router: /api/admin
POST /verify          → {isAdmin: bool}
POST /trigger-update  → lanza el batch diario en background (admin)
GET  /update-status   → estado del último batch
"""

from fastapi import APIRouter, Depends

from core.dependencies import get_daily_update_job
from core.responses import ok
from core.security import require_admin, verify_admin_password
from schemas.token import AdminRequest, VerifyRequest
from sync.daily_update import DailyUpdateJob

router = APIRouter()


@router.post("/verify")
async def verify_admin(body: VerifyRequest) -> dict:
    return ok(data={"isAdmin": verify_admin_password(body.password)})


@router.post("/trigger-update")
async def trigger_update(
    body: AdminRequest,
    job: DailyUpdateJob = Depends(get_daily_update_job),
) -> dict:
    """
    Confirma que el batch se ha programado, no que haya terminado.
    Consulta GET /api/admin/update-status para el resultado.
    """
    require_admin(body.admin_password)

    if not job.trigger():
        return ok(
            data={"status": "already_running"},
            meta={"message": "Daily volume update already in progress"},
        )
    return ok(
        data={"status": "triggered"},
        meta={"message": "Daily volume update started"},
    )


@router.get("/update-status")
async def get_update_status(job: DailyUpdateJob = Depends(get_daily_update_job)) -> dict:
    return ok(data=job.snapshot())
