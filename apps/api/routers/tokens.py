"""
Router: /api/tokens
GET    /              → lista de tokens (más recientes primero)
POST   /              → alta de token (admin)
GET    /stats         → contadores de historial por token
PUT    /{id}          → edición manual con historial (admin)
DELETE /{id}          → borrado + historial en cascada (admin)
PUT    /{id}/volume   → volúmenes aportados por el llamante, como un fetch (admin)
PUT    /{id}/archive  → archivar / restaurar (admin)
GET    /{id}/history  → ambos logs, fecha descendente
"""

from fastapi import APIRouter, Depends

from core.dependencies import get_token_service
from core.responses import ok
from core.security import require_admin
from schemas.token import (
    AdminRequest,
    ArchiveRequest,
    CreateTokenRequest,
    TokenHistoryOut,
    TokenOut,
    TokenStatsOut,
    UpdateTokenRequest,
    VolumeUpdateRequest,
)
from services.token_service import TokenService

router = APIRouter()


@router.get("")
async def list_tokens(service: TokenService = Depends(get_token_service)) -> dict:
    tokens = await service.list_tokens()
    return ok(data=[TokenOut.from_state(t) for t in tokens], meta={"total": len(tokens)})


@router.post("")
async def create_token(
    body: CreateTokenRequest,
    service: TokenService = Depends(get_token_service),
) -> dict:
    require_admin(body.admin_password)
    token = await service.create_token(body.token)
    return ok(data=TokenOut.from_state(token))


# Debe declararse antes de /{token_id} para que "stats" no se interprete como id
@router.get("/stats")
async def get_token_stats(service: TokenService = Depends(get_token_service)) -> dict:
    stats = await service.get_stats()
    return ok(data=[TokenStatsOut.from_stats(s) for s in stats])


@router.put("/{token_id}")
async def update_token(
    token_id: int,
    body: UpdateTokenRequest,
    service: TokenService = Depends(get_token_service),
) -> dict:
    """
    Edición manual. Según qué campos cambien se registra manual_update,
    manual_shift_update o manual_backfill; meta.history lista los tipos añadidos.
    """
    require_admin(body.admin_password)
    result = await service.update_token(token_id, body.updates)
    return ok(
        data=TokenOut.from_state(result.token),
        meta={"history": [entry.type for entry in result.entries]},
    )


@router.delete("/{token_id}")
async def delete_token(
    token_id: int,
    body: AdminRequest,
    service: TokenService = Depends(get_token_service),
) -> dict:
    require_admin(body.admin_password)
    token = await service.delete_token(token_id)
    return ok(data=TokenOut.from_state(token))


@router.put("/{token_id}/volume")
async def update_token_volume(
    token_id: int,
    body: VolumeUpdateRequest,
    service: TokenService = Depends(get_token_service),
) -> dict:
    """400 si el token está archivado: la competición ya terminó."""
    require_admin(body.admin_password)
    result = await service.update_volume(token_id, body)
    return ok(
        data=TokenOut.from_state(result.token),
        meta={"history": [entry.type for entry in result.entries]},
    )


@router.put("/{token_id}/archive")
async def archive_token(
    token_id: int,
    body: ArchiveRequest,
    service: TokenService = Depends(get_token_service),
) -> dict:
    require_admin(body.admin_password)
    result = await service.set_archived(token_id, body.archived)

    if not result.entries:
        message = "No status change needed"
    elif body.archived:
        message = "Token archived successfully"
    else:
        message = "Token restored to ongoing competition"
    return ok(data=TokenOut.from_state(result.token), meta={"message": message})


@router.get("/{token_id}/history")
async def get_token_history(
    token_id: int,
    service: TokenService = Depends(get_token_service),
) -> dict:
    history = await service.get_history(token_id)
    return ok(data=TokenHistoryOut.from_history(history))
