"""
Dependencias inyectables de FastAPI.
Uso: añadir como parámetro en la firma del endpoint con Depends().

Los tests sustituyen get_token_store / get_alpha_client / get_daily_update_job
con app.dependency_overrides.
"""

from collections.abc import AsyncIterator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import AsyncSessionLocal
from repositories.token_store import SqlTokenStore, TokenStore
from services.token_service import TokenService
from sync.alpha_client import BinanceAlphaClient
from sync.daily_update import DailyUpdateJob

# ---------------------------------------------------------------------------
# Sesión de base de datos
# ---------------------------------------------------------------------------


async def get_db() -> AsyncIterator[AsyncSession]:
    """Proporciona una sesión SQLAlchemy async con rollback automático si algo falla."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Store y servicio
# ---------------------------------------------------------------------------


async def get_token_store(db: AsyncSession = Depends(get_db)) -> TokenStore:
    return SqlTokenStore(db)


async def get_token_service(store: TokenStore = Depends(get_token_store)) -> TokenService:
    return TokenService(store=store)


# ---------------------------------------------------------------------------
# Binance Alpha y batch diario
# ---------------------------------------------------------------------------


async def get_alpha_client() -> AsyncIterator[BinanceAlphaClient]:
    """Un cliente por petición; se cierra al terminar la respuesta."""
    async with BinanceAlphaClient() as client:
        yield client


@lru_cache
def get_daily_update_job() -> DailyUpdateJob:
    """Instancia única por proceso: compartida por el scheduler y trigger-update."""
    return DailyUpdateJob()
