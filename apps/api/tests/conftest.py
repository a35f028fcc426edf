"""
Configuración común de tests.

Las variables de entorno se fijan antes de importar cualquier módulo de la
app: core.config lee Settings al importarse.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_leaderboard.db")
os.environ.setdefault("DATABASE_SYNC_URL", "sqlite:///./test_leaderboard.db")
os.environ.setdefault("ADMIN_PASSWORD", "test-admin-secret")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("BATCH_DELAY_SECONDS", "0")

from datetime import datetime, timezone  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from models.base import Base  # noqa: E402
from repositories.memory_store import InMemoryTokenStore  # noqa: E402
from repositories.token_store import SqlTokenStore  # noqa: E402
from services.reconciliation import ReportingClock  # noqa: E402
from services.token_service import TokenService  # noqa: E402

ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]
BANGKOK = ZoneInfo("Asia/Bangkok")

# 12:00 en Bangkok: hoy = 2026-03-10, ayer = 2026-03-09
NOW = datetime(2026, 3, 10, 5, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> ReportingClock:
    return ReportingClock.at(NOW, BANGKOK)


@pytest.fixture
def store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def service(store: InMemoryTokenStore) -> TokenService:
    return TokenService(store=store, now=lambda: NOW, tz=BANGKOK)


@pytest.fixture
async def sql_store(tmp_path):
    """SqlTokenStore sobre un SQLite temporal (aiosqlite) con el esquema creado."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield SqlTokenStore(session)

    await engine.dispose()
