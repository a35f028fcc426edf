"""
Store de tokens e historial.

TokenStore es la interfaz que consume el motor de reconciliación. Cada
mutación es una unidad read-modify-write atómica: se lee el token (con
bloqueo de fila en PostgreSQL), se calcula el resultado con una función
pura y se escriben token + entradas de historial en la misma transacción.
Si algo falla, no se considera aplicado ningún cambio.
"""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Protocol

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import PersistenceError, TokenConflictError, TokenLeaderboardError, TokenNotFoundError
from models.token import Token
from models.volume_history import TopVolumeHistory, TradingVolumeHistory
from services.reconciliation import (
    TOP_VOLUME,
    TRADING_VOLUME,
    HistoryEntry,
    Reconciliation,
    TokenState,
)

logger = structlog.get_logger(__name__)

Mutation = Callable[[TokenState], Reconciliation]

_HISTORY_MODELS = {
    TOP_VOLUME: TopVolumeHistory,
    TRADING_VOLUME: TradingVolumeHistory,
}

# Campos de TokenState que se persisten tal cual en la fila
_TOKEN_FIELDS = (
    "name",
    "slug",
    "top_today",
    "top_yesterday",
    "volume_today",
    "volume_yesterday",
    "amount",
    "current_price",
    "total_prize",
    "status",
    "archived_at",
    "last_updated",
    "created_at",
    "updated_at",
)


class TokenStore(Protocol):
    async def list_tokens(self) -> list[TokenState]:
        """Todos los tokens, más recientes primero."""
        ...

    async def get_token(self, token_id: int) -> TokenState | None:
        ...

    async def create_token(self, seed: Reconciliation) -> Reconciliation:
        """Inserta el token y sus entradas iniciales. Devuelve el estado con id."""
        ...

    async def mutate(self, token_id: int, mutation: Mutation) -> Reconciliation:
        """
        Aplica `mutation` sobre el estado actual de forma atómica.
        Lanza TokenNotFoundError si el token no existe; cualquier excepción de
        `mutation` aborta la operación sin escribir nada.
        """
        ...

    async def delete_token(self, token_id: int) -> TokenState:
        """Borra el token y, en cascada, todo su historial."""
        ...

    async def list_history(self, token_id: int, kind: str) -> list[HistoryEntry]:
        """Entradas de un log en orden de inserción (timestamp, id)."""
        ...


# ---------------------------------------------------------------------------
# Conversión fila ORM ↔ TokenState
# ---------------------------------------------------------------------------


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite devuelve datetimes naive; en BD siempre se guarda UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def token_to_state(row: Token) -> TokenState:
    return TokenState(
        id=row.id,
        name=row.name,
        slug=row.slug,
        top_today=row.top_today,
        top_yesterday=row.top_yesterday,
        volume_today=row.volume_today,
        volume_yesterday=row.volume_yesterday,
        amount=row.amount,
        current_price=row.current_price,
        total_prize=row.total_prize,
        status=row.status,
        archived_at=_as_utc(row.archived_at),
        last_updated=_as_utc(row.last_updated),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _write_state(row: Token, state: TokenState) -> None:
    for name in _TOKEN_FIELDS:
        setattr(row, name, getattr(state, name))


def _history_row(token_id: int, entry: HistoryEntry) -> TopVolumeHistory | TradingVolumeHistory:
    model = _HISTORY_MODELS[entry.kind]
    return model(
        token_id=token_id,
        date=entry.date,
        value=entry.value,
        previous_value=entry.previous_value,
        timestamp=entry.timestamp,
        type=entry.type,
        note=entry.note,
    )


def _history_to_entry(kind: str, row: TopVolumeHistory | TradingVolumeHistory) -> HistoryEntry:
    return HistoryEntry(
        kind=kind,
        date=row.date,
        value=row.value,
        previous_value=row.previous_value,
        timestamp=_as_utc(row.timestamp),
        type=row.type,
        note=row.note,
    )


# ---------------------------------------------------------------------------
# Implementación SQLAlchemy
# ---------------------------------------------------------------------------


class SqlTokenStore:
    """
    Store sobre SQLAlchemy async. Una sesión por petición/batch.

    Uso:
        async with AsyncSessionLocal() as db:
            store = SqlTokenStore(db)
            result = await store.mutate(token_id, lambda t: apply_manual_edit(t, updates, clock))
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_tokens(self) -> list[TokenState]:
        result = await self.db.execute(select(Token).order_by(Token.created_at.desc(), Token.id.desc()))
        return [token_to_state(row) for row in result.scalars().all()]

    async def get_token(self, token_id: int) -> TokenState | None:
        row = await self.db.get(Token, token_id, populate_existing=True)
        return token_to_state(row) if row is not None else None

    async def create_token(self, seed: Reconciliation) -> Reconciliation:
        row = Token()
        _write_state(row, seed.token)
        try:
            self.db.add(row)
            await self.db.flush()  # asigna row.id
            self.db.add_all([_history_row(row.id, entry) for entry in seed.entries])
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise TokenConflictError("Token with this name or slug already exists") from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("store.create_failed", name=seed.token.name, error=str(exc))
            raise PersistenceError("Failed to add token") from exc

        return Reconciliation(token=token_to_state(row), entries=list(seed.entries))

    async def mutate(self, token_id: int, mutation: Mutation) -> Reconciliation:
        try:
            # FOR UPDATE: serializa escrituras concurrentes sobre el mismo token
            row = await self.db.get(Token, token_id, with_for_update=True, populate_existing=True)
            if row is None:
                raise TokenNotFoundError(token_id)

            result = mutation(token_to_state(row))

            _write_state(row, result.token)
            self.db.add_all([_history_row(token_id, entry) for entry in result.entries])
            await self.db.commit()
        except TokenLeaderboardError:
            await self.db.rollback()
            raise
        except IntegrityError as exc:
            await self.db.rollback()
            raise TokenConflictError("Token with this name or slug already exists") from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("store.mutate_failed", token_id=token_id, error=str(exc))
            raise PersistenceError("Failed to update token") from exc
        except Exception:
            await self.db.rollback()
            raise

        return Reconciliation(token=token_to_state(row), entries=list(result.entries))

    async def delete_token(self, token_id: int) -> TokenState:
        try:
            row = await self.db.get(Token, token_id)
            if row is None:
                raise TokenNotFoundError(token_id)
            state = token_to_state(row)

            # Borrado explícito del historial: no depende de ON DELETE CASCADE
            for model in _HISTORY_MODELS.values():
                await self.db.execute(delete(model).where(model.token_id == token_id))
            await self.db.execute(delete(Token).where(Token.id == token_id))
            await self.db.commit()
        except TokenLeaderboardError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("store.delete_failed", token_id=token_id, error=str(exc))
            raise PersistenceError("Failed to delete token") from exc

        return state

    async def list_history(self, token_id: int, kind: str) -> list[HistoryEntry]:
        model = _HISTORY_MODELS[kind]
        result = await self.db.execute(
            select(model)
            .where(model.token_id == token_id)
            .order_by(model.timestamp.asc(), model.id.asc())
        )
        return [_history_to_entry(kind, row) for row in result.scalars().all()]


@asynccontextmanager
async def session_store() -> AsyncIterator[SqlTokenStore]:
    """Store con sesión propia, para tareas fuera del ciclo de una petición (batch)."""
    from core.database import AsyncSessionLocal

    async with AsyncSessionLocal() as db:
        yield SqlTokenStore(db)
