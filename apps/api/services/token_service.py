"""
Servicio de tokens: orquesta store + motor de reconciliación.

Cada operación toma UNA lectura del reloj (ReportingClock) y delega en el
store la unidad read-modify-write. Aquí viven las comprobaciones que
necesitan ver otros tokens (unicidad de name/slug); el resto de reglas está
en services/reconciliation.py.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo

import structlog

from core.config import settings
from core.exceptions import TokenConflictError, TokenNotFoundError
from repositories.token_store import TokenStore
from services.reconciliation import (
    API_FETCH_2DAY,
    TOP_VOLUME,
    TRADING_VOLUME,
    FetchedVolume,
    HistoryEntry,
    NewToken,
    Reconciliation,
    ReportingClock,
    TokenState,
    TokenUpdate,
    VolumeUpdate,
    apply_fetched_volume,
    apply_manual_edit,
    seed_token,
    set_archive_state,
)

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Tipos de retorno
# ---------------------------------------------------------------------------


@dataclass
class TokenHistory:
    token: TokenState
    top_volume: list[HistoryEntry]       # fecha descendente
    trading_volume: list[HistoryEntry]   # fecha descendente


@dataclass
class TokenStats:
    token: TokenState
    top_volume_count: int
    trading_volume_count: int
    top_volume_first_recorded: date | None
    trading_volume_first_recorded: date | None


def sort_by_date_desc(entries: list[HistoryEntry]) -> list[HistoryEntry]:
    """Fecha descendente; dentro del mismo día, la última escritura primero."""
    # Orden estable ascendente invertido: los empates quedan en orden inverso de inserción
    return list(reversed(sorted(entries, key=lambda e: (e.date, e.timestamp))))


# ---------------------------------------------------------------------------
# Servicio
# ---------------------------------------------------------------------------


class TokenService:
    """
    Uso:
        service = TokenService(store=SqlTokenStore(db))
        result = await service.update_token(token_id, updates)

    `now` y `tz` son inyectables para tests deterministas.
    """

    def __init__(
        self,
        store: TokenStore,
        now: Callable[[], datetime] = utc_now,
        tz: tzinfo | None = None,
    ) -> None:
        self.store = store
        self._now = now
        self._tz = tz or settings.reporting_tz

    def clock(self) -> ReportingClock:
        return ReportingClock.at(self._now(), self._tz)

    async def list_tokens(self) -> list[TokenState]:
        return await self.store.list_tokens()

    async def get_token(self, token_id: int) -> TokenState:
        token = await self.store.get_token(token_id)
        if token is None:
            raise TokenNotFoundError(token_id)
        return token

    async def create_token(self, new: NewToken) -> TokenState:
        await self._ensure_unique(name=new.name, slug=new.slug)
        result = await self.store.create_token(seed_token(new, self.clock()))
        logger.info("token.created", token_id=result.token.id, name=result.token.name)
        return result.token

    async def update_token(self, token_id: int, updates: TokenUpdate) -> Reconciliation:
        if updates.has("name") or updates.has("slug"):
            await self._ensure_unique(name=updates.name, slug=updates.slug, exclude_id=token_id)

        clock = self.clock()
        result = await self.store.mutate(token_id, lambda t: apply_manual_edit(t, updates, clock))
        logger.info(
            "token.updated",
            token_id=token_id,
            fields=sorted(updates.model_fields_set),
            history=[e.type for e in result.entries],
        )
        return result

    async def update_volume(self, token_id: int, update: VolumeUpdate) -> Reconciliation:
        """Actualización tipo fetch con valores del llamante (PUT /volume)."""
        clock = self.clock()
        result = await self.store.mutate(
            token_id,
            lambda t: apply_fetched_volume(t, FetchedVolume.from_update(update), clock, API_FETCH_2DAY),
        )
        logger.info(
            "token.volume_updated",
            token_id=token_id,
            volume_today=str(result.token.volume_today),
            volume_yesterday=str(result.token.volume_yesterday),
        )
        return result

    async def set_archived(self, token_id: int, archived: bool) -> Reconciliation:
        clock = self.clock()
        result = await self.store.mutate(token_id, lambda t: set_archive_state(t, archived, clock))
        if result.entries:
            logger.info("token.archive_state_changed", token_id=token_id, status=result.token.status)
        return result

    async def delete_token(self, token_id: int) -> TokenState:
        token = await self.store.delete_token(token_id)
        logger.info("token.deleted", token_id=token_id, name=token.name)
        return token

    async def get_history(self, token_id: int) -> TokenHistory:
        token = await self.get_token(token_id)
        return TokenHistory(
            token=token,
            top_volume=sort_by_date_desc(await self.store.list_history(token_id, TOP_VOLUME)),
            trading_volume=sort_by_date_desc(await self.store.list_history(token_id, TRADING_VOLUME)),
        )

    async def get_stats(self) -> list[TokenStats]:
        stats: list[TokenStats] = []
        for token in await self.store.list_tokens():
            top = await self.store.list_history(token.id, TOP_VOLUME)
            trading = await self.store.list_history(token.id, TRADING_VOLUME)
            stats.append(
                TokenStats(
                    token=token,
                    top_volume_count=len(top),
                    trading_volume_count=len(trading),
                    # list_history viene en orden de inserción: el primero es el más antiguo
                    top_volume_first_recorded=top[0].date if top else None,
                    trading_volume_first_recorded=trading[0].date if trading else None,
                )
            )
        return stats

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    async def _ensure_unique(
        self,
        name: str | None,
        slug: str | None,
        exclude_id: int | None = None,
    ) -> None:
        """name único (se guarda en mayúsculas); slug único sin distinguir mayúsculas."""
        for token in await self.store.list_tokens():
            if token.id == exclude_id:
                continue
            if slug is not None and token.slug.lower() == slug.strip().lower():
                raise TokenConflictError("Token with this slug already exists")
            if name is not None and token.name == name.strip().upper():
                raise TokenConflictError("Token with this name already exists")
