"""
Schemas HTTP de tokens: cuerpos de petición y respuestas.

Las respuestas usan camelCase (lo que consume el frontend) y floats para los
importes; los NUMERIC(20,8) se convierten aquí y solo aquí.
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from services.reconciliation import HistoryEntry, NewToken, TokenState, TokenUpdate, VolumeUpdate
from services.token_service import TokenHistory, TokenStats


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


# ---------------------------------------------------------------------------
# Peticiones
# ---------------------------------------------------------------------------


class AdminRequest(CamelModel):
    # Opcional: una contraseña ausente es 401, no 422
    admin_password: str | None = None


class CreateTokenRequest(AdminRequest):
    token: NewToken


class UpdateTokenRequest(AdminRequest):
    updates: TokenUpdate


class VolumeUpdateRequest(VolumeUpdate):
    admin_password: str | None = None


class ArchiveRequest(AdminRequest):
    archived: bool


class VerifyRequest(BaseModel):
    password: str | None = None


# ---------------------------------------------------------------------------
# Respuestas
# ---------------------------------------------------------------------------


class TokenOut(CamelModel):
    id: int
    name: str
    slug: str
    top_today: float
    top_yesterday: float
    volume_today: float | None
    volume_yesterday: float | None
    amount: float
    current_price: float | None
    total_prize: float | None
    status: str
    archived_at: dt.datetime | None
    last_updated: dt.datetime | None
    created_at: dt.datetime | None
    updated_at: dt.datetime | None

    @classmethod
    def from_state(cls, token: TokenState) -> "TokenOut":
        return cls(
            id=token.id,
            name=token.name,
            slug=token.slug,
            top_today=float(token.top_today),
            top_yesterday=float(token.top_yesterday),
            volume_today=_float(token.volume_today),
            volume_yesterday=_float(token.volume_yesterday),
            amount=float(token.amount),
            current_price=_float(token.current_price),
            total_prize=_float(token.total_prize),
            status=token.status,
            archived_at=token.archived_at,
            last_updated=token.last_updated,
            created_at=token.created_at,
            updated_at=token.updated_at,
        )


class HistoryEntryOut(CamelModel):
    date: dt.date
    value: float
    previous_value: float | None
    timestamp: dt.datetime
    type: str
    note: str | None

    @classmethod
    def from_entry(cls, entry: HistoryEntry) -> "HistoryEntryOut":
        return cls(
            date=entry.date,
            value=float(entry.value),
            previous_value=_float(entry.previous_value),
            timestamp=entry.timestamp,
            type=entry.type,
            note=entry.note,
        )


class TokenHistoryOut(CamelModel):
    token_name: str
    top_volume_history: list[HistoryEntryOut]
    trading_volume_history: list[HistoryEntryOut]

    @classmethod
    def from_history(cls, history: TokenHistory) -> "TokenHistoryOut":
        return cls(
            token_name=history.token.name,
            top_volume_history=[HistoryEntryOut.from_entry(e) for e in history.top_volume],
            trading_volume_history=[HistoryEntryOut.from_entry(e) for e in history.trading_volume],
        )


class HistoryCounts(CamelModel):
    top_volume: int
    trading_volume: int


class FirstRecorded(CamelModel):
    top_volume: dt.date | None
    trading_volume: dt.date | None


class TokenStatsOut(CamelModel):
    id: int
    name: str
    slug: str
    top_today: float
    top_yesterday: float
    volume_today: float | None
    volume_yesterday: float | None
    last_updated: dt.datetime | None
    history_count: HistoryCounts
    first_recorded: FirstRecorded

    @classmethod
    def from_stats(cls, stats: TokenStats) -> "TokenStatsOut":
        token = stats.token
        return cls(
            id=token.id,
            name=token.name,
            slug=token.slug,
            top_today=float(token.top_today),
            top_yesterday=float(token.top_yesterday),
            volume_today=_float(token.volume_today),
            volume_yesterday=_float(token.volume_yesterday),
            last_updated=token.last_updated,
            history_count=HistoryCounts(
                top_volume=stats.top_volume_count,
                trading_volume=stats.trading_volume_count,
            ),
            first_recorded=FirstRecorded(
                top_volume=stats.top_volume_first_recorded,
                trading_volume=stats.trading_volume_first_recorded,
            ),
        )


class VolumeSnapshotOut(CamelModel):
    volume_today: float | None
    volume_yesterday: float | None
    price: float | None
    symbol: str
    raw_data: dict = Field(default_factory=dict)
