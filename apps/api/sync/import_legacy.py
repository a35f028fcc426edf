"""
Importación del documento JSON heredado (`database.json`) a la BD.

Formato: {"tokens": [...], "lastUpdated": ...}, con el historial embebido en
cada token (topVolumeHistory / tradingVolumeHistory).

Reglas:
- Upsert por name (en mayúsculas): si el token existe se sobrescriben sus
  campos; si no, se crea.
- Las entradas de historial se INSERTAN con su type, fecha y timestamp
  de origen; nunca se edita una fila existente. Una entrada idéntica a otra
  ya guardada se omite, así que relanzar la importación es seguro.
- total_prize se recalcula (current_price * amount), no se copia del JSON.
- Un token con errores se registra y se salta; el resto continúa.

Arrancar con: python -m sync.import_legacy path/to/database.json
"""

import argparse
import asyncio
import datetime as dt
from dataclasses import dataclass, field, replace
from decimal import Decimal
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.exceptions import TokenLeaderboardError
from core.logging import configure_logging
from models.token import TOKEN_STATUSES
from models.volume_history import HISTORY_TYPES
from repositories.token_store import TokenStore, session_store
from services.reconciliation import (
    ONGOING,
    TOP_VOLUME,
    TRADING_VOLUME,
    HistoryEntry,
    Reconciliation,
    TokenState,
    compute_total_prize,
)

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Documento heredado
# ---------------------------------------------------------------------------


def _utc(value: dt.datetime | None) -> dt.datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


class _LegacyModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class LegacyHistoryEntry(_LegacyModel):
    date: dt.date
    value: Decimal
    previous_value: Decimal | None = None
    timestamp: dt.datetime
    type: str
    note: str | None = None

    @field_validator("type")
    @classmethod
    def known_type(cls, v: str) -> str:
        if v not in HISTORY_TYPES:
            raise ValueError(f"tipo de historial desconocido: {v}")
        return v

    def to_entry(self, kind: str) -> HistoryEntry:
        return HistoryEntry(
            kind=kind,
            date=self.date,
            value=self.value,
            previous_value=self.previous_value,
            timestamp=_utc(self.timestamp),
            type=self.type,
            note=self.note,
        )


class LegacyToken(_LegacyModel):
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    top_today: Decimal | None = None
    top_yesterday: Decimal | None = None
    amount: Decimal | None = None
    volume_today: Decimal | None = None
    volume_yesterday: Decimal | None = None
    current_price: Decimal | None = None
    status: str | None = None
    archived_at: dt.datetime | None = None
    last_updated: dt.datetime | None = None
    created_at: dt.datetime | None = None
    top_volume_history: list[LegacyHistoryEntry] = Field(default_factory=list)
    trading_volume_history: list[LegacyHistoryEntry] = Field(default_factory=list)

    @field_validator("status")
    @classmethod
    def known_status(cls, v: str | None) -> str | None:
        if v is not None and v not in TOKEN_STATUSES:
            raise ValueError(f"status desconocido: {v}")
        return v

    def entries(self) -> list[HistoryEntry]:
        return [e.to_entry(TOP_VOLUME) for e in self.top_volume_history] + [
            e.to_entry(TRADING_VOLUME) for e in self.trading_volume_history
        ]

    def apply_to(self, base: TokenState, now: dt.datetime) -> TokenState:
        """Campos del JSON sobre `base`. Los numéricos a null valen 0."""
        amount = self.amount or Decimal("0")
        return replace(
            base,
            name=self.name.strip().upper(),
            slug=self.slug.strip().lower(),
            top_today=self.top_today or Decimal("0"),
            top_yesterday=self.top_yesterday or Decimal("0"),
            amount=amount,
            volume_today=self.volume_today,
            volume_yesterday=self.volume_yesterday,
            current_price=self.current_price,
            total_prize=compute_total_prize(self.current_price, amount),
            status=self.status or ONGOING,
            archived_at=_utc(self.archived_at),
            last_updated=_utc(self.last_updated),
            created_at=base.created_at or _utc(self.created_at) or now,
            updated_at=now,
        )


class LegacyDatabase(_LegacyModel):
    tokens: list[LegacyToken] = Field(default_factory=list)
    last_updated: dt.datetime | None = None


def load_legacy_file(path: Path) -> LegacyDatabase:
    return LegacyDatabase.model_validate_json(path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Importación
# ---------------------------------------------------------------------------


@dataclass
class ImportStats:
    created: int = 0
    updated: int = 0
    failed: int = 0
    history_inserted: int = 0
    history_skipped: int = 0
    errors: list[str] = field(default_factory=list)


async def _new_entries(store: TokenStore, token_id: int, entries: list[HistoryEntry]) -> list[HistoryEntry]:
    existing = set()
    for kind in (TOP_VOLUME, TRADING_VOLUME):
        existing.update(await store.list_history(token_id, kind))
    return [e for e in entries if e not in existing]


async def import_legacy(
    store: TokenStore,
    legacy: LegacyDatabase,
    now: dt.datetime | None = None,
) -> ImportStats:
    now = now or dt.datetime.now(dt.timezone.utc)
    stats = ImportStats()
    by_name = {t.name: t for t in await store.list_tokens()}
    logger.info("import.start", tokens=len(legacy.tokens), existing=len(by_name))

    for item in legacy.tokens:
        name = item.name.strip().upper()
        entries = item.entries()
        log = logger.bind(name=name)

        try:
            current = by_name.get(name)
            if current is None:
                seed = item.apply_to(TokenState(id=None, name=name, slug=item.slug), now)
                result = await store.create_token(Reconciliation(token=seed, entries=entries))
                stats.created += 1
            else:
                fresh = await _new_entries(store, current.id, entries)
                stats.history_skipped += len(entries) - len(fresh)
                result = await store.mutate(
                    current.id,
                    lambda t: Reconciliation(token=item.apply_to(t, now), entries=fresh),
                )
                stats.updated += 1
        except TokenLeaderboardError as exc:
            stats.failed += 1
            stats.errors.append(f"{name}: {exc.message}")
            log.warning("import.token_failed", error=exc.message)
            continue

        by_name[name] = result.token
        stats.history_inserted += len(result.entries)
        log.info("import.token_done", token_id=result.token.id, history=len(result.entries))

    logger.info(
        "import.done",
        created=stats.created,
        updated=stats.updated,
        failed=stats.failed,
        history_inserted=stats.history_inserted,
        history_skipped=stats.history_skipped,
    )
    return stats


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Importa database.json heredado a la base de datos.")
    parser.add_argument("path", type=Path, help="Ruta al database.json heredado.")
    return parser.parse_args()


async def _run(path: Path) -> ImportStats:
    legacy = load_legacy_file(path)
    async with session_store() as store:
        return await import_legacy(store, legacy)


def main() -> None:
    configure_logging()
    args = _parse_args()
    if not args.path.exists():
        logger.error("import.file_not_found", path=str(args.path))
        raise SystemExit(1)

    stats = asyncio.run(_run(args.path))
    if stats.failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
