"""
Motor de reconciliación de volúmenes e historial.

Reglas críticas:
- Funciones puras: (estado actual, cambios, reloj) → (estado nuevo, entradas de historial).
  No tocan la BD ni la red; el store aplica el resultado de forma atómica.
- El historial es append-only: nunca se edita ni se borra una entrada existente.
- "Hoy" y "ayer" salen de UNA sola lectura del reloj por operación (ReportingClock),
  en la zona horaria de la competición. Los timestamps se guardan en UTC.
- total_prize es derivado (current_price * amount); nunca se acepta del llamante.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from core.exceptions import InvalidStateError

# ---------------------------------------------------------------------------
# Constantes
# ---------------------------------------------------------------------------

ONGOING = "ongoing"
ARCHIVED = "archived"

# Logs de historial
TOP_VOLUME = "top_volume"
TRADING_VOLUME = "trading_volume"

# Tipos de entrada
MANUAL_ENTRY = "manual_entry"
MANUAL_UPDATE = "manual_update"
MANUAL_SHIFT_UPDATE = "manual_shift_update"
MANUAL_BACKFILL = "manual_backfill"
API_FETCH_2DAY = "api_fetch_2day"
DAILY_FETCH_2DAY = "daily_fetch_2day"
COMPETITION_ARCHIVED = "competition_archived"
COMPETITION_RESTORED = "competition_restored"

FETCH_ENTRY_TYPES = frozenset({API_FETCH_2DAY, DAILY_FETCH_2DAY})

ARCHIVED_NOTE = "Token moved to finished competition"
RESTORED_NOTE = "Token restored to ongoing competition"

PRIZE_PRECISION = Decimal("0.00000001")  # 8 decimales, igual que NUMERIC(20,8)


# ---------------------------------------------------------------------------
# Reloj de reporting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReportingClock:
    """Instante de la operación (UTC) y sus días de competición derivados."""

    timestamp: datetime
    today: date
    yesterday: date

    @classmethod
    def at(cls, now: datetime, tz: tzinfo) -> "ReportingClock":
        if now.tzinfo is None:
            raise ValueError("now debe ser un datetime con zona horaria")
        utc_now = now.astimezone(timezone.utc)
        local_today = utc_now.astimezone(tz).date()
        return cls(
            timestamp=utc_now,
            today=local_today,
            yesterday=local_today - timedelta(days=1),
        )


# ---------------------------------------------------------------------------
# Estado y resultados
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenState:
    id: int | None
    name: str
    slug: str
    top_today: Decimal = Decimal("0")
    top_yesterday: Decimal = Decimal("0")
    volume_today: Decimal | None = None
    volume_yesterday: Decimal | None = None
    amount: Decimal = Decimal("0")
    current_price: Decimal | None = None
    total_prize: Decimal | None = None
    status: str = ONGOING
    archived_at: datetime | None = None
    last_updated: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_archived(self) -> bool:
        return self.status == ARCHIVED


@dataclass(frozen=True)
class HistoryEntry:
    kind: str                       # TOP_VOLUME | TRADING_VOLUME
    date: date                      # día de competición
    value: Decimal
    previous_value: Decimal | None
    timestamp: datetime             # UTC
    type: str
    note: str | None = None


@dataclass
class Reconciliation:
    """Estado resultante + entradas a añadir. El store lo aplica todo o nada."""

    token: TokenState
    entries: list[HistoryEntry] = field(default_factory=list)

    def entries_of(self, kind: str) -> list[HistoryEntry]:
        return [e for e in self.entries if e.kind == kind]


@dataclass(frozen=True)
class FetchedVolume:
    """
    Ventana de 2 días devuelta por el fetcher. Cualquier campo puede faltar.

    `provided` es None para el fetcher de Binance: los volúmenes se aplican tal
    cual y un precio None significa "sin dato". Para PUT /volume contiene los
    campos enviados por el llamante; el resto conserva el valor del token y un
    null explícito en price borra el precio.
    """

    volume_today: Decimal | None
    volume_yesterday: Decimal | None
    price: Decimal | None
    provided: frozenset[str] | None = None

    @classmethod
    def from_update(cls, update: "VolumeUpdate") -> "FetchedVolume":
        return cls(
            volume_today=update.volume_today,
            volume_yesterday=update.volume_yesterday,
            price=update.price,
            provided=frozenset(update.model_fields_set),
        )

    def sent(self, name: str) -> bool:
        if self.provided is None:
            # price None del fetcher = sin dato, no "borrar"
            return name != "price" or self.price is not None
        return name in self.provided


# ---------------------------------------------------------------------------
# Entradas validadas (partial updates)
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",  # totalPrize, id, createdAt... se descartan en silencio
    )


class NewToken(_CamelModel):
    name: str = Field(min_length=1, max_length=100)
    slug: str = Field(min_length=1, max_length=100)
    top_today: Decimal = Decimal("0")
    top_yesterday: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")

    @field_validator("name", "slug")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("no puede estar vacío")
        return v

    @field_validator("top_today", "top_yesterday", "amount", mode="before")
    @classmethod
    def none_as_zero(cls, v: object) -> object:
        # El frontend envía null/"" para campos vacíos del formulario
        return Decimal("0") if v is None or v == "" else v


class TokenUpdate(_CamelModel):
    """
    Patch parcial de una edición manual. "Presente" significa incluido en
    model_fields_set, aunque sea con el mismo valor que el actual.
    """

    name: str | None = Field(default=None, min_length=1, max_length=100)
    slug: str | None = Field(default=None, min_length=1, max_length=100)
    top_today: Decimal | None = None
    top_yesterday: Decimal | None = None
    volume_today: Decimal | None = None
    volume_yesterday: Decimal | None = None
    amount: Decimal | None = None
    current_price: Decimal | None = None
    status: Literal["ongoing", "archived"] | None = None
    last_updated: datetime | None = None

    NOT_NULLABLE: ClassVar[tuple[str, ...]] = (
        "name", "slug", "top_today", "top_yesterday", "amount", "status",
    )

    @field_validator("name", "slug")
    @classmethod
    def strip_whitespace(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("no puede estar vacío")
        return v

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "TokenUpdate":
        for name in self.NOT_NULLABLE:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} no puede ser null")
        return self

    def has(self, name: str) -> bool:
        return name in self.model_fields_set


class VolumeUpdate(_CamelModel):
    volume_today: Decimal | None = None
    volume_yesterday: Decimal | None = None
    price: Decimal | None = None


# ---------------------------------------------------------------------------
# Reglas
# ---------------------------------------------------------------------------


def compute_total_prize(current_price: Decimal | None, amount: Decimal | None) -> Decimal | None:
    """current_price * amount si ambos existen y amount != 0; si no, ausente."""
    if current_price is None or not amount:
        return None
    return (current_price * amount).quantize(PRIZE_PRECISION, rounding=ROUND_HALF_UP)


def seed_token(new: NewToken, clock: ReportingClock) -> Reconciliation:
    """Estado inicial de un token nuevo + entrada manual_entry en top volume."""
    token = TokenState(
        id=None,
        name=new.name.upper(),
        slug=new.slug.lower(),
        top_today=new.top_today,
        top_yesterday=new.top_yesterday,
        amount=new.amount,
        status=ONGOING,
        created_at=clock.timestamp,
        updated_at=clock.timestamp,
    )
    entry = HistoryEntry(
        kind=TOP_VOLUME,
        date=clock.today,
        value=new.top_today,
        previous_value=None,
        timestamp=clock.timestamp,
        type=MANUAL_ENTRY,
    )
    return Reconciliation(token=token, entries=[entry])


def apply_manual_edit(
    token: TokenState,
    updates: TokenUpdate,
    clock: ReportingClock,
) -> Reconciliation:
    """
    Clasifica una edición del admin y genera el historial correspondiente.

    Orden de evaluación:
      1. shift: topToday cambia y topYesterday == topToday anterior
      2. update: topToday cambia (excluyente con 1)
      3. backfill top: solo topYesterday cambia, sin topToday en la petición
      4. backfill trading: volumeYesterday cambia (independiente de 1-3)
    """
    entries: list[HistoryEntry] = []

    if updates.has("top_today") and updates.top_today != token.top_today:
        is_shift = updates.has("top_yesterday") and updates.top_yesterday == token.top_today
        entries.append(
            HistoryEntry(
                kind=TOP_VOLUME,
                date=clock.today,
                value=updates.top_today,
                previous_value=token.top_today,
                timestamp=clock.timestamp,
                type=MANUAL_SHIFT_UPDATE if is_shift else MANUAL_UPDATE,
            )
        )

    if (
        updates.has("top_yesterday")
        and not updates.has("top_today")
        and updates.top_yesterday != token.top_yesterday
    ):
        entries.append(
            HistoryEntry(
                kind=TOP_VOLUME,
                date=clock.yesterday,
                value=updates.top_yesterday,
                previous_value=token.top_yesterday,
                timestamp=clock.timestamp,
                type=MANUAL_BACKFILL,
            )
        )

    # value es NOT NULL: borrar el volumen de ayer no deja rastro en el log
    if (
        updates.has("volume_yesterday")
        and updates.volume_yesterday != token.volume_yesterday
        and updates.volume_yesterday is not None
    ):
        entries.append(
            HistoryEntry(
                kind=TRADING_VOLUME,
                date=clock.yesterday,
                value=updates.volume_yesterday,
                previous_value=token.volume_yesterday,
                timestamp=clock.timestamp,
                type=MANUAL_BACKFILL,
            )
        )

    patch = {name: getattr(updates, name) for name in updates.model_fields_set}
    if "name" in patch:
        patch["name"] = patch["name"].strip().upper()
    if "slug" in patch:
        patch["slug"] = patch["slug"].strip().lower()
    if "status" in patch and patch["status"] != token.status:
        patch["archived_at"] = clock.timestamp if patch["status"] == ARCHIVED else None

    new_token = replace(token, **patch, updated_at=clock.timestamp)
    new_token = replace(
        new_token,
        total_prize=compute_total_prize(new_token.current_price, new_token.amount),
    )
    return Reconciliation(token=new_token, entries=entries)


def apply_fetched_volume(
    token: TokenState,
    fetched: FetchedVolume,
    clock: ReportingClock,
    entry_type: str = API_FETCH_2DAY,
) -> Reconciliation:
    """
    Aplica la ventana de 2 días del fetcher tal cual (sin desplazar hoy→ayer).
    previous_value queda siempre a None en las entradas de fetch.
    """
    if token.is_archived:
        raise InvalidStateError("Cannot update volume for archived token. Competition has ended.")
    if entry_type not in FETCH_ENTRY_TYPES:
        raise ValueError(f"entry_type inválido para un fetch: {entry_type}")

    current_price = fetched.price if fetched.sent("price") else token.current_price
    new_token = replace(
        token,
        volume_today=fetched.volume_today if fetched.sent("volume_today") else token.volume_today,
        volume_yesterday=(
            fetched.volume_yesterday if fetched.sent("volume_yesterday") else token.volume_yesterday
        ),
        current_price=current_price,
        total_prize=compute_total_prize(current_price, token.amount),
        last_updated=clock.timestamp,
        updated_at=clock.timestamp,
    )

    # Solo un volumen de hoy realmente recibido es un dato nuevo para el log
    entries: list[HistoryEntry] = []
    if fetched.sent("volume_today") and fetched.volume_today is not None:
        entries.append(
            HistoryEntry(
                kind=TRADING_VOLUME,
                date=clock.today,
                value=fetched.volume_today,
                previous_value=None,
                timestamp=clock.timestamp,
                type=entry_type,
            )
        )
    return Reconciliation(token=new_token, entries=entries)


def set_archive_state(
    token: TokenState,
    archived: bool,
    clock: ReportingClock,
) -> Reconciliation:
    """Archiva o restaura. Sin cambio de estado no hay entrada ni modificación."""
    target = ARCHIVED if archived else ONGOING
    if token.status == target:
        return Reconciliation(token=token, entries=[])

    new_token = replace(
        token,
        status=target,
        archived_at=clock.timestamp if archived else None,
        updated_at=clock.timestamp,
    )
    entry = HistoryEntry(
        kind=TOP_VOLUME,
        date=clock.today,
        value=token.top_today,
        previous_value=None,
        timestamp=clock.timestamp,
        type=COMPETITION_ARCHIVED if archived else COMPETITION_RESTORED,
        note=ARCHIVED_NOTE if archived else RESTORED_NOTE,
    )
    return Reconciliation(token=new_token, entries=[entry])
