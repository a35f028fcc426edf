"""
Modelos: top_volume_history y trading_volume_history.

Dos logs append-only por token con la misma forma. Las filas nunca se
actualizan: cada corrección es una fila nueva con su `type`.
"""

import datetime as dt
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from models.base import AMOUNT, Base

HISTORY_TYPES = (
    "manual_entry",
    "manual_update",
    "manual_shift_update",
    "manual_backfill",
    "api_fetch_2day",
    "daily_fetch_2day",
    "competition_archived",
    "competition_restored",
)


class VolumeHistoryMixin:
    """Columnas comunes a ambos logs de historial."""

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    @declared_attr
    def token_id(cls) -> Mapped[int]:
        return mapped_column(
            sa.Integer,
            sa.ForeignKey("tokens.id", ondelete="CASCADE"),
            nullable=False,
        )

    # Día de la competición (zona horaria de reporting), no el día UTC
    date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False)
    value: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    previous_value: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    # Instante exacto de registro, siempre en UTC. Clave de orden del log.
    timestamp: Mapped[dt.datetime] = mapped_column(sa.TIMESTAMP(timezone=True), nullable=False)
    type: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    note: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        sa.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


class TopVolumeHistory(VolumeHistoryMixin, Base):
    __tablename__ = "top_volume_history"

    __table_args__ = (
        sa.Index("ix_top_volume_history_token_date", "token_id", "date"),
    )


class TradingVolumeHistory(VolumeHistoryMixin, Base):
    __tablename__ = "trading_volume_history"

    __table_args__ = (
        sa.Index("ix_trading_volume_history_token_date", "token_id", "date"),
    )
