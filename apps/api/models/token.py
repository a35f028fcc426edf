"""
Modelo: tokens: participantes de la competición y su estado actual.
"""

from datetime import datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from models.base import AMOUNT, Base, TimestampMixin

TOKEN_STATUSES = ("ongoing", "archived")


class Token(TimestampMixin, Base):
    __tablename__ = "tokens"

    __table_args__ = (
        sa.CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in TOKEN_STATUSES) + ")",
            name="ck_tokens_status",
        ),
        sa.Index("ix_tokens_status", "status"),
        sa.Index("uq_tokens_slug_lower", sa.text("lower(slug)"), unique=True),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    top_today: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, server_default="0")
    top_yesterday: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, server_default="0")
    volume_today: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    volume_yesterday: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, server_default="0")
    current_price: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    # Derivado: current_price * amount. Solo lo escribe el motor de reconciliación.
    total_prize: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    status: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        server_default="ongoing",
    )
    archived_at: Mapped[datetime | None] = mapped_column(sa.TIMESTAMP(timezone=True), nullable=True)
    last_updated: Mapped[datetime | None] = mapped_column(sa.TIMESTAMP(timezone=True), nullable=True)
