"""
Base declarativa de SQLAlchemy. Todos los modelos heredan de aquí.
"""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# NUMERIC(20,8): volúmenes, precios y cantidades con 8 decimales
AMOUNT = sa.NUMERIC(20, 8)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """Añade created_at/updated_at con valor por defecto al momento de inserción."""

    created_at: Mapped[datetime] = mapped_column(
        sa.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )
