"""create top_volume_history and trading_volume_history tables

Revision ID: 002_create_volume_history
Revises: 001_create_tokens
Create Date: 2026-10-19 00:00:01.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002_create_volume_history"
down_revision: Union[str, None] = "001_create_tokens"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_HISTORY_TABLES = ("top_volume_history", "trading_volume_history")


def _create_history_table(table: str) -> None:
    # Log append-only: las filas no se actualizan nunca
    op.create_table(
        table,
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("token_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("value", sa.NUMERIC(20, 8), nullable=False),
        sa.Column("previous_value", sa.NUMERIC(20, 8), nullable=True),
        sa.Column("timestamp", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.ForeignKeyConstraint(["token_id"], ["tokens.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(f"ix_{table}_token_date", table, ["token_id", "date"])


def upgrade() -> None:
    for table in _HISTORY_TABLES:
        _create_history_table(table)


def downgrade() -> None:
    for table in reversed(_HISTORY_TABLES):
        op.drop_index(f"ix_{table}_token_date", table_name=table)
        op.drop_table(table)
