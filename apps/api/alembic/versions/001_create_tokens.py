"""create tokens table

Revision ID: 001_create_tokens
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_create_tokens"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "tokens",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("top_today", sa.NUMERIC(20, 8), nullable=False, server_default="0"),
        sa.Column("top_yesterday", sa.NUMERIC(20, 8), nullable=False, server_default="0"),
        sa.Column("volume_today", sa.NUMERIC(20, 8), nullable=True),
        sa.Column("volume_yesterday", sa.NUMERIC(20, 8), nullable=True),
        sa.Column("amount", sa.NUMERIC(20, 8), nullable=False, server_default="0"),
        sa.Column("current_price", sa.NUMERIC(20, 8), nullable=True),
        # Derivado (current_price * amount): lo escribe la aplicación, nunca el cliente
        sa.Column("total_prize", sa.NUMERIC(20, 8), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="ongoing"),
        sa.Column("archived_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_updated", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_tokens_name"),
        sa.CheckConstraint("status IN ('ongoing', 'archived')", name="ck_tokens_status"),
    )
    # Slug único sin distinguir mayúsculas
    op.create_index("uq_tokens_slug_lower", "tokens", [sa.text("lower(slug)")], unique=True)
    op.create_index("ix_tokens_status", "tokens", ["status"])


def downgrade() -> None:
    op.drop_index("ix_tokens_status", table_name="tokens")
    op.drop_index("uq_tokens_slug_lower", table_name="tokens")
    op.drop_table("tokens")
