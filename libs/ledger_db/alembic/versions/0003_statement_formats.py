# ruff: noqa: I001
"""Server-side storage for statement format profiles.

Revision ID: 0003_statement_formats
Revises: 0002_ledger_transaction_id
Create Date: 2026-03-02
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0003_statement_formats"
down_revision: str | None = "0002_ledger_transaction_id"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "statement_formats",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("bank_name", sa.String(255), nullable=False),
        sa.Column("date_column", sa.String(255), nullable=False),
        sa.Column("description_column", sa.String(255), nullable=False),
        sa.Column("amount_scheme", sa.String(64), nullable=False),
        sa.Column("debit_column", sa.String(255), nullable=True),
        sa.Column("credit_column", sa.String(255), nullable=True),
        sa.Column("amount_column", sa.String(255), nullable=True),
        sa.Column("indicator_column", sa.String(255), nullable=True),
        sa.Column("debit_tokens", sa.JSON(), nullable=False),
        sa.Column("credit_tokens", sa.JSON(), nullable=False),
        sa.Column("transaction_id_column", sa.String(255), nullable=True),
        sa.Column("date_format", sa.String(64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "amount_scheme in ('separate_debit_credit','single_amount_with_indicator',"
            "'single_amount_with_tokens')",
            name="ck_statement_formats_amount_scheme",
        ),
    )


def downgrade() -> None:
    op.drop_table("statement_formats")
