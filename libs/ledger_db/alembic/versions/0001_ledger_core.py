# ruff: noqa: I001
"""Ledger core tables: accounts, expense categories, income sources, incomes, expenses.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2025-11-24
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "expense_categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("category_name", sa.String(255), nullable=False, unique=True),
        *_timestamps(),
    )
    op.create_table(
        "income_sources",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
    )

    for table, ref_col, ref_table in (
        ("incomes", "source_id", "income_sources"),
        ("expenses", "category_id", "expense_categories"),
    ):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column(
                "account_id",
                sa.Integer(),
                sa.ForeignKey("accounts.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column(
                ref_col,
                sa.Integer(),
                sa.ForeignKey(f"{ref_table}.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column("amount", sa.Numeric(15, 2), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            *_timestamps(),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
            sa.CheckConstraint("amount > 0", name=f"ck_{table}_amount_positive"),
        )
        op.create_index(f"ix_{table}_date", table, ["date"])
        op.create_index(f"ix_{table}_account_id", table, ["account_id"])
        op.create_index(f"ix_{table}_{ref_col}", table, [ref_col])


def downgrade() -> None:
    for table in ("expenses", "incomes"):
        op.drop_table(table)
    op.drop_table("income_sources")
    op.drop_table("expense_categories")
    op.drop_table("accounts")
