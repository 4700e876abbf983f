# ruff: noqa: I001
"""Add bank transaction reference to incomes and expenses.

Revision ID: 0002_ledger_transaction_id
Revises: 0001_ledger_core
Create Date: 2026-02-08
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_ledger_transaction_id"
down_revision: str | None = "0001_ledger_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    for table in ("incomes", "expenses"):
        op.add_column(table, sa.Column("transaction_id", sa.String(255), nullable=True))
        # Non-unique: repeated bank references are surfaced as import warnings.
        op.create_index(f"ix_{table}_transaction_id", table, ["transaction_id"])


def downgrade() -> None:
    for table in ("incomes", "expenses"):
        op.drop_index(f"ix_{table}_transaction_id", table_name=table)
        op.drop_column(table, "transaction_id")
