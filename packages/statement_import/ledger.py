"""Ledger collaborator: where committed statement rows end up.

The committer talks to the ledger through :class:`LedgerClient`, a small
protocol with one create call per direction. :class:`SqlLedger` implements it
on top of the ``ledger_db`` ORM models; tests and alternative back ends can
supply any object with the same methods.

Each create call runs in its own short transaction so that one failing row
never rolls back its siblings.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from ledger_db.client import session_scope
from ledger_db.models.ledger import Account, Expense, ExpenseCategory, Income, IncomeSource
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .errors import PersistenceFailure
from .logging_setup import get_logger
from .models import Direction, NormalizedTransaction, ledger_amount

logger = get_logger("statement_import.ledger")

MAX_DESCRIPTION_LENGTH = 1000
# Keep IN (...) lists under SQLite's default bound-parameter limit.
_ID_CHUNK = 500


def compose_description(description: str, note: str | None) -> str:
    """Return ``"<description> - <note>"`` (or just the description), capped."""

    text = description.strip()
    if note and note.strip():
        text = f"{text} - {note.strip()}" if text else note.strip()
    return text[:MAX_DESCRIPTION_LENGTH]


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """One income or expense record ready to be written.

    ``category_id`` is an expense category id for expenses and an income
    source id for income; :meth:`payload` names it accordingly.
    """

    date: date
    amount: Decimal
    account_id: int
    description: str
    transaction_id: str | None
    category_id: int
    direction: Direction

    @classmethod
    def from_row(cls, tx: NormalizedTransaction, account_id: int) -> LedgerEntry:
        if tx.amount is None or tx.direction is None or tx.category is None:
            raise ValueError(f"row {tx.row_number} is not ready to commit")
        return cls(
            date=tx.date,
            amount=ledger_amount(tx.amount),
            account_id=account_id,
            description=compose_description(tx.description, tx.note),
            transaction_id=tx.transaction_id,
            category_id=tx.category,
            direction=tx.direction,
        )

    def payload(self) -> dict[str, Any]:
        key = "source_id" if self.direction is Direction.INCOME else "category_id"
        return {
            "date": self.date.isoformat(),
            "amount": str(self.amount),
            "account_id": self.account_id,
            "description": self.description,
            "transaction_id": self.transaction_id,
            key: self.category_id,
        }


@runtime_checkable
class LedgerClient(Protocol):
    """Minimal ledger surface used by the committer and duplicate check."""

    def create_income(self, entry: LedgerEntry) -> int: ...

    def create_expense(self, entry: LedgerEntry) -> int: ...

    def existing_transaction_ids(self, account_id: int, ids: Iterable[str]) -> set[str]: ...


def _reason(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


class SqlLedger:
    """:class:`LedgerClient` backed by the ``incomes``/``expenses`` tables."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self.database_url = database_url

    def _insert(self, record: Income | Expense) -> int:
        try:
            with session_scope(database_url=self.database_url) as session:
                session.add(record)
                session.flush()
                return int(record.id)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(None, _reason(exc)) from exc

    def create_income(self, entry: LedgerEntry) -> int:
        return self._insert(
            Income(
                date=entry.date,
                account_id=entry.account_id,
                source_id=entry.category_id,
                amount=entry.amount,
                transaction_id=entry.transaction_id,
                description=entry.description or None,
            )
        )

    def create_expense(self, entry: LedgerEntry) -> int:
        return self._insert(
            Expense(
                date=entry.date,
                account_id=entry.account_id,
                category_id=entry.category_id,
                amount=entry.amount,
                transaction_id=entry.transaction_id,
                description=entry.description or None,
            )
        )

    def existing_transaction_ids(self, account_id: int, ids: Iterable[str]) -> set[str]:
        wanted = sorted({i for i in ids if i})
        found: set[str] = set()
        if not wanted:
            return found
        with session_scope(database_url=self.database_url) as session:
            for start in range(0, len(wanted), _ID_CHUNK):
                chunk = wanted[start : start + _ID_CHUNK]
                for model in (Income, Expense):
                    stmt = select(model.transaction_id).where(
                        model.account_id == account_id, model.transaction_id.in_(chunk)
                    )
                    found.update(v for v in session.execute(stmt).scalars() if v)
        return found

    # -- reference data used by interactive review ------------------------

    def account_exists(self, account_id: int) -> bool:
        with session_scope(database_url=self.database_url) as session:
            return session.get(Account, account_id) is not None

    def expense_categories(self) -> list[tuple[int, str]]:
        with session_scope(database_url=self.database_url) as session:
            stmt = select(ExpenseCategory.id, ExpenseCategory.category_name).order_by(
                ExpenseCategory.category_name
            )
            return [(int(i), str(n)) for i, n in session.execute(stmt)]

    def income_sources(self) -> list[tuple[int, str]]:
        with session_scope(database_url=self.database_url) as session:
            stmt = select(IncomeSource.id, IncomeSource.name).order_by(IncomeSource.name)
            return [(int(i), str(n)) for i, n in session.execute(stmt)]

    def categories_for(self, direction: Direction) -> list[tuple[int, str]]:
        if direction is Direction.INCOME:
            return self.income_sources()
        return self.expense_categories()


__all__ = [
    "LedgerClient",
    "LedgerEntry",
    "MAX_DESCRIPTION_LENGTH",
    "SqlLedger",
    "compose_description",
]
