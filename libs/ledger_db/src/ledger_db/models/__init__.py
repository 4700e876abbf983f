from .ledger import (
    Account,
    Base,
    Expense,
    ExpenseCategory,
    Income,
    IncomeSource,
    StatementFormat,
)

__all__ = [
    "Account",
    "Base",
    "Expense",
    "ExpenseCategory",
    "Income",
    "IncomeSource",
    "StatementFormat",
]
