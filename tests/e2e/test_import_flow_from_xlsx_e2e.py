from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from ledger_db.client import session_scope
from ledger_db.models.ledger import Expense, Income
from sqlalchemy import func, select
from statement_import import (
    CommitStatus,
    DuplicateWarning,
    KeywordRules,
    SqlLedger,
    commit_statement,
    parse_statement,
)
from statement_import.rules import CategoryRule

from tests.helpers.workbooks import xlsx_bytes


def _statement() -> bytes:
    return xlsx_bytes(
        [
            ["Indicator Bank - account statement"],
            ["Account: XXXX1234", None, None, None, "Period: Mar 2024"],
            ["Date", "Description", "Reference", "Amount", "Dr/Cr"],
            [datetime(2024, 3, 1), "BIG BASKET ORDER", "R1", 1250.5, "DR"],
            [datetime(2024, 3, 2), "SALARY MARCH", "R2", 50000, "CR"],
            [datetime(2024, 3, 3), "ELECTRICITY BILL", "R3", "1,999.00", "Debit"],
            [datetime(2024, 3, 4), "UBER TRIP", "R4", 320, "DR"],
            [datetime(2024, 3, 5), "SB INTEREST", "R5", 12.34, "Credit"],
            ["Closing balance", None, None, 99999, None],
        ]
    )


def test_xlsx_statement_imports_with_one_failed_row(db_url, seeded, indicator_profile):
    exp, inc = seeded.expense_categories, seeded.income_sources
    rules = KeywordRules(
        (
            CategoryRule(keyword="basket", category=exp["Groceries"]),
            CategoryRule(keyword="salary", category=inc["Salary"], direction="income"),
            CategoryRule(keyword="electricity", category=exp["Utilities"]),
            CategoryRule(keyword="interest", category=inc["Interest"], direction="income"),
        )
    )
    ledger = SqlLedger(database_url=db_url)
    progress: list[str] = []

    batch = parse_statement(
        _statement(),
        indicator_profile,
        account_id=seeded.account_id,
        rules=rules,
        ledger=ledger,
        on_progress=progress.append,
    )

    # Preamble and the closing-balance footer are not rows.
    assert [tx.row_number for tx in batch] == [4, 5, 6, 7, 8]
    assert batch[0].amount == Decimal("1250.50")
    assert batch[2].amount == Decimal("1999.00")
    assert batch.flagged_rows() == []
    assert progress == ["Staged 5 transaction(s); 0 need review."]

    assert batch.accept_category_hints() == 4
    assert [tx.row_number for tx in batch.pending_rows()] == [7]
    # The uber row has no rule; give it a category the ledger does not know.
    batch.set_category(batch.index_of(7), 9999)
    assert batch.is_ready_to_commit()

    result = commit_statement(batch, ledger, concurrency=2)

    assert result.counts() == {"committed": 4, "failed": 1, "not_dispatched": 0}
    assert [o.row_number for o in result.failed] == [7]
    assert result.outcomes[5].status is CommitStatus.COMMITTED
    assert result.retry_row_numbers() == [7]

    with session_scope(database_url=db_url) as s:
        assert s.execute(select(func.count()).select_from(Expense)).scalar_one() == 2
        assert s.execute(select(func.count()).select_from(Income)).scalar_one() == 2
        salary = s.execute(select(Income).where(Income.transaction_id == "R2")).scalar_one()
        assert salary.amount == Decimal("50000.00")
        assert salary.account_id == seeded.account_id

    # A second parse of the same file sees which rows are already booked.
    again = parse_statement(
        _statement(), indicator_profile, account_id=seeded.account_id, ledger=ledger
    )
    marks = {tx.row_number: tx.duplicate for tx in again}
    assert marks == {
        4: DuplicateWarning.ALREADY_COMMITTED,
        5: DuplicateWarning.ALREADY_COMMITTED,
        6: DuplicateWarning.ALREADY_COMMITTED,
        7: None,
        8: DuplicateWarning.ALREADY_COMMITTED,
    }

    # Retrying just the failed row with a valid category completes the import.
    retry = result.retry_batch(again)
    retry.set_category(0, exp["Transport"])
    assert commit_statement(retry, ledger, concurrency=1).complete
