from datetime import date
from decimal import Decimal

from statement_import.duplicates import batch_transaction_ids, mark_duplicates
from statement_import.models import Direction, DuplicateWarning, NormalizedTransaction


def _tx(n, tid):
    return NormalizedTransaction(
        row_number=n,
        date=date(2024, 1, 1),
        description="x",
        amount=Decimal("1"),
        direction=Direction.EXPENSE,
        transaction_id=tid,
    )


def test_in_batch_and_committed_warnings():
    rows = [_tx(2, "A"), _tx(3, "A"), _tx(4, "B"), _tx(5, None), _tx(6, "C"), _tx(7, "C")]
    marked = mark_duplicates(rows, committed_ids={"C", "Z"})
    assert marked == 4
    assert [r.duplicate for r in rows] == [
        DuplicateWarning.DUPLICATE_IN_BATCH,
        DuplicateWarning.DUPLICATE_IN_BATCH,
        None,
        None,
        # Already-committed takes precedence over the in-batch repeat.
        DuplicateWarning.ALREADY_COMMITTED,
        DuplicateWarning.ALREADY_COMMITTED,
    ]


def test_rows_without_ids_never_warn():
    rows = [_tx(2, None), _tx(3, None)]
    assert mark_duplicates(rows) == 0
    assert all(r.duplicate is None for r in rows)


def test_batch_transaction_ids_skips_blanks():
    assert batch_transaction_ids([_tx(2, "A"), _tx(3, None), _tx(4, "A")]) == {"A"}
