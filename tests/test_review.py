from datetime import date
from decimal import Decimal

from statement_import.models import Direction, NormalizedTransaction, ReviewFlag
from statement_import.review import fmt_row, review_batch
from statement_import.staging import StagingBatch
from statement_import.term_ui import SKIP_SENTINEL

CATEGORIES = {
    Direction.EXPENSE: [(1, "Groceries"), (2, "Dining Out")],
    Direction.INCOME: [(10, "Salary"), (11, "Interest")],
}


def _tx(n, **kw):
    base = dict(
        row_number=n,
        date=date(2024, 3, 1),
        description=f"row {n}",
        amount=Decimal("10"),
        direction=Direction.EXPENSE,
    )
    base.update(kw)
    return NormalizedTransaction(**base)


class _Script:
    """Replays canned answers and records what each prompt was offered."""

    def __init__(self, answers):
        self.answers = list(answers)
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)
        return self.answers.pop(0)


def test_review_resolves_flags_and_categories():
    batch = StagingBatch(
        [
            _tx(2, category_hint=1),
            _tx(3, direction=None, review_flag=ReviewFlag.AMBIGUOUS_DIRECTION),
            _tx(4, amount=None, direction=None, review_flag=ReviewFlag.MISSING_AMOUNT),
            _tx(5, category=2),
        ],
        account_id=1,
    )
    selector = _Script(["Groceries", "salary", SKIP_SENTINEL])
    directions = _Script([Direction.INCOME, Direction.EXPENSE])
    amounts = _Script([Decimal("42")])
    printed = []

    summary = review_batch(
        batch,
        categories=CATEGORIES,
        selector=selector,
        direction_fn=directions,
        amount_fn=amounts,
        print_fn=printed.append,
    )

    assert summary.reviewed == 3
    assert summary.removed == (4,)
    assert summary.unresolved == ()
    assert batch.is_ready_to_commit()
    assert [(t.row_number, t.direction, t.category) for t in batch] == [
        (2, Direction.EXPENSE, 1),
        (3, Direction.INCOME, 10),
        (5, Direction.EXPENSE, 2),
    ]
    # The hint is offered as the default; rows without a hint start empty.
    assert selector.calls[0] == (["Groceries", "Dining Out"], "Groceries")
    assert selector.calls[1] == (["Salary", "Interest"], "")
    assert amounts.calls == [(None,)]
    assert any("Row 4 removed" in line for line in printed)


def test_unknown_category_is_prompted_again():
    batch = StagingBatch([_tx(2)], account_id=1)
    selector = _Script(["Nope", "dining out"])
    printed = []
    review_batch(batch, categories=CATEGORIES, selector=selector, print_fn=printed.append)
    assert batch[0].category == 2
    assert len(selector.calls) == 2
    assert any("Unknown expense category" in line for line in printed)


def test_rows_without_choices_stay_unresolved():
    batch = StagingBatch([_tx(2, direction=Direction.INCOME)], account_id=1)
    summary = review_batch(
        batch,
        categories={Direction.EXPENSE: CATEGORIES[Direction.EXPENSE]},
        selector=_Script([]),
        print_fn=lambda *_: None,
    )
    assert summary.unresolved == (2,)
    assert not batch.is_ready_to_commit()


def test_empty_batch_prints_and_returns():
    printed = []
    summary = review_batch(
        StagingBatch([], account_id=1), categories=CATEGORIES, print_fn=printed.append
    )
    assert summary.reviewed == 0
    assert printed == ["No transactions to review."]


def test_fmt_row_shows_flags_and_duplicates():
    line = fmt_row(_tx(7, amount=None, direction=None, review_flag=ReviewFlag.MISSING_AMOUNT))
    assert line.startswith("row 7\t2024-03-01\t?\t?")
    assert "missing_amount" in line
    assert "1,234.50" in fmt_row(_tx(8, amount=Decimal("1234.5")))
