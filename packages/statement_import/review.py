"""Interactive review of a staged batch before commit.

For each row that still needs attention the operator sees a one-line summary
and is asked only what is missing:

- ``missing_amount``: the amount.
- ``ambiguous_direction``: income or expense.
- no category: a category (expense) or income source (income), with the
  keyword-rule hint pre-filled. Choosing the skip entry removes the row from
  the batch.

Every change goes through :class:`~statement_import.staging.StagingBatch`, so
the same invariants hold as for HTTP clients.
"""

from __future__ import annotations

import builtins
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from prompt_toolkit import PromptSession

from .models import Direction, NormalizedTransaction, ReviewFlag
from .staging import StagingBatch
from .term_ui import SKIP_SENTINEL, prompt_amount, prompt_direction, prompt_text, select_category

type CategoryChoices = Mapping[Direction, Sequence[tuple[int, str]]]

# Upper bound on re-prompts for an unknown category name before giving up on a row.
_MAX_ATTEMPTS = 5


@dataclass(frozen=True, slots=True)
class ReviewSummary:
    reviewed: int
    removed: tuple[int, ...]
    unresolved: tuple[int, ...]


# ----------------------------------------------------------------------------
# Presentation helpers
# ----------------------------------------------------------------------------


def _fmt_amount(value: Decimal | None) -> str:
    if value is None:
        return "?"
    return f"{value:,.2f}"


def fmt_row(tx: NormalizedTransaction) -> str:
    direction = tx.direction.value if tx.direction else "?"
    marks = []
    if tx.review_flag is not None:
        marks.append(tx.review_flag.value)
    if tx.duplicate is not None:
        marks.append(tx.duplicate.value)
    tail = f"  [{', '.join(marks)}]" if marks else ""
    return (
        f"row {tx.row_number}\t{tx.date.isoformat()}\t{_fmt_amount(tx.amount)}\t"
        f"{direction}\t{tx.description[:60]}\t{tx.transaction_id or ''}{tail}"
    )


def _names_by_id(choices: Iterable[tuple[int, str]]) -> dict[int, str]:
    return {cid: name for cid, name in choices}


def _id_for_name(choices: Iterable[tuple[int, str]], name: str) -> int | None:
    lower = name.strip().lower()
    for cid, n in choices:
        if n.lower() == lower:
            return cid
    return None


# ----------------------------------------------------------------------------
# Review loop
# ----------------------------------------------------------------------------


def review_batch(
    batch: StagingBatch,
    *,
    categories: CategoryChoices,
    session: PromptSession | None = None,
    print_fn: Callable[..., None] = builtins.print,
    selector: Callable[[Sequence[str], str], str] | None = None,
    direction_fn: Callable[[Direction | None], Direction] | None = None,
    amount_fn: Callable[[Decimal | None], Decimal] | None = None,
    ask_notes: bool = False,
) -> ReviewSummary:
    """Walk the batch and resolve every row that blocks commit.

    Parameters
    ----------
    categories:
        ``(id, name)`` choices per direction: expense categories under
        ``Direction.EXPENSE`` and income sources under ``Direction.INCOME``.
    session:
        Optional prompt_toolkit session whose input/output are reused by the
        default prompts (tests pass a pipe-backed session).
    selector / direction_fn / amount_fn:
        Optional injection points replacing the interactive prompts. The
        selector receives ``(names, default_name)`` and returns a name.
    ask_notes:
        When True, offer an optional free-text note for each reviewed row.

    Returns
    -------
    ReviewSummary
        Sheet row numbers removed by the operator and rows still unresolved.
    """

    if len(batch) == 0:
        print_fn("No transactions to review.")
        return ReviewSummary(0, (), ())

    def _select(names: Sequence[str], default: str) -> str:
        if selector is not None:
            return selector(names, default)
        return select_category(names, default=default, session=session, allow_skip=True)

    def _direction(default: Direction | None) -> Direction:
        if direction_fn is not None:
            return direction_fn(default)
        return prompt_direction(default=default, session=session)

    def _amount(default: Decimal | None) -> Decimal:
        if amount_fn is not None:
            return amount_fn(default)
        return prompt_amount(default=default, session=session)

    pending = [tx.row_number for tx in batch.pending_rows()]
    print_fn(f"{len(pending)} of {len(batch)} row(s) need review.")
    removed: list[int] = []
    reviewed = 0

    for row_number in pending:
        index = batch.index_of(row_number)
        tx = batch[index]
        print_fn(fmt_row(tx))
        reviewed += 1

        if tx.review_flag is ReviewFlag.MISSING_AMOUNT or tx.amount is None:
            batch.edit_field(index, "amount", _amount(tx.amount))
        if tx.direction is None:
            batch.edit_field(index, "direction", _direction(None))

        if tx.category is None and tx.direction is not None:
            choices = list(categories.get(tx.direction, ()))
            if not choices:
                print_fn(f"  No {tx.direction.value} categories available; row left unresolved.")
                continue
            names = [n for _, n in choices]
            default = _names_by_id(choices).get(tx.category_hint or -1, "")
            for _ in range(_MAX_ATTEMPTS):
                picked = _select(names, default)
                if picked == SKIP_SENTINEL:
                    batch.remove_row(index)
                    removed.append(row_number)
                    print_fn(f"  Row {row_number} removed from the import.")
                    break
                cid = _id_for_name(choices, picked)
                if cid is not None:
                    batch.set_category(index, cid)
                    break
                print_fn(f"  Unknown {tx.direction.value} category: {picked!r}")

        if ask_notes and row_number not in removed:
            note = prompt_text("Note (optional): ", default=tx.note or "", session=session)
            batch.set_note(index, note)

    unresolved = tuple(tx.row_number for tx in batch.pending_rows())
    return ReviewSummary(reviewed, tuple(removed), unresolved)


__all__ = ["CategoryChoices", "ReviewSummary", "fmt_row", "review_batch"]
