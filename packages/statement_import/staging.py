"""Staging batch: the reviewable, editable set of rows awaiting commit.

A batch is built once per upload and is the only place rows are mutated
before commit. It is single-writer and unlocked; callers (the CLI review loop
or an HTTP request handler) own it exclusively.

Indexes passed to the editing methods are positions in the current row list,
which shifts after :meth:`StagingBatch.remove_row`. Reports use the row's
``row_number`` (the sheet row) instead, which never changes.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from decimal import Decimal
from typing import Any

from .duplicates import mark_duplicates
from .errors import BatchNotReady
from .ingest.cells import parse_date, to_decimal, to_identifier, to_text
from .logging_setup import get_logger
from .models import Direction, NormalizedTransaction, ReviewFlag, ledger_amount

logger = get_logger("statement_import.staging")

EDITABLE_FIELDS: frozenset[str] = frozenset(
    {"date", "description", "amount", "direction", "transaction_id"}
)


def _coerce_direction(value: Any) -> Direction:
    if isinstance(value, Direction):
        return value
    try:
        return Direction(str(value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"direction must be 'income' or 'expense', got {value!r}") from exc


def _coerce_amount(value: Any) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError as exc:
        raise ValueError(f"amount is not a number: {value!r}") from exc
    if amount is None or ledger_amount(amount) <= 0:
        raise ValueError(f"amount must be at least 0.01, got {value!r}")
    return amount


def _flag_for(tx: NormalizedTransaction) -> ReviewFlag | None:
    if tx.amount is None:
        return ReviewFlag.MISSING_AMOUNT
    if tx.direction is None:
        return ReviewFlag.AMBIGUOUS_DIRECTION
    return None


class StagingBatch:
    """Ordered rows for one account plus the editing operations on them.

    Parameters
    ----------
    rows:
        Normalized rows in sheet order.
    account_id:
        Ledger account every row will be booked against; may be ``None`` for a
        preview-only parse, but such a batch cannot be committed.
    bank_name:
        Label of the profile used to parse the rows (display only).
    date_format:
        The profile's explicit date format, reused when a user edits a date.
    committed_ids:
        Transaction ids already present in the ledger for ``account_id``; kept
        so duplicate warnings can be recomputed after id edits.
    """

    def __init__(
        self,
        rows: Iterable[NormalizedTransaction],
        *,
        account_id: int | None,
        bank_name: str | None = None,
        date_format: str | None = None,
        committed_ids: Iterable[str] = (),
    ) -> None:
        self._rows: list[NormalizedTransaction] = list(rows)
        self.account_id = account_id
        self.bank_name = bank_name
        self.date_format = date_format
        self._committed_ids: set[str] = set(committed_ids)

    # -- sequence protocol ------------------------------------------------

    @property
    def rows(self) -> Sequence[NormalizedTransaction]:
        return tuple(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[NormalizedTransaction]:
        return iter(tuple(self._rows))

    def __getitem__(self, index: int) -> NormalizedTransaction:
        return self._row(index)

    def _row(self, index: int) -> NormalizedTransaction:
        if isinstance(index, bool) or not isinstance(index, int):
            raise TypeError("row index must be an int")
        if not 0 <= index < len(self._rows):
            raise IndexError(f"row index {index} out of range (batch has {len(self._rows)} rows)")
        return self._rows[index]

    def index_of(self, row_number: int) -> int:
        """Return the current position of the row with sheet ``row_number``."""

        for i, tx in enumerate(self._rows):
            if tx.row_number == row_number:
                return i
        raise KeyError(row_number)

    # -- editing ----------------------------------------------------------

    def set_category(self, index: int, category: int | None) -> None:
        tx = self._row(index)
        if category is not None and (isinstance(category, bool) or not isinstance(category, int)):
            raise TypeError("category must be an int id or None")
        tx.category = category

    def set_note(self, index: int, note: str | None) -> None:
        tx = self._row(index)
        text = note.strip() if note is not None else ""
        tx.note = text or None

    def edit_field(self, index: int, field: str, value: Any) -> None:
        """Correct one field of a staged row.

        After the edit the row's review flag is recomputed: it is cleared once
        both amount and direction are known, otherwise it reports what is still
        missing (``missing_amount`` first). A direction change clears the
        row's category and hint, since income sources and expense categories
        are separate id spaces.

        Raises
        ------
        ValueError
            Unknown ``field`` or a value that does not validate.
        """

        tx = self._row(index)
        if field not in EDITABLE_FIELDS:
            raise ValueError(
                f"field {field!r} is not editable; expected one of {sorted(EDITABLE_FIELDS)}"
            )

        if field == "date":
            when = parse_date(value, self.date_format)
            if when is None:
                raise ValueError(f"date does not parse: {value!r}")
            tx.date = when
        elif field == "description":
            tx.description = to_text(value)
        elif field == "amount":
            tx.amount = _coerce_amount(value)
        elif field == "direction":
            direction = _coerce_direction(value)
            if direction != tx.direction:
                tx.category = None
                tx.category_hint = None
            tx.direction = direction
        elif field == "transaction_id":
            tx.transaction_id = to_identifier(value)
            mark_duplicates(self._rows, self._committed_ids)

        tx.review_flag = _flag_for(tx)
        logger.debug("Row %d: %s edited", tx.row_number, field)

    def remove_row(self, index: int) -> NormalizedTransaction:
        tx = self._row(index)
        del self._rows[index]
        if tx.transaction_id:
            mark_duplicates(self._rows, self._committed_ids)
        logger.debug("Row %d removed from batch", tx.row_number)
        return tx

    def accept_category_hints(self) -> int:
        """Copy ``category_hint`` into rows that have no category yet."""

        applied = 0
        for tx in self._rows:
            if tx.category is None and tx.category_hint is not None:
                tx.category = tx.category_hint
                applied += 1
        return applied

    # -- readiness --------------------------------------------------------

    def pending_rows(self) -> list[NormalizedTransaction]:
        """Rows that still carry a review flag or lack a category."""

        return [tx for tx in self._rows if tx.needs_review]

    def is_ready_to_commit(self) -> bool:
        return not any(tx.needs_review for tx in self._rows)

    def ensure_ready(self) -> None:
        pending = self.pending_rows()
        if pending:
            raise BatchNotReady(tx.row_number for tx in pending)

    def flagged_rows(self) -> list[NormalizedTransaction]:
        return [tx for tx in self._rows if tx.review_flag is not None]

    def subset(self, row_numbers: Iterable[int]) -> StagingBatch:
        """Return a new batch with only the rows whose sheet numbers are given."""

        wanted = set(row_numbers)
        return StagingBatch(
            (tx for tx in self._rows if tx.row_number in wanted),
            account_id=self.account_id,
            bank_name=self.bank_name,
            date_format=self.date_format,
            committed_ids=self._committed_ids,
        )


__all__ = ["EDITABLE_FIELDS", "StagingBatch"]
