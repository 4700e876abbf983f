"""Amount resolver: derive an unsigned amount and a direction for one row.

Banks encode money movement in one of three ways (see :class:`AmountScheme`).
Whatever the encoding, the result is the same shape: an unsigned positive
amount, an income/expense direction, or a review flag explaining why either
could not be decided. Resolution never raises on bad cell content; a row that
cannot be interpreted is flagged for review instead.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .ingest.cells import to_decimal, to_text
from .models import (
    AmountScheme,
    ColumnRole,
    Direction,
    FormatProfile,
    RawRow,
    ReviewFlag,
    ledger_amount,
)

_ZERO = Decimal(0)
_DIGIT_RE = re.compile(r"\d")


@dataclass(frozen=True, slots=True)
class AmountResolution:
    """Outcome of resolving one row.

    ``flag`` is ``None`` exactly when both ``amount`` (> 0) and ``direction``
    are set.
    """

    amount: Decimal | None
    direction: Direction | None
    flag: ReviewFlag | None = None

    @classmethod
    def missing_amount(cls) -> AmountResolution:
        return cls(None, None, ReviewFlag.MISSING_AMOUNT)

    @classmethod
    def ambiguous(cls, amount: Decimal | None = None) -> AmountResolution:
        return cls(amount, None, ReviewFlag.AMBIGUOUS_DIRECTION)


def _abs_amount(value: Any) -> Decimal | None:
    """Absolute value of a cell; ``None`` when blank or not a number."""

    try:
        d = to_decimal(value)
    except ValueError:
        return None
    return abs(d) if d is not None else None


def _debit_credit_cell(value: Any) -> Decimal | None:
    """Parse one side of a debit/credit pair.

    Exports often fill the unused side with a dash or similar placeholder; text
    without any digit counts as blank. Malformed numbers still raise.
    """

    if isinstance(value, str) and not _DIGIT_RE.search(value):
        return None
    return to_decimal(value)


def resolve_separate_debit_credit(row: RawRow) -> AmountResolution:
    try:
        debit = _debit_credit_cell(row.get(ColumnRole.DEBIT))
        credit = _debit_credit_cell(row.get(ColumnRole.CREDIT))
    except ValueError:
        return AmountResolution.missing_amount()
    debit = abs(debit) if debit is not None else _ZERO
    credit = abs(credit) if credit is not None else _ZERO
    # Sub-cent values would be stored as zero, so they count as zero here.
    has_debit = ledger_amount(debit) > _ZERO
    has_credit = ledger_amount(credit) > _ZERO

    if has_debit and not has_credit:
        return AmountResolution(debit, Direction.EXPENSE)
    if has_credit and not has_debit:
        return AmountResolution(credit, Direction.INCOME)
    return AmountResolution.ambiguous()


def indicator_matches(indicator: str, token: str) -> bool:
    """Return True when ``indicator`` carries ``token``.

    Both sides are compared trimmed and case-insensitively. Tokens of two or
    more characters also match as substrings (``"CR"`` matches ``"CR."`` and
    ``"BY CR"``); single-character tokens must match exactly so that ``"C"``
    does not match every indicator containing a C.
    """

    ind = indicator.strip().casefold()
    tok = token.strip().casefold()
    if not ind or not tok:
        return False
    return ind == tok or (len(tok) >= 2 and tok in ind)


def _direction_from_matches(is_debit: bool, is_credit: bool) -> Direction | None:
    if is_debit == is_credit:
        return None
    return Direction.EXPENSE if is_debit else Direction.INCOME


def resolve_amount_with_indicator(
    row: RawRow, debit_tokens: Iterable[str], credit_tokens: Iterable[str]
) -> AmountResolution:
    amount = _abs_amount(row.get(ColumnRole.AMOUNT))
    if amount is None or ledger_amount(amount) == _ZERO:
        return AmountResolution.missing_amount()

    indicator = to_text(row.get(ColumnRole.INDICATOR))
    is_debit = any(indicator_matches(indicator, t) for t in debit_tokens)
    is_credit = any(indicator_matches(indicator, t) for t in credit_tokens)
    direction = _direction_from_matches(is_debit, is_credit)
    if direction is None:
        return AmountResolution.ambiguous(amount)
    return AmountResolution(amount, direction)


def resolve_amount_with_tokens(
    row: RawRow, debit_tokens: Iterable[str], credit_tokens: Iterable[str]
) -> AmountResolution:
    amount = _abs_amount(row.get(ColumnRole.AMOUNT))
    if amount is None or ledger_amount(amount) == _ZERO:
        return AmountResolution.missing_amount()

    text = to_text(row.get(ColumnRole.DESCRIPTION)).casefold()
    is_debit = any(t.casefold() in text for t in debit_tokens if t.strip())
    is_credit = any(t.casefold() in text for t in credit_tokens if t.strip())
    direction = _direction_from_matches(is_debit, is_credit)
    if direction is None:
        return AmountResolution.ambiguous(amount)
    return AmountResolution(amount, direction)


def resolve_amount(row: RawRow, profile: FormatProfile) -> AmountResolution:
    """Resolve ``row`` according to ``profile.amount_scheme``."""

    match profile.amount_scheme:
        case AmountScheme.SEPARATE_DEBIT_CREDIT:
            return resolve_separate_debit_credit(row)
        case AmountScheme.SINGLE_AMOUNT_WITH_INDICATOR:
            return resolve_amount_with_indicator(
                row, profile.debit_tokens, profile.credit_tokens
            )
        case AmountScheme.SINGLE_AMOUNT_WITH_TOKENS:
            return resolve_amount_with_tokens(row, profile.debit_tokens, profile.credit_tokens)
    raise ValueError(f"unsupported amount scheme: {profile.amount_scheme!r}")


__all__ = [
    "AmountResolution",
    "indicator_matches",
    "resolve_amount",
    "resolve_amount_with_indicator",
    "resolve_amount_with_tokens",
    "resolve_separate_debit_credit",
]
