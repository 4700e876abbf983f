"""Row normalizer: :class:`RawRow` -> :class:`NormalizedTransaction`.

Mapping rules:

- ``date``: parsed with the profile's ``date_format`` or the day-first
  auto-detection in :mod:`statement_import.ingest.cells`. Rows whose date does
  not parse are dropped (footer totals, "Closing balance" lines, blank
  separators) and never reach staging.
- ``description``: cell text with internal whitespace collapsed.
- ``transaction_id``: only when the profile maps that column; numeric ids
  lose a trailing ``.0``.
- ``amount``/``direction``/``review_flag``: from the amount resolver.
- ``category_hint``: first matching keyword rule, when rules are supplied and
  the direction is known.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from .amounts import resolve_amount
from .ingest.cells import parse_date, to_identifier, to_text
from .logging_setup import get_logger
from .models import ColumnRole, FormatProfile, NormalizedTransaction, RawRow
from .rules import CategoryRule, KeywordRules

logger = get_logger("statement_import.normalize")


def normalize_row(
    row: RawRow,
    profile: FormatProfile,
    *,
    rules: KeywordRules | None = None,
) -> NormalizedTransaction | None:
    """Normalize one row, or return ``None`` when its date does not parse."""

    when = parse_date(row.get(ColumnRole.DATE), profile.date_format)
    if when is None:
        return None

    description = to_text(row.get(ColumnRole.DESCRIPTION))
    transaction_id = (
        to_identifier(row.get(ColumnRole.TRANSACTION_ID))
        if profile.transaction_id_column
        else None
    )
    resolution = resolve_amount(row, profile)
    hint = rules.match(description, resolution.direction) if rules else None

    return NormalizedTransaction(
        row_number=row.row_number,
        date=when,
        description=description,
        amount=resolution.amount,
        direction=resolution.direction,
        transaction_id=transaction_id,
        category_hint=hint,
        review_flag=resolution.flag,
    )


def iter_normalized(
    rows: Iterable[RawRow],
    profile: FormatProfile,
    *,
    rules: KeywordRules | Iterable[CategoryRule] | None = None,
) -> Iterator[NormalizedTransaction]:
    """Normalize ``rows`` lazily, dropping rows without a parseable date."""

    compiled = KeywordRules.of(rules)
    dropped = 0
    for row in rows:
        tx = normalize_row(row, profile, rules=compiled)
        if tx is None:
            dropped += 1
            logger.debug("Dropping row %d: date did not parse", row.row_number)
            continue
        yield tx
    if dropped:
        logger.info("Dropped %d row(s) without a parseable date", dropped)


def normalize_rows(
    rows: Iterable[RawRow],
    profile: FormatProfile,
    *,
    rules: KeywordRules | Iterable[CategoryRule] | None = None,
) -> list[NormalizedTransaction]:
    return list(iter_normalized(rows, profile, rules=rules))


__all__ = ["iter_normalized", "normalize_row", "normalize_rows"]
