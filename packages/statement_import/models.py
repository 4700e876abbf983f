"""Data models for statement imports.

Two families live here:

- :class:`FormatProfile` is a pydantic model because it crosses process
  boundaries (JSON file, SQL row, HTTP form/JSON) and needs input coercion.
- Row-level values (:class:`RawRow`, :class:`NormalizedTransaction`) are plain
  dataclasses. ``RawRow`` is frozen; ``NormalizedTransaction`` is mutable
  because the staging batch edits it in place during review.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import InvalidFormatProfile

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class AmountScheme(StrEnum):
    """How a bank encodes amount and direction in its export."""

    SEPARATE_DEBIT_CREDIT = "separate_debit_credit"
    SINGLE_AMOUNT_WITH_INDICATOR = "single_amount_with_indicator"
    SINGLE_AMOUNT_WITH_TOKENS = "single_amount_with_tokens"


class Direction(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"


class ReviewFlag(StrEnum):
    """Marks a staged row that cannot be committed until a user resolves it."""

    AMBIGUOUS_DIRECTION = "ambiguous_direction"
    MISSING_AMOUNT = "missing_amount"


class DuplicateWarning(StrEnum):
    """Non-blocking notice that a transaction id was seen before."""

    DUPLICATE_IN_BATCH = "duplicate_in_batch"
    ALREADY_COMMITTED = "already_committed"


class ColumnRole(StrEnum):
    """The semantic role a mapped column plays for the normalizer."""

    DATE = "date"
    DESCRIPTION = "description"
    DEBIT = "debit"
    CREDIT = "credit"
    AMOUNT = "amount"
    INDICATOR = "indicator"
    TRANSACTION_ID = "transaction_id"


# Ledger amounts carry two decimal places.
AMOUNT_QUANTUM = Decimal("0.01")


def ledger_amount(value: Decimal) -> Decimal:
    """Round ``value`` to the precision the ledger stores (half up)."""

    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Column references
# ---------------------------------------------------------------------------

_WS_RE = re.compile(r"\s+")
_TOKEN_SPLIT_RE = re.compile(r"[,;|\n\r]+")


def normalize_label(value: Any) -> str:
    """Return the comparison key for a header label or column reference.

    Labels compare case-insensitively after trimming and collapsing internal
    whitespace, so ``"  Txn   Date "`` matches ``"txn date"``.
    """

    if value is None:
        return ""
    return _WS_RE.sub(" ", str(value)).strip().casefold()


def split_tokens(value: str | Sequence[str] | None) -> list[str]:
    """Split a delimited token string (or sequence) into trimmed unique tokens.

    Order of first appearance is preserved; duplicates compare
    case-insensitively.
    """

    if value is None:
        return []
    if isinstance(value, str):
        parts: Sequence[Any] = _TOKEN_SPLIT_RE.split(value)
    else:
        parts = value
    seen: set[str] = set()
    out: list[str] = []
    for part in parts:
        if part is None:
            continue
        token = _WS_RE.sub(" ", str(part)).strip()
        key = token.casefold()
        if not token or key in seen:
            continue
        seen.add(key)
        out.append(token)
    return out


# ---------------------------------------------------------------------------
# Format profile
# ---------------------------------------------------------------------------

# Scheme-specific requirements on top of bank_name/date_column/description_column.
_SCHEME_REQUIRED: dict[AmountScheme, tuple[str, ...]] = {
    AmountScheme.SEPARATE_DEBIT_CREDIT: ("debit_column", "credit_column"),
    AmountScheme.SINGLE_AMOUNT_WITH_INDICATOR: (
        "amount_column",
        "indicator_column",
        "debit_tokens",
        "credit_tokens",
    ),
    AmountScheme.SINGLE_AMOUNT_WITH_TOKENS: ("amount_column", "debit_tokens", "credit_tokens"),
}

_BASE_REQUIRED: tuple[str, ...] = ("bank_name", "date_column", "description_column")


class FormatProfile(BaseModel):
    """A reusable column-mapping recipe for one bank's statement export.

    Every field may be absent at construction time so that an incomplete
    profile is reported as a single
    :class:`~statement_import.errors.InvalidFormatProfile` listing all missing
    fields, rather than failing on the first one. Call :meth:`ensure_valid`
    before using a profile.

    Notes
    -----
    - Blank strings are normalized to ``None``.
    - Token lists accept a delimited string (``,``, ``;``, ``|`` or newline) or
      a sequence of strings.
    - ``date_format`` is an optional ``strptime`` pattern; without it dates are
      auto-detected with day-first precedence.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    id: str | None = None
    bank_name: str | None = None
    date_column: str | None = None
    description_column: str | None = None
    amount_scheme: AmountScheme | None = None
    debit_column: str | None = None
    credit_column: str | None = None
    amount_column: str | None = None
    indicator_column: str | None = None
    debit_tokens: list[str] = []
    credit_tokens: list[str] = []
    transaction_id_column: str | None = None
    date_format: str | None = None

    @field_validator(
        "id",
        "bank_name",
        "date_column",
        "description_column",
        "debit_column",
        "credit_column",
        "amount_column",
        "indicator_column",
        "transaction_id_column",
        "date_format",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if v is None:
            return None
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = str(v)
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("amount_scheme", mode="before")
    @classmethod
    def _blank_scheme(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("debit_tokens", "credit_tokens", mode="before")
    @classmethod
    def _coerce_tokens(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, (str, list, tuple)):
            return split_tokens(v)
        raise ValueError("tokens must be a delimited string or a list of strings")

    # -- validation -------------------------------------------------------

    def missing_fields(self) -> list[str]:
        """Return the names of required fields that are absent or empty."""

        missing = [name for name in _BASE_REQUIRED if not getattr(self, name)]
        if self.amount_scheme is None:
            missing.append("amount_scheme")
            return missing
        missing.extend(
            name for name in _SCHEME_REQUIRED[self.amount_scheme] if not getattr(self, name)
        )
        return missing

    def ensure_valid(self) -> FormatProfile:
        missing = self.missing_fields()
        if missing:
            raise InvalidFormatProfile(missing)
        return self

    # -- column mapping ---------------------------------------------------

    def mapped_columns(self) -> dict[ColumnRole, str]:
        """Return ``role -> header label`` for every column the scheme reads.

        Columns that the selected scheme ignores are left out even when set, so
        a stale ``debit_column`` on an indicator profile cannot cause a
        ``MissingColumns`` failure.
        """

        cols: dict[ColumnRole, str] = {}
        if self.date_column:
            cols[ColumnRole.DATE] = self.date_column
        if self.description_column:
            cols[ColumnRole.DESCRIPTION] = self.description_column
        scheme = self.amount_scheme
        if scheme is AmountScheme.SEPARATE_DEBIT_CREDIT:
            if self.debit_column:
                cols[ColumnRole.DEBIT] = self.debit_column
            if self.credit_column:
                cols[ColumnRole.CREDIT] = self.credit_column
        elif scheme is not None:
            if self.amount_column:
                cols[ColumnRole.AMOUNT] = self.amount_column
            if scheme is AmountScheme.SINGLE_AMOUNT_WITH_INDICATOR and self.indicator_column:
                cols[ColumnRole.INDICATOR] = self.indicator_column
        if self.transaction_id_column:
            cols[ColumnRole.TRANSACTION_ID] = self.transaction_id_column
        return cols

    def without_id(self) -> FormatProfile:
        return self.model_copy(update={"id": None})


# ---------------------------------------------------------------------------
# Row values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawRow:
    """One data row read from the sheet, keyed by column role.

    ``row_number`` is the 1-based physical row in the worksheet (or line in a
    delimited file) and identifies the row in every downstream report.
    """

    row_number: int
    cells: Mapping[ColumnRole, Any]

    def get(self, role: ColumnRole) -> Any:
        return self.cells.get(role)


@dataclass(slots=True)
class NormalizedTransaction:
    """A candidate ledger entry derived from one sheet row.

    ``amount`` is always unsigned and positive when present. A row without a
    ``review_flag`` always has both ``amount`` and ``direction``. ``category``
    refers to an expense category id for expenses and an income source id for
    income.
    """

    row_number: int
    date: date
    description: str
    amount: Decimal | None
    direction: Direction | None
    transaction_id: str | None = None
    category: int | None = None
    category_hint: int | None = None
    note: str | None = None
    review_flag: ReviewFlag | None = None
    duplicate: DuplicateWarning | None = None

    @property
    def needs_review(self) -> bool:
        return self.review_flag is not None or self.category is None


__all__ = [
    "AMOUNT_QUANTUM",
    "AmountScheme",
    "ColumnRole",
    "Direction",
    "DuplicateWarning",
    "FormatProfile",
    "NormalizedTransaction",
    "RawRow",
    "ReviewFlag",
    "ledger_amount",
    "normalize_label",
    "split_tokens",
]
