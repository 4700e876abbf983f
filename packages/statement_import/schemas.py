"""Versioned request/response envelopes for the HTTP surface.

Every response body is a single explicit shape carrying ``"version": 1``;
clients never have to guess between alternative layouts. Amounts travel as
decimal strings to avoid float rounding.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .commit import BatchResult, CommitStatus, RowOutcome
from .models import (
    AmountScheme,
    Direction,
    DuplicateWarning,
    FormatProfile,
    NormalizedTransaction,
    ReviewFlag,
    ledger_amount,
)
from .staging import StagingBatch

ENVELOPE_VERSION: Literal[1] = 1

# Older clients post this value for the single-amount + Dr/Cr column layout.
_SCHEME_ALIASES: dict[str, AmountScheme] = {
    "drcr_with_amount": AmountScheme.SINGLE_AMOUNT_WITH_INDICATOR,
}


def resolve_scheme(value: str | None) -> AmountScheme | str | None:
    """Map a submitted ``amount_format_type`` to a scheme, honouring aliases.

    Unknown values are returned unchanged so that model validation reports
    them.
    """

    if value is None or not value.strip():
        return None
    key = value.strip().lower()
    return _SCHEME_ALIASES.get(key, key)


def profile_from_form(
    *,
    bank_name: str = "",
    date_col: str = "",
    desc_col: str = "",
    amount_format_type: str = "",
    debit_col: str = "",
    credit_col: str = "",
    amount_col: str = "",
    drcr_col: str = "",
    debit_texts: str = "",
    credit_texts: str = "",
    trans_id_col: str = "",
    date_format: str = "",
) -> FormatProfile:
    """Build a profile from the multipart parse form (unused fields sent empty)."""

    return FormatProfile(
        bank_name=bank_name,
        date_column=date_col,
        description_column=desc_col,
        amount_scheme=resolve_scheme(amount_format_type),
        debit_column=debit_col,
        credit_column=credit_col,
        amount_column=amount_col,
        indicator_column=drcr_col,
        debit_tokens=debit_texts,
        credit_tokens=credit_texts,
        transaction_id_column=trans_id_col,
        date_format=date_format,
    )


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TransactionOut(BaseModel):
    row_number: int
    date: dt.date
    description: str
    amount: Decimal | None
    direction: Direction | None
    transaction_id: str | None
    category: int | None
    category_hint: int | None
    note: str | None
    review_flag: ReviewFlag | None
    duplicate: DuplicateWarning | None

    @classmethod
    def from_row(cls, tx: NormalizedTransaction) -> TransactionOut:
        return cls(
            row_number=tx.row_number,
            date=tx.date,
            description=tx.description,
            amount=tx.amount,
            direction=tx.direction,
            transaction_id=tx.transaction_id,
            category=tx.category,
            category_hint=tx.category_hint,
            note=tx.note,
            review_flag=tx.review_flag,
            duplicate=tx.duplicate,
        )


class ParseResponse(BaseModel):
    version: Literal[1] = ENVELOPE_VERSION
    bank_name: str | None
    account_id: int | None
    count: int
    flagged: int
    ready: bool
    transactions: list[TransactionOut]

    @classmethod
    def from_batch(cls, batch: StagingBatch) -> ParseResponse:
        return cls(
            bank_name=batch.bank_name,
            account_id=batch.account_id,
            count=len(batch),
            flagged=len(batch.flagged_rows()),
            ready=batch.is_ready_to_commit(),
            transactions=[TransactionOut.from_row(tx) for tx in batch],
        )


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------


class CommitRow(BaseModel):
    """A reviewed row as sent back by the client.

    The review flag is not accepted from the client; it is recomputed from
    ``amount`` and ``direction`` so a row cannot be marked resolved without
    actually being resolved.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    row_number: int = Field(ge=1)
    date: dt.date
    description: str = ""
    amount: Decimal | None = None
    direction: Direction | None = None
    transaction_id: str | None = None
    category: int | None = None
    note: str | None = None

    @field_validator("amount")
    @classmethod
    def _amount_positive(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and ledger_amount(v) <= 0:
            raise ValueError("amount must be at least 0.01")
        return v

    @field_validator("transaction_id", "note")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        return v or None

    def to_row(self) -> NormalizedTransaction:
        if self.amount is None:
            flag: ReviewFlag | None = ReviewFlag.MISSING_AMOUNT
        elif self.direction is None:
            flag = ReviewFlag.AMBIGUOUS_DIRECTION
        else:
            flag = None
        return NormalizedTransaction(
            row_number=self.row_number,
            date=self.date,
            description=self.description,
            amount=self.amount,
            direction=self.direction,
            transaction_id=self.transaction_id,
            category=self.category,
            note=self.note,
            review_flag=flag,
        )


class CommitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    account_id: int
    rows: list[CommitRow] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_row_numbers(self) -> CommitRequest:
        seen: set[int] = set()
        for r in self.rows:
            if r.row_number in seen:
                raise ValueError(f"row_number {r.row_number} appears more than once")
            seen.add(r.row_number)
        return self

    def to_batch(self) -> StagingBatch:
        return StagingBatch((r.to_row() for r in self.rows), account_id=self.account_id)


class RowOutcomeOut(BaseModel):
    row_number: int
    status: CommitStatus
    direction: Direction | None
    ledger_id: int | None
    reason: str | None

    @classmethod
    def from_outcome(cls, o: RowOutcome) -> RowOutcomeOut:
        return cls(
            row_number=o.row_number,
            status=o.status,
            direction=o.direction,
            ledger_id=o.ledger_id,
            reason=o.reason,
        )


class CommitResponse(BaseModel):
    version: Literal[1] = ENVELOPE_VERSION
    committed: int
    failed: int
    not_dispatched: int
    outcomes: list[RowOutcomeOut]
    retry_rows: list[int]

    @classmethod
    def from_result(cls, result: BatchResult) -> CommitResponse:
        counts = result.counts()
        return cls(
            committed=counts[CommitStatus.COMMITTED.value],
            failed=counts[CommitStatus.FAILED.value],
            not_dispatched=counts[CommitStatus.NOT_DISPATCHED.value],
            outcomes=[RowOutcomeOut.from_outcome(o) for o in result.outcomes.values()],
            retry_rows=result.retry_row_numbers(),
        )


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class ProfileResponse(BaseModel):
    version: Literal[1] = ENVELOPE_VERSION
    profile: FormatProfile


class ProfileListResponse(BaseModel):
    version: Literal[1] = ENVELOPE_VERSION
    count: int
    profiles: list[FormatProfile]


__all__ = [
    "CommitRequest",
    "CommitResponse",
    "CommitRow",
    "ENVELOPE_VERSION",
    "ParseResponse",
    "ProfileListResponse",
    "ProfileResponse",
    "TransactionOut",
    "profile_from_form",
    "resolve_scheme",
]
