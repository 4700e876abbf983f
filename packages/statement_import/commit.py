"""Bulk committer: write a reviewed batch to the ledger, one request per row.

Rows are dispatched concurrently with a bounded in-flight limit and each row
settles independently. There is no rollback: a batch can end partially
committed, and :class:`BatchResult` reports exactly which rows landed, which
failed (with the reason) and which were never sent because the caller
cancelled. :meth:`BatchResult.retry_batch` turns the leftovers into a new
batch for another attempt.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum

from .config import resolve_concurrency
from .errors import PersistenceFailure
from .ledger import LedgerClient, LedgerEntry
from .logging_setup import get_logger
from .models import Direction
from .pmap import p_map_settled
from .staging import StagingBatch

logger = get_logger("statement_import.commit")


class CommitStatus(StrEnum):
    COMMITTED = "committed"
    FAILED = "failed"
    NOT_DISPATCHED = "not_dispatched"


@dataclass(frozen=True, slots=True)
class RowOutcome:
    """Result of committing one staged row, identified by its sheet row number."""

    row_number: int
    status: CommitStatus
    direction: Direction | None = None
    ledger_id: int | None = None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Per-row outcomes of one commit, keyed by sheet row number in sheet order."""

    outcomes: Mapping[int, RowOutcome]

    def _with(self, status: CommitStatus) -> list[RowOutcome]:
        return [o for o in self.outcomes.values() if o.status is status]

    @property
    def committed(self) -> list[RowOutcome]:
        return self._with(CommitStatus.COMMITTED)

    @property
    def failed(self) -> list[RowOutcome]:
        return self._with(CommitStatus.FAILED)

    @property
    def not_dispatched(self) -> list[RowOutcome]:
        return self._with(CommitStatus.NOT_DISPATCHED)

    @property
    def complete(self) -> bool:
        return all(o.status is CommitStatus.COMMITTED for o in self.outcomes.values())

    def retry_row_numbers(self) -> list[int]:
        return [
            o.row_number for o in self.outcomes.values() if o.status is not CommitStatus.COMMITTED
        ]

    def retry_batch(self, batch: StagingBatch) -> StagingBatch:
        """Return a new batch holding only the failed and undispatched rows of ``batch``."""

        return batch.subset(self.retry_row_numbers())

    def counts(self) -> dict[str, int]:
        return {
            CommitStatus.COMMITTED.value: len(self.committed),
            CommitStatus.FAILED.value: len(self.failed),
            CommitStatus.NOT_DISPATCHED.value: len(self.not_dispatched),
        }


class BulkCommitter:
    """Dispatch every row of a ready batch to a :class:`LedgerClient`.

    Parameters
    ----------
    ledger:
        Receives ``create_income`` / ``create_expense`` calls.
    concurrency:
        Maximum in-flight ledger writes. ``None`` reads
        ``STATEMENT_IMPORT_COMMIT_CONCURRENCY``; values are clamped to 1..32.
    """

    def __init__(self, ledger: LedgerClient, *, concurrency: int | None = None) -> None:
        self.ledger = ledger
        self.concurrency = resolve_concurrency(concurrency)

    def _write(self, work: tuple[int, LedgerEntry]) -> int:
        row_number, entry = work
        try:
            if entry.direction is Direction.INCOME:
                return self.ledger.create_income(entry)
            return self.ledger.create_expense(entry)
        except PersistenceFailure as exc:
            raise PersistenceFailure(row_number, exc.reason) from exc
        except Exception as exc:  # noqa: BLE001
            raise PersistenceFailure(row_number, str(exc) or type(exc).__name__) from exc

    def commit(
        self, batch: StagingBatch, *, cancel: threading.Event | None = None
    ) -> BatchResult:
        """Commit ``batch`` and return per-row outcomes.

        Raises
        ------
        BatchNotReady
            Some row still has a review flag or no category; nothing is sent.
        ValueError
            The batch was staged without an account.
        """

        batch.ensure_ready()
        if batch.account_id is None:
            raise ValueError("batch has no account_id; stage it for an account before commit")
        work = [(tx.row_number, LedgerEntry.from_row(tx, batch.account_id)) for tx in batch]
        logger.info(
            "Committing %d row(s) for account %s (concurrency=%d)",
            len(work),
            batch.account_id,
            self.concurrency,
        )

        settled = p_map_settled(work, self._write, concurrency=self.concurrency, cancel=cancel)

        outcomes: dict[int, RowOutcome] = {}
        for s in settled:
            row_number, entry = s.item
            if not s.dispatched:
                outcomes[row_number] = RowOutcome(
                    row_number, CommitStatus.NOT_DISPATCHED, entry.direction
                )
            elif s.error is not None:
                reason = (
                    s.error.reason if isinstance(s.error, PersistenceFailure) else str(s.error)
                )
                logger.warning("Row %d failed to commit: %s", row_number, reason)
                outcomes[row_number] = RowOutcome(
                    row_number, CommitStatus.FAILED, entry.direction, reason=reason
                )
            else:
                outcomes[row_number] = RowOutcome(
                    row_number, CommitStatus.COMMITTED, entry.direction, ledger_id=s.value
                )

        result = BatchResult(outcomes)
        logger.info("Commit finished: %s", result.counts())
        return result


__all__ = ["BatchResult", "BulkCommitter", "CommitStatus", "RowOutcome"]
