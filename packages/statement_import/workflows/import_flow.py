"""Workflow orchestrators for end-to-end statement imports.

``parse_statement`` composes reader, normalizer and duplicate detection into a
:class:`~statement_import.staging.StagingBatch`; ``commit_statement`` runs the
bulk committer on a reviewed batch. The CLI and HTTP surfaces are thin wrappers
around these two calls.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

from ..commit import BatchResult, BulkCommitter
from ..duplicates import batch_transaction_ids, mark_duplicates
from ..ingest.reader import SpreadsheetReader
from ..ledger import LedgerClient
from ..logging_setup import get_logger
from ..models import FormatProfile
from ..normalize import normalize_rows
from ..rules import CategoryRule, KeywordRules
from ..staging import StagingBatch

logger = get_logger("statement_import.workflows.import_flow")


def parse_statement(
    data: bytes,
    profile: FormatProfile,
    *,
    account_id: int | None = None,
    rules: KeywordRules | Iterable[CategoryRule] | None = None,
    ledger: LedgerClient | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> StagingBatch:
    """Bytes + profile -> staged batch ready for review.

    Parameters
    ----------
    data:
        Raw uploaded file content (``.xlsx``/``.xlsm`` or delimited text).
    profile:
        Column mapping; validated before anything is read.
    account_id:
        Ledger account the rows will be booked against. ``None`` stages a
        preview that cannot be committed.
    rules:
        Optional keyword rules used to pre-fill ``category_hint``.
    ledger:
        When given, transaction ids already booked for ``account_id`` are
        flagged ``already_committed``.
    on_progress:
        Optional callable to receive short status lines (e.g., ``print``).

    Raises
    ------
    InvalidFormatProfile, UnreadableFile, MissingColumns
        Structural problems; nothing is staged.
    """

    reader = SpreadsheetReader(profile)
    rows = normalize_rows(reader.read(data), profile, rules=rules)

    committed_ids: set[str] = set()
    ids = batch_transaction_ids(rows)
    if ledger is not None and account_id is not None and ids:
        committed_ids = ledger.existing_transaction_ids(account_id, ids)
    mark_duplicates(rows, committed_ids)

    batch = StagingBatch(
        rows,
        account_id=account_id,
        bank_name=profile.bank_name,
        date_format=profile.date_format,
        committed_ids=committed_ids,
    )
    flagged = len(batch.flagged_rows())
    logger.info(
        "Parsed %d row(s) with %s profile; %d flagged for review",
        len(batch),
        profile.bank_name,
        flagged,
    )
    if on_progress:
        on_progress(f"Staged {len(batch)} transaction(s); {flagged} need review.")
    return batch


def commit_statement(
    batch: StagingBatch,
    ledger: LedgerClient,
    *,
    concurrency: int | None = None,
    cancel: threading.Event | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> BatchResult:
    """Commit a reviewed batch and return per-row outcomes.

    Raises ``BatchNotReady`` before any write when rows still need review.
    """

    result = BulkCommitter(ledger, concurrency=concurrency).commit(batch, cancel=cancel)
    counts = result.counts()
    if on_progress:
        on_progress(
            f"Committed {counts['committed']}, failed {counts['failed']}, "
            f"not sent {counts['not_dispatched']}."
        )
    return result


__all__ = ["commit_statement", "parse_statement"]
