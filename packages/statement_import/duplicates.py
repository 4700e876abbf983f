"""Duplicate transaction-id warnings.

Bank references are not guaranteed unique (some banks reuse a cheque number
or leave a placeholder like ``"0"``), so a repeated id is a warning shown
during review rather than a reason to block or drop a row:

- ``already_committed``: the id already exists in the ledger for the same
  account, typically because the statement was imported before.
- ``duplicate_in_batch``: two or more staged rows share the id.

When both apply, ``already_committed`` is reported.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from .logging_setup import get_logger
from .models import DuplicateWarning, NormalizedTransaction

logger = get_logger("statement_import.duplicates")


def batch_transaction_ids(rows: Iterable[NormalizedTransaction]) -> set[str]:
    return {r.transaction_id for r in rows if r.transaction_id}


def mark_duplicates(
    rows: Sequence[NormalizedTransaction],
    committed_ids: Iterable[str] = (),
) -> int:
    """Set ``duplicate`` on every affected row and return how many were marked.

    Rows without a transaction id are never marked. Existing warnings are
    recomputed, so calling this again after edits is safe.
    """

    counts = Counter(r.transaction_id for r in rows if r.transaction_id)
    committed = set(committed_ids)
    marked = 0
    for r in rows:
        tid = r.transaction_id
        if not tid:
            r.duplicate = None
        elif tid in committed:
            r.duplicate = DuplicateWarning.ALREADY_COMMITTED
        elif counts[tid] > 1:
            r.duplicate = DuplicateWarning.DUPLICATE_IN_BATCH
        else:
            r.duplicate = None
        if r.duplicate is not None:
            marked += 1
    if marked:
        logger.info("%d row(s) carry a duplicate transaction id warning", marked)
    return marked


__all__ = ["batch_transaction_ids", "mark_duplicates"]
