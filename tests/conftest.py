"""Pytest configuration for test isolation.

Settings are read from the environment (and a local ``.env`` at entrypoints),
so a developer's shell could otherwise leak ``DATABASE_URL`` or a profile store
path into tests. An autouse fixture clears those variables for every test.

Database-backed tests get a fresh file-backed SQLite ledger per test; cached
engines are disposed afterwards so files can be removed with ``tmp_path``.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from ledger_db.client import dispose_engines
from statement_import.models import FormatProfile

from tests.helpers.db import LedgerSeed, bootstrap_sqlite_db, seed_ledger

_ENV_VARS = (
    "DATABASE_URL",
    "STATEMENT_IMPORT_PROFILE_STORE",
    "STATEMENT_IMPORT_COMMIT_CONCURRENCY",
    "STATEMENT_IMPORT_MAX_UPLOAD_BYTES",
    "STATEMENT_IMPORT_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_url(tmp_path: Path) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "ledger.db")
    yield url
    dispose_engines()


@pytest.fixture
def seeded(db_url: str) -> LedgerSeed:
    return seed_ledger(database_url=db_url)


@pytest.fixture
def debit_credit_profile() -> FormatProfile:
    return FormatProfile(
        bank_name="Test Bank",
        date_column="Txn Date",
        description_column="Narration",
        amount_scheme="separate_debit_credit",
        debit_column="Withdrawal Amt",
        credit_column="Deposit Amt",
        transaction_id_column="Ref No",
    )


@pytest.fixture
def indicator_profile() -> FormatProfile:
    return FormatProfile(
        bank_name="Indicator Bank",
        date_column="Date",
        description_column="Description",
        amount_scheme="single_amount_with_indicator",
        amount_column="Amount",
        indicator_column="Dr/Cr",
        debit_tokens="DR, Debit",
        credit_tokens="CR, Credit",
        transaction_id_column="Reference",
    )


@pytest.fixture
def tokens_profile() -> FormatProfile:
    return FormatProfile(
        bank_name="Token Bank",
        date_column="Date",
        description_column="Particulars",
        amount_scheme="single_amount_with_tokens",
        amount_column="Amount",
        debit_tokens=["DR", "WITHDRAWAL"],
        credit_tokens=["CR", "DEPOSIT"],
    )
