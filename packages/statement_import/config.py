"""Runtime settings read from the environment.

Entrypoints load ``.env`` with ``python-dotenv`` first; this module only reads
``os.environ`` so library code stays free of file-system side effects.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_COMMIT_CONCURRENCY = 4
MAX_COMMIT_CONCURRENCY = 32
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_PROFILE_STORE = "statement_formats.json"

# Sentinel value for ``STATEMENT_IMPORT_PROFILE_STORE`` selecting the SQL store.
SQL_PROFILE_STORE = "sql"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def resolve_concurrency(value: int | None) -> int:
    """Clamp a requested in-flight limit to ``1..MAX_COMMIT_CONCURRENCY``."""

    if value is None:
        value = _int_env("STATEMENT_IMPORT_COMMIT_CONCURRENCY", DEFAULT_COMMIT_CONCURRENCY)
    return max(1, min(int(value), MAX_COMMIT_CONCURRENCY))


@dataclass(frozen=True, slots=True)
class ImportSettings:
    """Settings shared by the CLI and the HTTP app.

    Attributes
    ----------
    database_url:
        SQLAlchemy URL for the ledger (and the SQL profile store). ``None``
        leaves resolution to :mod:`ledger_db.client`, which reads
        ``DATABASE_URL`` itself.
    profile_store:
        Either a path to a JSON file or the literal ``"sql"``.
    commit_concurrency:
        Maximum number of ledger writes in flight during a commit.
    max_upload_bytes:
        Uploads larger than this are rejected before parsing.
    """

    database_url: str | None = None
    profile_store: str = DEFAULT_PROFILE_STORE
    commit_concurrency: int = DEFAULT_COMMIT_CONCURRENCY
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    @classmethod
    def from_env(cls) -> ImportSettings:
        max_upload = _int_env("STATEMENT_IMPORT_MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            profile_store=(
                os.getenv("STATEMENT_IMPORT_PROFILE_STORE") or DEFAULT_PROFILE_STORE
            ).strip(),
            commit_concurrency=resolve_concurrency(None),
            max_upload_bytes=max_upload if max_upload > 0 else DEFAULT_MAX_UPLOAD_BYTES,
        )

    @property
    def uses_sql_profiles(self) -> bool:
        return self.profile_store.lower() == SQL_PROFILE_STORE

    @property
    def profile_path(self) -> Path:
        return Path(self.profile_store).expanduser()


__all__ = [
    "DEFAULT_COMMIT_CONCURRENCY",
    "DEFAULT_MAX_UPLOAD_BYTES",
    "ImportSettings",
    "MAX_COMMIT_CONCURRENCY",
    "resolve_concurrency",
]
