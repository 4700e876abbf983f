"""Public interface for the ``statement_import`` package.

Re-exports the workflow entry points, the staging batch and the value types
callers need to drive an import. The CLI (``statement_import.cli``) and HTTP
app (``statement_import.web``) are imported on demand.
"""

from .commit import BatchResult, BulkCommitter, CommitStatus, RowOutcome
from .errors import (
    BatchNotReady,
    FormatProfileNotFound,
    InvalidFormatProfile,
    MissingColumns,
    PersistenceFailure,
    ProfileStoreCorrupt,
    StatementImportError,
    UnreadableFile,
)
from .ledger import LedgerClient, LedgerEntry, SqlLedger
from .models import (
    AmountScheme,
    Direction,
    DuplicateWarning,
    FormatProfile,
    NormalizedTransaction,
    RawRow,
    ReviewFlag,
)
from .profiles import JsonFileProfileStore, ProfileStore, SqlProfileStore, open_profile_store
from .rules import CategoryRule, KeywordRules, load_rules
from .staging import StagingBatch
from .workflows import commit_statement, parse_statement

__all__ = [
    # Workflows
    "parse_statement",
    "commit_statement",
    # Staging / commit
    "StagingBatch",
    "BulkCommitter",
    "BatchResult",
    "RowOutcome",
    "CommitStatus",
    # Models / types
    "AmountScheme",
    "Direction",
    "DuplicateWarning",
    "FormatProfile",
    "NormalizedTransaction",
    "RawRow",
    "ReviewFlag",
    "CategoryRule",
    "KeywordRules",
    "load_rules",
    # Stores / ledger
    "ProfileStore",
    "JsonFileProfileStore",
    "SqlProfileStore",
    "open_profile_store",
    "LedgerClient",
    "LedgerEntry",
    "SqlLedger",
    # Errors
    "StatementImportError",
    "InvalidFormatProfile",
    "FormatProfileNotFound",
    "UnreadableFile",
    "MissingColumns",
    "BatchNotReady",
    "PersistenceFailure",
    "ProfileStoreCorrupt",
]
