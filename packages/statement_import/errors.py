"""Exception taxonomy for statement imports.

Structural problems (a profile missing required fields, a file that is not a
spreadsheet, mapped columns absent from the sheet) abort a parse before any
row is staged. Per-row ambiguity is not an exception at all; it is carried on
the row as a review flag. Per-row persistence failures are captured in the
commit result and never abort sibling rows.
"""

from __future__ import annotations

from collections.abc import Iterable


class StatementImportError(Exception):
    """Base class for every error raised by ``statement_import``."""


class InvalidFormatProfile(StatementImportError):
    """A format profile lacks fields required by its amount scheme."""

    def __init__(self, missing_fields: Iterable[str]) -> None:
        self.missing_fields: tuple[str, ...] = tuple(missing_fields)
        super().__init__(
            "Format profile is missing required fields: " + ", ".join(self.missing_fields)
        )


class FormatProfileNotFound(StatementImportError, KeyError):
    """No stored profile has the requested id."""

    def __init__(self, profile_id: str) -> None:
        self.profile_id = profile_id
        super().__init__(f"Statement format not found: {profile_id!r}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message.
        return str(self.args[0])


class ProfileStoreCorrupt(StatementImportError, ValueError):
    """The profile store file cannot be read back (bad JSON or unknown schema)."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"profile store {path!r} is corrupt: {reason}")


class UnreadableFile(StatementImportError):
    """The uploaded bytes are not a recognized spreadsheet container."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Unreadable statement file: {reason}")


class MissingColumns(StatementImportError):
    """Columns referenced by the profile were not found in the sheet header."""

    def __init__(self, columns: Iterable[str]) -> None:
        self.columns: tuple[str, ...] = tuple(columns)
        super().__init__(
            "Columns not found in statement: " + ", ".join(repr(c) for c in self.columns)
        )


class BatchNotReady(StatementImportError):
    """Commit was attempted while rows still need review."""

    def __init__(self, row_numbers: Iterable[int]) -> None:
        self.row_numbers: tuple[int, ...] = tuple(row_numbers)
        super().__init__(
            f"{len(self.row_numbers)} row(s) need a category or review before commit: "
            + ", ".join(str(n) for n in self.row_numbers)
        )


class PersistenceFailure(StatementImportError):
    """A single ledger write failed."""

    def __init__(self, row_number: int | None, reason: str) -> None:
        self.row_number = row_number
        self.reason = reason
        where = f"row {row_number}" if row_number is not None else "ledger write"
        super().__init__(f"{where} failed: {reason}")


__all__ = [
    "BatchNotReady",
    "FormatProfileNotFound",
    "InvalidFormatProfile",
    "MissingColumns",
    "PersistenceFailure",
    "ProfileStoreCorrupt",
    "StatementImportError",
    "UnreadableFile",
]
