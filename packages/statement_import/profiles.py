"""Format profile stores.

Profiles outlive imports, so they need a home. Two interchangeable stores
implement :class:`ProfileStore`:

- :class:`JsonFileProfileStore`: a single JSON document on local disk, for
  single-user setups. Writes target ``<file>.tmp`` first and are then
  ``os.replace``-d into place.
- :class:`SqlProfileStore`: the ``statement_formats`` table in the ledger
  database, for deployments where several clients share profiles.

Both validate scheme-required fields on create/update, raise
``FormatProfileNotFound`` for unknown ids and list profiles in creation order.
Bank names are labels and need not be unique.
"""

from __future__ import annotations

import contextlib
import json
import os
import threading
import uuid
from collections.abc import Sequence
from os import PathLike
from pathlib import Path
from typing import Protocol, runtime_checkable

from ledger_db.client import session_scope
from ledger_db.models.ledger import StatementFormat
from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy import func, select

from .errors import FormatProfileNotFound, InvalidFormatProfile, ProfileStoreCorrupt
from .logging_setup import get_logger
from .models import FormatProfile

logger = get_logger("statement_import.profiles")

SCHEMA_VERSION = 1


@runtime_checkable
class ProfileStore(Protocol):
    def create(self, profile: FormatProfile) -> FormatProfile: ...

    def list(self) -> Sequence[FormatProfile]: ...

    def get(self, profile_id: str) -> FormatProfile: ...

    def update(self, profile_id: str, profile: FormatProfile) -> FormatProfile: ...

    def delete(self, profile_id: str) -> None: ...


# ---------------------------------------------------------------------------
# JSON file store
# ---------------------------------------------------------------------------


class ProfileFile(BaseModel):
    """On-disk schema of the JSON profile store."""

    model_config = ConfigDict(extra="forbid")

    schema_version: int = SCHEMA_VERSION
    profiles: list[FormatProfile] = []


class JsonFileProfileStore:
    """Profiles persisted as one JSON file; ids are random hex strings."""

    def __init__(self, path: str | PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> ProfileFile:
        if not self.path.exists():
            return ProfileFile()
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return ProfileFile()
        try:
            doc = ProfileFile.model_validate_json(text)
        except ValidationError as exc:
            raise ProfileStoreCorrupt(os.fspath(self.path), str(exc)) from exc
        if doc.schema_version != SCHEMA_VERSION:
            raise ProfileStoreCorrupt(
                os.fspath(self.path), f"unsupported schema version {doc.schema_version}"
            )
        return doc

    def _save(self, doc: ProfileFile) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(
                json.dumps(doc.model_dump(mode="json"), ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
            os.replace(tmp, self.path)
        except Exception:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()
            raise

    @staticmethod
    def _position(doc: ProfileFile, profile_id: str) -> int:
        for i, p in enumerate(doc.profiles):
            if p.id == profile_id:
                return i
        raise FormatProfileNotFound(profile_id)

    def create(self, profile: FormatProfile) -> FormatProfile:
        profile.ensure_valid()
        stored = profile.model_copy(update={"id": uuid.uuid4().hex})
        with self._lock:
            doc = self._load()
            doc.profiles.append(stored)
            self._save(doc)
        logger.info("Created statement format %s (%s)", stored.id, stored.bank_name)
        return stored

    def list(self) -> list[FormatProfile]:
        with self._lock:
            return list(self._load().profiles)

    def get(self, profile_id: str) -> FormatProfile:
        with self._lock:
            doc = self._load()
            return doc.profiles[self._position(doc, profile_id)]

    def update(self, profile_id: str, profile: FormatProfile) -> FormatProfile:
        profile.ensure_valid()
        stored = profile.model_copy(update={"id": profile_id})
        with self._lock:
            doc = self._load()
            doc.profiles[self._position(doc, profile_id)] = stored
            self._save(doc)
        logger.info("Updated statement format %s", profile_id)
        return stored

    def delete(self, profile_id: str) -> None:
        with self._lock:
            doc = self._load()
            del doc.profiles[self._position(doc, profile_id)]
            self._save(doc)
        logger.info("Deleted statement format %s", profile_id)


# ---------------------------------------------------------------------------
# SQL store
# ---------------------------------------------------------------------------

_SQL_FIELDS: tuple[str, ...] = (
    "bank_name",
    "date_column",
    "description_column",
    "debit_column",
    "credit_column",
    "amount_column",
    "indicator_column",
    "transaction_id_column",
    "date_format",
)


def _to_profile(row: StatementFormat) -> FormatProfile:
    return FormatProfile(
        id=str(row.id),
        amount_scheme=row.amount_scheme,
        debit_tokens=list(row.debit_tokens or []),
        credit_tokens=list(row.credit_tokens or []),
        **{name: getattr(row, name) for name in _SQL_FIELDS},
    )


def _apply(row: StatementFormat, profile: FormatProfile) -> None:
    for name in _SQL_FIELDS:
        setattr(row, name, getattr(profile, name))
    if profile.amount_scheme is None:
        raise InvalidFormatProfile(["amount_scheme"])
    row.amount_scheme = profile.amount_scheme.value
    row.debit_tokens = list(profile.debit_tokens)
    row.credit_tokens = list(profile.credit_tokens)


class SqlProfileStore:
    """Profiles persisted in ``statement_formats``; ids are stringified integers."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self.database_url = database_url

    @staticmethod
    def _pk(profile_id: str) -> int:
        try:
            return int(str(profile_id).strip())
        except ValueError:
            raise FormatProfileNotFound(profile_id) from None

    def create(self, profile: FormatProfile) -> FormatProfile:
        profile.ensure_valid()
        with session_scope(database_url=self.database_url) as session:
            row = StatementFormat()
            _apply(row, profile)
            session.add(row)
            session.flush()
            stored = _to_profile(row)
        logger.info("Created statement format %s (%s)", stored.id, stored.bank_name)
        return stored

    def list(self) -> list[FormatProfile]:
        with session_scope(database_url=self.database_url) as session:
            stmt = select(StatementFormat).order_by(StatementFormat.id)
            return [_to_profile(r) for r in session.execute(stmt).scalars()]

    def get(self, profile_id: str) -> FormatProfile:
        with session_scope(database_url=self.database_url) as session:
            row = session.get(StatementFormat, self._pk(profile_id))
            if row is None:
                raise FormatProfileNotFound(profile_id)
            return _to_profile(row)

    def update(self, profile_id: str, profile: FormatProfile) -> FormatProfile:
        profile.ensure_valid()
        with session_scope(database_url=self.database_url) as session:
            row = session.get(StatementFormat, self._pk(profile_id))
            if row is None:
                raise FormatProfileNotFound(profile_id)
            _apply(row, profile)
            row.updated_at = func.now()
            session.flush()
            stored = _to_profile(row)
        logger.info("Updated statement format %s", profile_id)
        return stored

    def delete(self, profile_id: str) -> None:
        with session_scope(database_url=self.database_url) as session:
            row = session.get(StatementFormat, self._pk(profile_id))
            if row is None:
                raise FormatProfileNotFound(profile_id)
            session.delete(row)
        logger.info("Deleted statement format %s", profile_id)


def open_profile_store(location: str, *, database_url: str | None = None) -> ProfileStore:
    """Return the store selected by ``STATEMENT_IMPORT_PROFILE_STORE`` semantics."""

    if location.strip().lower() == "sql":
        return SqlProfileStore(database_url=database_url)
    return JsonFileProfileStore(Path(location).expanduser())


__all__ = [
    "JsonFileProfileStore",
    "ProfileFile",
    "ProfileStore",
    "SqlProfileStore",
    "open_profile_store",
]
