"""Spreadsheet reader: uploaded bytes -> lazily yielded :class:`RawRow` values.

Container detection is by content, not file name:

- ``PK\\x03\\x04`` (zip) is an OOXML workbook and is opened with openpyxl in
  read-only mode; only the first worksheet is read.
- The OLE2 compound-document magic is a legacy ``.xls`` or a password
  protected workbook; both are rejected.
- Anything else is treated as delimited text (CSV/TSV/semicolon), sniffed with
  :class:`csv.Sniffer`.

Bank exports usually carry a preamble (bank name, account number, period)
above the header. The header row is the first row with a cell equal to the
profile's date column label; the data starts at the first following row whose
date cell parses. Both are located eagerly when :meth:`SpreadsheetReader.read`
is called so that structural problems surface before any row is consumed.
"""

from __future__ import annotations

import csv
import zipfile
from collections.abc import Callable, Iterable, Iterator, Sequence
from io import BytesIO, StringIO
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import MissingColumns, UnreadableFile
from ..logging_setup import get_logger
from ..models import ColumnRole, FormatProfile, RawRow, normalize_label
from .cells import is_blank, parse_date

_ZIP_MAGIC = b"PK\x03\x04"
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_SNIFF_BYTES = 16 * 1024
_TEXT_ENCODINGS: tuple[str, ...] = ("utf-8-sig", "cp1252")

logger = get_logger("statement_import.ingest.reader")

type SheetRow = Sequence[Any]


class _OpenSheet:
    """An opened container: a row iterator plus a close hook."""

    __slots__ = ("rows", "_close")

    def __init__(self, rows: Iterable[SheetRow], close: Callable[[], None] | None = None) -> None:
        self.rows: Iterator[SheetRow] = iter(rows)
        self._close = close

    def close(self) -> None:
        if self._close is not None:
            self._close()
            self._close = None


def _open_workbook(data: bytes) -> _OpenSheet:
    try:
        wb = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise UnreadableFile(f"not a readable .xlsx workbook ({exc})") from exc
    if not wb.worksheets:
        wb.close()
        raise UnreadableFile("workbook has no worksheets")
    ws = wb.worksheets[0]
    if len(wb.worksheets) > 1:
        logger.info(
            "Workbook has %d sheets; reading only the first (%r)", len(wb.worksheets), ws.title
        )
    return _OpenSheet(ws.iter_rows(values_only=True), wb.close)


def _decode_text(data: bytes) -> str:
    if b"\x00" in data[:_SNIFF_BYTES]:
        raise UnreadableFile("binary content is neither an .xlsx workbook nor delimited text")
    for encoding in _TEXT_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise UnreadableFile("text content could not be decoded")


def _open_delimited(data: bytes) -> _OpenSheet:
    text = _decode_text(data)
    if not text.strip():
        raise UnreadableFile("file is empty")
    sample = text[:_SNIFF_BYTES]
    try:
        dialect: type[csv.Dialect] | csv.Dialect = csv.Sniffer().sniff(
            sample, delimiters=",;\t|"
        )
    except csv.Error:
        dialect = csv.excel
    return _OpenSheet(csv.reader(StringIO(text, newline=""), dialect))


def open_sheet(data: bytes) -> _OpenSheet:
    """Open ``data`` as a workbook or delimited text, or raise ``UnreadableFile``."""

    if not data:
        raise UnreadableFile("file is empty")
    if data.startswith(_OLE2_MAGIC):
        raise UnreadableFile(
            "legacy .xls or password-protected workbooks are not supported; "
            "save the statement as .xlsx or CSV"
        )
    if data.startswith(_ZIP_MAGIC):
        return _open_workbook(data)
    return _open_delimited(data)


class SpreadsheetReader:
    """Read statement rows according to a :class:`FormatProfile`.

    ``read`` may be called repeatedly with different payloads; each call
    returns a fresh, finite iterator that cannot be restarted.
    """

    def __init__(self, profile: FormatProfile) -> None:
        self.profile = profile.ensure_valid()
        self._columns = profile.mapped_columns()

    def read(self, data: bytes) -> Iterator[RawRow]:
        """Open ``data``, locate header and data boundary, and return the rows.

        Raises
        ------
        UnreadableFile
            The bytes are not a supported container.
        MissingColumns
            The header row is absent or lacks some mapped columns.
        """

        sheet = open_sheet(data)
        try:
            positions, first = self._locate(sheet.rows)
        except BaseException:
            sheet.close()
            raise
        if first is None:
            sheet.close()
            logger.info("No data rows found below the header")
            return iter(())
        return self._iter_rows(sheet, positions, first)

    # -- internals --------------------------------------------------------

    def _locate(
        self, rows: Iterator[SheetRow]
    ) -> tuple[dict[ColumnRole, int], tuple[int, SheetRow] | None]:
        date_key = normalize_label(self._columns[ColumnRole.DATE])
        row_number = 0
        header: SheetRow | None = None
        for row in rows:
            row_number += 1
            if row and any(normalize_label(c) == date_key for c in row):
                header = row
                break
        if header is None:
            raise MissingColumns(self._columns.values())

        positions = self._header_positions(header)
        logger.debug("Header found on row %d: %s", row_number, dict(positions))

        date_at = positions[ColumnRole.DATE]
        for row in rows:
            row_number += 1
            value = row[date_at] if date_at < len(row) else None
            if parse_date(value, self.profile.date_format) is not None:
                return positions, (row_number, row)
        return positions, None

    def _header_positions(self, header: SheetRow) -> dict[ColumnRole, int]:
        index: dict[str, int] = {}
        for i, cell in enumerate(header):
            key = normalize_label(cell)
            if key and key not in index:
                index[key] = i
        positions: dict[ColumnRole, int] = {}
        missing: list[str] = []
        for role, label in self._columns.items():
            at = index.get(normalize_label(label))
            if at is None:
                missing.append(label)
            else:
                positions[role] = at
        if missing:
            raise MissingColumns(missing)
        return positions

    def _iter_rows(
        self,
        sheet: _OpenSheet,
        positions: dict[ColumnRole, int],
        first: tuple[int, SheetRow],
    ) -> Iterator[RawRow]:
        row_number, row = first
        skipped = 0
        try:
            while True:
                cells = {
                    role: (row[at] if at < len(row) else None) for role, at in positions.items()
                }
                if all(is_blank(v) for v in cells.values()):
                    skipped += 1
                else:
                    yield RawRow(row_number=row_number, cells=cells)
                nxt = next(sheet.rows, None)
                if nxt is None:
                    break
                row_number += 1
                row = nxt
        finally:
            sheet.close()
            if skipped:
                logger.debug("Skipped %d empty row(s)", skipped)


def read_statement(data: bytes, profile: FormatProfile) -> Iterator[RawRow]:
    """Convenience wrapper: ``SpreadsheetReader(profile).read(data)``."""

    return SpreadsheetReader(profile).read(data)


__all__ = ["SpreadsheetReader", "open_sheet", "read_statement"]
