"""Cell coercion helpers shared by the reader, resolver and staging edits.

Spreadsheet cells arrive as whatever openpyxl or the CSV module produced:
``str``, ``int``, ``float``, ``datetime`` or ``None``. These helpers turn them
into the narrow types the normalizer needs and never raise on empty input.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from openpyxl.utils.datetime import from_excel

_WS_RE = re.compile(r"\s+")

# Currency markers stripped before parsing; longest first so "INR" wins over "R".
_CURRENCY_RE = re.compile(r"(?i)(?:inr|rs\.?|₹|\$|€|£)")

# Day-first formats tried in order when the profile has no explicit format.
_DATE_FORMATS: tuple[str, ...] = (
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%d/%m/%y",
    "%d-%m-%y",
    "%d.%m.%y",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d %b %Y",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%d %b %y",
    "%d %B %Y",
    "%d-%B-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%m/%d/%Y",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)

# Excel serial range accepted as a date (1900-01-01 .. 9999-12-31).
_MIN_SERIAL = 1
_MAX_SERIAL = 2958465


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def to_text(value: Any) -> str:
    """Render a cell as whitespace-collapsed text.

    Integral floats lose their ``.0`` (Excel stores reference numbers as
    floats); datetimes render as ISO dates.
    """

    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return _WS_RE.sub(" ", str(value)).strip()


def to_identifier(value: Any) -> str | None:
    """Render a transaction-id cell, or ``None`` when it is blank.

    Numeric ids read from a text export as ``"12345.0"`` are treated the same
    as the float ``12345.0`` from a workbook.
    """

    text = to_text(value)
    if not text:
        return None
    if text.endswith(".0") and text[:-2].isdigit():
        text = text[:-2]
    return text


def to_decimal(value: Any) -> Decimal | None:
    """Parse a monetary cell into a signed ``Decimal``.

    Returns ``None`` for blank cells. Accepts thousands separators, currency
    symbols and codes (``₹ $ € £ Rs INR``), a leading ``+``/``-`` and
    accounting parentheses. Raises ``ValueError`` for non-blank text that is
    not a number.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # str() keeps the shortest round-tripping repr (0.1 -> "0.1").
        return Decimal(str(value))

    raw = str(value)
    s = raw.strip()
    if not s:
        return None

    negative = False
    # Strip sign, currency and parentheses in any order until stable.
    while True:
        before = s
        m = _CURRENCY_RE.match(s)
        if m:
            s = s[m.end() :].lstrip()
        if s.startswith("+"):
            s = s[1:].lstrip()
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
        m = _CURRENCY_RE.search(s)
        if m and m.end() == len(s):
            s = s[: m.start()].rstrip()
        if s == before:
            break

    s = s.replace(",", "").replace(" ", "").replace("\u00a0", "")
    if not s:
        raise ValueError(f"invalid amount: {raw!r}")
    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return -abs(d) if negative else d


def parse_date(value: Any, date_format: str | None = None) -> date | None:
    """Parse a date cell; return ``None`` when it is blank or not a date.

    Order of interpretation:

    - ``datetime``/``date`` objects are used directly.
    - Numbers are Excel serial dates and go through openpyxl's ``from_excel``.
    - Text is tried against ``date_format`` when given, otherwise against a
      day-first list of common bank formats. A trailing time component is
      ignored.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float, Decimal)):
        return _from_serial(float(value))

    s = _WS_RE.sub(" ", str(value)).strip()
    if not s:
        return None

    formats = (date_format,) if date_format else _DATE_FORMATS
    parsed = _strptime_any(s, formats)
    if parsed is None and " " in s:
        # "01/02/2024 10:15" style values: retry without the time part.
        parsed = _strptime_any(s.split(" ", 1)[0], formats)
    return parsed


def _strptime_any(s: str, formats: tuple[str, ...]) -> date | None:
    for fmt in formats:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def _from_serial(serial: float) -> date | None:
    if not (_MIN_SERIAL <= serial <= _MAX_SERIAL):
        return None
    converted = from_excel(serial)
    if isinstance(converted, datetime):
        return converted.date()
    return None


__all__ = ["is_blank", "parse_date", "to_decimal", "to_identifier", "to_text"]
