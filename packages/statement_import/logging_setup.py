"""Logging for statement imports.

The CLI and the web app factory call :func:`configure_logging` at startup;
everything else asks :func:`get_logger` for a ``statement_import.*`` logger and
never touches handlers. Imported as a library without configuration, the
package stays quiet.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_ROOT = "statement_import"
_LEVEL_ENV = "STATEMENT_IMPORT_LOG_LEVEL"
_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _coerce_level(value: int | str) -> int | None:
    if isinstance(value, int):
        return value
    name = value.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    return numeric if isinstance(numeric, int) else None


def _resolve_level(level: int | str | None) -> int:
    for candidate in (level, os.getenv(_LEVEL_ENV)):
        if candidate is None or candidate == "":
            continue
        resolved = _coerce_level(candidate)
        if resolved is not None:
            return resolved
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send ``statement_import`` log records to ``stream``; later calls are no-ops.

    ``level`` falls back to ``STATEMENT_IMPORT_LOG_LEVEL`` and then INFO.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = _resolve_level(level)
    root = logging.getLogger(_ROOT)
    for h in [h for h in root.handlers if isinstance(h, logging.NullHandler)]:
        root.removeHandler(h)

    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _FORMAT))
    root.addHandler(handler)
    root.setLevel(resolved)
    root.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    root = logging.getLogger(_ROOT)
    if not _CONFIGURED and not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
