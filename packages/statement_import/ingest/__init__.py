"""Spreadsheet ingest: container detection, header location and cell coercion."""

from .reader import SpreadsheetReader, read_statement

__all__ = ["SpreadsheetReader", "read_statement"]
