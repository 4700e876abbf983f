"""End-to-end import workflows."""

from .import_flow import commit_statement, parse_statement

__all__ = ["commit_statement", "parse_statement"]
