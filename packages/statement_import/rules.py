"""Deterministic keyword rules that suggest a category for a description.

Rules are evaluated in order; the first rule whose keyword occurs in the
description and whose direction (if any) matches the row wins. Keywords of
four characters or fewer must match on word boundaries so that ``"act"`` does
not fire on ``"TRANSACTION"``.

A rules file is a JSON list::

    [
      {"keyword": "swiggy", "category": 3, "direction": "expense"},
      {"keyword": "salary", "category": 1, "direction": "income"}
    ]
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path

from pydantic import BaseModel, ConfigDict, TypeAdapter, field_validator

from .models import Direction

_SHORT_KEYWORD = 4


class CategoryRule(BaseModel):
    """One keyword -> category mapping."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    keyword: str
    category: int
    direction: Direction | None = None

    @field_validator("keyword")
    @classmethod
    def _keyword_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("keyword must be non-empty")
        return v


@dataclass(frozen=True, slots=True)
class _Compiled:
    rule: CategoryRule
    pattern: re.Pattern[str] | None
    needle: str


@dataclass(frozen=True, slots=True)
class KeywordRules:
    """An ordered, immutable rule set."""

    rules: tuple[CategoryRule, ...] = ()
    _compiled: tuple[_Compiled, ...] = field(default=(), init=False, repr=False)

    def __post_init__(self) -> None:
        compiled = []
        for rule in self.rules:
            needle = rule.keyword.casefold()
            pattern = (
                re.compile(r"\b" + re.escape(needle) + r"\b")
                if len(needle) <= _SHORT_KEYWORD
                else None
            )
            compiled.append(_Compiled(rule, pattern, needle))
        object.__setattr__(self, "_compiled", tuple(compiled))

    @classmethod
    def of(cls, rules: Iterable[CategoryRule] | KeywordRules | None) -> KeywordRules:
        if rules is None:
            return cls()
        if isinstance(rules, KeywordRules):
            return rules
        return cls(tuple(rules))

    def __bool__(self) -> bool:
        return bool(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def match(self, description: str, direction: Direction | None) -> int | None:
        """Return the category of the first matching rule, or ``None``."""

        if not description or direction is None:
            return None
        text = description.casefold()
        for c in self._compiled:
            if c.rule.direction is not None and c.rule.direction != direction:
                continue
            hit = c.pattern.search(text) is not None if c.pattern else c.needle in text
            if hit:
                return c.rule.category
        return None


_RULES_ADAPTER = TypeAdapter(list[CategoryRule])


def parse_rules(raw: Sequence[object] | str | bytes) -> KeywordRules:
    """Validate a JSON document (or already-decoded list) into rules."""

    if isinstance(raw, (str, bytes)):
        return KeywordRules(tuple(_RULES_ADAPTER.validate_json(raw)))
    return KeywordRules(tuple(_RULES_ADAPTER.validate_python(list(raw))))


def load_rules(path: str | PathLike[str]) -> KeywordRules:
    p = Path(path)
    with p.open(encoding="utf-8") as f:
        return parse_rules(json.load(f))


__all__ = ["CategoryRule", "KeywordRules", "load_rules", "parse_rules"]
