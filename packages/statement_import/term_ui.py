"""Tiny terminal UI helpers (prompt_toolkit-based).

Small, focused prompts used by the interactive review in ``review.py``. They
are kept apart from the review logic so they are easy to test in isolation by
feeding keystrokes through a pipe input.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from decimal import Decimal
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggest, Suggestion
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.styles import Style
from prompt_toolkit.validation import ValidationError, Validator

from .ingest.cells import to_decimal
from .models import Direction

SKIP_SENTINEL = "- Skip this row -"


def _session(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


# ----------------------------------------------------------------------------
# Category selector
# ----------------------------------------------------------------------------


def select_category(
    categories: Sequence[str] | Iterable[str],
    *,
    default: str,
    message: str = "Choose category (Enter to accept): ",
    session: PromptSession | None = None,
    allow_skip: bool = False,
) -> str:
    """Prompt the user to choose a category name.

    The default (typically the keyword-rule hint) is pre-filled with the cursor
    at its end. The first printable keystroke replaces it wholesale; Space or
    Backspace edit it instead. Tab and Enter complete a typed prefix to the
    first matching name. When ``allow_skip`` is set, :data:`SKIP_SENTINEL` is
    offered as an extra choice.

    Returns the raw (possibly unknown) text; callers map it to an id and
    re-prompt when it does not match.
    """

    words = list(categories)
    if allow_skip:
        words.append(SKIP_SENTINEL)

    completer = WordCompleter(words, ignore_case=True, match_middle=True, sentence=False)

    class _PrefixSuggest(AutoSuggest):
        def __init__(self, vocab: Sequence[str]) -> None:
            self._vocab = list(vocab)

        def get_suggestion(self, buffer, document):
            text = document.text
            if not text:
                return None
            lower = text.lower()
            for w in self._vocab:
                if w.lower() == lower:
                    return None
            for w in self._vocab:
                if w.lower().startswith(lower):
                    remainder = w[len(text) :]
                    return Suggestion(remainder) if remainder else None
            return None

    def _best_prefix_match(text: str) -> str | None:
        if not text:
            return None
        lower = text.lower()
        for w in words:
            wl = w.lower()
            if wl == lower:
                return None
            if wl.startswith(lower):
                return w
        return None

    kb = KeyBindings()
    _menu_opened = False
    _menu_index = 0
    replace_mode = bool(default)

    @kb.add("down", eager=True)
    def _(event) -> None:  # pragma: no cover - integration path
        nonlocal _menu_opened, _menu_index, replace_mode
        b = event.app.current_buffer
        replace_mode = False
        if b.complete_state is None:
            b.start_completion(select_first=True)
            _menu_index = 0
        else:
            b.complete_next()
            _menu_index += 1
        _menu_opened = True

    @kb.add("tab", eager=True)
    def _(event) -> None:  # pragma: no cover
        nonlocal _menu_opened, _menu_index, replace_mode
        b = event.app.current_buffer
        replace_mode = False
        cand = _best_prefix_match(b.document.text)
        if cand:
            b.insert_text(cand[len(b.document.text) :])
        elif b.complete_state is None:
            b.start_completion(select_first=True)
            _menu_opened = True
            _menu_index = 0
        else:
            b.complete_next()
            _menu_opened = True
            _menu_index += 1

    @kb.add("enter", eager=True)
    def _(event) -> None:  # pragma: no cover
        b = event.app.current_buffer
        cs = b.complete_state
        if cs is not None and cs.current_completion is not None:
            b.apply_completion(cs.current_completion)
            b.validate_and_handle()
            return
        cand = _best_prefix_match(b.document.text)
        if cand:
            b.insert_text(cand[len(b.document.text) :])
            b.validate_and_handle()
            return
        if _menu_opened and not b.document.text and words:
            b.insert_text(words[max(0, min(_menu_index, len(words) - 1))])
        b.validate_and_handle()

    @kb.add("backspace", eager=True)
    def _(event) -> None:  # pragma: no cover
        nonlocal replace_mode
        event.app.current_buffer.delete_before_cursor(1)
        replace_mode = False

    def _leave_replace(action: Callable[[Any], None]) -> Callable[[Any], None]:
        def handler(event) -> None:  # pragma: no cover
            nonlocal replace_mode
            replace_mode = False
            action(event.app.current_buffer)

        return handler

    kb.add("left", eager=True)(_leave_replace(lambda b: b.cursor_left(1)))
    kb.add("right", eager=True)(_leave_replace(lambda b: b.cursor_right(1)))
    kb.add("home", eager=True)(_leave_replace(lambda b: b.cursor_home()))
    kb.add("end", eager=True)(_leave_replace(lambda b: b.cursor_end()))
    kb.add("delete", eager=True)(_leave_replace(lambda b: b.delete(1)))
    kb.add("c-a", eager=True)(_leave_replace(lambda b: b.cursor_home()))
    kb.add("c-e", eager=True)(_leave_replace(lambda b: b.cursor_end()))

    # First printable keystroke replaces the pre-filled default.
    @kb.add(Keys.Any, filter=Condition(lambda: replace_mode), eager=True)
    def _(event) -> None:  # pragma: no cover
        nonlocal replace_mode
        data = getattr(event, "data", "") or ""
        if not data or not data.isprintable():
            return
        b = event.app.current_buffer
        replace_mode = False
        if data == " ":
            b.insert_text(" ")
            return
        b.delete_before_cursor(len(b.document.text_before_cursor))
        b.delete(len(b.document.text_after_cursor))
        b.insert_text(data)

    sess = _session(session, kb)
    result = sess.prompt(
        message=message,
        completer=completer,
        default=default or "",
        key_bindings=kb,
        auto_suggest=_PrefixSuggest(words),
        style=Style.from_dict({"auto-suggestion": "fg:#888888"}),
    )
    result = result.strip()
    if not result and default:
        return default
    return result


# ----------------------------------------------------------------------------
# Field prompts used while fixing flagged rows
# ----------------------------------------------------------------------------


class _DirectionValidator(Validator):
    def validate(self, document) -> None:
        if parse_direction(document.text) is None:
            raise ValidationError(message="Type 'income' or 'expense' (or i / e).")


class _AmountValidator(Validator):
    def validate(self, document) -> None:
        try:
            value = to_decimal(document.text)
        except ValueError:
            value = None
        if value is None or value <= 0:
            raise ValidationError(message="Enter a positive amount, e.g. 1,250.00")


def parse_direction(text: str) -> Direction | None:
    t = text.strip().lower()
    if t in ("i", "in", "income", "cr", "credit"):
        return Direction.INCOME
    if t in ("e", "ex", "expense", "dr", "debit"):
        return Direction.EXPENSE
    return None


def prompt_direction(
    *,
    default: Direction | None = None,
    session: PromptSession | None = None,
    message: str = "Direction [income/expense]: ",
) -> Direction:
    kb = KeyBindings()
    completer = WordCompleter([d.value for d in Direction], ignore_case=True)
    text = _session(session, kb).prompt(
        message,
        default=default.value if default else "",
        completer=completer,
        validator=_DirectionValidator(),
        validate_while_typing=False,
    )
    direction = parse_direction(text)
    if direction is None:
        raise ValueError(f"not a direction: {text!r}")
    return direction


def prompt_amount(
    *,
    default: Decimal | None = None,
    session: PromptSession | None = None,
    message: str = "Amount: ",
) -> Decimal:
    kb = KeyBindings()
    text = _session(session, kb).prompt(
        message,
        default=str(default) if default is not None else "",
        validator=_AmountValidator(),
        validate_while_typing=False,
    )
    value = to_decimal(text)
    if value is None:
        raise ValueError("amount is required")
    return abs(value)


def prompt_text(
    message: str,
    *,
    default: str = "",
    session: PromptSession | None = None,
) -> str:
    kb = KeyBindings()
    return _session(session, kb).prompt(message, default=default).strip()


def confirm(
    message: str,
    *,
    default: bool = True,
    session: PromptSession | None = None,
) -> bool:
    suffix = " [Y/n]: " if default else " [y/N]: "
    answer = prompt_text(message + suffix, session=session).lower()
    if not answer:
        return default
    return answer in ("y", "yes")


__all__ = [
    "SKIP_SENTINEL",
    "confirm",
    "parse_direction",
    "prompt_amount",
    "prompt_direction",
    "prompt_text",
    "select_category",
]
