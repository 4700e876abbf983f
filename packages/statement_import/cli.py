"""CLI for the ``statement_import`` package.

Command handlers (``cmd_*``) do the work and return an exit code; the Typer
commands below are thin wrappers. Environment variables (notably
``DATABASE_URL``) are loaded from a local ``.env`` using ``python-dotenv`` in
the root callback before any command runs.
"""

from __future__ import annotations

import contextlib
import signal
import sys
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging

# ---- Small module-level helpers used by CLI commands -------------------------


def _read_file(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        print(f"Error: File not found: {path}", file=sys.stderr)
    except PermissionError:
        print(f"Error: Permission denied: {path}", file=sys.stderr)
    except IsADirectoryError:
        print(f"Error: Not a file: {path}", file=sys.stderr)
    return None


def _settings(database_url: str | None, profile_store: str | None):
    from dataclasses import replace

    from .config import ImportSettings

    settings = ImportSettings.from_env()
    if database_url:
        settings = replace(settings, database_url=database_url)
    if profile_store:
        settings = replace(settings, profile_store=profile_store)
    return settings


def _load_profile(settings, profile_id: str):
    from .profiles import open_profile_store

    store = open_profile_store(settings.profile_store, database_url=settings.database_url)
    return store.get(profile_id)


@contextlib.contextmanager
def _cancel_on_interrupt(cancel: threading.Event) -> Iterator[None]:
    """Turn the first Ctrl-C into a cooperative cancel of the running commit.

    Rows already sent still settle and are reported; a second Ctrl-C raises
    ``KeyboardInterrupt`` as usual.
    """

    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.getsignal(signal.SIGINT)

    def _handler(signum, frame) -> None:
        if cancel.is_set():
            signal.default_int_handler(signum, frame)
        cancel.set()
        print(
            "Interrupted; waiting for rows already sent (Ctrl-C again to abort).",
            file=sys.stderr,
        )

    signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous if previous is not None else signal.SIG_DFL)


# ---- Command handlers --------------------------------------------------------


def cmd_formats_list(*, database_url: str | None = None, profile_store: str | None = None) -> int:
    """Print stored statement formats as ``<id>\\t<bank>\\t<scheme>`` lines."""

    from .errors import StatementImportError
    from .profiles import open_profile_store

    settings = _settings(database_url, profile_store)
    try:
        store = open_profile_store(settings.profile_store, database_url=settings.database_url)
        profiles = list(store.list())
    except StatementImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not profiles:
        print("No statement formats saved.")
        return 0
    for p in profiles:
        scheme = p.amount_scheme.value if p.amount_scheme else ""
        print(f"{p.id}\t{p.bank_name}\t{scheme}")
    return 0


def cmd_formats_show(
    profile_id: str, *, database_url: str | None = None, profile_store: str | None = None
) -> int:
    from .errors import StatementImportError

    settings = _settings(database_url, profile_store)
    try:
        profile = _load_profile(settings, profile_id)
    except StatementImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(profile.model_dump_json(indent=2, exclude_none=True))
    return 0


def cmd_formats_add(
    fields: dict[str, str],
    *,
    from_json: Path | None = None,
    database_url: str | None = None,
    profile_store: str | None = None,
) -> int:
    """Validate and save a new statement format; prints the assigned id.

    ``fields`` uses the same names as the HTTP parse form (``date_col``,
    ``amount_format_type``, ...). ``from_json`` loads a profile document
    instead.
    """

    from pydantic import ValidationError

    from .errors import StatementImportError
    from .models import FormatProfile
    from .profiles import open_profile_store
    from .schemas import profile_from_form

    settings = _settings(database_url, profile_store)
    try:
        if from_json is not None:
            raw = _read_file(from_json)
            if raw is None:
                return 1
            profile = FormatProfile.model_validate_json(raw)
        else:
            profile = profile_from_form(**fields)
        store = open_profile_store(settings.profile_store, database_url=settings.database_url)
        created = store.create(profile.without_id())
    except ValidationError as e:
        print(f"Error: invalid statement format: {e}", file=sys.stderr)
        return 1
    except StatementImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(created.id)
    return 0


def cmd_formats_delete(
    profile_id: str, *, database_url: str | None = None, profile_store: str | None = None
) -> int:
    from .errors import StatementImportError
    from .profiles import open_profile_store

    settings = _settings(database_url, profile_store)
    try:
        store = open_profile_store(settings.profile_store, database_url=settings.database_url)
        store.delete(profile_id)
    except StatementImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Deleted {profile_id}")
    return 0


def cmd_parse(
    file_path: Path,
    profile_id: str,
    *,
    account_id: int | None = None,
    rules_path: Path | None = None,
    database_url: str | None = None,
    profile_store: str | None = None,
) -> int:
    """Parse a statement and print one JSON object per staged row.

    Rows already booked for ``account_id`` are marked ``already_committed``
    when an account is given; nothing is written.
    """

    from sqlalchemy.exc import SQLAlchemyError

    from .errors import StatementImportError
    from .ledger import SqlLedger
    from .rules import load_rules
    from .schemas import TransactionOut
    from .workflows.import_flow import parse_statement

    settings = _settings(database_url, profile_store)
    data = _read_file(file_path)
    if data is None:
        return 1
    try:
        profile = _load_profile(settings, profile_id)
        rules = load_rules(rules_path) if rules_path else None
        batch = parse_statement(
            data,
            profile,
            account_id=account_id,
            rules=rules,
            ledger=SqlLedger(database_url=settings.database_url) if account_id else None,
        )
    except (StatementImportError, SQLAlchemyError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for tx in batch:
        print(TransactionOut.from_row(tx).model_dump_json())
    return 0


def cmd_import(
    file_path: Path,
    profile_id: str,
    account_id: int,
    *,
    rules_path: Path | None = None,
    accept_hints: bool = False,
    ask_notes: bool = False,
    assume_yes: bool = False,
    concurrency: int | None = None,
    database_url: str | None = None,
    profile_store: str | None = None,
) -> int:
    """Parse, review interactively, then commit a statement to the ledger.

    Flow
    ----
    - Parse ``file_path`` with the stored format ``profile_id``.
    - Optionally accept every keyword-rule hint up front (``accept_hints``).
    - Review: fix flagged rows, pick categories (hint pre-filled) or skip rows.
    - Confirm and commit; print the summary and any rows to retry.

    Returns ``1`` on structural errors, when rows remain unresolved, or when
    any row failed to commit.
    """

    from sqlalchemy.exc import SQLAlchemyError

    from .errors import StatementImportError
    from .ledger import SqlLedger
    from .models import Direction
    from .review import fmt_row, review_batch
    from .rules import load_rules
    from .term_ui import confirm
    from .workflows.import_flow import commit_statement, parse_statement

    settings = _settings(database_url, profile_store)
    data = _read_file(file_path)
    if data is None:
        return 1

    ledger = SqlLedger(database_url=settings.database_url)
    try:
        if not ledger.account_exists(account_id):
            print(f"Error: unknown account id {account_id}", file=sys.stderr)
            return 1
        profile = _load_profile(settings, profile_id)
        rules = load_rules(rules_path) if rules_path else None
        batch = parse_statement(
            data, profile, account_id=account_id, rules=rules, ledger=ledger, on_progress=print
        )
        categories = {d: ledger.categories_for(d) for d in Direction}
    except (StatementImportError, SQLAlchemyError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if len(batch) == 0:
        print("No transactions to import.")
        return 0

    if accept_hints:
        n = batch.accept_category_hints()
        print(f"Accepted {n} suggested categor{'y' if n == 1 else 'ies'}.")

    duplicates = [tx for tx in batch if tx.duplicate is not None]
    if duplicates:
        print(f"{len(duplicates)} row(s) look like duplicates:")
        for tx in duplicates:
            print(f"  {fmt_row(tx)}")

    summary = review_batch(batch, categories=categories, ask_notes=ask_notes)
    if summary.unresolved:
        rows = ", ".join(str(n) for n in summary.unresolved)
        print(f"Error: rows still need review: {rows}", file=sys.stderr)
        return 1
    if len(batch) == 0:
        print("Nothing left to import.")
        return 0

    if not assume_yes and not confirm(f"Commit {len(batch)} transaction(s)?"):
        print("Aborted; nothing was written.")
        return 0

    cancel = threading.Event()
    try:
        with _cancel_on_interrupt(cancel):
            result = commit_statement(
                batch, ledger, concurrency=concurrency, cancel=cancel, on_progress=print
            )
    except StatementImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for o in result.failed:
        print(f"Error: row {o.row_number} failed: {o.reason}", file=sys.stderr)
    if result.not_dispatched:
        rows = ", ".join(str(o.row_number) for o in result.not_dispatched)
        print(f"Cancelled before sending rows: {rows}")
    if result.retry_row_numbers():
        rows = ", ".join(str(n) for n in result.retry_row_numbers())
        print(f"Rows to retry: {rows}")
        return 1
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statement spreadsheets into the ledger. "
        "Loads DATABASE_URL and STATEMENT_IMPORT_* settings from a local .env."
    ),
)
formats_app = typer.Typer(no_args_is_help=True, help="Manage saved statement formats.")
app.add_typer(formats_app, name="formats")

# Module-level option objects to satisfy ruff B008 (no calls in parameter defaults).
FILE_OPTION: OptionInfo = typer.Option(
    ...,
    "--file",
    help="Statement file (.xlsx/.xlsm or CSV)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports a readable error
)
PROFILE_OPTION: OptionInfo = typer.Option(
    ..., "--format", "--profile-id", help="Id of a saved statement format"
)
RULES_OPTION: OptionInfo = typer.Option(
    None, "--rules", help="JSON file of keyword rules used to suggest categories"
)
DB_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
STORE_OPTION: OptionInfo = typer.Option(
    None,
    "--profile-store",
    help="Override STATEMENT_IMPORT_PROFILE_STORE (JSON path or 'sql').",
)


@formats_app.command("list")
def formats_list_cmd(
    database_url: str | None = DB_OPTION,
    profile_store: str | None = STORE_OPTION,
) -> None:
    raise typer.Exit(cmd_formats_list(database_url=database_url, profile_store=profile_store))


@formats_app.command("show")
def formats_show_cmd(
    profile_id: str,
    database_url: str | None = DB_OPTION,
    profile_store: str | None = STORE_OPTION,
) -> None:
    raise typer.Exit(
        cmd_formats_show(profile_id, database_url=database_url, profile_store=profile_store)
    )


@formats_app.command("add")
def formats_add_cmd(
    bank_name: str = typer.Option("", help="Bank or format name"),
    date_col: str = typer.Option("", help="Header of the date column"),
    desc_col: str = typer.Option("", help="Header of the description column"),
    amount_format_type: str = typer.Option(
        "",
        help=(
            "separate_debit_credit, single_amount_with_indicator or "
            "single_amount_with_tokens"
        ),
    ),
    debit_col: str = typer.Option("", help="Debit column (separate_debit_credit)"),
    credit_col: str = typer.Option("", help="Credit column (separate_debit_credit)"),
    amount_col: str = typer.Option("", help="Amount column (single-amount schemes)"),
    drcr_col: str = typer.Option("", help="Dr/Cr indicator column"),
    debit_texts: str = typer.Option("", help="Comma-separated debit tokens"),
    credit_texts: str = typer.Option("", help="Comma-separated credit tokens"),
    trans_id_col: str = typer.Option("", help="Optional transaction id column"),
    date_format: str = typer.Option("", help="Optional strptime date format"),
    from_json: Path | None = typer.Option(
        None, "--from-json", help="Load the format from a JSON document instead"
    ),
    database_url: str | None = DB_OPTION,
    profile_store: str | None = STORE_OPTION,
) -> None:
    """Save a new statement format and print its id."""

    fields = {
        "bank_name": bank_name,
        "date_col": date_col,
        "desc_col": desc_col,
        "amount_format_type": amount_format_type,
        "debit_col": debit_col,
        "credit_col": credit_col,
        "amount_col": amount_col,
        "drcr_col": drcr_col,
        "debit_texts": debit_texts,
        "credit_texts": credit_texts,
        "trans_id_col": trans_id_col,
        "date_format": date_format,
    }
    raise typer.Exit(
        cmd_formats_add(
            fields,
            from_json=from_json,
            database_url=database_url,
            profile_store=profile_store,
        )
    )


@formats_app.command("delete")
def formats_delete_cmd(
    profile_id: str,
    database_url: str | None = DB_OPTION,
    profile_store: str | None = STORE_OPTION,
) -> None:
    raise typer.Exit(
        cmd_formats_delete(profile_id, database_url=database_url, profile_store=profile_store)
    )


@app.command("parse")
def parse_cmd(
    file_path: Annotated[Path, FILE_OPTION],
    profile_id: Annotated[str, PROFILE_OPTION],
    account_id: int | None = typer.Option(
        None, help="Ledger account; enables already-committed duplicate checks."
    ),
    rules_path: Path | None = RULES_OPTION,
    database_url: str | None = DB_OPTION,
    profile_store: str | None = STORE_OPTION,
) -> None:
    """Parse a statement and print the staged rows as JSON lines."""

    raise typer.Exit(
        cmd_parse(
            file_path,
            profile_id,
            account_id=account_id,
            rules_path=rules_path,
            database_url=database_url,
            profile_store=profile_store,
        )
    )


@app.command("import")
def import_cmd(
    file_path: Annotated[Path, FILE_OPTION],
    profile_id: Annotated[str, PROFILE_OPTION],
    account_id: int = typer.Option(..., help="Ledger account to book the rows against."),
    rules_path: Path | None = RULES_OPTION,
    accept_hints: bool = typer.Option(
        False, help="Accept every suggested category before the review starts."
    ),
    notes: bool = typer.Option(False, help="Offer a free-text note for each reviewed row."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Commit without confirmation."),
    concurrency: int | None = typer.Option(
        None, help="Max in-flight ledger writes (env STATEMENT_IMPORT_COMMIT_CONCURRENCY)."
    ),
    database_url: str | None = DB_OPTION,
    profile_store: str | None = STORE_OPTION,
) -> None:
    """Parse, review and commit a statement.

    Category selection uses a prompt_toolkit completion menu. The suggested
    category is pre-filled; press Enter to accept it, type to replace it, or
    pick "- Skip this row -" to leave the row out of the import.
    """

    raise typer.Exit(
        cmd_import(
            file_path,
            profile_id,
            account_id,
            rules_path=rules_path,
            accept_hints=accept_hints,
            ask_notes=notes,
            assume_yes=yes,
            concurrency=concurrency,
            database_url=database_url,
            profile_store=profile_store,
        )
    )


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
