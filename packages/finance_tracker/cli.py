"""CLI for the ``finance_tracker`` package.

Command handlers (``cmd_import_statement``, ``cmd_preview``) return a process
exit code; the Typer wrappers below turn that into ``typer.Exit``. Settings
come from the environment after a local ``.env`` is loaded with
``python-dotenv``; business logic lives in ``finance_tracker.api``.
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .config import Settings
from .logging_setup import configure_logging
from .models import ImportCandidate, ImportReport, RowError

# "-" reads pasted text from stdin instead of a file.
STDIN_PATH = "-"


def _read_input(csv_path: str) -> str:
    from .api import decode_statement, read_statement

    if csv_path == STDIN_PATH:
        return decode_statement(sys.stdin.buffer.read())
    return asyncio.run(read_statement(csv_path))


def _parse_fallback(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"--date-fallback must be YYYY-MM-DD, got {value!r}") from exc


def _print_row_errors(errors: tuple[RowError, ...]) -> None:
    for err in errors:
        print(f"  skipped {err}", file=sys.stderr)


def _format_candidate(cand: ImportCandidate) -> str:
    tx = cand.transaction
    cat = cand.categorization
    return (
        f"{tx.date}\t{tx.type}\t{tx.amount}\t{cat.category}\t"
        f"{cat.confidence:.2f}\t{tx.original_description}"
    )


def cmd_preview(
    csv_path: str,
    *,
    date_fallback: str | None = None,
    rules_file: str | None = None,
) -> int:
    """Parse and categorize a statement without importing it.

    Prints one tab-separated line per candidate
    (``date, type, amount, category, confidence, description``) to stdout and
    the skipped rows plus a summary to stderr.
    """

    from .api import parse_statement
    from .errors import StatementImportError
    from .rules import load_rule_table

    settings = Settings.from_env()
    try:
        fallback = _parse_fallback(date_fallback)
        rules = load_rule_table(rules_file or settings.rules_file)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        text = _read_input(csv_path)
        parsed = parse_statement(
            text, rules=rules, date_fallback=fallback, unsigned_type=settings.unsigned_type
        )
    except StatementImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for cand in parsed.candidates:
        print(_format_candidate(cand))
    _print_row_errors(parsed.row_errors)
    print(
        f"{parsed.dialect.value}: {len(parsed.candidates)} transactions, "
        f"{len(parsed.row_errors)} skipped, {parsed.low_confidence} low confidence",
        file=sys.stderr,
    )
    return 0


def cmd_import_statement(
    csv_path: str,
    *,
    date_fallback: str | None = None,
    rules_file: str | None = None,
    api_base_url: str | None = None,
) -> int:
    """Parse, categorize and import a statement into the backend.

    Prints ``total=N success=N errors=N`` to stdout. Returns ``0`` when every
    row was imported, ``2`` when some rows failed, and ``1`` when the
    statement could not be imported at all.
    """

    from .api import import_statement
    from .client import TransactionsApi
    from .errors import StatementImportError
    from .rules import load_rule_table

    settings = Settings.from_env()
    try:
        if api_base_url:
            settings = replace(settings, api_base_url=api_base_url)
        fallback = _parse_fallback(date_fallback)
        rules = load_rule_table(rules_file or settings.rules_file)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    async def _run(text: str) -> ImportReport:
        async with TransactionsApi.from_settings(settings) as client:
            return await import_statement(
                text,
                client=client,
                rules=rules,
                date_fallback=fallback,
                unsigned_type=settings.unsigned_type,
                bulk_threshold=settings.bulk_threshold,
            )

    try:
        text = _read_input(csv_path)
        report = asyncio.run(_run(text))
    except StatementImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _print_row_errors(report.row_errors)
    if report.low_confidence:
        print(
            f"  {report.low_confidence} transactions parsed with low confidence",
            file=sys.stderr,
        )
    stats = report.stats
    print(f"total={stats.total} success={stats.success} errors={stats.errors}")
    return 0 if stats.errors == 0 else 2


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statement exports (Banco do Brasil or generic CSV) into the "
        "finance tracker. Loads settings from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Statement export to read, or '-' to read pasted text from stdin",
)
DATE_FALLBACK_OPTION: OptionInfo = typer.Option(
    "--date-fallback",
    help="Use this date (YYYY-MM-DD) for rows whose date cannot be parsed",
)
RULES_FILE_OPTION: OptionInfo = typer.Option(
    "--rules-file",
    help="JSON rule table to categorize with (falls back to FT_RULES_FILE, then bundled)",
)


@app.command("preview")
def preview_cmd(
    csv_path: Annotated[str, CSV_PATH_OPTION],
    *,
    date_fallback: Annotated[str | None, DATE_FALLBACK_OPTION] = None,
    rules_file: Annotated[str | None, RULES_FILE_OPTION] = None,
) -> None:
    """Show how a statement would be parsed and categorized (no network)."""

    rc = cmd_preview(csv_path, date_fallback=date_fallback, rules_file=rules_file)
    if rc:
        raise typer.Exit(rc)


@app.command("import-statement")
def import_statement_cmd(
    csv_path: Annotated[str, CSV_PATH_OPTION],
    *,
    date_fallback: Annotated[str | None, DATE_FALLBACK_OPTION] = None,
    rules_file: Annotated[str | None, RULES_FILE_OPTION] = None,
    api_base_url: str | None = typer.Option(
        None, help="Override FT_API_BASE_URL for this run."
    ),
) -> None:
    """Import a statement, using the bulk endpoint for large batches."""

    rc = cmd_import_statement(
        csv_path,
        date_fallback=date_fallback,
        rules_file=rules_file,
        api_base_url=api_base_url,
    )
    if rc:
        raise typer.Exit(rc)


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    app()
