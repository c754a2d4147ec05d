"""race_history_etl.import_history

History workbook import pipeline and CLI entrypoint.

Modes:
  dry-run (default): parse, check aliases, print the summary and every
                      warning.  Never connects to the database.
  apply (--apply):   same parse and alias gate, then one transaction:
                        1. upsert driver seeds + aliases
                        2. load alias → driver id map
                        3. upsert championships
                        4. upsert events
                        5. upsert event results
                        6. insert import_runs audit row
                      Any failure rolls back the whole transaction.

Unknown aliases abort apply mode before a connection is opened.

Usage:
    python -m race_history_etl.import_history \\
        --file "data-source/Historia The New Project.xlsx"

    python -m race_history_etl.import_history --apply \\
        --db-dsn "$DATABASE_URL" --debug
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
import time
import urllib.parse
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Sequence

import click
import psycopg
import yaml

from race_history_etl.driver_seeds import DriverSeed, find_unknown_aliases, load_driver_seeds
from race_history_etl.errors import HistoryImportError, UnknownAliasesError
from race_history_etl.layout import DEFAULT_LAYOUT, SheetLayout, load_layout
from race_history_etl.models import ParsedHistoryWorkbook
from race_history_etl.parser import parse_history_workbook
from race_history_etl.shared import (
    ImportSummary,
    insert_import_run,
    load_alias_driver_map,
    upsert_championships,
    upsert_driver_seed,
    upsert_event_results,
    upsert_events,
)

log = logging.getLogger(__name__)

DEFAULT_WORKBOOK_PATH = "data-source/Historia The New Project.xlsx"
DEFAULT_SEEDS_PATH = "config/driver_seeds.yml"
DEFAULT_STATEMENT_TIMEOUT = "120s"

ConnectFn = Callable[[], psycopg.Connection]


class ImportMode(str, Enum):
    DRY_RUN = "dry-run"
    APPLY = "apply"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@contextmanager
def stage_timer(label: str) -> Iterator[None]:
    """Log start/done/error of a pipeline stage with its duration."""
    started = time.perf_counter()
    log.debug("start %s", label)
    try:
        yield
    except Exception as exc:
        log.debug("error %s (%dms): %s", label, (time.perf_counter() - started) * 1000, exc)
        raise
    log.debug("done %s (%dms)", label, (time.perf_counter() - started) * 1000)


def compute_sha256(buffer: bytes) -> str:
    return hashlib.sha256(buffer).hexdigest()


def validate_database_url(value: str | None) -> str:
    """Return a usable DSN or raise ValueError.

    Accepts postgres:// / postgresql:// URLs and libpq key=value strings.
    """
    dsn = (value or "").strip()
    if not dsn:
        raise ValueError("Missing DATABASE_URL environment variable (or --db-dsn).")
    if "://" not in dsn:
        if "=" in dsn:
            return dsn
        raise ValueError("DATABASE_URL must be a valid URL.")
    if urllib.parse.urlparse(dsn).scheme not in ("postgres", "postgresql"):
        raise ValueError("DATABASE_URL must start with postgres:// or postgresql://.")
    return dsn


def build_summary(
    source_file: str,
    source_sha256: str,
    mode: ImportMode,
    parsed: ParsedHistoryWorkbook,
    unknown_aliases: list[str],
) -> ImportSummary:
    return ImportSummary(
        source_file=source_file,
        source_sha256=source_sha256,
        mode=mode.value,
        events=len(parsed.events),
        results=len(parsed.results),
        championships=len(parsed.championship_keys),
        warnings=len(parsed.warnings),
        unknown_aliases=unknown_aliases,
    )


# ---------------------------------------------------------------------------
# Apply mode
# ---------------------------------------------------------------------------

def apply_history_import(
    conn: psycopg.Connection,
    parsed: ParsedHistoryWorkbook,
    summary: ImportSummary,
    seeds: Sequence[DriverSeed],
) -> str:
    """Run write steps 1–6 on conn without committing; return the import_runs id."""
    with stage_timer("seed drivers + aliases"):
        for seed in seeds:
            upsert_driver_seed(conn, seed)
    with stage_timer("load alias map"):
        alias_to_driver_id = load_alias_driver_map(conn)
    with stage_timer("upsert championships"):
        championship_ids = upsert_championships(conn, parsed.events)
    with stage_timer("upsert events"):
        event_ids = upsert_events(conn, parsed.events, championship_ids)
    with stage_timer("upsert results"):
        upsert_event_results(
            conn, parsed.results, event_ids, alias_to_driver_id,
            progress=lambda done, total: log.debug("upserted results %d/%d", done, total),
        )
    with stage_timer("insert import_run"):
        return insert_import_run(conn, summary, parsed.warnings)


def run_apply_import(
    connect: ConnectFn,
    parsed: ParsedHistoryWorkbook,
    summary: ImportSummary,
    seeds: Sequence[DriverSeed],
    statement_timeout: str = DEFAULT_STATEMENT_TIMEOUT,
) -> str:
    """One connection, one transaction; rolled back on any failure."""
    with stage_timer("db.connect"):
        conn = connect()
    try:
        with stage_timer("tx.set_statement_timeout"):
            conn.execute(
                "SELECT set_config('statement_timeout', %s, true)",
                (statement_timeout,),
            )
        import_run_id = apply_history_import(conn, parsed, summary, seeds)
        with stage_timer("tx.commit"):
            conn.commit()
        log.debug("apply import completed")
        return import_run_id
    except Exception:
        with stage_timer("tx.rollback"):
            conn.rollback()
        raise
    finally:
        log.debug("db: releasing connection")
        conn.close()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def run_history_import(
    buffer: bytes,
    source_file: str,
    mode: ImportMode,
    seeds: Sequence[DriverSeed],
    layout: SheetLayout = DEFAULT_LAYOUT,
    connect: ConnectFn | None = None,
    statement_timeout: str = DEFAULT_STATEMENT_TIMEOUT,
) -> tuple[ImportSummary, ParsedHistoryWorkbook]:
    """Parse, gate on alias completeness, and (apply mode) write.

    Raises:
        HistoryImportError: structural parse failure.
        UnknownAliasesError: apply mode with aliases missing from seeds.
        psycopg.Error: store failure (already rolled back).
    """
    source_sha256 = compute_sha256(buffer)
    log.debug("source sha256=%s", source_sha256)

    with stage_timer("parse workbook"):
        parsed = parse_history_workbook(buffer, layout)
    unknown_aliases = find_unknown_aliases(parsed.results, seeds)
    log.debug(
        "parsed events=%d results=%d warnings=%d",
        len(parsed.events), len(parsed.results), len(parsed.warnings),
    )

    summary = build_summary(source_file, source_sha256, mode, parsed, unknown_aliases)

    if mode is ImportMode.APPLY:
        if unknown_aliases:
            raise UnknownAliasesError(unknown_aliases, summary)
        if connect is None:
            raise ValueError("apply mode requires a database connection factory.")
        run_apply_import(connect, parsed, summary, seeds, statement_timeout)

    return summary, parsed


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        stream=sys.stdout,
        format="[debug %(asctime)s] %(message)s",
        force=True,
    )


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--apply/--dry-run",
    "apply",
    default=False,
    help="Persist to database (default is dry-run).",
)
@click.option(
    "--file",
    "file_path",
    default=DEFAULT_WORKBOOK_PATH,
    show_default=True,
    type=click.Path(),
    help="Workbook path (.xlsx).",
)
@click.option(
    "--seeds-path",
    default=DEFAULT_SEEDS_PATH,
    show_default=True,
    type=click.Path(),
    help="Driver seed catalog (YAML).",
)
@click.option("--layout-path", default=None, type=click.Path(), help="Optional worksheet layout override (YAML).")
@click.option("--db-dsn", envvar="DATABASE_URL", default=None, help="PostgreSQL DSN [env: DATABASE_URL]; apply mode only.")
@click.option(
    "--statement-timeout",
    default=DEFAULT_STATEMENT_TIMEOUT,
    show_default=True,
    help="Transaction-local statement timeout for apply mode.",
)
@click.option("--debug", is_flag=True, default=False, help="Print stage-level debug logs and timings.")
def main(
    apply: bool,
    file_path: str,
    seeds_path: str,
    layout_path: str | None,
    db_dsn: str | None,
    statement_timeout: str,
    debug: bool,
) -> None:
    """Import race history from the results workbook."""
    _configure_logging(debug)
    mode = ImportMode.APPLY if apply else ImportMode.DRY_RUN
    path = Path(file_path).resolve()
    log.debug("mode=%s file=%s", mode.value, path)

    try:
        with stage_timer("read workbook"):
            buffer = path.read_bytes()
        seeds = load_driver_seeds(Path(seeds_path))
        layout = load_layout(Path(layout_path) if layout_path else None)

        connect: ConnectFn | None = None
        if mode is ImportMode.APPLY:
            dsn = validate_database_url(db_dsn)
            connect = lambda: psycopg.connect(dsn, autocommit=False)  # noqa: E731

        summary, parsed = run_history_import(
            buffer, path.name, mode, seeds, layout,
            connect=connect, statement_timeout=statement_timeout,
        )
    except UnknownAliasesError as exc:
        click.echo(f"Unknown aliases detected: {', '.join(exc.aliases)}", err=True)
        click.echo(str(exc), err=True)
        sys.exit(1)
    except (HistoryImportError, psycopg.Error, OSError, ValueError, yaml.YAMLError) as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)

    if summary.unknown_aliases:
        click.echo(f"Unknown aliases detected: {', '.join(summary.unknown_aliases)}", err=True)

    click.echo(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
    if mode is ImportMode.DRY_RUN and parsed.warnings:
        click.echo("Warnings:")
        for warning in parsed.warnings:
            click.echo(f"- {warning}")


if __name__ == "__main__":
    main()
