"""race_history_etl.shared

Import summary and the store helpers used by apply mode.  Every helper
runs on the caller's connection; the caller owns the transaction.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import psycopg

from race_history_etl.driver_seeds import DriverSeed
from race_history_etl.errors import StoreConsistencyError
from race_history_etl.models import (
    ParsedRaceEvent,
    ParsedRaceResult,
    make_championship_key,
)
from race_history_etl.normalize import normalize_alias


# ---------------------------------------------------------------------------
# ImportSummary
# ---------------------------------------------------------------------------

@dataclass
class ImportSummary:
    source_file: str
    source_sha256: str
    mode: str
    events: int = 0
    results: int = 0
    championships: int = 0
    warnings: int = 0
    unknown_aliases: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceFile": self.source_file,
            "sourceSha256": self.source_sha256,
            "mode": self.mode,
            "events": self.events,
            "results": self.results,
            "championships": self.championships,
            "warnings": self.warnings,
            "unknownAliases": self.unknown_aliases,
        }

    def counters_dict(self) -> dict[str, Any]:
        """Counters stored in import_runs.summary_json."""
        return {
            "events": self.events,
            "results": self.results,
            "championships": self.championships,
            "warnings": self.warnings,
            "unknownAliases": self.unknown_aliases,
        }


# ---------------------------------------------------------------------------
# Store helpers: drivers + aliases
# ---------------------------------------------------------------------------

def upsert_driver_seed(conn: psycopg.Connection, seed: DriverSeed) -> str:
    """Upsert one driver by slug and its aliases by normalized text."""
    row = conn.execute(
        """
        INSERT INTO drivers
          (slug, canonical_name, sort_name, country_code,
           country_name_es, country_name_en, role_es, role_en,
           is_active, updated_at)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, true, now())
        ON CONFLICT (slug) DO UPDATE SET
          canonical_name = EXCLUDED.canonical_name,
          sort_name = EXCLUDED.sort_name,
          country_code = EXCLUDED.country_code,
          country_name_es = EXCLUDED.country_name_es,
          country_name_en = EXCLUDED.country_name_en,
          role_es = EXCLUDED.role_es,
          role_en = EXCLUDED.role_en,
          is_active = true,
          updated_at = now()
        RETURNING id
        """,
        (seed.slug, seed.canonical_name, seed.sort_name, seed.country_code,
         seed.country_name_es, seed.country_name_en, seed.role_es, seed.role_en),
    ).fetchone()
    driver_id = str(row[0])

    for alias in seed.aliases:
        conn.execute(
            """
            INSERT INTO driver_aliases (driver_id, alias_original, alias_normalized)
            VALUES (%s, %s, %s)
            ON CONFLICT (alias_normalized) DO UPDATE SET
              driver_id = EXCLUDED.driver_id,
              alias_original = EXCLUDED.alias_original
            """,
            (driver_id, alias, normalize_alias(alias)),
        )
    return driver_id


def load_alias_driver_map(conn: psycopg.Connection) -> dict[str, str]:
    """Return {alias_normalized: driver_id} for every stored alias."""
    rows = conn.execute(
        "SELECT alias_normalized, driver_id FROM driver_aliases"
    ).fetchall()
    return {row[0]: str(row[1]) for row in rows}


# ---------------------------------------------------------------------------
# Store helpers: championships / events / results
# ---------------------------------------------------------------------------

def upsert_championships(
    conn: psycopg.Connection,
    events: Sequence[ParsedRaceEvent],
) -> dict[str, str]:
    """Upsert one championship per (season_year, slug); return {championship key: id}.

    Only the display name is updated on conflict.
    """
    unique: dict[str, ParsedRaceEvent] = {}
    for event in events:
        unique[event.championship_key] = event

    ids: dict[str, str] = {}
    for key, event in unique.items():
        row = conn.execute(
            """
            INSERT INTO championships
              (season_year, name, slug, primary_session_label, secondary_session_label)
            VALUES (%s, %s, %s, 'Sprint', 'Final')
            ON CONFLICT (season_year, slug) DO UPDATE SET
              name = EXCLUDED.name
            RETURNING id
            """,
            (event.season_year, event.championship_name, event.championship_slug),
        ).fetchone()
        ids[key] = str(row[0])
    return ids


def upsert_event(
    conn: psycopg.Connection,
    event: ParsedRaceEvent,
    championship_id: str,
) -> str:
    row = conn.execute(
        """
        INSERT INTO events
          (championship_id, round_number, circuit_name, source_sheet, source_row)
        VALUES (%s, %s, %s, %s, %s)
        ON CONFLICT (championship_id, source_row) DO UPDATE SET
          round_number = EXCLUDED.round_number,
          circuit_name = EXCLUDED.circuit_name,
          source_sheet = EXCLUDED.source_sheet
        RETURNING id
        """,
        (championship_id, event.round_number, event.circuit_name,
         event.source_sheet, event.source_row),
    ).fetchone()
    if row is None:
        raise StoreConsistencyError(f"Failed to upsert event at row {event.source_row}.")
    return str(row[0])


def upsert_events(
    conn: psycopg.Connection,
    events: Sequence[ParsedRaceEvent],
    championship_ids: dict[str, str],
) -> dict[str, str]:
    """Return {event key: event id}."""
    event_ids: dict[str, str] = {}
    for event in events:
        championship_id = championship_ids.get(
            make_championship_key(event.season_year, event.championship_slug)
        )
        if not championship_id:
            raise StoreConsistencyError(
                f"Missing championship id for {event.season_year}/{event.championship_slug}."
            )
        event_ids[event.event_key] = upsert_event(conn, event, championship_id)
    return event_ids


def upsert_event_results(
    conn: psycopg.Connection,
    results: Sequence[ParsedRaceResult],
    event_ids: dict[str, str],
    alias_to_driver_id: dict[str, str],
    progress: Callable[[int, int], None] | None = None,
) -> int:
    """Upsert one row per (event, driver, session kind); return the count."""
    total = len(results)
    for idx, result in enumerate(results, start=1):
        driver_id = alias_to_driver_id.get(normalize_alias(result.driver_alias))
        if not driver_id:
            raise StoreConsistencyError(f"Missing alias mapping for {result.driver_alias}.")
        event_id = event_ids.get(result.event_key)
        if not event_id:
            raise StoreConsistencyError(f"Missing event for result at row {result.source_row}.")

        conn.execute(
            """
            INSERT INTO event_results
              (event_id, driver_id, session_kind, position, status, raw_value)
            VALUES (%s, %s, %s::session_kind, %s, %s::result_status, %s)
            ON CONFLICT (event_id, driver_id, session_kind) DO UPDATE SET
              position = EXCLUDED.position,
              status = EXCLUDED.status,
              raw_value = EXCLUDED.raw_value
            """,
            (event_id, driver_id, result.session_kind.value, result.position,
             result.status.value if result.status else None, result.raw_value),
        )
        if progress is not None and (idx % 100 == 0 or idx == total):
            progress(idx, total)
    return total


# ---------------------------------------------------------------------------
# Audit record
# ---------------------------------------------------------------------------

def insert_import_run(
    conn: psycopg.Connection,
    summary: ImportSummary,
    warnings: Sequence[str],
) -> str:
    row = conn.execute(
        """
        INSERT INTO import_runs
          (source_filename, source_sha256, mode, summary_json, warnings_json)
        VALUES (%s, %s, %s, %s::jsonb, %s::jsonb)
        RETURNING id
        """,
        (summary.source_file, summary.source_sha256, summary.mode,
         json.dumps(summary.counters_dict()), json.dumps(list(warnings), ensure_ascii=False)),
    ).fetchone()
    return str(row[0])
