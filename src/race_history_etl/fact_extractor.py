"""race_history_etl.fact_extractor

Walks the data rows of the cell grid and emits provisional event and
result facts (round numbers still unset) plus warnings.

Season year and championship name carry forward from row to row as a
SeasonContext that advance_context() replaces row by row; a header row
need not repeat them.  A row becomes an event only if its circuit cell
is populated (and not a header/footer sentinel) and at least one mapped
result cell classifies as a position or a status.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from race_history_etl.column_mapper import ColumnMapping
from race_history_etl.layout import DEFAULT_LAYOUT, SheetLayout
from race_history_etl.models import (
    ParsedRaceEvent,
    ParsedRaceResult,
    ResultStatus,
    make_event_key,
)
from race_history_etl.normalize import slug_name
from race_history_etl.xlsx_text import CellGrid

log = logging.getLogger(__name__)

STATUS_VALUES: dict[str, ResultStatus] = {
    "DNF": ResultStatus.DNF,
    "DNQ": ResultStatus.DNQ,
    "DSQ": ResultStatus.DSQ,
    "X": ResultStatus.ABSENT,
}

_SEASON_RE = re.compile(r"^[0-9]{4}(?:\.0+)?$")
_POSITION_RE = re.compile(r"^[0-9]+(?:\.0+)?$")


# ---------------------------------------------------------------------------
# Carry-forward context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SeasonContext:
    season_year: int | None = None
    championship_name: str | None = None


def parse_season_year(value: str | None) -> int | None:
    """'2024' or '2024.0' → 2024; anything else → None."""
    if not value or not _SEASON_RE.match(value):
        return None
    return int(value.split(".", 1)[0])


def advance_context(context: SeasonContext, row: dict[str, str], layout: SheetLayout) -> SeasonContext:
    """Return the context in effect for this row."""
    season_year = parse_season_year(row.get(layout.season_column))
    championship_name = row.get(layout.championship_column)
    if season_year is None and not championship_name:
        return context
    return SeasonContext(
        season_year=season_year if season_year is not None else context.season_year,
        championship_name=championship_name or context.championship_name,
    )


# ---------------------------------------------------------------------------
# Cell classification
# ---------------------------------------------------------------------------

def classify_result_value(raw_value: str) -> tuple[int | None, ResultStatus | None]:
    """Return (position, status); (None, None) when unusable.

    Status tokens match case-insensitively; positions are all-digit strings
    with an optional ".0" suffix and must be >= 1.
    """
    status = STATUS_VALUES.get(raw_value.upper())
    if status is not None:
        return None, status
    if _POSITION_RE.match(raw_value):
        position = int(raw_value.split(".", 1)[0])
        if position >= 1:
            return position, None
    return None, None


# ---------------------------------------------------------------------------
# Row extraction
# ---------------------------------------------------------------------------

@dataclass
class ProvisionalFacts:
    events: list[ParsedRaceEvent] = field(default_factory=list)
    results: list[ParsedRaceResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def extract_row_facts(
    row_index: int,
    row: dict[str, str],
    context: SeasonContext,
    mappings: dict[str, ColumnMapping],
    layout: SheetLayout = DEFAULT_LAYOUT,
) -> tuple[ParsedRaceEvent | None, list[ParsedRaceResult], list[str]]:
    """Facts for a single row under an already-advanced context.

    Returns (event or None, results, warnings).  The event is None whenever
    results is empty.
    """
    circuit_name = row.get(layout.circuit_column)
    if not circuit_name or circuit_name in layout.skip_circuit_values:
        return None, [], []

    if not context.season_year or not context.championship_name:
        return None, [], [f"Skipped row {row_index}: missing season/championship context."]

    championship_slug = slug_name(context.championship_name)
    if not championship_slug:
        return None, [], [f"Skipped row {row_index}: invalid championship slug."]

    event_key = make_event_key(context.season_year, championship_slug, row_index)
    results: list[ParsedRaceResult] = []
    warnings: list[str] = []

    for column, mapping in mappings.items():
        raw_value = row.get(column)
        if not raw_value:
            continue
        position, status = classify_result_value(raw_value)
        if position is None and status is None:
            warnings.append(f"Skipped value at row {row_index}, column {column}: {raw_value}")
            continue
        results.append(
            ParsedRaceResult(
                event_key=event_key,
                season_year=context.season_year,
                championship_name=context.championship_name,
                championship_slug=championship_slug,
                source_row=row_index,
                circuit_name=circuit_name,
                driver_alias=mapping.driver_alias,
                session_kind=mapping.session_kind,
                raw_value=raw_value,
                position=position,
                status=status,
            )
        )

    if not results:
        # TODO: confirm with the results owner whether an all-blank
        # tournament row should still create an event.
        return None, [], warnings

    event = ParsedRaceEvent(
        season_year=context.season_year,
        championship_name=context.championship_name,
        championship_slug=championship_slug,
        circuit_name=circuit_name,
        source_sheet=layout.sheet_name,
        source_row=row_index,
    )
    return event, results, warnings


def extract_facts(
    grid: CellGrid,
    mappings: dict[str, ColumnMapping],
    layout: SheetLayout = DEFAULT_LAYOUT,
) -> ProvisionalFacts:
    """Fold over the grid rows in ascending row order."""
    facts = ProvisionalFacts()
    seen_event_keys: set[str] = set()
    context = SeasonContext()

    for row_index in sorted(grid):
        row = grid[row_index]
        context = advance_context(context, row, layout)
        event, results, warnings = extract_row_facts(row_index, row, context, mappings, layout)
        facts.warnings.extend(warnings)
        if event is None:
            continue
        if event.event_key not in seen_event_keys:
            seen_event_keys.add(event.event_key)
            facts.events.append(event)
        facts.results.extend(results)

    log.debug(
        "extracted %d provisional events, %d results, %d warnings",
        len(facts.events), len(facts.results), len(facts.warnings),
    )
    return facts
