"""race_history_etl.rounds

Round numbering for provisional events.

Events are grouped by (season_year, championship_slug) and numbered
1..N in ascending source-row order; every result is then stamped with
its event's round via the event key.
"""

from __future__ import annotations

import dataclasses
from collections import defaultdict

from race_history_etl.errors import RoundAssignmentError
from race_history_etl.fact_extractor import ProvisionalFacts
from race_history_etl.models import (
    ParsedHistoryWorkbook,
    ParsedRaceEvent,
    ParsedRaceResult,
)


def assign_round_numbers(events: list[ParsedRaceEvent]) -> dict[str, int]:
    """Return {event_key: round_number}."""
    groups: dict[str, list[ParsedRaceEvent]] = defaultdict(list)
    for event in events:
        groups[event.championship_key].append(event)

    rounds: dict[str, int] = {}
    for group in groups.values():
        for round_number, event in enumerate(sorted(group, key=lambda e: e.source_row), start=1):
            rounds[event.event_key] = round_number
    return rounds


def _event_sort_key(event: ParsedRaceEvent) -> tuple[int, str, int]:
    return (event.season_year, event.championship_slug, event.round_number or 0)


def _result_sort_key(result: ParsedRaceResult) -> tuple[int, str, int, str]:
    return (
        result.season_year,
        result.championship_slug,
        result.round_number or 0,
        result.driver_alias,
    )


def finalize_workbook(facts: ProvisionalFacts, source_sheet: str) -> ParsedHistoryWorkbook:
    """Stamp round numbers and return the immutable, ordered fact set.

    Raises:
        RoundAssignmentError: an event or result has no round number.
    """
    rounds = assign_round_numbers(facts.events)

    events: list[ParsedRaceEvent] = []
    for event in facts.events:
        round_number = rounds.get(event.event_key)
        if not round_number:
            raise RoundAssignmentError(f"Missing round number for row {event.source_row}.")
        events.append(dataclasses.replace(event, round_number=round_number))

    results: list[ParsedRaceResult] = []
    for result in facts.results:
        round_number = rounds.get(result.event_key)
        if not round_number:
            raise RoundAssignmentError(
                f"Missing round number for result at row {result.source_row}."
            )
        results.append(dataclasses.replace(result, round_number=round_number))

    return ParsedHistoryWorkbook(
        events=tuple(sorted(events, key=_event_sort_key)),
        results=tuple(sorted(results, key=_result_sort_key)),
        warnings=tuple(facts.warnings),
        source_sheet=source_sheet,
    )
