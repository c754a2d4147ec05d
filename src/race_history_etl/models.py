"""race_history_etl.models

Parsed fact types produced by the workbook parser.  All are frozen; a
ParsedHistoryWorkbook is never modified after parse_history_workbook
returns it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SessionKind(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class ResultStatus(str, Enum):
    DNF = "DNF"
    DNQ = "DNQ"
    DSQ = "DSQ"
    ABSENT = "ABSENT"


def make_event_key(season_year: int, championship_slug: str, source_row: int) -> str:
    return f"{season_year}:{championship_slug}:{source_row}"


def make_championship_key(season_year: int, championship_slug: str) -> str:
    return f"{season_year}:{championship_slug}"


@dataclass(frozen=True)
class ParsedRaceEvent:
    season_year: int
    championship_name: str
    championship_slug: str
    circuit_name: str
    source_sheet: str
    source_row: int
    round_number: int | None = None

    @property
    def event_key(self) -> str:
        return make_event_key(self.season_year, self.championship_slug, self.source_row)

    @property
    def championship_key(self) -> str:
        return make_championship_key(self.season_year, self.championship_slug)

    def to_dict(self) -> dict[str, Any]:
        return {
            "seasonYear": self.season_year,
            "championshipName": self.championship_name,
            "championshipSlug": self.championship_slug,
            "roundNumber": self.round_number,
            "circuitName": self.circuit_name,
            "sourceSheet": self.source_sheet,
            "sourceRow": self.source_row,
        }


@dataclass(frozen=True)
class ParsedRaceResult:
    event_key: str
    season_year: int
    championship_name: str
    championship_slug: str
    source_row: int
    circuit_name: str
    driver_alias: str
    session_kind: SessionKind
    raw_value: str
    position: int | None
    status: ResultStatus | None
    round_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventKey": self.event_key,
            "seasonYear": self.season_year,
            "championshipName": self.championship_name,
            "championshipSlug": self.championship_slug,
            "roundNumber": self.round_number,
            "sourceRow": self.source_row,
            "circuitName": self.circuit_name,
            "driverAlias": self.driver_alias,
            "sessionKind": self.session_kind.value,
            "rawValue": self.raw_value,
            "position": self.position,
            "status": self.status.value if self.status else None,
        }


@dataclass(frozen=True)
class ParsedHistoryWorkbook:
    events: tuple[ParsedRaceEvent, ...]
    results: tuple[ParsedRaceResult, ...]
    warnings: tuple[str, ...]
    source_sheet: str

    @property
    def championship_keys(self) -> set[str]:
        return {event.championship_key for event in self.events}

    def to_dict(self) -> dict[str, Any]:
        return {
            "events": [e.to_dict() for e in self.events],
            "results": [r.to_dict() for r in self.results],
            "warnings": list(self.warnings),
            "sourceSheet": self.source_sheet,
        }
