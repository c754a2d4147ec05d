"""race_history_etl.layout

Worksheet layout contract for the history workbook.

The defaults describe the "Estadisticas" sheet: driver names on row 3,
session labels on row 4, results in columns J–W, and season /
championship / circuit in columns G / H / I.  A YAML file can override
any of them:

    sheet_name: Estadisticas
    driver_row: 3
    session_row: 4
    first_column: J
    last_column: W
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from race_history_etl.errors import LayoutValidationError

_COLUMN_LETTERS_RE = re.compile(r"^[A-Z]+$")

COLUMN_KEYS = (
    "first_column",
    "last_column",
    "season_column",
    "championship_column",
    "circuit_column",
)
ROW_KEYS = ("driver_row", "session_row")


# ---------------------------------------------------------------------------
# Column helpers
# ---------------------------------------------------------------------------

def column_to_index(column: str) -> int:
    """'A' → 1, 'Z' → 26, 'AA' → 27."""
    index = 0
    for char in column:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index


def index_to_column(index: int) -> str:
    """1 → 'A', 27 → 'AA'."""
    if index < 1:
        raise ValueError(f"column index must be >= 1, got {index}")
    letters = []
    while index:
        index, rem = divmod(index - 1, 26)
        letters.append(chr(ord("A") + rem))
    return "".join(reversed(letters))


def column_range(first: str, last: str) -> list[str]:
    """Inclusive list of column letters from first to last."""
    return [
        index_to_column(i)
        for i in range(column_to_index(first), column_to_index(last) + 1)
    ]


# ---------------------------------------------------------------------------
# SheetLayout
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SheetLayout:
    sheet_name: str = "Estadisticas"
    driver_row: int = 3
    session_row: int = 4
    first_column: str = "J"
    last_column: str = "W"
    season_column: str = "G"
    championship_column: str = "H"
    circuit_column: str = "I"
    skip_circuit_values: tuple[str, ...] = ("Circuito", "Torneo", "Promedio")
    primary_label: str = "Sprint"
    secondary_label: str = "Final"

    @property
    def result_columns(self) -> list[str]:
        return column_range(self.first_column, self.last_column)


DEFAULT_LAYOUT = SheetLayout()


def validate_layout(data: dict[str, Any]) -> None:
    """Raise LayoutValidationError if data is not a valid layout override."""
    if not isinstance(data, dict):
        raise LayoutValidationError("YAML root must be a mapping.")

    known = {f.name for f in dataclasses.fields(SheetLayout)}
    unknown = set(data) - known
    if unknown:
        raise LayoutValidationError(f"Unknown layout keys: {sorted(unknown)}")

    for key in COLUMN_KEYS:
        if key in data:
            value = data[key]
            if not isinstance(value, str) or not _COLUMN_LETTERS_RE.match(value):
                raise LayoutValidationError(
                    f"'{key}' must be upper-case column letters, got {value!r}."
                )

    for key in ROW_KEYS:
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise LayoutValidationError(f"'{key}' must be a positive integer, got {value!r}.")

    first = data.get("first_column", DEFAULT_LAYOUT.first_column)
    last = data.get("last_column", DEFAULT_LAYOUT.last_column)
    if column_to_index(first) > column_to_index(last):
        raise LayoutValidationError(
            f"first_column {first} must not come after last_column {last}."
        )

    driver_row = data.get("driver_row", DEFAULT_LAYOUT.driver_row)
    session_row = data.get("session_row", DEFAULT_LAYOUT.session_row)
    if driver_row == session_row:
        raise LayoutValidationError("driver_row and session_row must differ.")

    skip = data.get("skip_circuit_values")
    if skip is not None and (
        not isinstance(skip, list) or not all(isinstance(v, str) for v in skip)
    ):
        raise LayoutValidationError("'skip_circuit_values' must be a list of strings.")


def load_layout(yaml_path: Path | None) -> SheetLayout:
    """Return DEFAULT_LAYOUT, or the layout with overrides from yaml_path.

    Raises:
        LayoutValidationError: If the file content is invalid.
        FileNotFoundError: If yaml_path does not exist.
    """
    if yaml_path is None:
        return DEFAULT_LAYOUT
    data = yaml.safe_load(yaml_path.read_text(encoding="utf-8")) or {}
    validate_layout(data)
    if "skip_circuit_values" in data:
        data = {**data, "skip_circuit_values": tuple(data["skip_circuit_values"])}
    return dataclasses.replace(DEFAULT_LAYOUT, **data)
