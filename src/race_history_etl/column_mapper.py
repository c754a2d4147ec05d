"""race_history_etl.column_mapper

Infers which driver and session each result column holds.

Row `driver_row` names a driver only where that driver's block starts
(merged cells); blanks inherit the nearest driver to the left.  Session
kind comes from the per-driver column count: 1st, 3rd, ... column of a
driver is primary, 2nd, 4th, ... is secondary.  The label on
`session_row` is informational only and never decides the kind.
"""

from __future__ import annotations

from dataclasses import dataclass

from race_history_etl.layout import DEFAULT_LAYOUT, SheetLayout
from race_history_etl.models import SessionKind
from race_history_etl.xlsx_text import CellGrid


@dataclass(frozen=True)
class ColumnMapping:
    driver_alias: str
    session_kind: SessionKind
    session_label: str


def inherit_drivers(driver_cells: dict[str, str], columns: list[str]) -> list[str | None]:
    """Left-to-right scan carrying the current driver.

    Returns one entry per column: the driver that column belongs to, or
    None while no driver has been seen yet.
    """
    current: str | None = None
    drivers: list[str | None] = []
    for column in columns:
        current = driver_cells.get(column) or current
        drivers.append(current)
    return drivers


def map_columns(grid: CellGrid, layout: SheetLayout = DEFAULT_LAYOUT) -> dict[str, ColumnMapping]:
    """Return {column letter: ColumnMapping} in column order."""
    columns = layout.result_columns
    driver_cells = grid.get(layout.driver_row, {})
    session_cells = grid.get(layout.session_row, {})

    mappings: dict[str, ColumnMapping] = {}
    column_counts: dict[str, int] = {}
    for column, driver in zip(columns, inherit_drivers(driver_cells, columns)):
        if driver is None:
            continue
        count = column_counts.get(driver, 0) + 1
        column_counts[driver] = count

        if count % 2 == 1:
            kind, default_label = SessionKind.PRIMARY, layout.primary_label
        else:
            kind, default_label = SessionKind.SECONDARY, layout.secondary_label

        mappings[column] = ColumnMapping(
            driver_alias=driver,
            session_kind=kind,
            session_label=session_cells.get(column, default_label),
        )
    return mappings
