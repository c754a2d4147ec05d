"""race_history_etl.parser

Parse stage of the history import: container → cell grid → column
mappings → facts → round numbers.  Pure and synchronous; the whole
buffer and the whole fact set are held in memory.

Usage:
    from race_history_etl.parser import parse_history_workbook

    parsed = parse_history_workbook(Path("history.xlsx").read_bytes())
    print(len(parsed.events), len(parsed.results))
"""

from __future__ import annotations

from pathlib import Path

from race_history_etl.column_mapper import map_columns
from race_history_etl.fact_extractor import extract_facts
from race_history_etl.layout import DEFAULT_LAYOUT, SheetLayout
from race_history_etl.models import ParsedHistoryWorkbook
from race_history_etl.rounds import finalize_workbook
from race_history_etl.xlsx_container import XlsxContainer
from race_history_etl.xlsx_text import extract_sheet_grid


def parse_history_workbook(
    buffer: bytes,
    layout: SheetLayout = DEFAULT_LAYOUT,
) -> ParsedHistoryWorkbook:
    container = XlsxContainer(buffer)
    grid = extract_sheet_grid(container, layout.sheet_name)
    mappings = map_columns(grid, layout)
    facts = extract_facts(grid, mappings, layout)
    return finalize_workbook(facts, layout.sheet_name)


def parse_history_workbook_from_file(
    file_path: Path,
    layout: SheetLayout = DEFAULT_LAYOUT,
) -> ParsedHistoryWorkbook:
    return parse_history_workbook(Path(file_path).read_bytes(), layout)
