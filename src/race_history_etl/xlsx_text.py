"""race_history_etl.xlsx_text

Text extraction from the workbook XML parts.

Parts read, in order:
  xl/workbook.xml              → sheet name → relationship id
  xl/_rels/workbook.xml.rels   → relationship id → part path
  xl/sharedStrings.xml         → shared-string list (optional part)
  <resolved worksheet part>    → CellGrid

Each part is parsed with ElementTree, so a truncated or badly nested part
raises InvalidWorkbookError instead of yielding a partial grid. Elements are
matched on their local name; the SpreadsheetML namespace may or may not be
declared. Entity and character references are decoded by the parser. Every
cell value is whitespace-normalized, and cells that are empty after
normalization are left out of the grid, so a key present in the grid always
has content.
"""

from __future__ import annotations

import logging
import posixpath
import re
from xml.etree import ElementTree as ET

from race_history_etl.errors import InvalidWorkbookError, SheetNotFoundError
from race_history_etl.normalize import normalize_text
from race_history_etl.xlsx_container import XlsxContainer

log = logging.getLogger(__name__)

WORKBOOK_PART = "xl/workbook.xml"
WORKBOOK_RELS_PART = "xl/_rels/workbook.xml.rels"
SHARED_STRINGS_PART = "xl/sharedStrings.xml"

# row index → column letter → normalized text
CellGrid = dict[int, dict[str, str]]

_COLUMN_RE = re.compile(r"^([A-Z]+)")


# ---------------------------------------------------------------------------
# Element helpers
# ---------------------------------------------------------------------------

def _local_tag(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _children(node: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in node if _local_tag(child.tag) == name]


def _parse_part(xml: str, root: str, part_name: str) -> ET.Element:
    """Parse one part and check its root element, or raise InvalidWorkbookError."""
    try:
        element = ET.fromstring(xml)
    except ET.ParseError as exc:
        raise InvalidWorkbookError(
            f"Invalid XLSX file: malformed XML in {part_name} ({exc})."
        ) from exc
    if _local_tag(element.tag) != root:
        raise InvalidWorkbookError(
            f"Invalid XLSX file: malformed XML in {part_name} (no <{root}> element)."
        )
    return element


def _string_item_text(node: ET.Element) -> str:
    """Text of an <si> or <is> item: a plain <t>, or the <t> of each <r> run.

    Phonetic runs (<rPh>) are not part of the displayed value and are skipped.
    """
    parts = [t.text or "" for t in _children(node, "t")]
    for run in _children(node, "r"):
        parts.extend(t.text or "" for t in _children(run, "t"))
    return "".join(parts)


# ---------------------------------------------------------------------------
# Workbook manifest + relationships
# ---------------------------------------------------------------------------

def _relationship_id(sheet: ET.Element) -> str:
    for key, value in sheet.attrib.items():
        if key.endswith("}id") or key == "r:id":
            return value
    return ""


def parse_workbook_sheets(workbook_xml: str) -> dict[str, str]:
    """Return {sheet name: relationship id} in document order."""
    root = _parse_part(workbook_xml, "workbook", WORKBOOK_PART)
    sheets: dict[str, str] = {}
    for node in root.iter():
        if _local_tag(node.tag) != "sheet":
            continue
        name = node.get("name")
        rel_id = _relationship_id(node)
        if name is not None and rel_id and name not in sheets:
            sheets[name] = rel_id
    return sheets


def parse_relationships(relationships_xml: str) -> dict[str, str]:
    """Return {relationship id: target} exactly as written in the rels part."""
    root = _parse_part(relationships_xml, "Relationships", WORKBOOK_RELS_PART)
    relationships: dict[str, str] = {}
    for rel in _children(root, "Relationship"):
        rel_id = rel.get("Id")
        if rel_id:
            relationships[rel_id] = rel.get("Target", "")
    return relationships


def resolve_target_path(target: str) -> str:
    """Map a workbook relationship target to a container part name.

    "/xl/worksheets/sheet1.xml" is root-relative; "worksheets/sheet1.xml"
    is relative to the xl/ package folder.
    """
    if target.startswith("/"):
        return target.lstrip("/")
    return posixpath.normpath(posixpath.join("xl", target))


def resolve_sheet_path(workbook_xml: str, relationships_xml: str, sheet_name: str) -> str:
    """Two-hop join: sheet name → relationship id → part path."""
    rel_id = parse_workbook_sheets(workbook_xml).get(sheet_name)
    if not rel_id:
        raise SheetNotFoundError(sheet_name)

    relationships = parse_relationships(relationships_xml)
    if rel_id not in relationships:
        raise SheetNotFoundError(
            sheet_name, f"Relationship {rel_id} not found in workbook rels."
        )
    target = relationships[rel_id]
    if not target:
        raise SheetNotFoundError(sheet_name, f"Relationship {rel_id} has no target.")
    return resolve_target_path(target)


# ---------------------------------------------------------------------------
# Shared strings
# ---------------------------------------------------------------------------

def parse_shared_strings(xml: str) -> list[str]:
    """Return the shared-string table; rich-text runs are concatenated.

    Every <si> item takes one slot, including an empty <si/>, so cell
    indices line up with the table.
    """
    if not xml:
        return []
    root = _parse_part(xml, "sst", SHARED_STRINGS_PART)
    return [_string_item_text(item) for item in _children(root, "si")]


# ---------------------------------------------------------------------------
# Worksheet rows
# ---------------------------------------------------------------------------

def _cell_text(cell: ET.Element, shared_strings: list[str]) -> str:
    cell_type = cell.get("t", "")
    if cell_type == "inlineStr":
        return "".join(_string_item_text(item) for item in _children(cell, "is"))

    values = _children(cell, "v")
    raw = (values[0].text or "") if values else ""
    if cell_type == "s":
        try:
            index = int(raw.strip())
        except ValueError:
            return ""
        if 0 <= index < len(shared_strings):
            return shared_strings[index]
        return ""
    return raw


def parse_sheet_rows(sheet_xml: str, shared_strings: list[str], part_name: str = "") -> CellGrid:
    """Build the cell grid of one worksheet.

    Rows without a numeric `r` attribute and cells without an `r` reference
    are skipped.
    """
    root = _parse_part(sheet_xml, "worksheet", part_name or "worksheet")
    grid: CellGrid = {}
    for row in root.iter():
        if _local_tag(row.tag) != "row":
            continue
        row_ref = row.get("r", "")
        if not (row_ref.isascii() and row_ref.isdigit()):
            continue

        cells: dict[str, str] = {}
        for cell in _children(row, "c"):
            column_match = _COLUMN_RE.match(cell.get("r", ""))
            if not column_match:
                continue
            text = normalize_text(_cell_text(cell, shared_strings))
            if text:
                cells[column_match.group(1)] = text
        grid[int(row_ref)] = cells
    return grid


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def extract_sheet_grid(container: XlsxContainer, sheet_name: str) -> CellGrid:
    """Decode manifest, relationships, shared strings and one worksheet."""
    workbook_xml = container.read_text(WORKBOOK_PART)
    relationships_xml = container.read_text(WORKBOOK_RELS_PART)
    shared_strings_xml = (
        container.read_text(SHARED_STRINGS_PART)
        if container.has_part(SHARED_STRINGS_PART)
        else ""
    )

    sheet_path = resolve_sheet_path(workbook_xml, relationships_xml, sheet_name)
    sheet_xml = container.read_text(sheet_path)
    shared_strings = parse_shared_strings(shared_strings_xml)
    grid = parse_sheet_rows(sheet_xml, shared_strings, sheet_path)
    log.debug(
        "sheet %r at %s: %d rows, %d shared strings",
        sheet_name, sheet_path, len(grid), len(shared_strings),
    )
    return grid
