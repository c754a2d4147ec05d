"""Shared fixtures: in-memory workbook builder and a sample history sheet."""

from __future__ import annotations

import io
import zipfile
from typing import Callable

import pytest

from race_history_etl.driver_seeds import DriverSeed

# ---------------------------------------------------------------------------
# Workbook builder
# ---------------------------------------------------------------------------

CONTENT_TYPES_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    "</Types>"
)

ROOT_RELS_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/'
    'relationships/officeDocument" Target="xl/workbook.xml"/>'
    "</Relationships>"
)


def xml_escape(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def build_xlsx(
    rows: dict[int, dict[str, object]],
    *,
    sheet_name: str = "Estadisticas",
    string_mode: str = "shared",
    compression: int = zipfile.ZIP_DEFLATED,
    absolute_target: bool = False,
    other_sheets: tuple[str, ...] = ("Resumen",),
) -> bytes:
    """Return xlsx bytes with one data sheet built from {row: {col: value}}.

    string_mode: "shared" (t="s"), "inline" (t="inlineStr") or "literal"
    (t="str", value in <v>).  Numbers are always written as plain <v>.
    """
    shared: list[str] = []
    shared_index: dict[str, int] = {}
    row_xml: list[str] = []

    for row_index in sorted(rows):
        cells: list[str] = []
        for column, value in rows[row_index].items():
            ref = f"{column}{row_index}"
            if isinstance(value, (int, float)):
                cells.append(f'<c r="{ref}"><v>{value}</v></c>')
            elif string_mode == "shared":
                if value not in shared_index:
                    shared_index[value] = len(shared)
                    shared.append(value)
                cells.append(f'<c r="{ref}" t="s"><v>{shared_index[value]}</v></c>')
            elif string_mode == "inline":
                cells.append(
                    f'<c r="{ref}" t="inlineStr"><is><t xml:space="preserve">{xml_escape(value)}</t></is></c>'
                )
            else:
                cells.append(f'<c r="{ref}" t="str"><v>{xml_escape(value)}</v></c>')
        row_xml.append(f'<row r="{row_index}">{"".join(cells)}</row>')

    sheet_xml = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        '<worksheet xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main">'
        f'<sheetData>{"".join(row_xml)}</sheetData></worksheet>'
    )

    all_sheets = list(other_sheets) + [sheet_name]
    sheet_entries = "".join(
        f'<sheet name="{xml_escape(name)}" sheetId="{i}" r:id="rId{i}"/>'
        for i, name in enumerate(all_sheets, start=1)
    )
    workbook_xml = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        '<workbook xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main" '
        'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships">'
        f"<sheets>{sheet_entries}</sheets></workbook>"
    )
    prefix = "/xl/" if absolute_target else ""
    rel_entries = "".join(
        f'<Relationship Id="rId{i}" Type="http://schemas.openxmlformats.org/officeDocument/'
        f'2006/relationships/worksheet" Target="{prefix}worksheets/sheet{i}.xml"/>'
        for i in range(1, len(all_sheets) + 1)
    )
    rels_xml = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
        f"{rel_entries}</Relationships>"
    )
    empty_sheet = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        '<worksheet xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main">'
        "<sheetData/></worksheet>"
    )

    out = io.BytesIO()
    with zipfile.ZipFile(out, "w", compression=compression) as zf:
        zf.writestr("[Content_Types].xml", CONTENT_TYPES_XML)
        zf.writestr("_rels/.rels", ROOT_RELS_XML)
        zf.writestr("xl/workbook.xml", workbook_xml)
        zf.writestr("xl/_rels/workbook.xml.rels", rels_xml)
        if shared:
            sst = "".join(
                f'<si><t xml:space="preserve">{xml_escape(s)}</t></si>' for s in shared
            )
            zf.writestr(
                "xl/sharedStrings.xml",
                '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
                '<sst xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main" '
                f'count="{len(shared)}" uniqueCount="{len(shared)}">{sst}</sst>',
            )
        for i, name in enumerate(all_sheets, start=1):
            zf.writestr(
                f"xl/worksheets/sheet{i}.xml",
                sheet_xml if name == sheet_name else empty_sheet,
            )
    return out.getvalue()


@pytest.fixture
def build_workbook() -> Callable[..., bytes]:
    return build_xlsx


# ---------------------------------------------------------------------------
# Sample history sheet
# ---------------------------------------------------------------------------

def make_sample_rows() -> dict[int, dict[str, object]]:
    """Two seasons of one championship, two drivers (Martin J/K, Lucas L/M).

    Expected parse:
      2024 copa-invierno: row 5 → round 1, row 6 → round 2
      2025 copa-invierno: row 7 → round 1, row 10 → round 2
      row 1: no context (warning); row 6 column M "P1" (warning);
      row 8 "Promedio" skipped; row 9 has no results (no event).
    """
    return {
        1: {"I": "Pista Vieja", "J": 3},
        2: {"G": "Año", "H": "Torneo", "I": "Circuito"},
        3: {"J": "Martin", "L": "Lucas"},
        4: {"J": "Sprint", "K": "Final", "L": "Sprint", "M": "Final"},
        5: {"G": 2024, "H": "Copa Invierno", "I": "Autódromo A", "J": 1, "K": 2, "L": "DNF", "M": 3},
        6: {"I": "Circuito B", "J": "x", "K": "DSQ", "L": 4, "M": "P1"},
        7: {"G": "2025.0", "H": "Copa Invierno", "I": "Circuito C", "J": 5},
        8: {"I": "Promedio", "J": 2},
        9: {"I": "Circuito D"},
        10: {"I": "Circuito E", "K": "1.0"},
    }


@pytest.fixture
def sample_rows() -> dict[int, dict[str, object]]:
    return make_sample_rows()


@pytest.fixture
def sample_workbook(sample_rows) -> bytes:
    return build_xlsx(sample_rows)


@pytest.fixture
def sample_seeds() -> tuple[DriverSeed, ...]:
    return (
        DriverSeed(
            slug="martin-alvarez",
            canonical_name="Martín Álvarez",
            sort_name="Álvarez, Martín",
            aliases=("Martín Álvarez", "Martin"),
            country_code="AR",
        ),
        DriverSeed(
            slug="lucas-benitez",
            canonical_name="Lucas Benítez",
            sort_name="Benítez, Lucas",
            aliases=("LUCAS",),
            country_code="AR",
        ),
    )
