"""Unit tests for race_history_etl.column_mapper."""

from __future__ import annotations

import dataclasses

from race_history_etl.column_mapper import ColumnMapping, inherit_drivers, map_columns
from race_history_etl.layout import DEFAULT_LAYOUT
from race_history_etl.models import SessionKind

J_TO_M = dataclasses.replace(DEFAULT_LAYOUT, first_column="J", last_column="M")


class TestInheritDrivers:
    def test_blank_inherits_left(self):
        assert inherit_drivers({"K": "Alice", "M": "Bob"}, ["J", "K", "L", "M", "N"]) == [
            None, "Alice", "Alice", "Bob", "Bob",
        ]

    def test_no_drivers(self):
        assert inherit_drivers({}, ["J", "K"]) == [None, None]


class TestMapColumns:
    def test_alice_bob_scenario(self):
        grid = {
            3: {"K": "Alice", "M": "Bob"},
            4: {"K": "Sprint", "L": "Final", "M": "Sprint"},
        }
        assert map_columns(grid, J_TO_M) == {
            "K": ColumnMapping("Alice", SessionKind.PRIMARY, "Sprint"),
            "L": ColumnMapping("Alice", SessionKind.SECONDARY, "Final"),
            "M": ColumnMapping("Bob", SessionKind.PRIMARY, "Sprint"),
        }

    def test_kind_alternates_regardless_of_labels(self):
        grid = {
            3: {"J": "Alice"},
            4: {"J": "Final", "K": "Final", "L": "Sprint", "M": "Carrera"},
        }
        kinds = [m.session_kind for m in map_columns(grid, J_TO_M).values()]
        assert kinds == [
            SessionKind.PRIMARY, SessionKind.SECONDARY,
            SessionKind.PRIMARY, SessionKind.SECONDARY,
        ]

    def test_label_defaults_follow_parity(self):
        grid = {3: {"J": "Alice", "L": "Bob"}}
        labels = {col: m.session_label for col, m in map_columns(grid, J_TO_M).items()}
        assert labels == {"J": "Sprint", "K": "Final", "L": "Sprint", "M": "Final"}

    def test_label_text_kept(self):
        grid = {3: {"J": "Alice"}, 4: {"J": "Carrera 1"}}
        assert map_columns(grid, J_TO_M)["J"].session_label == "Carrera 1"

    def test_repeated_driver_block_continues_count(self):
        grid = {3: {"J": "Alice", "K": "Bob", "L": "Alice"}}
        mappings = map_columns(grid, J_TO_M)
        assert mappings["J"].session_kind is SessionKind.PRIMARY
        assert mappings["L"].session_kind is SessionKind.SECONDARY
        assert mappings["M"].session_kind is SessionKind.PRIMARY

    def test_columns_outside_range_ignored(self):
        grid = {3: {"I": "Circuit", "J": "Alice", "X": "Zed"}}
        mappings = map_columns(grid, DEFAULT_LAYOUT)
        assert set(mappings) == set("JKLMNOPQRSTUVW")
        assert {m.driver_alias for m in mappings.values()} == {"Alice"}

    def test_missing_header_rows(self):
        assert map_columns({}, DEFAULT_LAYOUT) == {}

    def test_custom_header_rows(self):
        layout = dataclasses.replace(J_TO_M, driver_row=1, session_row=2)
        grid = {1: {"J": "Alice"}, 2: {"J": "Heat"}, 3: {"J": "Ignored"}}
        mapping = map_columns(grid, layout)["J"]
        assert mapping.driver_alias == "Alice"
        assert mapping.session_label == "Heat"
