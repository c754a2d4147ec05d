"""race_history_etl.errors

Exception taxonomy for the history import.

Fatal structural errors (bad container, missing part or sheet, unsupported
compression, round-number inconsistency) abort the whole run.  Data-quality
problems are never raised; they are collected as warning strings by the
fact extractor.
"""

from __future__ import annotations

from typing import Any


class HistoryImportError(Exception):
    """Base class for every error raised by the history import."""


class InvalidWorkbookError(HistoryImportError):
    """The source bytes are not a readable workbook container."""


class MissingPartError(InvalidWorkbookError):
    def __init__(self, part_name: str) -> None:
        super().__init__(f"Invalid XLSX file: missing entry {part_name}.")
        self.part_name = part_name


class UnsupportedCompressionError(InvalidWorkbookError):
    def __init__(self, part_name: str, method: int) -> None:
        super().__init__(f"Unsupported compression method for {part_name}: {method}.")
        self.part_name = part_name
        self.method = method


class SheetNotFoundError(InvalidWorkbookError):
    """Sheet name or its relationship could not be resolved."""

    def __init__(self, sheet_name: str, detail: str | None = None) -> None:
        message = f'Sheet "{sheet_name}" not found in workbook.'
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)
        self.sheet_name = sheet_name


class RoundAssignmentError(HistoryImportError):
    """An event or result has no round number after assignment."""


class StoreConsistencyError(HistoryImportError):
    """The store returned no id, or no mapping, for a row the import just wrote."""


class UnknownAliasesError(HistoryImportError):
    """Apply mode refused: results reference aliases missing from the catalog."""

    def __init__(self, aliases: list[str], summary: Any = None) -> None:
        super().__init__("Cannot apply import with unknown aliases.")
        self.aliases = aliases
        self.summary = summary


class LayoutValidationError(ValueError):
    """Raised when a worksheet layout file fails validation."""


class DriverSeedValidationError(ValueError):
    """Raised when the driver seed catalog fails validation."""
