"""race_history_etl.xlsx_container

Minimal zip reader for the workbook container.

Only what one worksheet import needs:
  1. Scan backward from the tail for the end-of-central-directory record
     (bounded by the maximum comment length).
  2. Walk the central directory for the declared entry count and index
     entries by stored path name.
  3. read_part(name) seeks the local header, skips name/extra fields and
     returns the stored bytes or the raw-DEFLATE inflation of them.

Zip64, encryption, multi-disk archives and data descriptors are not
supported; the central directory sizes are authoritative.
"""

from __future__ import annotations

import logging
import struct
import zlib
from dataclasses import dataclass

from race_history_etl.errors import (
    InvalidWorkbookError,
    MissingPartError,
    UnsupportedCompressionError,
)

log = logging.getLogger(__name__)

EOCD_SIGNATURE = 0x06054B50
CENTRAL_DIRECTORY_SIGNATURE = 0x02014B50
LOCAL_FILE_HEADER_SIGNATURE = 0x04034B50

EOCD_MIN_SIZE = 22
MAX_COMMENT_LENGTH = 0xFFFF
CENTRAL_HEADER_SIZE = 46
LOCAL_HEADER_SIZE = 30

METHOD_STORED = 0
METHOD_DEFLATE = 8


@dataclass(frozen=True)
class ZipEntry:
    compression_method: int
    compressed_size: int
    local_header_offset: int


def _u16(buffer: bytes, offset: int) -> int:
    return struct.unpack_from("<H", buffer, offset)[0]


def _u32(buffer: bytes, offset: int) -> int:
    return struct.unpack_from("<I", buffer, offset)[0]


def find_end_of_central_directory(buffer: bytes) -> int:
    """Return the offset of the EOCD record or raise InvalidWorkbookError."""
    if len(buffer) < EOCD_MIN_SIZE:
        raise InvalidWorkbookError(
            "Invalid XLSX file: end of central directory not found."
        )
    min_offset = max(0, len(buffer) - (EOCD_MIN_SIZE + MAX_COMMENT_LENGTH))
    for index in range(len(buffer) - EOCD_MIN_SIZE, min_offset - 1, -1):
        if _u32(buffer, index) == EOCD_SIGNATURE:
            return index
    raise InvalidWorkbookError("Invalid XLSX file: end of central directory not found.")


def parse_zip_entries(buffer: bytes) -> dict[str, ZipEntry]:
    """Index the central directory by stored path name."""
    eocd_offset = find_end_of_central_directory(buffer)
    total_entries = _u16(buffer, eocd_offset + 10)
    central_directory_offset = _u32(buffer, eocd_offset + 16)

    entries: dict[str, ZipEntry] = {}
    cursor = central_directory_offset
    try:
        for _ in range(total_entries):
            if _u32(buffer, cursor) != CENTRAL_DIRECTORY_SIGNATURE:
                raise InvalidWorkbookError(
                    "Invalid XLSX file: malformed central directory."
                )
            compression_method = _u16(buffer, cursor + 10)
            compressed_size = _u32(buffer, cursor + 20)
            file_name_length = _u16(buffer, cursor + 28)
            extra_field_length = _u16(buffer, cursor + 30)
            comment_length = _u16(buffer, cursor + 32)
            local_header_offset = _u32(buffer, cursor + 42)

            name_start = cursor + CENTRAL_HEADER_SIZE
            file_name = buffer[name_start:name_start + file_name_length].decode("utf-8")

            entries[file_name] = ZipEntry(
                compression_method=compression_method,
                compressed_size=compressed_size,
                local_header_offset=local_header_offset,
            )
            cursor = name_start + file_name_length + extra_field_length + comment_length
    except struct.error as exc:
        raise InvalidWorkbookError(
            "Invalid XLSX file: truncated central directory."
        ) from exc
    except UnicodeDecodeError as exc:
        raise InvalidWorkbookError(
            "Invalid XLSX file: undecodable entry name in central directory."
        ) from exc

    log.debug("container: %d entries in central directory", len(entries))
    return entries


class XlsxContainer:
    """Named-part access over an in-memory workbook container."""

    def __init__(self, buffer: bytes) -> None:
        self._buffer = bytes(buffer)
        self._entries = parse_zip_entries(self._buffer)

    @property
    def part_names(self) -> list[str]:
        return list(self._entries)

    def has_part(self, name: str) -> bool:
        return name in self._entries

    def entry(self, name: str) -> ZipEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise MissingPartError(name)
        return entry

    def read_part(self, name: str) -> bytes:
        """Return the decompressed bytes of one part.

        Raises:
            MissingPartError: no entry with this name.
            UnsupportedCompressionError: method other than store/deflate.
            InvalidWorkbookError: bad local header or corrupt deflate data.
        """
        entry = self.entry(name)
        buffer = self._buffer
        local_offset = entry.local_header_offset

        try:
            signature = _u32(buffer, local_offset)
            file_name_length = _u16(buffer, local_offset + 26)
            extra_field_length = _u16(buffer, local_offset + 28)
        except struct.error as exc:
            raise InvalidWorkbookError(
                f"Invalid XLSX file: malformed local header for {name}."
            ) from exc
        if signature != LOCAL_FILE_HEADER_SIGNATURE:
            raise InvalidWorkbookError(
                f"Invalid XLSX file: malformed local header for {name}."
            )

        data_start = local_offset + LOCAL_HEADER_SIZE + file_name_length + extra_field_length
        data_end = data_start + entry.compressed_size
        if data_end > len(buffer):
            raise InvalidWorkbookError(f"Invalid XLSX file: truncated data for {name}.")
        data = buffer[data_start:data_end]

        if entry.compression_method == METHOD_STORED:
            return data
        if entry.compression_method == METHOD_DEFLATE:
            try:
                return zlib.decompress(data, -zlib.MAX_WBITS)
            except zlib.error as exc:
                raise InvalidWorkbookError(
                    f"Invalid XLSX file: corrupt deflate data for {name}."
                ) from exc
        raise UnsupportedCompressionError(name, entry.compression_method)

    def read_text(self, name: str) -> str:
        try:
            return self.read_part(name).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidWorkbookError(f"Invalid XLSX file: {name} is not UTF-8.") from exc
