"""Normalization functions for history workbook text.

All functions accept str | None and return str | None unless noted.
"""

from __future__ import annotations

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return _WHITESPACE_RE.sub(" ", v)


def normalize_text(value: str) -> str:
    """Like normalize_space but always returns a string ('' when blank).

    Cell text goes through this before it enters the grid.
    """
    return normalize_space(value) or ""


def _strip_accents(value: str) -> str:
    # Decompose unicode (e.g. accented chars) then drop combining marks
    v = unicodedata.normalize("NFKD", value)
    return "".join(c for c in v if not unicodedata.combining(c))


# ---------------------------------------------------------------------------
# Rule 3: normalize_alias  (driver alias lookup key)
# ---------------------------------------------------------------------------

def normalize_alias(value: str | None) -> str:
    """Whitespace-collapse, strip accents and lowercase a driver alias.

    "  José   PÉREZ " → "jose perez".  Blank input → "".
    """
    v = normalize_space(value)
    if v is None:
        return ""
    return _strip_accents(v).lower()


# ---------------------------------------------------------------------------
# Rule 4: slug_name  (championship slug)
# ---------------------------------------------------------------------------

def slug_name(value: str | None) -> str | None:
    """Lowercase alnum with '-' separators.

    Used for championships.slug and drivers.slug.
    """
    v = trim(value)
    if v is None:
        return None
    v = _strip_accents(v)
    v = v.lower()
    v = re.sub(r"[^a-z0-9]+", "-", v)
    v = v.strip("-")
    return v if v else None
