"""race_history_etl.driver_seeds

Static driver catalog: canonical driver identities plus the alias
spellings used for them in the history workbook.

Catalog file (config/driver_seeds.yml):

    drivers:
      - slug: jose-perez
        canonical_name: José Pérez
        sort_name: Pérez, José
        country_code: AR
        aliases: ["José Pérez", "Jose", "Pepe"]

Alias matching is done on normalize_alias() keys, so spacing, accents and
case differences in the sheet do not need their own catalog entries.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import yaml

from race_history_etl.errors import DriverSeedValidationError
from race_history_etl.models import ParsedRaceResult
from race_history_etl.normalize import normalize_alias, slug_name

REQUIRED_DRIVER_KEYS = frozenset({"slug", "canonical_name", "aliases"})
OPTIONAL_DRIVER_KEYS = frozenset({
    "sort_name",
    "country_code",
    "country_name_es",
    "country_name_en",
    "role_es",
    "role_en",
})


@dataclass(frozen=True)
class DriverSeed:
    slug: str
    canonical_name: str
    sort_name: str
    aliases: tuple[str, ...]
    country_code: str = ""
    country_name_es: str = ""
    country_name_en: str = ""
    role_es: str = ""
    role_en: str = ""


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def validate_driver_seeds(data: Any) -> None:
    """Raise DriverSeedValidationError if data does not match the catalog schema.

    Validates:
      - root is a mapping with a non-empty 'drivers' list
      - required keys present, no unknown keys
      - slugs are already in slug form and unique
      - every driver has at least one alias, and no normalized alias is
        claimed by two drivers
    """
    if not isinstance(data, dict) or not isinstance(data.get("drivers"), list):
        raise DriverSeedValidationError("YAML root must be a mapping with a 'drivers' list.")
    drivers = data["drivers"]
    if not drivers:
        raise DriverSeedValidationError("'drivers' must not be empty.")

    seen_slugs: set[str] = set()
    alias_owner: dict[str, str] = {}
    for idx, driver in enumerate(drivers):
        if not isinstance(driver, dict):
            raise DriverSeedValidationError(f"drivers[{idx}] must be a mapping.")
        missing = REQUIRED_DRIVER_KEYS - set(driver)
        if missing:
            raise DriverSeedValidationError(f"drivers[{idx}] missing keys: {sorted(missing)}")
        unknown = set(driver) - REQUIRED_DRIVER_KEYS - OPTIONAL_DRIVER_KEYS
        if unknown:
            raise DriverSeedValidationError(f"drivers[{idx}] has unknown keys: {sorted(unknown)}")

        slug = driver["slug"]
        if not isinstance(slug, str) or slug_name(slug) != slug:
            raise DriverSeedValidationError(f"drivers[{idx}] slug {slug!r} is not a valid slug.")
        if slug in seen_slugs:
            raise DriverSeedValidationError(f"Duplicate driver slug {slug!r}.")
        seen_slugs.add(slug)

        aliases = driver["aliases"]
        if not isinstance(aliases, list) or not aliases:
            raise DriverSeedValidationError(f"Driver {slug!r} must list at least one alias.")
        for alias in aliases:
            key = normalize_alias(str(alias))
            if not key:
                raise DriverSeedValidationError(f"Driver {slug!r} has a blank alias.")
            owner = alias_owner.setdefault(key, slug)
            if owner != slug:
                raise DriverSeedValidationError(
                    f"Alias {alias!r} is claimed by both {owner!r} and {slug!r}."
                )


def parse_driver_seeds(data: dict[str, Any]) -> tuple[DriverSeed, ...]:
    validate_driver_seeds(data)
    seeds = []
    for driver in data["drivers"]:
        canonical_name = str(driver["canonical_name"])
        seeds.append(
            DriverSeed(
                slug=driver["slug"],
                canonical_name=canonical_name,
                sort_name=str(driver.get("sort_name") or canonical_name),
                aliases=tuple(str(a) for a in driver["aliases"]),
                country_code=str(driver.get("country_code") or ""),
                country_name_es=str(driver.get("country_name_es") or ""),
                country_name_en=str(driver.get("country_name_en") or ""),
                role_es=str(driver.get("role_es") or ""),
                role_en=str(driver.get("role_en") or ""),
            )
        )
    return tuple(seeds)


def load_driver_seeds(yaml_path: Path) -> tuple[DriverSeed, ...]:
    """Load and validate the driver catalog.

    Raises:
        DriverSeedValidationError: If the catalog is invalid.
        FileNotFoundError: If the YAML file does not exist.
    """
    data = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
    return parse_driver_seeds(data)


# ---------------------------------------------------------------------------
# Alias completeness
# ---------------------------------------------------------------------------

def known_alias_keys(seeds: Iterable[DriverSeed]) -> set[str]:
    return {normalize_alias(alias) for seed in seeds for alias in seed.aliases}


def find_unknown_aliases(
    results: Iterable[ParsedRaceResult],
    seeds: Iterable[DriverSeed],
) -> list[str]:
    """Return the raw alias strings with no catalog match, de-duplicated and sorted."""
    known = known_alias_keys(seeds)
    unknown = {r.driver_alias for r in results if normalize_alias(r.driver_alias) not in known}
    return sorted(unknown)
