"""Watchlist configuration: defaults, store-backed loading and file import."""

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from .db import add_package, get_setting, get_watchlist, set_setting
from .errors import ConfigInvalid
from .logging import get_logger
from .utils import utc_today

logger = get_logger()

DEFAULT_PACKAGES_FILE = "packages.yml"
DEFAULT_SOURCE = "npm"
SOURCES = ("npm", "pypi")

# Statistics are never tracked before this year
MIN_START_YEAR = 2000


@dataclass(frozen=True)
class WatchlistConfig:
    """Packages to track and the first year to track them from.

    ``start_year`` keeps the raw configured value; use resolve_start_year()
    to obtain the year a pass should start from.
    """

    packages: frozenset[str] = field(default_factory=frozenset)
    start_year: Any = None
    source: str = DEFAULT_SOURCE


def default_config() -> WatchlistConfig:
    """Return a valid default configuration: no packages, current year."""
    return WatchlistConfig(packages=frozenset(), start_year=utc_today().year)


def parse_start_year(raw: Any) -> int:
    """Parse a configured start year.

    Raises:
        ConfigInvalid: if the value is not a year or lies before MIN_START_YEAR.
    """
    try:
        year = int(str(raw).strip())
    except ValueError as e:
        raise ConfigInvalid(f"start_year {raw!r} is not a year") from e
    if year < MIN_START_YEAR:
        raise ConfigInvalid(f"start_year {year} is before {MIN_START_YEAR}")
    return year


def resolve_start_year(raw: Any, today: date | None = None) -> int:
    """Return the first year to track, falling back to the current year.

    Invalid values are recovered from locally: a warning is logged and
    statistics are collected for the current year only.
    """
    current_year = (today or utc_today()).year
    if raw is None or raw == "":
        return current_year
    try:
        return parse_start_year(raw)
    except ConfigInvalid as e:
        logger.warning("%s; collecting statistics for %d only", e, current_year)
        return current_year


def load_config(conn: sqlite3.Connection) -> WatchlistConfig:
    """Build the watchlist configuration from the store."""
    start_year = get_setting(conn, "start_year")
    source = get_setting(conn, "source") or DEFAULT_SOURCE
    return WatchlistConfig(
        packages=frozenset(get_watchlist(conn)),
        start_year=start_year if start_year is not None else utc_today().year,
        source=source,
    )


def save_settings(
    conn: sqlite3.Connection,
    start_year: Any = None,
    source: str | None = None,
) -> None:
    """Persist the configurable settings that were given."""
    if start_year is not None:
        set_setting(conn, "start_year", str(start_year))
    if source is not None:
        if source not in SOURCES:
            raise ConfigInvalid(
                f"Unknown source {source!r} (expected one of {', '.join(SOURCES)})"
            )
        set_setting(conn, "source", source)


def load_packages_from_file(file_path: str) -> tuple[list[str], Any]:
    """Load package ids (and an optional start year) from a file.

    Supports:
    - YAML (.yml, .yaml): 'packages' or 'published' key, optional 'start_year'
    - JSON (.json): list of strings or object with 'packages'/'published' key
    - Plain text: one package id per line (comments with # supported)

    Returns:
        Tuple of (packages, start_year or None).
    """
    path = Path(file_path)
    suffix = path.suffix.lower()

    with open(file_path) as f:
        content = f.read()

    if suffix in (".yml", ".yaml", ".json"):
        data = yaml.safe_load(content) if suffix != ".json" else json.loads(content)
        if isinstance(data, list):
            return [str(p) for p in data], None
        if isinstance(data, dict):
            packages = data.get("packages", []) or data.get("published", []) or []
            return [str(p) for p in packages], data.get("start_year")
        return [], None

    packages = []
    for line in content.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            packages.append(line)
    return packages, None


def import_packages_from_file(conn: sqlite3.Connection, file_path: str) -> tuple[int, int]:
    """Import packages from a file into the watchlist.

    A start_year found in the file replaces the configured one.
    Returns tuple of (added_count, skipped_count).
    """
    packages, start_year = load_packages_from_file(file_path)
    added = 0
    skipped = 0
    for pkg in packages:
        if add_package(conn, pkg):
            added += 1
        else:
            skipped += 1
    if start_year is not None:
        save_settings(conn, start_year=start_year)
    return added, skipped
