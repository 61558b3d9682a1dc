"""Utility functions for pkgmonth."""

import calendar
import re
from datetime import date, datetime, timezone

from .types import RecordKey

# -----------------------------------------------------------------------------
# Package Validation Constants
# -----------------------------------------------------------------------------

# PyPI package name pattern (PEP 508 compatible)
_PYPI_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9._-]*[a-zA-Z0-9])?$")
_MAX_PYPI_NAME_LENGTH = 100

# npm package names: lowercase, URL-safe, optionally scoped (@scope/name)
_NPM_NAME_PATTERN = re.compile(
    r"^(@[a-z0-9][a-z0-9._~-]*/)?[a-z0-9][a-z0-9._~-]*$"
)
_MAX_NPM_NAME_LENGTH = 214

# -----------------------------------------------------------------------------
# Record Id Constants
# -----------------------------------------------------------------------------

# document id format: <PACKAGE_ID>_<YYYY>-<MM>
_RECORD_ID_PATTERN = re.compile(r"^(.+)_([0-9]{4})-([0-9]{2})$")

MONTHS = tuple(range(1, 13))

# -----------------------------------------------------------------------------
# Sparkline Constants
# -----------------------------------------------------------------------------

SPARKLINE_WIDTH = 12

# Characters used to represent values in sparklines (low to high)
SPARKLINE_CHARS = " _.,:-=+*#"


def validate_package_name(name: str, ecosystem: str = "npm") -> tuple[bool, str]:
    """Validate that a package name follows the registry's naming rules.

    Args:
        name: Package name to validate.
        ecosystem: Either "npm" or "pypi".

    Returns:
        Tuple of (is_valid, error_message). If valid, error_message is empty.
    """
    if not name:
        return False, "Package name cannot be empty"

    if ecosystem == "pypi":
        if len(name) > _MAX_PYPI_NAME_LENGTH:
            return False, f"Package name exceeds {_MAX_PYPI_NAME_LENGTH} characters"
        if not _PYPI_NAME_PATTERN.match(name):
            return False, (
                "Package name must start and end with alphanumeric characters "
                "and contain only letters, numbers, hyphens, underscores, or periods"
            )
        return True, ""

    if len(name) > _MAX_NPM_NAME_LENGTH:
        return False, f"Package name exceeds {_MAX_NPM_NAME_LENGTH} characters"

    if not _NPM_NAME_PATTERN.match(name):
        return False, (
            "Package name must be lowercase, URL-safe and may only be "
            "prefixed by a scope (@scope/name)"
        )

    return True, ""


def format_month(year: int, month: int) -> str:
    """Format a calendar month as YYYY-MM."""
    return f"{year:04d}-{month:02d}"


def make_record_id(package_name: str, month: str) -> str:
    """Build the natural key of a stats record."""
    return f"{package_name}_{month}"


def parse_record_id(record_id: str) -> RecordKey | None:
    """Parse a record id into its (package, year, month) key.

    Returns None for ids that are not stats records: metadata ids
    (leading underscore), ids not matching <package>_<YYYY>-<MM>,
    and ids naming a month outside 01..12.
    """
    if not record_id or record_id.startswith("_"):
        return None

    match = _RECORD_ID_PATTERN.match(record_id)
    if match is None:
        return None

    package_name, year, month = match.group(1), int(match.group(2)), int(match.group(3))
    if month not in MONTHS:
        return None

    return RecordKey(package_name, year, month)


# -----------------------------------------------------------------------------
# Calendar helpers (UTC)
# -----------------------------------------------------------------------------


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Current calendar date in UTC."""
    return utc_now().date()


def iso_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 timestamp for the given moment (default: now, UTC)."""
    return (moment or utc_now()).isoformat(timespec="seconds")


def month_range(year: int, month: int) -> tuple[date, date]:
    """Return the first and last day of a calendar month (inclusive)."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def is_current_month(year: int, month: int, today: date) -> bool:
    """Whether (year, month) is the month containing today."""
    return (year, month) == (today.year, today.month)


def is_future_month(year: int, month: int, today: date) -> bool:
    """Whether (year, month) lies strictly after the month containing today."""
    return (year, month) > (today.year, today.month)


def make_sparkline(values: list[int], width: int = SPARKLINE_WIDTH) -> str:
    """Generate an ASCII sparkline from a list of values.

    Args:
        values: List of integer values to visualize.
        width: Number of characters in the sparkline (default: SPARKLINE_WIDTH).

    Returns:
        ASCII string representing the trend of values.
    """
    if not values:
        return " " * width

    # Use last 'width' values
    values = values[-width:]

    # Pad with zeros if not enough values
    if len(values) < width:
        values = [0] * (width - len(values)) + values

    min_val = min(values)
    max_val = max(values)

    if max_val == min_val:
        mid_idx = len(SPARKLINE_CHARS) // 2
        return SPARKLINE_CHARS[mid_idx] * width

    sparkline = ""
    for v in values:
        idx = int((v - min_val) / (max_val - min_val) * (len(SPARKLINE_CHARS) - 1))
        sparkline += SPARKLINE_CHARS[idx]

    return sparkline
