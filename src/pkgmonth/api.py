"""Download statistics API clients (npm registry and PyPI)."""

import json
from datetime import date, timedelta
from json import JSONDecodeError
from typing import Any, Protocol
from urllib.error import URLError
from urllib.parse import quote

import pypistats  # type: ignore[import-untyped]
import requests

from .errors import NetworkError, NoDataForRange
from .logging import get_logger

logger = get_logger()

# Exceptions that indicate API/network errors (not programming bugs)
_API_ERRORS = (
    requests.RequestException,  # HTTP/connection errors from requests
    JSONDecodeError,  # Malformed JSON response
    URLError,  # Network/connection errors
    ValueError,  # Invalid data format
    KeyError,  # Missing expected keys
    TypeError,  # Unexpected data types
    OSError,  # Network-related OS errors
)

NPM_API_BASE = "https://api.npmjs.org"

# Error text the npm downloads API returns when a range has no data
NPM_NO_DATA_ERROR = "no stats for this package for this range (0008)"

# The bulk endpoint accepts at most this many unscoped packages per call
NPM_MAX_BULK_PACKAGES = 128

# The npm downloads API has no data before this day
NPM_EARLIEST_DATE = date(2015, 1, 10)

# pypistats.org keeps a rolling window of recent daily data
PYPI_RETENTION_DAYS = 180

DEFAULT_TIMEOUT = 30

# package id -> upstream daily rows ({"day"|"date": ..., "downloads": ...})
RangeDownloads = dict[str, list[dict[str, Any]]]


class StatsSource(Protocol):
    """A service that reports daily downloads for packages over a date range."""

    name: str

    def fetch_range(self, packages: list[str], start: date, end: date) -> RangeDownloads:
        """Return daily rows per package; packages without data are omitted."""
        ...

    def earliest_date(self, today: date) -> date:
        """Months that end before this day are not collected."""
        ...


class NpmDownloadsClient:
    """Client for the npm registry download counts API.

    See https://github.com/npm/registry/blob/main/docs/download-counts.md
    """

    name = "npm"

    def __init__(
        self,
        base_url: str = NPM_API_BASE,
        timeout: int = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def earliest_date(self, today: date) -> date:
        return NPM_EARLIEST_DATE

    def fetch_range(self, packages: list[str], start: date, end: date) -> RangeDownloads:
        """Fetch daily downloads for packages between start and end (inclusive).

        Unscoped packages are requested in bulk; scoped packages one at a time,
        since the bulk endpoint does not support them. A failed request only
        drops its own packages from the result.

        Raises:
            NetworkError: if every request fails.
        """
        scoped = [p for p in packages if p.startswith("@")]
        unscoped = [p for p in packages if not p.startswith("@")]

        batches = [
            unscoped[i : i + NPM_MAX_BULK_PACKAGES]
            for i in range(0, len(unscoped), NPM_MAX_BULK_PACKAGES)
        ]
        batches.extend([p] for p in scoped)

        result: RangeDownloads = {}
        errors: list[NetworkError] = []
        for batch in batches:
            try:
                data = self._get_range(batch, start, end)
            except NoDataForRange:
                logger.debug("No statistics for %s between %s and %s", batch, start, end)
                continue
            except NetworkError as e:
                logger.warning("Skipping %s: %s", ", ".join(batch), e)
                errors.append(e)
                continue
            result.update(normalize_range_response(data, batch))

        if errors and len(errors) == len(batches):
            raise errors[0]
        return result

    def _get_range(self, packages: list[str], start: date, end: date) -> dict[str, Any]:
        ids = ",".join(quote(p, safe="@/") for p in packages)
        url = f"{self.base_url}/downloads/range/{start.isoformat()}:{end.isoformat()}/{ids}"
        logger.debug("GET %s", url)
        try:
            response = self.session.get(url, timeout=self.timeout)
            data = response.json()
        except _API_ERRORS as e:
            raise NetworkError(f"Error fetching {url}: {e}") from e

        if isinstance(data, dict) and "error" in data:
            if data["error"] == NPM_NO_DATA_ERROR:
                raise NoDataForRange(data["error"])
            raise NetworkError(f"npm API error for {', '.join(packages)}: {data['error']}")

        if not response.ok:
            raise NetworkError(f"npm API returned HTTP {response.status_code} for {url}")

        if not isinstance(data, dict):
            raise NetworkError(f"Unexpected npm API response for {url}")
        return data


def normalize_range_response(data: dict[str, Any], packages: list[str]) -> RangeDownloads:
    """Map an npm range response to {package: daily rows}.

    A single-package query returns one flat object; a bulk query returns
    an object keyed by package id, with null for unknown packages.
    """
    if len(packages) == 1 and data.get("package") == packages[0] and "downloads" in data:
        roots = {packages[0]: data}
    else:
        roots = {package: data.get(package) for package in packages}

    result: RangeDownloads = {}
    for package, root in roots.items():
        if not isinstance(root, dict):
            continue
        downloads = root.get("downloads") or []
        if downloads:
            result[package] = list(downloads)
    return result


class PyPIStatsClient:
    """Client for pypistats.org, using the pypistats library."""

    name = "pypi"

    def earliest_date(self, today: date) -> date:
        """First day of the oldest month still fully inside the retention window.

        A month that straddles the window edge would only get a partial
        total, and the edge keeps moving, so it is never collected.
        """
        oldest = today - timedelta(days=PYPI_RETENTION_DAYS)
        if oldest.day == 1:
            return oldest
        if oldest.month == 12:
            return date(oldest.year + 1, 1, 1)
        return date(oldest.year, oldest.month + 1, 1)

    def fetch_range(self, packages: list[str], start: date, end: date) -> RangeDownloads:
        """Fetch daily downloads (without mirrors) for each package.

        Raises:
            NetworkError: if a request fails for any package.
        """
        result: RangeDownloads = {}
        for package in packages:
            try:
                raw = pypistats.overall(
                    package,
                    start_date=start.isoformat(),
                    end_date=end.isoformat(),
                    total="daily",
                    format="json",
                )
                data = json.loads(raw)
            except _API_ERRORS as e:
                raise NetworkError(f"Error fetching stats for {package}: {e}") from e

            rows = [
                row
                for row in data.get("data", [])
                if row.get("category") == "without_mirrors"
            ]
            if rows:
                result[package] = rows
            else:
                logger.debug("No statistics for %s between %s and %s", package, start, end)
        return result


def get_source(name: str) -> StatsSource:
    """Return the statistics client for a registry name ("npm" or "pypi")."""
    if name == "npm":
        return NpmDownloadsClient()
    if name == "pypi":
        return PyPIStatsClient()
    raise ValueError(f"Unknown statistics source: {name}")
