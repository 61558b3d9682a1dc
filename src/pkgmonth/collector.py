"""Fetch, aggregate and persist monthly download totals."""

import sqlite3
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Any

from .api import StatsSource
from .db import bulk_upsert
from .errors import NetworkError, PersistenceError
from .logging import get_logger
from .types import DailyCount, StatsRecord, TodoList
from .utils import (
    MONTHS,
    format_month,
    is_future_month,
    iso_timestamp,
    make_record_id,
    month_range,
    utc_today,
)

logger = get_logger()

# Number of months fetched at the same time
DEFAULT_MAX_CONCURRENCY = 2
MAX_CONCURRENCY = 4


def _count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def aggregate_downloads(
    package_name: str,
    month: str,
    rows: Iterable[dict[str, Any]],
    collection_date: str | None = None,
) -> StatsRecord:
    """Build a monthly stats record from upstream daily rows.

    Rows may name the day as "day" or "date" and the count as "downloads"
    or "count". The total is always the sum of the daily counts.
    """
    daily: list[DailyCount] = [
        {
            "date": str(row.get("day") or row.get("date") or ""),
            "count": _count(row.get("downloads", row.get("count"))),
        }
        for row in rows
    ]
    daily.sort(key=lambda d: d["date"])

    return {
        "id": make_record_id(package_name, month),
        "package_name": package_name,
        "month": month,
        "total": sum(d["count"] for d in daily),
        "collection_date": collection_date or iso_timestamp(),
        "daily": daily,
    }


class Collector:
    """Collects monthly statistics from a source into the store.

    Months are fetched by a pool of at most ``max_concurrency`` workers.
    Workers only talk to the statistics source; each month's records are
    written by the calling thread in a single bulk upsert.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        source: StatsSource,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        today: Callable[[], date] = utc_today,
    ) -> None:
        if not 1 <= max_concurrency <= MAX_CONCURRENCY:
            raise ValueError(
                f"max_concurrency must be between 1 and {MAX_CONCURRENCY}, "
                f"got {max_concurrency}"
            )
        self.conn = conn
        self.source = source
        self.max_concurrency = max_concurrency
        self.today = today
        self.last_collection: str | None = None
        self.failures: list[tuple[int, int, str]] = []

    def get_last_collection_time(self) -> str | None:
        """Timestamp of the most recent collection attempt, or None."""
        return self.last_collection

    def fetch_month(self, packages: Iterable[str], year: int, month: int) -> list[StatsRecord]:
        """Fetch one month for a set of packages and aggregate the results.

        Returns an empty list for months that cannot have statistics: future
        months and months before the source's earliest data.

        Raises:
            NetworkError: if the statistics source fails.
        """
        self.last_collection = iso_timestamp()

        if isinstance(packages, str):
            packages = [packages]
        packages = sorted(set(packages or []))
        if not packages or not year or not month:
            return []

        year, month = int(year), int(month)
        today = self.today()
        if is_future_month(year, month, today):
            logger.debug("Skipping %s: month has not started", format_month(year, month))
            return []

        start, end = month_range(year, month)
        if end < self.source.earliest_date(today):
            logger.debug(
                "Skipping %s: %s has no statistics before %s",
                format_month(year, month),
                self.source.name,
                self.source.earliest_date(today),
            )
            return []

        logger.debug(
            "Collecting download statistics for %s for date range %s to %s",
            ", ".join(packages),
            start,
            end,
        )
        downloads = self.source.fetch_range(packages, start, end)

        label = format_month(year, month)
        collected = iso_timestamp()
        return [
            aggregate_downloads(package, label, downloads[package], collected)
            for package in packages
            if package in downloads
        ]

    def collect_month(self, packages: Iterable[str], year: int, month: int) -> int:
        """Fetch, aggregate and persist one month for a set of packages.

        Raises:
            NetworkError: if the statistics source fails.
            PersistenceError: if the bulk write fails.
        """
        records = self.fetch_month(packages, year, month)
        return self._persist(records)

    def _persist(self, records: list[StatsRecord]) -> int:
        if not records:
            return 0
        written = bulk_upsert(self.conn, records)
        logger.debug("Stored %d records for %s", written, records[0]["month"])
        return written

    def collect_year(self, months: dict[int, set[str]], year: int) -> int:
        """Collect the queued months of one year with bounded concurrency.

        Failures are logged per month and recorded in ``failures``; they do
        not stop the remaining months.
        """
        written = 0
        with ThreadPoolExecutor(max_workers=self.max_concurrency) as executor:
            futures = {
                executor.submit(self.fetch_month, packages, year, month): month
                for month, packages in sorted(months.items())
                if month in MONTHS
            }

            for future in as_completed(futures):
                month = futures[future]
                label = format_month(year, month)
                try:
                    written += self._persist(future.result())
                except NetworkError as e:
                    logger.warning("Could not fetch statistics for %s: %s", label, e)
                    self.failures.append((year, month, str(e)))
                except PersistenceError as e:
                    logger.error("Could not store statistics for %s: %s", label, e)
                    self.failures.append((year, month, str(e)))
        return written

    def collect(self, todolist: TodoList | None) -> int:
        """Collect every cell in a todolist, one year at a time.

        Returns:
            Number of records written.
        """
        self.failures = []
        if not todolist:
            return 0

        self.last_collection = iso_timestamp()
        written = 0
        for year in sorted(todolist):
            written += self.collect_year(todolist[year], year)

        logger.info(
            "Collection finished: %d records written, %d months failed",
            written,
            len(self.failures),
        )
        return written
