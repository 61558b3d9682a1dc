"""Gap and staleness analysis of a coverage index against the watchlist."""

from datetime import date

from .config import WatchlistConfig, resolve_start_year
from .logging import get_logger
from .types import CoverageIndex, StaleList, StaleRecord, TodoList
from .utils import MONTHS, utc_today

logger = get_logger()


def tracked_years(start_year: int, today: date) -> list[int]:
    """Years from start_year through the current year; never empty."""
    years = list(range(start_year, today.year))
    years.append(today.year)
    return years


def tracked_months(year: int, today: date) -> tuple[int, ...]:
    """Months of a year that have started by today."""
    if year < today.year:
        return MONTHS
    if year > today.year:
        return ()
    return MONTHS[: today.month]


def _queue(todolist: TodoList, package: str, year: int, month: int) -> None:
    todolist.setdefault(year, {}).setdefault(month, set()).add(package)


def analyze(
    index: CoverageIndex,
    config: WatchlistConfig,
    today: date | None = None,
) -> tuple[TodoList, StaleList]:
    """Compute which cells to fetch and which records to purge first.

    An empty watchlist tracks every package present in the index.

    Returns:
        Tuple of (todolist, stalelist). The todolist is empty when nothing
        is missing or stale.
    """
    today = today or utc_today()

    packages = sorted(config.packages) or sorted(index)
    years = tracked_years(resolve_start_year(config.start_year, today), today)

    logger.debug(
        "Searching index for stale or missing data for %s in %d-%d",
        ", ".join(packages),
        years[0],
        years[-1],
    )

    todolist: TodoList = {}
    stalelist: StaleList = []

    for package in packages:
        coverage = index.get(package, {})
        for year in years:
            covered = coverage.get(year, {})
            for month in tracked_months(year, today):
                entry = covered.get(month)
                if entry is None or not entry.present:
                    _queue(todolist, package, year, month)
                elif entry.stale:
                    _queue(todolist, package, year, month)
                    stalelist.append(StaleRecord(entry.record_id, entry.revision))

    cells = sum(len(pkgs) for months in todolist.values() for pkgs in months.values())
    logger.info(
        "Found %d missing or stale cells (%d records to purge)", cells, len(stalelist)
    )
    return todolist, stalelist
