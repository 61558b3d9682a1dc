"""Type definitions for pkgmonth using TypedDict for known structures."""

from typing import NamedTuple, TypedDict


class DailyCount(TypedDict):
    """Downloads for a single day."""

    date: str
    count: int


class StatsRecord(TypedDict, total=False):
    """Total downloads for one package in one calendar month."""

    id: str
    package_name: str
    month: str
    total: int
    collection_date: str
    daily: list[DailyCount]
    revision: str | None


class MonthlyTotal(TypedDict):
    """One point of a package's monthly download series."""

    month: str
    total: int


class RecordIdentity(NamedTuple):
    """Identity of a live stats record as listed by the store."""

    id: str
    revision: str
    stale: bool = False


class RecordKey(NamedTuple):
    """Parsed form of a record id: <package>_<YYYY>-<MM>."""

    package_name: str
    year: int
    month: int


class CoverageEntry(NamedTuple):
    """Coverage of a single (package, year, month) cell."""

    present: bool
    stale: bool
    record_id: str
    revision: str


class StaleRecord(NamedTuple):
    """A persisted record that must be purged before it is refetched."""

    id: str
    revision: str


# package -> year -> month -> entry
CoverageIndex = dict[str, dict[int, dict[int, CoverageEntry]]]

# year -> month -> packages to fetch
TodoList = dict[int, dict[int, set[str]]]

StaleList = list[StaleRecord]
