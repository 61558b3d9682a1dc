"""Reconciliation passes: index, analyze, purge, collect."""

import sqlite3
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from .analyzer import analyze
from .api import StatsSource
from .collector import DEFAULT_MAX_CONCURRENCY, Collector
from .config import WatchlistConfig, load_config
from .db import get_packages, get_setting, set_setting
from .errors import StoreUnavailable
from .indexer import Indexer
from .logging import get_logger
from .purger import purge
from .utils import iso_timestamp, utc_today

logger = get_logger()

# Default interval between scheduled passes: one week
DEFAULT_INTERVAL = 7 * 24 * 60 * 60


class PassState(Enum):
    """Stages of a reconciliation pass."""

    IDLE = "idle"
    INDEXING = "indexing"
    ANALYZING = "analyzing"
    PURGING = "purging"
    COLLECTING = "collecting"


@dataclass
class PassResult:
    """Outcome of one reconciliation pass."""

    started: str
    finished: str | None = None
    missing_cells: int = 0
    stale_records: int = 0
    purge_ok: bool = True
    written: int = 0
    failures: list[tuple[int, int, str]] = field(default_factory=list)


class Reconciler:
    """Runs reconciliation passes against one store and statistics source.

    Only one pass runs at a time; a pass requested while another is in
    progress is skipped.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        source: StatsSource,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self.conn = conn
        self.today = today
        self.indexer = Indexer(conn)
        self.collector = Collector(conn, source, max_concurrency, today=today)
        self.state = PassState.IDLE
        self._lock = threading.Lock()

    def _enter(self, state: PassState) -> None:
        logger.debug("Pass state: %s -> %s", self.state.value, state.value)
        self.state = state

    def run_pass(self, config: WatchlistConfig | None = None) -> PassResult | None:
        """Run one pass: build index, analyze, purge stale records, collect.

        Returns:
            The pass result, or None if another pass is already running.

        Raises:
            StoreUnavailable: if the store cannot be scanned.
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("A reconciliation pass is already running; skipping")
            return None

        try:
            return self._run(config)
        finally:
            self._enter(PassState.IDLE)
            self._lock.release()

    def _run(self, config: WatchlistConfig | None) -> PassResult:
        result = PassResult(started=iso_timestamp())
        today = self.today()

        self._enter(PassState.INDEXING)
        index = self.indexer.build(today)
        set_setting(self.conn, "last_index_scan", self.indexer.get_last_scan_time())

        self._enter(PassState.ANALYZING)
        if config is None:
            config = load_config(self.conn)
        todolist, stalelist = analyze(index, config, today)
        result.missing_cells = sum(
            len(packages) for months in todolist.values() for packages in months.values()
        )
        result.stale_records = len(stalelist)

        if stalelist:
            self._enter(PassState.PURGING)
            logger.info("Purging stale statistics ...")
            result.purge_ok = purge(self.conn, stalelist)

        self._enter(PassState.COLLECTING)
        if todolist:
            logger.info("Collecting missing and stale statistics ...")
            try:
                result.written = self.collector.collect(todolist)
            finally:
                set_setting(
                    self.conn,
                    "last_data_collection",
                    self.collector.get_last_collection_time(),
                )
            result.failures = list(self.collector.failures)
        else:
            logger.info("Download statistics are up to date.")

        result.finished = iso_timestamp()
        logger.info(
            "Pass finished: %d records written, %d months failed",
            result.written,
            len(result.failures),
        )
        return result

    def get_last_scan_time(self) -> str | None:
        return self.indexer.get_last_scan_time()

    def get_last_collection_time(self) -> str | None:
        return self.collector.get_last_collection_time()


def get_status(conn: sqlite3.Connection) -> dict[str, object]:
    """Service information for presentation: timestamps and stored packages."""
    return {
        "last_index_scan": get_setting(conn, "last_index_scan"),
        "last_data_collection": get_setting(conn, "last_data_collection"),
        "packages": get_packages(conn),
    }


def run_periodically(
    reconciler: Reconciler,
    interval: float = DEFAULT_INTERVAL,
    stop_event: threading.Event | None = None,
    max_passes: int | None = None,
) -> int:
    """Run a pass now and then every ``interval`` seconds until stopped.

    A pass that fails because the store is unavailable is logged and the
    schedule continues.

    Returns:
        Number of passes attempted.
    """
    stop_event = stop_event or threading.Event()
    passes = 0
    while not stop_event.is_set():
        passes += 1
        logger.info("Refreshing statistics ...")
        try:
            reconciler.run_pass()
        except StoreUnavailable as e:
            logger.error("Index build error: %s", e)
        if max_passes is not None and passes >= max_passes:
            break
        stop_event.wait(interval)
    return passes
