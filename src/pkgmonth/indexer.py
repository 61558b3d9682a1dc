"""Coverage index: which (package, year, month) cells the store holds."""

import sqlite3
from collections.abc import Iterable
from datetime import date

from .db import list_record_identities
from .logging import get_logger
from .types import CoverageEntry, CoverageIndex, RecordIdentity
from .utils import is_current_month, iso_timestamp, parse_record_id, utc_today

logger = get_logger()


def build_index(identities: Iterable[RecordIdentity], today: date) -> CoverageIndex:
    """Build a coverage index from record identities.

    Ids that are not stats record ids are skipped. A cell is stale when it
    covers the current (incomplete) month or the store flagged it.
    """
    index: CoverageIndex = {}
    skipped = 0
    for identity in identities:
        key = parse_record_id(identity.id)
        if key is None:
            skipped += 1
            continue
        stale = identity.stale or is_current_month(key.year, key.month, today)
        months = index.setdefault(key.package_name, {}).setdefault(key.year, {})
        months[key.month] = CoverageEntry(
            present=True, stale=stale, record_id=identity.id, revision=identity.revision
        )
    if skipped:
        logger.debug("Skipped %d records that are not monthly statistics", skipped)
    return index


class Indexer:
    """Scans the persisted record set into a fresh coverage index."""

    def __init__(self, conn: sqlite3.Connection | None) -> None:
        self.conn = conn
        self.last_scan: str | None = None

    def build(self, today: date | None = None) -> CoverageIndex:
        """Scan the store and return a new coverage index.

        Raises:
            StoreUnavailable: if the store is unreachable or not configured.
        """
        today = today or utc_today()
        identities = list_record_identities(self.conn)
        index = build_index(identities, today)
        self.last_scan = iso_timestamp()
        logger.info(
            "Index build finished: %d records for %d packages",
            len(identities),
            len(index),
        )
        return index

    def get_last_scan_time(self) -> str | None:
        """Timestamp of the last completed scan, or None."""
        return self.last_scan
