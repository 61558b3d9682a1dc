"""Shared fixtures for the pkgmonth tests."""

import tempfile
import threading
import time
from datetime import date
from pathlib import Path

import pytest

from pkgmonth.db import get_db_connection, init_db
from pkgmonth.errors import NetworkError


class FakeSource:
    """In-memory statistics source.

    Every package in ``packages`` reports two downloads on the first day and
    three on the last day of any requested range. Months listed in
    ``failing`` raise NetworkError.
    """

    name = "fake"

    def __init__(self, packages=(), failing=(), floor=date(2015, 1, 10), delay=0.0):
        self.packages = set(packages)
        self.failing = set(failing)
        self.floor = floor
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def earliest_date(self, today):
        return self.floor

    def fetch_range(self, packages, start, end):
        with self._lock:
            self.calls.append((tuple(packages), start, end))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if (start.year, start.month) in self.failing:
                raise NetworkError(f"upstream unavailable for {start:%Y-%m}")
            return {
                p: [
                    {"day": start.isoformat(), "downloads": 2},
                    {"day": end.isoformat(), "downloads": 3},
                ]
                for p in packages
                if p in self.packages
            }
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def temp_db():
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield db_path
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def db_conn(temp_db):
    """Create an initialized database connection."""
    conn = get_db_connection(temp_db)
    init_db(conn)
    yield conn
    conn.close()


@pytest.fixture
def make_record():
    """Factory for stats records."""

    def _make(package="left-pad", month="2016-03", total=8, revision=None):
        record = {
            "id": f"{package}_{month}",
            "package_name": package,
            "month": month,
            "total": total,
            "collection_date": "2016-04-01T00:00:00+00:00",
            "daily": [{"date": f"{month}-01", "count": total}],
        }
        if revision is not None:
            record["revision"] = revision
        return record

    return _make
