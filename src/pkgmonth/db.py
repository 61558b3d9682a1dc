"""SQLite persisted store for watchlist, settings and monthly stats records."""

import json
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from .errors import PersistenceError, StoreUnavailable
from .logging import get_logger
from .types import MonthlyTotal, RecordIdentity, StaleRecord, StatsRecord

logger = get_logger()

DEFAULT_DB_FILE = "pkgmonth.db"


def get_db_connection(db_path: str) -> sqlite3.Connection:
    """Create and return a database connection.

    Store writes are serialized by the reconciler, so the connection may be
    handed to the thread running a pass.
    """
    try:
        conn = sqlite3.connect(db_path, check_same_thread=False)
    except sqlite3.Error as e:
        raise StoreUnavailable(f"Cannot open database {db_path}: {e}") from e
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_db(db_path: str = DEFAULT_DB_FILE) -> Iterator[sqlite3.Connection]:
    """Open an initialized database connection and close it afterwards."""
    conn = get_db_connection(db_path)
    try:
        init_db(conn)
        yield conn
    finally:
        conn.close()


def init_db(conn: sqlite3.Connection) -> None:
    """Initialize the database schema."""
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS packages (
                package_name TEXT PRIMARY KEY,
                added_date TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS monthly_stats (
                id TEXT PRIMARY KEY,
                package_name TEXT NOT NULL,
                month TEXT NOT NULL,
                total INTEGER NOT NULL DEFAULT 0,
                collection_date TEXT,
                daily TEXT NOT NULL DEFAULT '[]',
                revision TEXT NOT NULL,
                stale INTEGER NOT NULL DEFAULT 0,
                deleted INTEGER NOT NULL DEFAULT 0
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_stats_package_name
            ON monthly_stats(package_name)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_stats_month
            ON monthly_stats(month)
        """)
        conn.commit()
    except sqlite3.Error as e:
        raise StoreUnavailable(f"Cannot initialize database: {e}") from e


def _next_revision(previous: str | None) -> str:
    """Return a new revision token: <generation>-<random hex>."""
    generation = 0
    if previous:
        try:
            generation = int(previous.split("-", 1)[0])
        except ValueError:
            generation = 0
    return f"{generation + 1}-{uuid.uuid4().hex}"


# -----------------------------------------------------------------------------
# Watchlist
# -----------------------------------------------------------------------------


def add_package(conn: sqlite3.Connection, package_name: str) -> bool:
    """Add a package to the watchlist. Returns False if already present."""
    cursor = conn.execute(
        "INSERT OR IGNORE INTO packages (package_name, added_date) VALUES (?, ?)",
        (package_name, datetime.now().strftime("%Y-%m-%d")),
    )
    conn.commit()
    return cursor.rowcount > 0


def remove_package(conn: sqlite3.Connection, package_name: str) -> bool:
    """Remove a package from the watchlist. Returns False if it was not present."""
    cursor = conn.execute(
        "DELETE FROM packages WHERE package_name = ?", (package_name,)
    )
    conn.commit()
    return cursor.rowcount > 0


def get_watchlist(conn: sqlite3.Connection) -> list[str]:
    """Get the watch-listed package ids, sorted by name."""
    cursor = conn.execute("SELECT package_name FROM packages ORDER BY package_name")
    return [row["package_name"] for row in cursor.fetchall()]


def get_watchlist_details(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Get watch-listed packages with the date they were added."""
    cursor = conn.execute(
        "SELECT package_name, added_date FROM packages ORDER BY package_name"
    )
    return [dict(row) for row in cursor.fetchall()]


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------


def get_setting(conn: sqlite3.Connection, key: str) -> str | None:
    """Read a single setting; None if unset."""
    row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def set_setting(conn: sqlite3.Connection, key: str, value: str | None) -> None:
    """Write a single setting."""
    conn.execute(
        "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value)
    )
    conn.commit()


# -----------------------------------------------------------------------------
# Stats records
# -----------------------------------------------------------------------------


def list_record_identities(conn: sqlite3.Connection | None) -> list[RecordIdentity]:
    """List the identity of every live stats record in a single query."""
    if conn is None:
        raise StoreUnavailable("No data repository is defined.")
    try:
        cursor = conn.execute(
            "SELECT id, revision, stale FROM monthly_stats WHERE deleted = 0"
        )
        return [
            RecordIdentity(row["id"], row["revision"], bool(row["stale"]))
            for row in cursor.fetchall()
        ]
    except sqlite3.Error as e:
        raise StoreUnavailable(f"Cannot list stats records: {e}") from e


def get_record(conn: sqlite3.Connection, record_id: str) -> StatsRecord | None:
    """Fetch one live stats record by id."""
    row = conn.execute(
        "SELECT * FROM monthly_stats WHERE id = ? AND deleted = 0", (record_id,)
    ).fetchone()
    if row is None:
        return None
    return {
        "id": row["id"],
        "package_name": row["package_name"],
        "month": row["month"],
        "total": row["total"],
        "collection_date": row["collection_date"],
        "daily": json.loads(row["daily"]),
        "revision": row["revision"],
    }


def bulk_upsert(conn: sqlite3.Connection, records: list[StatsRecord]) -> int:
    """Write a batch of stats records in one transaction.

    A record is inserted when no live record with its id exists. Overwriting
    a live record requires its current revision; records without it are
    reported as conflicts. Non-conflicting records are committed even when
    others conflict.

    Returns:
        Number of records written.

    Raises:
        PersistenceError: on conflicts or database errors.
    """
    if not records:
        return 0

    written = 0
    conflicts: list[str] = []
    try:
        with conn:
            for record in records:
                row = conn.execute(
                    "SELECT revision, deleted FROM monthly_stats WHERE id = ?",
                    (record["id"],),
                ).fetchone()
                values = (
                    record["package_name"],
                    record["month"],
                    record["total"],
                    record.get("collection_date"),
                    json.dumps(record.get("daily", [])),
                )
                if row is None:
                    conn.execute(
                        """
                        INSERT INTO monthly_stats
                        (package_name, month, total, collection_date, daily, id, revision)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        values + (record["id"], _next_revision(None)),
                    )
                elif row["deleted"] or record.get("revision") == row["revision"]:
                    conn.execute(
                        """
                        UPDATE monthly_stats
                        SET package_name = ?, month = ?, total = ?,
                            collection_date = ?, daily = ?,
                            revision = ?, stale = 0, deleted = 0
                        WHERE id = ?
                        """,
                        values + (_next_revision(row["revision"]), record["id"]),
                    )
                else:
                    conflicts.append(record["id"])
                    continue
                written += 1
    except sqlite3.Error as e:
        raise PersistenceError(f"Bulk write failed: {e}") from e

    if conflicts:
        raise PersistenceError(
            f"Document update conflict for {', '.join(conflicts)}", ids=conflicts
        )
    return written


def bulk_delete(conn: sqlite3.Connection, stale_list: list[StaleRecord]) -> int:
    """Soft-delete a batch of records identified by id and revision.

    Returns:
        Number of records marked deleted.

    Raises:
        PersistenceError: if a revision no longer matches or on database errors.
    """
    if not stale_list:
        return 0

    deleted = 0
    mismatched: list[str] = []
    try:
        with conn:
            for entry in stale_list:
                cursor = conn.execute(
                    """
                    UPDATE monthly_stats SET deleted = 1, revision = ?
                    WHERE id = ? AND revision = ? AND deleted = 0
                    """,
                    (_next_revision(entry.revision), entry.id, entry.revision),
                )
                if cursor.rowcount:
                    deleted += 1
                else:
                    mismatched.append(entry.id)
    except sqlite3.Error as e:
        raise PersistenceError(f"Bulk delete failed: {e}") from e

    if mismatched:
        raise PersistenceError(
            f"Could not delete {', '.join(mismatched)}: revision mismatch",
            ids=mismatched,
        )
    return deleted


def mark_stale(conn: sqlite3.Connection, package_name: str, month: str) -> bool:
    """Flag a live record as outdated so the next pass refetches it."""
    cursor = conn.execute(
        """
        UPDATE monthly_stats SET stale = 1
        WHERE package_name = ? AND month = ? AND deleted = 0
        """,
        (package_name, month),
    )
    conn.commit()
    return cursor.rowcount > 0


def get_packages(conn: sqlite3.Connection) -> list[str]:
    """Get the packages that have at least one live stats record."""
    cursor = conn.execute(
        """
        SELECT DISTINCT package_name FROM monthly_stats
        WHERE deleted = 0 ORDER BY package_name
        """
    )
    return [row["package_name"] for row in cursor.fetchall()]


def by_month(conn: sqlite3.Connection, package_name: str) -> list[MonthlyTotal]:
    """Get a package's monthly download totals, oldest month first."""
    cursor = conn.execute(
        """
        SELECT month, total FROM monthly_stats
        WHERE package_name = ? AND deleted = 0
        ORDER BY month
        """,
        (package_name,),
    )
    return [{"month": row["month"], "total": row["total"]} for row in cursor.fetchall()]


def get_all_monthly(conn: sqlite3.Connection) -> dict[str, list[MonthlyTotal]]:
    """Get the monthly series of every stored package."""
    cursor = conn.execute(
        """
        SELECT package_name, month, total FROM monthly_stats
        WHERE deleted = 0
        ORDER BY package_name, month
        """
    )
    result: dict[str, list[MonthlyTotal]] = {}
    for row in cursor.fetchall():
        result.setdefault(row["package_name"], []).append(
            {"month": row["month"], "total": row["total"]}
        )
    return result
