"""Removal of superseded stats records ahead of a refetch."""

import sqlite3

from .db import bulk_delete
from .errors import PersistenceError
from .logging import get_logger
from .types import StaleList

logger = get_logger()


def purge(conn: sqlite3.Connection, stalelist: StaleList | None) -> bool:
    """Soft-delete stale records in one bulk operation.

    A failure is logged and reported through the return value only; the
    caller goes on to refetch either way.

    Returns:
        True if every record was deleted (or there was nothing to delete).
    """
    if not stalelist:
        return True

    try:
        deleted = bulk_delete(conn, stalelist)
    except PersistenceError as e:
        logger.error("Error purging stale data: %s", e)
        return False

    logger.info("Purged %d stale records", deleted)
    return True
