# SPDX-License-Identifier: MIT
"""SQLite connections for the domain cache.

Each read or write opens a short-lived connection. The HTTP handlers and
the background status sync therefore never share a connection object, and
a writer that finds the database locked waits up to ``timeout`` seconds.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..constants import DEFAULT_DB_TIMEOUT
from ..logging_config import get_detail_logger


detail_logger = get_detail_logger()

# Applied to every connection after the journal mode
CACHE_PRAGMAS: tuple[tuple[str, str], ...] = (
    ("synchronous", "NORMAL"),
    ("cache_size", "10000"),
    ("temp_store", "MEMORY"),
)

# SQL name of the Unicode-aware lower() registered on every connection.
# SQLite's built-in LOWER() only folds ASCII letters.
UNICODE_LOWER_FUNCTION = "unicode_lower"


def _unicode_lower(value: str | None) -> str | None:
    return value.lower() if isinstance(value, str) else value


def configure_sqlite_connection(conn: sqlite3.Connection, enable_wal: bool = True) -> None:
    """Switch the connection to WAL, apply ``CACHE_PRAGMAS`` and register functions.

    WAL lets list requests read while the status sync is writing.
    """
    if enable_wal:
        mode = conn.execute("PRAGMA journal_mode = WAL").fetchone()
        if mode and str(mode[0]).lower() != "wal":
            detail_logger.debug(f"WAL not available, journal mode is {mode[0]}")

    for name, value in CACHE_PRAGMAS:
        conn.execute(f"PRAGMA {name} = {value}")

    conn.create_function(
        UNICODE_LOWER_FUNCTION, 1, _unicode_lower, deterministic=True
    )


@contextmanager
def get_configured_connection(
    db_path: str | Path,
    timeout: float = DEFAULT_DB_TIMEOUT,
    enable_wal: bool = True,
    row_factory: bool = False,
) -> Iterator[sqlite3.Connection]:
    """Open a configured connection to the cache database.

    Args:
        db_path: Path to the SQLite database file
        timeout: Seconds to wait for a lock held by another connection
        enable_wal: Whether to switch the database to WAL mode
        row_factory: Return ``sqlite3.Row`` rows instead of tuples

    Yields:
        The open connection. It is closed on exit; committing is up to the caller.
    """
    conn = sqlite3.connect(str(db_path), timeout=timeout)
    try:
        if row_factory:
            conn.row_factory = sqlite3.Row
        configure_sqlite_connection(conn, enable_wal=enable_wal)
        yield conn
    finally:
        conn.close()


@contextmanager
def get_connection_with_row_factory(
    db_path: str | Path,
    timeout: float = DEFAULT_DB_TIMEOUT,
    enable_wal: bool = True,
) -> Iterator[sqlite3.Connection]:
    """Same as ``get_configured_connection`` with ``sqlite3.Row`` rows."""
    with get_configured_connection(
        db_path, timeout, enable_wal, row_factory=True
    ) as conn:
        yield conn
