# SPDX-License-Identifier: MIT
"""Database schema initialization for the domain cache."""

from datetime import datetime
from pathlib import Path

from ..enums import DomainStatus
from .connection_utils import get_configured_connection


SCHEMA_VERSION = 1


def init_database(db_path: Path) -> None:
    """Create the domain cache schema if it does not exist yet.

    Args:
        db_path: Path to the SQLite database file
    """
    status_values = ", ".join(f"'{s.value}'" for s in DomainStatus)

    with get_configured_connection(db_path) as conn:
        conn.executescript(
            f"""
            -- Last known projection of each Plesk domain, keyed by the Plesk id
            CREATE TABLE IF NOT EXISTS domain_cache (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT '{DomainStatus.UNKNOWN.value}',
                created TEXT,
                owner TEXT,
                hosting_type TEXT,
                www_root TEXT,
                ip_addresses TEXT NOT NULL DEFAULT '[]',
                last_updated TEXT NOT NULL,
                sync_error TEXT,
                CHECK (status IN ({status_values}))
            );

            CREATE INDEX IF NOT EXISTS idx_domain_cache_name ON domain_cache(name);
            CREATE INDEX IF NOT EXISTS idx_domain_cache_status ON domain_cache(status);
            CREATE INDEX IF NOT EXISTS idx_domain_cache_last_updated ON domain_cache(last_updated);

            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL,
                description TEXT NOT NULL
            );
        """
        )
        conn.execute(
            """
            INSERT OR IGNORE INTO schema_version (version, applied_at, description)
            VALUES (?, ?, ?)
            """,
            (SCHEMA_VERSION, datetime.now().isoformat(), "Initial domain cache schema"),
        )
        conn.commit()


def get_schema_version(db_path: Path) -> int | None:
    """Return the highest applied schema version, or None for an empty database."""
    with get_configured_connection(db_path) as conn:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
        ).fetchone()
        if row is None:
            return None
        version_row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return version_row[0] if version_row else None
