# SPDX-License-Identifier: MIT
"""Domain cache table access.

The cache is best-effort: storage errors never propagate to callers.
Reads degrade to empty results and writes are logged and reported as
``False`` so the request path keeps serving while the database is
unavailable.
"""

import json
import sqlite3
from datetime import datetime
from typing import Any

from ..enums import DomainStatus
from ..logging_config import get_detail_logger, get_status_logger
from ..models import CachedDomainRecord, CacheStats
from .base import CacheBase
from .connection_utils import (
    UNICODE_LOWER_FUNCTION,
    get_configured_connection,
    get_connection_with_row_factory,
)


detail_logger = get_detail_logger()
status_logger = get_status_logger()

STORAGE_ERRORS = (sqlite3.Error, OSError)

_COLUMNS = (
    "id, name, status, created, owner, hosting_type, www_root, "
    "ip_addresses, last_updated, sync_error"
)


def _now() -> str:
    return datetime.now().isoformat(timespec="microseconds")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DomainCache(CacheBase):
    """Reads and writes cached Plesk domain records."""

    def _row_to_record(self, row: sqlite3.Row) -> CachedDomainRecord:
        try:
            ip_addresses = json.loads(row["ip_addresses"] or "[]")
        except ValueError:
            ip_addresses = []

        return CachedDomainRecord(
            id=row["id"],
            name=row["name"],
            status=row["status"],
            created=row["created"],
            owner=row["owner"] or "",
            hosting_type=row["hosting_type"] or "",
            www_root=row["www_root"] or "",
            ip_addresses=ip_addresses,
            last_updated=row["last_updated"],
            sync_error=row["sync_error"],
        )

    @staticmethod
    def _record_params(record: CachedDomainRecord) -> dict[str, Any]:
        return {
            "id": record.id,
            "name": record.name,
            "status": record.status.value,
            "created": record.created.isoformat() if record.created else None,
            "owner": record.owner,
            "hosting_type": record.hosting_type,
            "www_root": record.www_root,
            "ip_addresses": json.dumps(record.ip_addresses),
            "last_updated": _now(),
            "sync_error": record.sync_error,
        }

    def get(self, name_filter: str | None = None) -> list[CachedDomainRecord]:
        """Get cached domains ordered by name.

        Args:
            name_filter: Optional case-insensitive substring of the domain name.
                None or a blank string means no filter.

        Returns:
            Matching records, empty if none match or the cache is unreadable
        """
        query = f"SELECT {_COLUMNS} FROM domain_cache"
        params: list[str] = []

        if name_filter is not None and name_filter.strip():
            query += f" WHERE {UNICODE_LOWER_FUNCTION}(name) LIKE ? ESCAPE '\\'"
            params.append(f"%{_escape_like(name_filter.strip().lower())}%")

        query += " ORDER BY name ASC"

        try:
            with get_connection_with_row_factory(self.db_path, self.timeout) as conn:
                rows = conn.execute(query, params).fetchall()
        except STORAGE_ERRORS as e:
            detail_logger.error(f"Domain cache not readable: {e}")
            return []

        records = [self._row_to_record(row) for row in rows]
        detail_logger.debug(
            f"Domain cache query (filter={name_filter!r}) returned {len(records)} rows"
        )
        return records

    def get_sync_queue(self) -> list[tuple[int, str]]:
        """Get (id, name) of every cached domain, least recently updated first."""
        try:
            with get_configured_connection(self.db_path, self.timeout) as conn:
                rows = conn.execute(
                    "SELECT id, name FROM domain_cache ORDER BY last_updated ASC, id ASC"
                ).fetchall()
        except STORAGE_ERRORS as e:
            detail_logger.error(f"Could not read status sync queue: {e}")
            return []

        return [(row[0], row[1]) for row in rows]

    def count(self) -> int:
        """Number of cached domains (0 if the cache is unreadable)."""
        try:
            with get_configured_connection(self.db_path, self.timeout) as conn:
                row = conn.execute("SELECT COUNT(*) FROM domain_cache").fetchone()
        except STORAGE_ERRORS as e:
            detail_logger.error(f"Could not count cached domains: {e}")
            return 0

        return int(row[0]) if row else 0

    def upsert(self, record: CachedDomainRecord) -> bool:
        """Insert or update a complete record, keyed by its upstream id.

        Every mutable field is overwritten, including status and sync_error.

        Returns:
            True if the record was written
        """
        params = self._record_params(record)
        try:
            with get_configured_connection(self.db_path, self.timeout) as conn:
                conn.execute(
                    f"""
                    INSERT INTO domain_cache ({_COLUMNS})
                    VALUES (:id, :name, :status, :created, :owner, :hosting_type,
                            :www_root, :ip_addresses, :last_updated, :sync_error)
                    ON CONFLICT(id) DO UPDATE SET
                        name = excluded.name,
                        status = excluded.status,
                        created = excluded.created,
                        owner = excluded.owner,
                        hosting_type = excluded.hosting_type,
                        www_root = excluded.www_root,
                        ip_addresses = excluded.ip_addresses,
                        sync_error = excluded.sync_error,
                        last_updated = MAX(domain_cache.last_updated, excluded.last_updated)
                    """,
                    params,
                )
                conn.commit()
        except STORAGE_ERRORS as e:
            detail_logger.error(f"Failed to cache domain {record.id}: {e}")
            return False

        detail_logger.debug(f"Cached domain {record.id} ({record.name})")
        return True

    def upsert_listing(self, record: CachedDomainRecord) -> bool:
        """Insert a skeleton record from the domain listing.

        New rows start with status 'unknown'. Existing rows keep their status
        and sync_error; descriptive fields and last_updated are refreshed.

        Returns:
            True if the record was written
        """
        params = self._record_params(record)
        params["status"] = DomainStatus.UNKNOWN.value
        params["sync_error"] = None
        try:
            with get_configured_connection(self.db_path, self.timeout) as conn:
                conn.execute(
                    f"""
                    INSERT INTO domain_cache ({_COLUMNS})
                    VALUES (:id, :name, :status, :created, :owner, :hosting_type,
                            :www_root, :ip_addresses, :last_updated, :sync_error)
                    ON CONFLICT(id) DO UPDATE SET
                        name = excluded.name,
                        created = excluded.created,
                        owner = excluded.owner,
                        hosting_type = excluded.hosting_type,
                        www_root = excluded.www_root,
                        ip_addresses = excluded.ip_addresses,
                        last_updated = MAX(domain_cache.last_updated, excluded.last_updated)
                    """,
                    params,
                )
                conn.commit()
        except STORAGE_ERRORS as e:
            detail_logger.error(f"Failed to cache listing entry {record.id}: {e}")
            return False

        return True

    def upsert_status(self, domain_id: int, status: DomainStatus) -> bool:
        """Store an enriched status; only status, sync_error and last_updated change.

        A successful status write clears any previous sync error.

        Returns:
            True if a cached row was updated
        """
        try:
            with get_configured_connection(self.db_path, self.timeout) as conn:
                cursor = conn.execute(
                    """
                    UPDATE domain_cache
                    SET status = ?,
                        sync_error = NULL,
                        last_updated = MAX(last_updated, ?)
                    WHERE id = ?
                    """,
                    (status.value, _now(), domain_id),
                )
                conn.commit()
                updated = cursor.rowcount > 0
        except STORAGE_ERRORS as e:
            detail_logger.error(f"Failed to store status for domain {domain_id}: {e}")
            return False

        if not updated:
            detail_logger.debug(f"Domain {domain_id} no longer cached, status dropped")
        return updated

    def record_sync_error(self, domain_id: int, message: str) -> bool:
        """Remember why the status of a domain could not be refreshed.

        Status and last_updated are left alone so the domain stays at the
        front of the next status sync.

        Returns:
            True if a cached row was updated
        """
        try:
            with get_configured_connection(self.db_path, self.timeout) as conn:
                cursor = conn.execute(
                    "UPDATE domain_cache SET sync_error = ? WHERE id = ?",
                    (message, domain_id),
                )
                conn.commit()
                return cursor.rowcount > 0
        except STORAGE_ERRORS as e:
            detail_logger.error(f"Failed to record sync error for {domain_id}: {e}")
            return False

    def clear(self) -> int:
        """Delete every cached domain.

        Returns:
            Number of rows removed (0 on failure)
        """
        try:
            with get_configured_connection(self.db_path, self.timeout) as conn:
                cursor = conn.execute("DELETE FROM domain_cache")
                conn.commit()
                removed = cursor.rowcount
        except STORAGE_ERRORS as e:
            status_logger.warning(f"Failed to clear domain cache: {e}")
            detail_logger.exception("Domain cache clear failed")
            return 0

        detail_logger.info(f"Cleared {removed} domains from cache")
        return removed

    def stats(self) -> CacheStats:
        """Aggregate counts per status, sync errors and the last write time."""
        status_columns = ",\n".join(
            f"SUM(CASE WHEN status = '{s.value}' THEN 1 ELSE 0 END) AS {s.value}"
            for s in DomainStatus
        )
        try:
            with get_connection_with_row_factory(self.db_path, self.timeout) as conn:
                row = conn.execute(
                    f"""
                    SELECT
                        COUNT(*) AS total,
                        {status_columns},
                        SUM(CASE WHEN sync_error IS NOT NULL THEN 1 ELSE 0 END) AS errors,
                        MAX(last_updated) AS last_sync_time
                    FROM domain_cache
                    """
                ).fetchone()
        except STORAGE_ERRORS as e:
            detail_logger.error(f"Could not compute domain cache stats: {e}")
            return CacheStats()

        return CacheStats(
            total=row["total"] or 0,
            per_status={s.value: row[s.value] or 0 for s in DomainStatus},
            error_count=row["errors"] or 0,
            last_sync_time=(
                datetime.fromisoformat(row["last_sync_time"])
                if row["last_sync_time"]
                else None
            ),
        )
