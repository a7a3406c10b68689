# SPDX-License-Identifier: MIT
"""Domain cache synchronization manager.

Populates the domain cache from the Plesk listing endpoint and enriches
cached domains with their hosting status in paced batches. Background work
runs as detached asyncio tasks that ``shutdown()`` cancels.
"""

import asyncio
from collections.abc import Coroutine
from datetime import datetime
from typing import Any

import aiohttp

from ..cache import DomainCache
from ..config import SyncConfig
from ..enums import DomainStatus, SyncState, UpdateStatus
from ..exceptions import UpstreamError, UpstreamResponseError
from ..logging_config import get_detail_logger, get_status_logger
from ..models import CachedDomainRecord, SyncResult
from ..protocols import DomainSource


# Failures of a single upstream step that must not abort a sync run
UPSTREAM_FAILURES: tuple[type[Exception], ...] = (
    UpstreamError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
    ValueError,
    KeyError,
    TypeError,
    AttributeError,
)


def _batches(items: list[Any], size: int) -> list[list[Any]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class DomainSyncManager:
    """Keeps the domain cache in step with the Plesk server."""

    def __init__(
        self,
        source: DomainSource,
        cache: DomainCache,
        sync_config: SyncConfig | None = None,
    ) -> None:
        self.source = source
        self.cache = cache
        self.sync_config = sync_config or SyncConfig()
        self.detail_logger = get_detail_logger()
        self.status_logger = get_status_logger()

        self._status_lock = asyncio.Lock()
        self._listing_task: asyncio.Task[SyncResult] | None = None
        self._status_task: asyncio.Task[SyncResult] | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._closed = False
        self.last_results: dict[str, SyncResult] = {}

    @property
    def state(self) -> SyncState:
        """Current phase of the engine."""
        if self._status_lock.locked():
            return SyncState.STATUS_SYNCING
        if self._listing_task is not None and not self._listing_task.done():
            return SyncState.LIST_SYNCING
        return SyncState.IDLE

    @property
    def sync_in_progress(self) -> bool:
        return self.state != SyncState.IDLE

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        """Start a tracked background task."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            self.detail_logger.info(f"Background task {task.get_name()} cancelled")
            return
        error = task.exception()
        if error is not None:
            self.detail_logger.error(
                f"Background task {task.get_name()} failed: {error!r}", exc_info=error
            )

    async def _fetch_listing(self) -> tuple[list[CachedDomainRecord], int]:
        """Fetch and parse the full domain listing.

        Returns:
            Tuple of (valid records, number of skipped items)

        Raises:
            UpstreamError: If the listing could not be fetched or is not a list
        """
        result = await self.source.list_domains()
        result.raise_for_error()

        payload = result.payload
        if payload is None:
            payload = []
        if not isinstance(payload, list):
            raise UpstreamResponseError(
                f"Unexpected domain listing payload: {type(payload).__name__}",
                result.http_status,
            )

        records: list[CachedDomainRecord] = []
        skipped = 0
        for item in payload:
            try:
                records.append(CachedDomainRecord.from_upstream(item))
            except ValueError as e:
                skipped += 1
                self.detail_logger.warning(f"Skipping domain listing item: {e}")

        return records, skipped

    async def _fetch_status(self, domain_id: int) -> DomainStatus:
        """Fetch one domain's status.

        Raises:
            UpstreamError: If the status endpoint failed
        """
        result = await self.source.get_domain_status(domain_id)
        result.raise_for_error()
        payload = result.payload
        if isinstance(payload, dict):
            return DomainStatus.parse(payload.get("status"))
        return DomainStatus.UNKNOWN

    async def fetch_and_store_listing(self) -> SyncResult:
        """Fetch the full domain listing and store skeleton records.

        Concurrent callers share one in-flight fetch. Never raises for
        upstream or storage failures.

        Returns:
            SyncResult with ``count`` on success, or status ERROR and ``error``
        """
        if self._closed:
            return SyncResult(status=UpdateStatus.SKIPPED, reason="shut_down")

        if self._listing_task is None or self._listing_task.done():
            self._listing_task = self._spawn(
                self._fetch_and_store_listing(), name="domain-listing-sync"
            )
        else:
            self.detail_logger.debug("Domain listing fetch already running, joining it")

        return await asyncio.shield(self._listing_task)

    async def _fetch_and_store_listing(self) -> SyncResult:
        started_at = datetime.now()
        self.detail_logger.info("Fetching domain listing from Plesk")

        try:
            records, skipped = await self._fetch_listing()
        except UPSTREAM_FAILURES as e:
            message = _error_message(e)
            self.status_logger.warning(f"Could not fetch domains from Plesk: {message}")
            result = SyncResult(
                status=UpdateStatus.ERROR,
                error=message,
                started_at=started_at,
                completed_at=datetime.now(),
            )
            self.last_results["listing"] = result
            return result

        stored = 0
        for record in records:
            if self.cache.upsert_listing(record):
                stored += 1

        write_failures = len(records) - stored
        if records and stored == 0:
            status = UpdateStatus.ERROR
            error: str | None = "Domain cache is not writable"
            self.status_logger.error(
                f"Fetched {len(records)} domains but none could be cached"
            )
        else:
            status = UpdateStatus.PARTIAL if write_failures else UpdateStatus.SUCCESS
            error = None
            self.status_logger.info(
                f"Fetched {len(records)} domains from Plesk, {stored} cached"
            )

        result = SyncResult(
            status=status,
            count=len(records),
            processed=len(records) + skipped,
            updated=stored,
            failed=write_failures + skipped,
            error=error,
            started_at=started_at,
            completed_at=datetime.now(),
        )
        self.last_results["listing"] = result
        return result

    async def run_list_sync(self) -> SyncResult:
        """Populate the cache and start status enrichment in the background.

        Returns as soon as the listing is stored; the status pass keeps
        running detached.
        """
        result = await self.fetch_and_store_listing()
        if result.succeeded:
            self.start_status_sync()
        return result

    def start_status_sync(self) -> bool:
        """Schedule ``run_status_sync`` without waiting for it.

        Returns:
            True if a run was scheduled, False if one is already active
        """
        if self._closed:
            self.detail_logger.info("Sync manager is shut down, status sync not started")
            return False

        if self._status_lock.locked() or (
            self._status_task is not None and not self._status_task.done()
        ):
            self.detail_logger.info("Status sync already running")
            return False

        self._status_task = self._spawn(self.run_status_sync(), name="domain-status-sync")
        return True

    async def run_status_sync(self) -> SyncResult:
        """Refresh the status of every cached domain, oldest first.

        Only one status run can be active; a second call while one runs
        returns a SKIPPED result immediately.
        """
        if self._status_lock.locked():
            self.detail_logger.info("Status sync already in progress, skipping")
            return SyncResult(status=UpdateStatus.SKIPPED, reason="sync_in_progress")

        async with self._status_lock:
            result = await self._run_status_sync()
        self.last_results["status"] = result
        return result

    async def _run_status_sync(self) -> SyncResult:
        started_at = datetime.now()
        queue = self.cache.get_sync_queue()
        batch_size = self.sync_config.status_batch_size
        delay = self.sync_config.status_batch_delay
        batches = _batches(queue, batch_size)

        self.status_logger.info(
            f"Syncing status for {len(queue)} domains in {len(batches)} batches"
        )

        updated = 0
        errors: dict[int, str] = {}

        for index, batch in enumerate(batches, start=1):
            for domain_id, name in batch:
                try:
                    status = await self._fetch_status(domain_id)
                except UPSTREAM_FAILURES as e:
                    message = _error_message(e)
                    errors[domain_id] = message
                    # Leaves last_updated alone so the domain is retried first next run
                    self.cache.record_sync_error(domain_id, message)
                    self.detail_logger.warning(f"Error updating {name}: {message}")
                    continue

                if self.cache.upsert_status(domain_id, status):
                    updated += 1
                self.detail_logger.debug(f"Updated {name}: {status.value}")

            if index < len(batches):
                self.detail_logger.info(
                    f"Processed batch {index}/{len(batches)}, waiting {delay}s..."
                )
                await asyncio.sleep(delay)

        failed = len(errors)
        if failed == 0:
            status_value = UpdateStatus.SUCCESS
        elif failed < len(queue):
            status_value = UpdateStatus.PARTIAL
        else:
            status_value = UpdateStatus.FAILED

        self.status_logger.info(
            f"Status sync completed: {updated} updated, {failed} failed"
        )
        return SyncResult(
            status=status_value,
            count=len(queue),
            processed=len(queue),
            updated=updated,
            failed=failed,
            errors=errors,
            started_at=started_at,
            completed_at=datetime.now(),
        )

    async def run_full_sync(self) -> SyncResult:
        """Fetch the listing and each domain's status, writing complete records.

        Domains are processed in batches of ``full_batch_size`` with
        ``full_batch_delay`` seconds between batches. Shares the status
        run guard, so it never overlaps a status sync.
        """
        if self._status_lock.locked():
            self.detail_logger.info("Domain sync already in progress, skipping")
            return SyncResult(status=UpdateStatus.SKIPPED, reason="sync_in_progress")

        async with self._status_lock:
            result = await self._run_full_sync()
        self.last_results["full"] = result
        return result

    async def _run_full_sync(self) -> SyncResult:
        started_at = datetime.now()
        self.status_logger.info("Starting full domain sync...")

        try:
            records, skipped = await self._fetch_listing()
        except UPSTREAM_FAILURES as e:
            message = _error_message(e)
            self.status_logger.error(f"Full domain sync failed: {message}")
            return SyncResult(
                status=UpdateStatus.ERROR,
                error=message,
                started_at=started_at,
                completed_at=datetime.now(),
            )

        batch_size = self.sync_config.full_batch_size
        delay = self.sync_config.full_batch_delay
        batches = _batches(records, batch_size)
        self.status_logger.info(f"Found {len(records)} domains to sync")

        updated = 0
        errors: dict[int, str] = {}

        for index, batch in enumerate(batches, start=1):
            self.detail_logger.info(
                f"Syncing batch {index}/{len(batches)} ({len(batch)} domains)"
            )
            for record in batch:
                try:
                    status = await self._fetch_status(record.id)
                except UPSTREAM_FAILURES as e:
                    message = _error_message(e)
                    errors[record.id] = message
                    self.detail_logger.warning(
                        f"Error fetching status for domain {record.id}: {message}"
                    )
                    # Refresh the listing fields but keep the last known status
                    if self.cache.upsert_listing(record):
                        updated += 1
                        self.cache.record_sync_error(record.id, message)
                    continue

                record = record.model_copy(update={"status": status, "sync_error": None})
                if self.cache.upsert(record):
                    updated += 1

            if index < len(batches):
                await asyncio.sleep(delay)

        failed = len(errors)
        status_value = UpdateStatus.SUCCESS if failed == 0 else UpdateStatus.PARTIAL
        if records and failed == len(records):
            status_value = UpdateStatus.FAILED

        self.status_logger.info(
            f"Full domain sync completed for {len(records)} domains ({failed} failed)"
        )
        return SyncResult(
            status=status_value,
            count=len(records),
            processed=len(records) + skipped,
            updated=updated,
            failed=failed + skipped,
            errors=errors,
            started_at=started_at,
            completed_at=datetime.now(),
        )

    async def force_refresh(self) -> SyncResult:
        """Clear the cache, refetch the listing and restart status enrichment."""
        removed = self.cache.clear()
        self.status_logger.info(f"Cleared domain cache ({removed} domains)")

        result = await self.fetch_and_store_listing()
        if result.succeeded:
            self.start_status_sync()
        self.last_results["refresh"] = result
        return result

    async def wait_for_background(self) -> None:
        """Wait until all background tasks (including ones they spawn) finish."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel background sync work; later triggers are ignored."""
        self._closed = True
        tasks = list(self._background_tasks)
        if not tasks:
            return

        self.detail_logger.info(f"Cancelling {len(tasks)} background sync tasks")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def get_sync_status(self) -> dict[str, Any]:
        """Get current synchronization state and the last result of each phase."""
        status: dict[str, Any] = {
            "state": self.state.value,
            "sync_in_progress": self.sync_in_progress,
            "background_tasks": len(self._background_tasks),
            "last_results": {},
        }
        for phase, result in self.last_results.items():
            status["last_results"][phase] = result.model_dump(mode="json")
        return status
