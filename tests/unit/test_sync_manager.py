# SPDX-License-Identifier: MIT
"""Tests for the DomainSyncManager class."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from conftest import FakeUpstream, make_record, upstream_domain

from plesk_cache.cache_sync import DomainSyncManager
from plesk_cache.config import SyncConfig
from plesk_cache.enums import DomainStatus, SyncState, UpdateStatus
from plesk_cache.exceptions import UpstreamTransportError
from plesk_cache.models import UpstreamResult


@pytest.fixture
def sync_manager(fake_upstream, domain_cache, fast_sync_config):
    """Sync manager wired to the fake upstream and an isolated cache."""
    return DomainSyncManager(fake_upstream, domain_cache, fast_sync_config)


def _statuses(cache):
    return {record.id: record.status for record in cache.get()}


class TestListingSync:
    """Tests for fetching and storing the domain listing."""

    @pytest.mark.asyncio
    async def test_fetch_and_store_listing(self, sync_manager, domain_cache):
        """Listing items become skeleton records with status unknown."""
        result = await sync_manager.fetch_and_store_listing()

        assert result.status == UpdateStatus.SUCCESS
        assert result.count == 3
        records = domain_cache.get()
        assert [r.name for r in records] == ["alpha.com", "beta.org", "gamma.net"]
        assert all(r.status == DomainStatus.UNKNOWN for r in records)
        assert records[0].owner == "client1"
        assert records[1].owner == "admin"

    @pytest.mark.asyncio
    async def test_invalid_items_are_skipped(self, domain_cache, fast_sync_config):
        """Items without id or name are skipped, the rest are stored."""
        upstream = FakeUpstream(
            domains=[
                upstream_domain(1, "alpha.com"),
                {"name": "no-id.com"},
                {"id": 5},
                "not-an-object",
            ]
        )
        manager = DomainSyncManager(upstream, domain_cache, fast_sync_config)

        result = await manager.fetch_and_store_listing()

        assert result.status == UpdateStatus.SUCCESS
        assert result.count == 1
        assert result.failed == 3
        assert domain_cache.count() == 1

    @pytest.mark.asyncio
    async def test_listing_failure_returns_error(self, sync_manager, fake_upstream):
        """An unreachable upstream yields an ERROR result instead of raising."""
        fake_upstream.listing_available = False

        result = await sync_manager.fetch_and_store_listing()

        assert result.status == UpdateStatus.ERROR
        assert "connection refused" in result.error
        assert sync_manager.last_results["listing"] is result

    @pytest.mark.asyncio
    async def test_listing_exception_is_contained(self, sync_manager, fake_upstream):
        """Exceptions raised by the source are reported as ERROR."""
        fake_upstream.list_domains = AsyncMock(
            side_effect=UpstreamTransportError("socket closed")
        )

        result = await sync_manager.fetch_and_store_listing()

        assert result.status == UpdateStatus.ERROR
        assert result.error == "socket closed"

    @pytest.mark.asyncio
    async def test_non_list_payload_is_an_error(self, sync_manager, fake_upstream):
        """A listing payload that is not a list is rejected."""
        fake_upstream.list_domains = AsyncMock(
            return_value=UpstreamResult(ok=True, payload={"data": []}, http_status=200)
        )

        result = await sync_manager.fetch_and_store_listing()

        assert result.status == UpdateStatus.ERROR
        assert "Unexpected domain listing payload" in result.error

    @pytest.mark.asyncio
    async def test_concurrent_fetches_share_one_call(self, sync_manager, fake_upstream):
        """Concurrent listing fetches are coalesced into one upstream call."""
        results = await asyncio.gather(
            sync_manager.fetch_and_store_listing(),
            sync_manager.fetch_and_store_listing(),
        )

        assert fake_upstream.list_calls == 1
        assert results[0] == results[1]

    @pytest.mark.asyncio
    async def test_run_list_sync_starts_status_sync(self, sync_manager, domain_cache):
        """A successful listing schedules the status pass in the background."""
        result = await sync_manager.run_list_sync()

        assert result.succeeded
        assert sync_manager.get_sync_status()["background_tasks"] >= 1

        await sync_manager.wait_for_background()

        assert _statuses(domain_cache) == {
            1: DomainStatus.ACTIVE,
            2: DomainStatus.SUSPENDED,
            3: DomainStatus.DISABLED,
        }

    @pytest.mark.asyncio
    async def test_run_list_sync_failure_does_not_start_status_sync(
        self, sync_manager, fake_upstream
    ):
        """No status pass is scheduled when the listing failed."""
        fake_upstream.listing_available = False

        result = await sync_manager.run_list_sync()

        assert not result.succeeded
        await sync_manager.wait_for_background()
        assert fake_upstream.status_calls == []


class TestStatusSync:
    """Tests for the batched status enrichment pass."""

    @pytest.mark.asyncio
    async def test_updates_every_status(self, sync_manager, domain_cache):
        """Each cached domain gets the status reported by the upstream."""
        await sync_manager.fetch_and_store_listing()

        result = await sync_manager.run_status_sync()

        assert result.status == UpdateStatus.SUCCESS
        assert result.processed == 3
        assert result.updated == 3
        assert result.failed == 0
        assert _statuses(domain_cache)[2] == DomainStatus.SUSPENDED

    @pytest.mark.asyncio
    async def test_partial_failure_is_isolated(
        self, sync_manager, fake_upstream, domain_cache
    ):
        """One failing domain is marked with an error; the others are updated."""
        await sync_manager.fetch_and_store_listing()
        fake_upstream.failing_ids = {2}

        result = await sync_manager.run_status_sync()

        assert result.status == UpdateStatus.PARTIAL
        assert result.updated == 2
        assert result.failed == 1
        assert result.errors == {2: "Status unavailable for 2"}

        records = {r.id: r for r in domain_cache.get()}
        assert records[1].status == DomainStatus.ACTIVE
        assert records[3].status == DomainStatus.DISABLED
        assert records[2].status == DomainStatus.UNKNOWN
        assert records[2].sync_error == "Status unavailable for 2"

    @pytest.mark.asyncio
    async def test_all_failing_reports_failed(self, sync_manager, fake_upstream):
        """A run where every domain failed reports FAILED."""
        await sync_manager.fetch_and_store_listing()
        fake_upstream.failing_ids = {1, 2, 3}

        result = await sync_manager.run_status_sync()

        assert result.status == UpdateStatus.FAILED
        assert result.failed == 3

    @pytest.mark.asyncio
    async def test_raising_source_is_isolated(
        self, sync_manager, fake_upstream, domain_cache
    ):
        """Exceptions from the source count as per-domain failures."""
        await sync_manager.fetch_and_store_listing()
        fake_upstream.get_domain_status = AsyncMock(side_effect=OSError("reset"))

        result = await sync_manager.run_status_sync()

        assert result.failed == 3
        assert all(r.sync_error == "reset" for r in domain_cache.get())

    @pytest.mark.asyncio
    async def test_unrecognized_status_becomes_unknown(
        self, sync_manager, fake_upstream, domain_cache
    ):
        """Statuses outside the known set are stored as unknown."""
        await sync_manager.fetch_and_store_listing()
        fake_upstream.statuses = {1: "Active", 2: "weird", 3: None}  # type: ignore[dict-item]

        await sync_manager.run_status_sync()

        assert _statuses(domain_cache) == {
            1: DomainStatus.ACTIVE,
            2: DomainStatus.UNKNOWN,
            3: DomainStatus.UNKNOWN,
        }

    @pytest.mark.asyncio
    async def test_processes_oldest_first(self, domain_cache, fast_sync_config):
        """Domains are enriched in least-recently-updated order."""
        upstream = FakeUpstream()
        for domain_id, name in [(10, "z.com"), (11, "y.com"), (12, "x.com")]:
            domain_cache.upsert(make_record(domain_id, name))
            await asyncio.sleep(0.001)
        domain_cache.upsert_status(10, DomainStatus.ACTIVE)
        manager = DomainSyncManager(upstream, domain_cache, fast_sync_config)

        await manager.run_status_sync()

        assert upstream.status_calls == [11, 12, 10]

    @pytest.mark.asyncio
    async def test_pacing_only_between_batches(self, domain_cache):
        """The batch delay is slept between batches, never after the last."""
        upstream = FakeUpstream()
        for domain_id in range(1, 12):
            domain_cache.upsert(make_record(domain_id, f"site{domain_id:02d}.com"))
        manager = DomainSyncManager(
            upstream,
            domain_cache,
            SyncConfig(status_batch_size=5, status_batch_delay=3.0),
        )

        with patch(
            "plesk_cache.cache_sync.sync_manager.asyncio.sleep", new=AsyncMock()
        ) as mock_sleep:
            result = await manager.run_status_sync()

        # 11 domains in batches of 5: three batches, two pauses
        assert result.processed == 11
        assert mock_sleep.await_count == 2
        for call in mock_sleep.await_args_list:
            assert call.args == (3.0,)

    @pytest.mark.asyncio
    async def test_single_batch_does_not_sleep(self, sync_manager):
        """A run that fits into one batch never waits."""
        await sync_manager.fetch_and_store_listing()

        with patch(
            "plesk_cache.cache_sync.sync_manager.asyncio.sleep", new=AsyncMock()
        ) as mock_sleep:
            await sync_manager.run_status_sync()

        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_cache(self, sync_manager, fake_upstream):
        """A status pass over an empty cache succeeds without upstream calls."""
        result = await sync_manager.run_status_sync()

        assert result.status == UpdateStatus.SUCCESS
        assert result.processed == 0
        assert fake_upstream.status_calls == []

    @pytest.mark.asyncio
    async def test_mutual_exclusion(self, sync_manager, fake_upstream):
        """Two concurrent status runs never overlap; the second is skipped."""
        await sync_manager.fetch_and_store_listing()
        fake_upstream.status_delay = 0.01

        first, second = await asyncio.gather(
            sync_manager.run_status_sync(), sync_manager.run_status_sync()
        )

        statuses = sorted([first.status, second.status])
        assert statuses == sorted([UpdateStatus.SUCCESS, UpdateStatus.SKIPPED])
        skipped = first if first.status == UpdateStatus.SKIPPED else second
        assert skipped.reason == "sync_in_progress"
        # Each domain was queried exactly once
        assert sorted(fake_upstream.status_calls) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_start_status_sync_refuses_second_trigger(
        self, sync_manager, fake_upstream
    ):
        """start_status_sync returns False while a run is active."""
        await sync_manager.fetch_and_store_listing()
        fake_upstream.status_delay = 0.01

        assert sync_manager.start_status_sync() is True
        assert sync_manager.start_status_sync() is False

        await asyncio.sleep(0)
        assert sync_manager.state == SyncState.STATUS_SYNCING
        assert sync_manager.sync_in_progress is True

        await sync_manager.wait_for_background()
        assert sync_manager.state == SyncState.IDLE
        assert fake_upstream.status_calls.count(1) == 1


class TestFullSync:
    """Tests for the combined listing and status pass."""

    @pytest.mark.asyncio
    async def test_full_sync_writes_complete_records(
        self, sync_manager, fake_upstream, domain_cache
    ):
        """Full sync stores the listing with statuses in one pass."""
        fake_upstream.failing_ids = {3}

        result = await sync_manager.run_full_sync()

        assert result.status == UpdateStatus.PARTIAL
        assert result.count == 3
        assert result.updated == 3
        records = {r.id: r for r in domain_cache.get()}
        assert records[1].status == DomainStatus.ACTIVE
        assert records[2].status == DomainStatus.SUSPENDED
        assert records[3].status == DomainStatus.UNKNOWN
        assert records[3].sync_error == "Status unavailable for 3"
        assert sync_manager.last_results["full"] is result

    @pytest.mark.asyncio
    async def test_full_sync_failure_keeps_known_status(
        self, sync_manager, fake_upstream, domain_cache
    ):
        """A failed status fetch refreshes the listing fields but keeps the old status."""
        domain_cache.upsert(make_record(2, "old-name.org", status=DomainStatus.SUSPENDED))
        fake_upstream.failing_ids = {2}

        result = await sync_manager.run_full_sync()

        assert result.status == UpdateStatus.PARTIAL
        assert result.errors == {2: "Status unavailable for 2"}
        stored = {r.id: r for r in domain_cache.get()}[2]
        assert stored.name == "beta.org"
        assert stored.status == DomainStatus.SUSPENDED
        assert stored.sync_error == "Status unavailable for 2"

    @pytest.mark.asyncio
    async def test_full_sync_batches(self, domain_cache):
        """Full sync sleeps the full-sync delay between batches of its size."""
        upstream = FakeUpstream(
            domains=[upstream_domain(i, f"site{i:02d}.com") for i in range(1, 22)]
        )
        manager = DomainSyncManager(
            upstream,
            domain_cache,
            SyncConfig(full_batch_size=10, full_batch_delay=2.0),
        )

        with patch(
            "plesk_cache.cache_sync.sync_manager.asyncio.sleep", new=AsyncMock()
        ) as mock_sleep:
            result = await manager.run_full_sync()

        assert result.status == UpdateStatus.SUCCESS
        assert domain_cache.count() == 21
        assert mock_sleep.await_count == 2
        assert mock_sleep.await_args_list[0].args == (2.0,)

    @pytest.mark.asyncio
    async def test_full_sync_listing_failure(self, sync_manager, fake_upstream):
        """Full sync reports ERROR when the listing is unavailable."""
        fake_upstream.listing_available = False

        result = await sync_manager.run_full_sync()

        assert result.status == UpdateStatus.ERROR
        assert fake_upstream.status_calls == []

    @pytest.mark.asyncio
    async def test_full_sync_excludes_status_sync(self, sync_manager, fake_upstream):
        """Full sync and status sync share the same guard."""
        await sync_manager.fetch_and_store_listing()
        fake_upstream.status_delay = 0.01

        full, status = await asyncio.gather(
            sync_manager.run_full_sync(), sync_manager.run_status_sync()
        )

        assert full.status == UpdateStatus.SUCCESS
        assert status.status == UpdateStatus.SKIPPED


class TestForceRefreshAndShutdown:
    """Tests for force refresh, shutdown and status reporting."""

    @pytest.mark.asyncio
    async def test_force_refresh_removes_stale_rows(
        self, sync_manager, domain_cache
    ):
        """Domains no longer listed upstream disappear after a refresh."""
        domain_cache.upsert(make_record(99, "stale.example"))

        result = await sync_manager.force_refresh()
        await sync_manager.wait_for_background()

        assert result.status == UpdateStatus.SUCCESS
        ids = {r.id for r in domain_cache.get()}
        assert ids == {1, 2, 3}
        assert sync_manager.last_results["refresh"] is result
        assert sync_manager.last_results["status"].updated == 3

    @pytest.mark.asyncio
    async def test_force_refresh_with_upstream_down(
        self, sync_manager, fake_upstream, domain_cache
    ):
        """A failed refresh leaves an empty cache and reports the error."""
        domain_cache.upsert(make_record(99, "stale.example"))
        fake_upstream.listing_available = False

        result = await sync_manager.force_refresh()

        assert result.status == UpdateStatus.ERROR
        assert domain_cache.count() == 0

    @pytest.mark.asyncio
    async def test_shutdown_cancels_background_sync(
        self, sync_manager, fake_upstream, domain_cache
    ):
        """shutdown() cancels a running status pass before it finishes."""
        await sync_manager.fetch_and_store_listing()
        fake_upstream.status_delay = 10

        assert sync_manager.start_status_sync() is True
        await asyncio.sleep(0.01)

        await asyncio.wait_for(sync_manager.shutdown(), timeout=2)

        assert sync_manager.get_sync_status()["background_tasks"] == 0
        assert sync_manager.state == SyncState.IDLE
        assert all(r.status == DomainStatus.UNKNOWN for r in domain_cache.get())

    @pytest.mark.asyncio
    async def test_triggers_after_shutdown_are_ignored(
        self, sync_manager, fake_upstream
    ):
        """No new work starts once the manager is shut down."""
        await sync_manager.shutdown()

        assert sync_manager.start_status_sync() is False
        result = await sync_manager.fetch_and_store_listing()

        assert result.status == UpdateStatus.SKIPPED
        assert result.reason == "shut_down"
        assert fake_upstream.list_calls == 0

    @pytest.mark.asyncio
    async def test_get_sync_status(self, sync_manager):
        """Sync status reports state and the last result of each phase."""
        await sync_manager.fetch_and_store_listing()
        await sync_manager.run_status_sync()

        status = sync_manager.get_sync_status()

        assert status["state"] == "idle"
        assert status["sync_in_progress"] is False
        assert status["background_tasks"] == 0
        assert status["last_results"]["listing"]["status"] == "success"
        assert status["last_results"]["status"]["updated"] == 3
