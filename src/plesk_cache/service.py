# SPDX-License-Identifier: MIT
"""Domain query façade used by the HTTP API and the CLI.

``DomainService`` is constructed once and injected into its callers; it
owns the upstream client, the cache and the sync manager.
"""

from pathlib import Path
from typing import Any

from .cache import DomainCache
from .cache_sync import DomainSyncManager
from .config import AppConfig, get_config_manager
from .fallback import get_fallback_domains
from .logging_config import get_detail_logger, get_status_logger
from .models import CacheStats, DomainListing, SyncResult
from .upstream import PleskClient


detail_logger = get_detail_logger()
status_logger = get_status_logger()


class DomainService:
    """Read-through access to cached Plesk domains."""

    def __init__(
        self,
        cache: DomainCache,
        sync_manager: DomainSyncManager,
        client: PleskClient | None = None,
    ) -> None:
        self.cache = cache
        self.sync_manager = sync_manager
        self.client = client

    @classmethod
    def from_config(cls, config: AppConfig | None = None) -> "DomainService":
        """Build the client, cache and sync manager from configuration.

        Raises:
            ConfigurationError: If the Plesk connection settings are incomplete
        """
        if config is None:
            config = get_config_manager().load_config()

        client = PleskClient(config.upstream)
        cache = DomainCache(Path(config.cache.db_path), config.cache.connection_timeout)
        sync_manager = DomainSyncManager(client, cache, config.sync)
        return cls(cache, sync_manager, client=client)

    async def __aenter__(self) -> "DomainService":
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        await self.close()

    async def list_domains(self, name_filter: str | None = None) -> DomainListing:
        """List domains, populating the cache from Plesk on a cache miss.

        Args:
            name_filter: Optional case-insensitive substring of the domain name

        Returns:
            DomainListing; never raises. When Plesk is unreachable and the
            cache is empty the built-in fallback domains are returned with
            ``fallback=True``.
        """
        try:
            return await self._list_domains(name_filter)
        except Exception as e:
            detail_logger.exception(f"Error in list_domains: {e}")
            return self._fallback_listing(name_filter, str(e))

    async def _list_domains(self, name_filter: str | None) -> DomainListing:
        if self.cache.count() > 0:
            records = self.cache.get(name_filter)
            detail_logger.debug(f"Found {len(records)} domains in cache")
            return DomainListing(
                records=records,
                from_cache=True,
                message=f"Retrieved {len(records)} domains from cache",
            )

        status_logger.info("Domain cache is empty, fetching domains from Plesk...")
        result = await self.sync_manager.run_list_sync()

        if not result.succeeded:
            return self._fallback_listing(name_filter, result.error or result.reason)

        records = self.cache.get(name_filter)
        return DomainListing(
            records=records,
            from_cache=False,
            message=f"Retrieved {len(records)} domains, status sync in progress",
        )

    def _fallback_listing(
        self, name_filter: str | None, reason: str | None
    ) -> DomainListing:
        status_logger.warning(
            f"Serving built-in fallback domains (Plesk unavailable: {reason or 'unknown error'})"
        )
        return DomainListing(
            records=get_fallback_domains(name_filter),
            from_cache=False,
            fallback=True,
            message="Retrieved domains from fallback data (Plesk unavailable)",
        )

    async def refresh(self) -> SyncResult:
        """Clear the cache and refetch everything from Plesk."""
        return await self.sync_manager.force_refresh()

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def metadata(self) -> dict[str, Any]:
        """Cache statistics together with the sync engine status."""
        return {
            "cache": self.get_cache_stats().model_dump(mode="json"),
            "sync": self.sync_manager.get_sync_status(),
        }

    def trigger_background_sync(self) -> bool:
        """Start a status sync in the background (fire-and-forget).

        Returns:
            True if a run was started, False if one was already running
        """
        return self.sync_manager.start_status_sync()

    async def close(self) -> None:
        """Stop background sync work and release the HTTP session."""
        await self.sync_manager.shutdown()
        if self.client is not None:
            await self.client.close()
