# SPDX-License-Identifier: MIT
"""Pytest configuration and shared fixtures."""

import asyncio
from pathlib import Path
from typing import Any

import pytest

from plesk_cache.cache import DomainCache
from plesk_cache.cache.schema import init_database
from plesk_cache.config import (
    ENV_OVERRIDES,
    ConfigManager,
    SyncConfig,
    reset_config_manager,
    set_config_manager,
)
from plesk_cache.enums import DomainStatus, UpstreamErrorKind
from plesk_cache.models import CachedDomainRecord, UpstreamResult


@pytest.fixture(scope="function", autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep every test away from real config files, env vars and log dirs.

    Runs each test from its own temporary working directory, clears the
    PLESK_* style environment overrides and installs a config manager that
    points at a config file which does not exist.
    """
    monkeypatch.chdir(tmp_path)
    for env_name in ENV_OVERRIDES:
        monkeypatch.delenv(env_name, raising=False)

    set_config_manager(ConfigManager(tmp_path / "no-such-config.yaml"))
    yield
    reset_config_manager()


@pytest.fixture
def db_path(tmp_path) -> Path:
    """Path of an initialized, empty domain cache database."""
    cache_path = tmp_path / "test_cache.db"
    init_database(cache_path)
    return cache_path


@pytest.fixture
def domain_cache(db_path) -> DomainCache:
    """DomainCache backed by the isolated test database."""
    return DomainCache(db_path)


@pytest.fixture
def fast_sync_config() -> SyncConfig:
    """Sync pacing without delays so tests run instantly."""
    return SyncConfig(status_batch_delay=0, full_batch_delay=0)


def make_record(domain_id: int, name: str, **overrides: Any) -> CachedDomainRecord:
    """Build a cached domain record with sensible defaults."""
    values: dict[str, Any] = {
        "id": domain_id,
        "name": name,
        "status": DomainStatus.UNKNOWN,
        "owner": "admin",
        "ip_addresses": ["10.0.0.1"],
    }
    values.update(overrides)
    return CachedDomainRecord(**values)


class FakeUpstream:
    """In-memory stand-in for the Plesk API.

    Records every call and can be told to fail the listing or the status
    of individual domains.
    """

    def __init__(
        self,
        domains: list[dict[str, Any]] | None = None,
        statuses: dict[int, str] | None = None,
    ):
        self.domains = domains if domains is not None else []
        self.statuses = statuses or {}
        self.failing_ids: set[int] = set()
        self.listing_available = True
        self.status_delay = 0.0
        self.list_calls = 0
        self.status_calls: list[int] = []

    async def list_domains(self) -> UpstreamResult:
        self.list_calls += 1
        if not self.listing_available:
            return UpstreamResult(
                ok=False,
                error_message="Plesk API request failed: connection refused",
                error_kind=UpstreamErrorKind.TRANSPORT,
            )
        return UpstreamResult(ok=True, payload=list(self.domains), http_status=200)

    async def get_domain_status(self, domain_id: int) -> UpstreamResult:
        self.status_calls.append(domain_id)
        if self.status_delay:
            await asyncio.sleep(self.status_delay)
        if domain_id in self.failing_ids:
            return UpstreamResult(
                ok=False,
                http_status=500,
                error_message=f"Status unavailable for {domain_id}",
                error_kind=UpstreamErrorKind.REJECTED,
            )
        return UpstreamResult(
            ok=True,
            payload={"status": self.statuses.get(domain_id, "active")},
            http_status=200,
        )


def upstream_domain(domain_id: int, name: str, **extra: Any) -> dict[str, Any]:
    """A domain item as returned by the Plesk ``GET /domains`` endpoint."""
    item: dict[str, Any] = {
        "id": domain_id,
        "name": name,
        "created": "2024-01-15T10:30:00Z",
        "hosting_type": "virtual",
        "www_root": f"/var/www/vhosts/{name}/httpdocs",
    }
    item.update(extra)
    return item


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    """Fake Plesk API with three domains."""
    return FakeUpstream(
        domains=[
            upstream_domain(1, "alpha.com", owner_login="client1"),
            upstream_domain(2, "beta.org"),
            upstream_domain(3, "gamma.net"),
        ],
        statuses={1: "active", 2: "suspended", 3: "disabled"},
    )
