# SPDX-License-Identifier: MIT
"""Command-line interface for the Plesk domain cache."""

import asyncio
import functools
import json
import sys
import traceback
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click
from aiohttp import web

from . import __version__
from .api import create_app
from .cache import DomainCache
from .config import get_config_manager
from .enums import DomainStatus
from .logging_config import get_status_logger, setup_logging
from .models import CachedDomainRecord, SyncResult
from .service import DomainService
from .upstream import PleskClient


F = TypeVar("F", bound=Callable[..., Any])
T = TypeVar("T")


def handle_cli_errors(func: F) -> F:
    """Log any error raised by a command and exit with status 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        status_logger = get_status_logger()
        verbose = kwargs.get("verbose", False)

        try:
            return func(*args, **kwargs)
        except Exception as e:
            if verbose:
                status_logger.error(f"Error in {func.__name__}: {e}")
                traceback.print_exc()
            else:
                status_logger.error(f"Error: {e}")
            sys.exit(1)

    return wrapper  # type: ignore


def print_version(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Print version and exit if requested."""
    if value:
        # --version is eager, so the group callback has not set up logging yet
        setup_logging()
        status_logger = get_status_logger()
        status_logger.info(f"plesk-cache version {__version__}")
        ctx.exit(0)


def _run_with_service(operation: Callable[[DomainService], Awaitable[T]]) -> T:
    """Build the service, run one operation on a fresh loop, then close it."""

    async def runner() -> T:
        service = DomainService.from_config()
        try:
            return await operation(service)
        finally:
            await service.close()

    return asyncio.run(runner())


def _report_sync_result(label: str, result: SyncResult) -> None:
    status_logger = get_status_logger()
    if result.reason:
        status_logger.info(f"{label}: {result.status.value} ({result.reason})")
    elif result.error:
        status_logger.error(f"{label}: {result.status.value} - {result.error}")
    else:
        status_logger.info(
            f"{label}: {result.status.value} "
            f"({result.count} domains, {result.updated} updated, {result.failed} failed)"
        )
    for domain_id, message in sorted(result.errors.items()):
        status_logger.info(f"  domain {domain_id}: {message}")


def _format_domain_line(record: CachedDomainRecord) -> str:
    ips = ", ".join(record.ip_addresses) or "-"
    line = f"{record.name:<40} {record.status.value:<10} {record.owner:<12} {ips}"
    if record.sync_error:
        line += f"  [sync error: {record.sync_error}]"
    return line


@click.group()
@click.option(
    "--version",
    is_flag=True,
    callback=print_version,
    expose_value=False,
    is_eager=True,
    help="Show version information and exit",
)
def main() -> None:
    """plesk-cache - Cached, rate-limited view of Plesk hosting domains."""
    detail_logger, _ = setup_logging()
    detail_logger.debug("CLI initialized")


@main.command()
@click.option("--name", "name_filter", help="Case-insensitive name substring")
@click.option(
    "--format",
    "output_format",
    default="text",
    type=click.Choice(["text", "json"]),
    help="Output format",
)
@handle_cli_errors
def domains(name_filter: str | None, output_format: str) -> None:
    """List domains, fetching them from Plesk if the cache is empty."""
    status_logger = get_status_logger()

    async def list_cached(service: DomainService) -> Any:
        return await service.list_domains(name_filter)

    listing = _run_with_service(list_cached)

    if output_format == "json":
        print(
            json.dumps(
                {
                    "data": [record.to_api_dict() for record in listing.records],
                    "fromCache": listing.from_cache,
                    "fallback": listing.fallback,
                    "message": listing.message,
                },
                indent=2,
            )
        )
        return

    status_logger.info(listing.message)
    if listing.fallback:
        status_logger.warning("Showing built-in fallback data, not live domains")
    for record in listing.records:
        print(_format_domain_line(record))


@main.command()
@handle_cli_errors
def stats() -> None:
    """Show domain cache statistics."""
    status_logger = get_status_logger()

    # Local read only, no Plesk connection settings needed
    cache_stats = DomainCache().stats()

    status_logger.info("Domain Cache Statistics")
    status_logger.info("=" * 40)
    status_logger.info(f"Total domains: {cache_stats.total}")
    for status_name, count in cache_stats.per_status.items():
        status_logger.info(f"  {status_name}: {count}")
    status_logger.info(f"Domains with sync errors: {cache_stats.error_count}")
    last_sync = (
        cache_stats.last_sync_time.isoformat() if cache_stats.last_sync_time else "never"
    )
    status_logger.info(f"Last update: {last_sync}")


@main.command()
@click.option("--confirm", is_flag=True, help="Skip confirmation prompt")
@click.option(
    "--no-status-sync",
    is_flag=True,
    help="Do not wait for the status pass that follows the refetch",
)
@handle_cli_errors
def refresh(confirm: bool, no_status_sync: bool) -> None:
    """Clear the domain cache and refetch all domains from Plesk."""
    if not confirm:
        click.confirm(
            "This will clear all cached domains and refetch them. Continue?",
            abort=True,
        )

    async def refresh_cache(service: DomainService) -> tuple[SyncResult, Any]:
        result = await service.refresh()
        status_result = None
        if result.succeeded and not no_status_sync:
            await service.sync_manager.wait_for_background()
            status_result = service.sync_manager.last_results.get("status")
        return result, status_result

    result, status_result = _run_with_service(refresh_cache)

    _report_sync_result("Refresh", result)
    if status_result is not None:
        _report_sync_result("Status sync", status_result)
    if not result.succeeded:
        sys.exit(1)


@main.command()
@click.option(
    "--full",
    is_flag=True,
    help="Refetch the listing and every status in one batched pass",
)
@handle_cli_errors
def sync(full: bool) -> None:
    """Refresh domain statuses in the foreground."""

    async def run_sync(service: DomainService) -> SyncResult:
        if full:
            return await service.sync_manager.run_full_sync()
        return await service.sync_manager.run_status_sync()

    result = _run_with_service(run_sync)

    _report_sync_result("Full sync" if full else "Status sync", result)
    if not result.succeeded:
        sys.exit(1)


@main.command()
@handle_cli_errors
def status() -> None:
    """Show synchronization status of the domain cache."""
    status_logger = get_status_logger()

    # Reads the shared cache; a running server keeps its own sync state
    cache_stats = DomainCache().stats()
    unknown = cache_stats.per_status.get(DomainStatus.UNKNOWN.value, 0)

    status_logger.info("Domain Cache Synchronization Status")
    status_logger.info("=" * 40)
    if cache_stats.total == 0:
        status_logger.info("Cache is empty, run 'plesk-cache sync --full' to populate it")
    elif unknown:
        status_logger.info(
            f"{unknown} of {cache_stats.total} domains have no known status yet"
        )
    else:
        status_logger.info("All cached domains have a synced status")

    status_logger.info(f"Cached domains: {cache_stats.total}")
    status_logger.info(f"Domains with sync errors: {cache_stats.error_count}")
    last_sync = (
        cache_stats.last_sync_time.isoformat() if cache_stats.last_sync_time else "never"
    )
    status_logger.info(f"Last update: {last_sync}")

@main.command()
@handle_cli_errors
def config() -> None:
    """Show the complete current configuration (secrets masked)."""
    print(get_config_manager().show_config())


@main.command()
@handle_cli_errors
def check() -> None:
    """Check connectivity to the Plesk API."""
    status_logger = get_status_logger()
    app_config = get_config_manager().load_config()

    async def fetch_server_info() -> Any:
        async with PleskClient(app_config.upstream) as client:
            return await client.get_server_info()

    result = asyncio.run(fetch_server_info())

    if not result.ok:
        status_logger.error(f"Plesk API not reachable: {result.error_message}")
        sys.exit(1)

    info = result.payload if isinstance(result.payload, dict) else {}
    hostname = info.get("hostname", "unknown host")
    version = info.get("panel_version") or info.get("version") or "unknown version"
    status_logger.info(f"Connected to Plesk at {hostname} ({version})")


@main.command()
@click.option("--host", default=None, help="Interface to bind (default from config)")
@click.option("--port", type=int, default=None, help="Port to listen on")
@handle_cli_errors
def serve(host: str | None, port: int | None) -> None:
    """Run the HTTP API."""
    status_logger = get_status_logger()
    app_config = get_config_manager().load_config()
    bind_host = host or app_config.server.host
    bind_port = port or app_config.server.port

    async def build_app() -> web.Application:
        return create_app(DomainService.from_config(app_config))

    status_logger.info(f"Serving domain API on http://{bind_host}:{bind_port}")
    web.run_app(build_app(), host=bind_host, port=bind_port, print=None)


if __name__ == "__main__":
    main()
