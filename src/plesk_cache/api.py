# SPDX-License-Identifier: MIT
"""JSON HTTP API over the domain query façade."""

import functools
from collections.abc import Awaitable, Callable

from aiohttp import web

from .logging_config import get_detail_logger
from .service import DomainService


detail_logger = get_detail_logger()

SERVICE_KEY = web.AppKey("service", DomainService)

Handler = Callable[[DomainService, web.Request], Awaitable[web.Response]]


def _with_service(
    method: Handler,
) -> Callable[[web.Request], Awaitable[web.Response]]:
    @functools.wraps(method)
    async def resolved_method(request: web.Request) -> web.Response:
        try:
            return await method(request.app[SERVICE_KEY], request)
        except Exception as e:
            detail_logger.exception(f"Unhandled error in {request.path}: {e}")
            return web.json_response({"success": False, "error": str(e)}, status=500)

    return resolved_method


async def _health(service: DomainService, request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def _list_domains(service: DomainService, request: web.Request) -> web.Response:
    listing = await service.list_domains(request.query.get("name"))
    return web.json_response(
        {
            "success": True,
            "data": [record.to_api_dict() for record in listing.records],
            "fromCache": listing.from_cache,
            "fallback": listing.fallback,
            "message": listing.message,
        }
    )


async def _stats(service: DomainService, request: web.Request) -> web.Response:
    return web.json_response(service.get_cache_stats().model_dump(mode="json"))


async def _metadata(service: DomainService, request: web.Request) -> web.Response:
    return web.json_response(service.metadata())


async def _refresh(service: DomainService, request: web.Request) -> web.Response:
    result = await service.refresh()
    if not result.succeeded:
        return web.json_response(
            {"success": False, "error": result.error or result.reason}, status=502
        )
    return web.json_response({"success": True, "count": result.count})


async def _sync(service: DomainService, request: web.Request) -> web.Response:
    started = service.trigger_background_sync()
    return web.json_response({"started": started}, status=202)


async def _close_service(app: web.Application) -> None:
    await app[SERVICE_KEY].close()


def create_app(service: DomainService) -> web.Application:
    """Build the aiohttp application serving the domain endpoints."""
    app = web.Application()
    app[SERVICE_KEY] = service
    app.add_routes(
        [
            web.get("/health", _with_service(_health)),
            web.get("/api/domains", _with_service(_list_domains)),
            web.get("/api/domains/stats", _with_service(_stats)),
            web.get("/api/domains/metadata", _with_service(_metadata)),
            web.post("/api/domains/refresh", _with_service(_refresh)),
            web.post("/api/domains/sync", _with_service(_sync)),
        ]
    )
    app.on_cleanup.append(_close_service)
    return app
