"""aiohttp REST API exposing version info and package updates.

Routes:
    GET  /health
    GET  /v1/packages
    GET  /v1/package/{package}/info
    POST /v1/package/{package}/updatetoversion/{version}
"""

from __future__ import annotations

import asyncio
import signal
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from aiohttp import web

from appupgrade.config import Settings
from appupgrade.errors import AppUpgradeError
from appupgrade.logging import get_logger
from appupgrade.net import get_outbound_ip
from appupgrade.orchestrator import PackageSwapOrchestrator

log = get_logger("appupgrade.server")

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

ORCHESTRATOR_KEY = web.AppKey("orchestrator", PackageSwapOrchestrator)
STARTED_AT_KEY = web.AppKey("started_at", float)

_CORS_METHODS = "GET, POST, OPTIONS"


def _error_response(message: str, status: int) -> web.Response:
    return web.json_response({"message": f"Error: {message}"}, status=status)


def _make_cors_middleware(allowed_origins: Iterable[str]) -> Any:
    origins = frozenset(allowed_origins)
    allow_any = "*" in origins

    def _cors_headers(request: web.Request) -> dict[str, str]:
        origin = request.headers.get("Origin")
        if not origin or not (allow_any or origin in origins):
            return {}
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Vary": "Origin",
        }

    @web.middleware
    async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        headers = _cors_headers(request)
        if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
            if not headers:
                return web.Response(status=403)
            headers["Access-Control-Allow-Methods"] = _CORS_METHODS
            requested = request.headers.get("Access-Control-Request-Headers")
            if requested:
                headers["Access-Control-Allow-Headers"] = requested
            return web.Response(status=204, headers=headers)

        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers.update(headers)
            raise
        response.headers.update(headers)
        return response

    return cors_middleware


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Translate appupgrade errors into ``{"message": ...}`` responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except AppUpgradeError as exc:
        log.warning(
            "request_failed",
            route=request.path,
            status=exc.http_status,
            error_type=type(exc).__name__,
            error=exc.message,
        )
        return _error_response(exc.message, exc.http_status)
    except Exception:
        log.exception("request_unhandled_error", route=request.path)
        return _error_response("internal server error", 500)


async def handle_health(request: web.Request) -> web.Response:
    uptime = time.monotonic() - request.app[STARTED_AT_KEY]
    return web.json_response({"status": "ok", "uptime_seconds": round(uptime, 2)})


async def handle_list_packages(request: web.Request) -> web.Response:
    orchestrator = request.app[ORCHESTRATOR_KEY]
    packages = [
        {
            "name": name,
            "repository": orchestrator.registry[name],
            "state": orchestrator.state_of(name).value,
        }
        for name in orchestrator.registry.names()
    ]
    return web.json_response({"message": "Monitored packages", "data": packages})


async def handle_version_info(request: web.Request) -> web.Response:
    package = request.match_info["package"]
    log.debug("version_info_request", route=request.path, package=package)

    report = await request.app[ORCHESTRATOR_KEY].version_info(package)
    return web.json_response({"message": "Version data fetched", "data": report.to_dict()})


async def handle_update_to_version(request: web.Request) -> web.Response:
    package = request.match_info["package"]
    version = request.match_info["version"]
    log.debug("package_update_request", route=request.path, package=package, version=version)

    result = await request.app[ORCHESTRATOR_KEY].update_to_version(package, version)
    return web.json_response({"message": "Package updated", "data": result.message})


def create_app(
    orchestrator: PackageSwapOrchestrator,
    allowed_origins: Iterable[str] = ("*",),
) -> web.Application:
    """Build the aiohttp application around *orchestrator*."""
    app = web.Application(middlewares=[_make_cors_middleware(allowed_origins), error_middleware])
    app[ORCHESTRATOR_KEY] = orchestrator
    app[STARTED_AT_KEY] = time.monotonic()

    app.router.add_get("/health", handle_health)
    app.router.add_get("/v1/packages", handle_list_packages)
    app.router.add_get("/v1/package/{package}/info", handle_version_info)
    app.router.add_post("/v1/package/{package}/updatetoversion/{version}", handle_update_to_version)
    return app


def service_url(settings: Settings) -> str:
    """Return the URL operators can reach the service on."""
    host = settings.server.bind
    if not host:
        try:
            host = get_outbound_ip()
        except OSError:
            host = "localhost"
    return f"http://{host}:{settings.server.port}/v1/"


async def run_server(settings: Settings) -> None:
    """Serve the REST API until SIGINT or SIGTERM."""
    orchestrator = PackageSwapOrchestrator.from_settings(settings)
    log.info("starting_up", monitored_packages=orchestrator.registry.names())

    app = create_app(orchestrator, allowed_origins=settings.server.origins)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=settings.server.bind or None, port=settings.server.port)
    await site.start()
    log.info("rest_service_started", url=service_url(settings))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
        log.info("shutting_down")
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await runner.cleanup()
