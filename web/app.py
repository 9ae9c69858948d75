"""aiohttp application factory and middlewares."""
from __future__ import annotations

import logging
from typing import Awaitable, Callable

from aiohttp import web

from services.errors import LunaError
from web.context import SERVICES_KEY, Services
from web.handlers import routes

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=CORS_HEADERS)
    response = await handler(request)
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Turn every failure into a JSON error payload."""
    try:
        return await handler(request)
    except LunaError as exc:
        log = logger.error if exc.status >= 500 else logger.warning
        log("%s %s failed (%s): %s", request.method, request.path, exc.status, exc.message)
        return web.json_response(
            {"success": False, "error": exc.category, "message": exc.message},
            status=exc.status,
        )
    except web.HTTPException as exc:
        if exc.status < 400:
            raise
        return web.json_response(
            {"success": False, "error": exc.reason, "message": exc.text or exc.reason},
            status=exc.status,
        )
    except Exception:
        logger.exception("Unhandled error for %s %s", request.method, request.path)
        return web.json_response(
            {"success": False, "error": "Internal server error", "message": "Unexpected server error"},
            status=500,
        )


def create_app(services: Services) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[SERVICES_KEY] = services
    app.add_routes(routes)

    async def close_services(app: web.Application) -> None:
        await app[SERVICES_KEY].close()

    app.on_cleanup.append(close_services)
    return app
