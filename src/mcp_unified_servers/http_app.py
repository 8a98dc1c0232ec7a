"""
Streamable HTTP front end for the example servers.

Routes:
- POST   /mcp     client-to-server messages, creates a session on initialize
- GET    /mcp     server-to-client SSE stream of an existing session
- DELETE /mcp     session termination
- GET    /health  liveness (status, uptime, timestamp)

CORS is restricted to the configured origins and exposes the session header
so browser clients can read it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from mcp.server.lowlevel.server import Server
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .config import ServerSettings
from .multiplexer import SessionMultiplexer

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"


def create_app(
    server_factory: Callable[[], Server],
    settings: ServerSettings,
    service_name: str,
) -> Starlette:
    multiplexer = SessionMultiplexer(
        server_factory,
        json_response=settings.json_response,
        security_settings=settings.security_settings(),
    )
    started = time.monotonic()

    async def health_check(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "healthy",
                "server": service_name,
                "uptime": round(time.monotonic() - started, 3),
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "sessions": multiplexer.session_count,
            }
        )

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with multiplexer.run():
            yield
            logger.info("Shutting down, closing %d session(s)", multiplexer.session_count)

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["Content-Type", SESSION_HEADER, "Mcp-Protocol-Version"],
            expose_headers=[SESSION_HEADER],
        ),
    ]

    app = Starlette(
        routes=[
            Route("/mcp", multiplexer, methods=["GET", "POST", "DELETE"]),
            Route("/health", health_check, methods=["GET"]),
        ],
        middleware=middleware,
        lifespan=lifespan,
    )
    app.state.multiplexer = multiplexer
    return app


async def serve_http(
    server_factory: Callable[[], Server],
    settings: ServerSettings,
    service_name: str,
) -> None:
    app = create_app(server_factory, settings, service_name)

    logger.info("Streamable HTTP endpoint: http://%s:%s/mcp", settings.host, settings.port)
    logger.info("Health check: http://%s:%s/health", settings.host, settings.port)
    logger.info("Allowed CORS origins: %s", ", ".join(settings.allowed_origins))
    if settings.production:
        logger.info("DNS rebinding protection enabled for hosts: %s", ", ".join(settings.allowed_hosts))

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=False,
    )
    server = uvicorn.Server(config)

    try:
        await server.serve()
    except Exception as e:
        logger.exception("HTTP server error: %s", e)
        raise
