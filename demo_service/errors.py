"""Error taxonomy and the HTTP mapping for per-request failures.

Startup errors (ConfigError, StartupError) abort the process before it
serves anything.  Per-request errors (UpstreamError, DatabaseError) are
caught at the handler boundary and turned into a short JSON body; the
underlying cause is only ever written to the log.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

log = logging.getLogger("demo_service.errors")


class DemoServiceError(Exception):
    """Base class for all service errors."""


class ConfigError(DemoServiceError, ValueError):
    """A required configuration value is missing or malformed."""


class StartupError(DemoServiceError):
    """Tracer, pool or listener could not be brought up."""


class UpstreamError(DemoServiceError):
    """The external IP-echo service failed or answered nonsense."""


class DatabaseError(DemoServiceError):
    """A query or connection acquisition against the bookings database failed."""


async def _upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    log.error("Upstream failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        {"error": "upstream service unavailable"},
        status_code=status.HTTP_502_BAD_GATEWAY,
    )


async def _database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    log.error("Database failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        {"error": "database unavailable"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the per-request error mapping on *app*."""
    app.add_exception_handler(UpstreamError, _upstream_error_handler)
    app.add_exception_handler(DatabaseError, _database_error_handler)
