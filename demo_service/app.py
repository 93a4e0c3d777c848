"""FastAPI application and process entry point.

Endpoints:

  GET  /          Greeting page showing the caller's public IP (headers logged)
  GET  /query     Ten bookings with the highest total, as JSON
  ANY  /health    Commit hash in the body, X-App: name:version:short-hash

Startup order: settings -> tracer -> database pool -> listening socket.
A failure at any step exits non-zero before a single request is served.
"""

from __future__ import annotations

# Load .env into os.environ early so the OTLP exporter sees OTEL_* variables.
from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import contextlib
import copy
import errno
import logging
import signal
import socket
import sys
from typing import Iterator, Optional

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from opentelemetry import propagate
from opentelemetry.propagators.textmap import TextMapPropagator
from sqlalchemy.ext.asyncio import AsyncEngine

from demo_service.build_info import app_header, commit_hash, version_string
from demo_service.config import Settings, settings as default_settings
from demo_service.db import BookingRepository, create_pool, verify_pool
from demo_service.errors import ConfigError, StartupError, register_exception_handlers
from demo_service.headers import log_headers
from demo_service.ip_echo import IpEchoClient
from demo_service.tracing import TracingHandle, init_tracer

log = logging.getLogger("demo_service.app")

LOG_FORMAT = "%(asctime)s %(name)-20s %(levelname)-7s %(message)s"

HTML = """
<!DOCTYPE html>
<html>
<head>
<style>
    body {
        background-color: lightgreen;
    }
</style>
    <body>
    Hi: {}
    </body>
</html>"""

def create_app(
    settings: Settings,
    engine: AsyncEngine,
    tracing: TracingHandle,
    ip_echo: IpEchoClient,
    propagator: Optional[TextMapPropagator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    All collaborators are passed in; the app owns none of their lifecycles.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Greeting page, top bookings query and health probe",
        version=settings.app_version,
    )
    app.state.tracer = tracing.tracer
    app.state.propagator = propagator or propagate.get_global_textmap()
    register_exception_handlers(app)

    repo = BookingRepository(engine)

    # ── Health check ───────────────────────────────────────────

    async def health(request: Request) -> Response:
        """Never fails; identical for every method."""
        return Response(
            content=commit_hash(settings),
            media_type="text/plain",
            headers={"X-App": app_header(settings)},
        )

    # No method list: every verb matches.
    app.add_route("/health", health, include_in_schema=False)

    # ── Bookings query ─────────────────────────────────────────

    @app.get("/query")
    async def query() -> JSONResponse:
        top = await repo.top_by_total()
        return JSONResponse([b.model_dump(mode="json") for b in top])

    # ── Greeting page ──────────────────────────────────────────

    @app.get("/", response_class=HTMLResponse, dependencies=[Depends(log_headers)])
    async def hello() -> HTMLResponse:
        ip = await ip_echo.origin_ip()
        return HTMLResponse(content=HTML.replace("{}", ip))

    return app


# ── Listening socket ──────────────────────────────────────────────

def _bind(family: int, host: str, port: int, backlog: int) -> socket.socket:
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if family == socket.AF_INET6 and host == "::":
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        sock.bind((host, port))
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock


def bind_socket(port: int, host: str = "", backlog: int = 2048) -> socket.socket:
    """Bind the listening socket.

    With no explicit host, binds ``[::]`` in dual-stack mode and falls back
    to ``0.0.0.0`` when IPv6 is unavailable. A port already in use is never
    retried on the fallback address.
    """
    try:
        if host:
            family = socket.AF_INET6 if ":" in host else socket.AF_INET
            return _bind(family, host, port, backlog)

        if socket.has_ipv6:
            try:
                return _bind(socket.AF_INET6, "::", port, backlog)
            except OSError as e:
                if e.errno == errno.EADDRINUSE:
                    raise
                log.info("Dual-stack bind unavailable (%s), falling back to IPv4", e)
        return _bind(socket.AF_INET, "0.0.0.0", port, backlog)
    except OSError as e:
        raise StartupError(f"Cannot bind port {port}: {e}") from e


# ── Process lifecycle ─────────────────────────────────────────────

def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


class _Server(uvicorn.Server):
    """uvicorn server that stops on SIGINT/SIGTERM without re-raising the signal afterwards."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.handle_exit, sig, None)
            except (NotImplementedError, RuntimeError, ValueError):
                continue
            installed.append(sig)
        try:
            yield
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)


def _uvicorn_log_config() -> dict:
    log_config = copy.deepcopy(uvicorn.config.LOGGING_CONFIG)
    log_config["formatters"]["default"]["fmt"] = LOG_FORMAT
    log_config["formatters"]["access"]["fmt"] = LOG_FORMAT
    return log_config


async def serve(settings: Settings, port: int) -> None:
    """Bring up tracer, pool and socket, then serve until uvicorn stops."""
    tracing = init_tracer(settings)
    engine = None
    try:
        engine = create_pool(
            settings.database_url(),
            max_size=settings.db_pool_max,
            idle_timeout=settings.db_idle_timeout,
            acquire_timeout=settings.db_acquire_timeout,
        )
        await verify_pool(engine)
        sock = bind_socket(port, settings.host)

        async with httpx.AsyncClient(timeout=settings.ip_echo_timeout) as http_client:
            ip_echo = IpEchoClient(
                http_client, settings.ip_echo_url, retries=settings.ip_echo_retries
            )
            app = create_app(settings, engine, tracing, ip_echo)
            config = uvicorn.Config(
                app,
                lifespan="off",
                log_config=_uvicorn_log_config(),
                log_level=settings.log_level.lower(),
            )
            log.info("Listening on *:%d", sock.getsockname()[1])
            await _Server(config).serve(sockets=[sock])
    finally:
        if engine is not None:
            await engine.dispose()
        tracing.shutdown(settings.tracer_shutdown_timeout)


def _port(value: str) -> int:
    port = int(value)
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"{value} is not a valid port")
    return port


def main(argv: Optional[list[str]] = None, settings: Optional[Settings] = None) -> int:
    settings = settings or default_settings

    parser = argparse.ArgumentParser(
        prog="demo-service",
        description="Bookings demo HTTP service",
    )
    parser.add_argument(
        "-p", "--port",
        type=_port,
        default=settings.port,
        help=f"listening port (default: {settings.port})",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {version_string(settings)}",
    )
    args = parser.parse_args(argv)

    configure_logging(settings.log_level)
    settings = settings.model_copy(update={"port": args.port})

    try:
        for warning in settings.validate_startup():
            log.warning(warning)
        asyncio.run(serve(settings, args.port))
    except (ConfigError, StartupError) as e:
        log.error("Startup failed: %s", e)
        return 1
    except KeyboardInterrupt:
        log.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
