"""Shared fixtures: settings, a SQLite-backed pool, an in-memory tracer and the app."""

from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from demo_service.app import create_app
from demo_service.config import Settings
from demo_service.db import bookings, create_pool, metadata
from demo_service.ip_echo import IpEchoClient
from demo_service.tracing import TracingHandle

FULL_HASH = "3f786850e387550fdab836ed7e6dc881de23001b"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        db_user="demo",
        db_pass="secret",
        db_host="localhost",
        git_commit_hash=FULL_HASH,
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Bookings pool over a throwaway SQLite file, same limits as production."""
    engine = create_pool(
        f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}",
        max_size=5,
        idle_timeout=60,
        acquire_timeout=5,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


async def seed(engine, totals):
    """Insert one booking per total; refs are B0001, B0002, ..."""
    rows = [
        {
            "book_ref": f"B{i:04d}",
            "book_date": datetime(2017, 7, 1 + i % 28, 12, 30, 15, tzinfo=timezone.utc),
            "total_amount": Decimal(total),
        }
        for i, total in enumerate(totals, start=1)
    ]
    async with engine.begin() as conn:
        await conn.execute(bookings.insert(), rows)


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracing(span_exporter):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return TracingHandle(provider.get_tracer("tests"), provider)


def echo_handler(origin="203.0.113.7"):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"origin": origin})
    return handler


@pytest_asyncio.fixture
async def make_client(settings, engine, tracing):
    """Factory: ASGI client for an app whose IP echo upstream is *handler*."""
    opened = []

    async def _make(handler=None, app_settings=None):
        upstream = httpx.AsyncClient(transport=httpx.MockTransport(handler or echo_handler()))
        ip_echo = IpEchoClient(upstream, "https://ip-echo.test/ip", retries=1)
        app = create_app(
            app_settings or settings,
            engine,
            tracing,
            ip_echo,
            propagator=TraceContextTextMapPropagator(),
        )
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://testserver"
        )
        opened.extend([upstream, client])
        return client

    yield _make

    for c in opened:
        await c.aclose()
