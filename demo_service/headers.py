"""Request-header logging with trace-context extraction.

Used as a route dependency: it runs before the handler, writes one JSON
line per request to the ``demo_service.headers`` logger and contributes
nothing to the response.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable

from fastapi import Request

log = logging.getLogger("demo_service.headers")

SPAN_NAME = "log headers"


def collect_headers(raw_headers: Iterable[tuple[bytes, bytes]]) -> dict[str, str]:
    """Header name -> value. The first occurrence of a repeated header wins."""
    headers: dict[str, str] = {}
    for name, value in raw_headers:
        key = name.decode("latin-1").lower()
        headers.setdefault(key, value.decode("utf-8", errors="replace"))
    return headers


async def log_headers(request: Request) -> None:
    tracer = request.app.state.tracer
    propagator = request.app.state.propagator

    headers = collect_headers(request.headers.raw)
    parent_ctx = propagator.extract(carrier=headers)
    span = tracer.start_span(SPAN_NAME, context=parent_ctx)
    try:
        log.info(json.dumps(headers))
    finally:
        span.end()
