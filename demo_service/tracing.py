"""OpenTelemetry setup: one tracer provider per process, exported in batches.

``init_tracer()`` builds the provider, installs it globally and hands back a
TracingHandle.  The handle is what the rest of the service receives; request
code never looks the tracer up from the global registry.
"""

from __future__ import annotations

import logging
from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from demo_service.build_info import commit_hash
from demo_service.config import Settings
from demo_service.errors import StartupError

log = logging.getLogger("demo_service.tracing")

TRACER_NAME = "demo_service"


class TracingHandle:
    """The initialized tracer plus the provider that owns its exporter."""

    def __init__(self, tracer: trace.Tracer, provider: Optional[TracerProvider] = None) -> None:
        self.tracer = tracer
        self._provider = provider
        self._closed = False

    @property
    def enabled(self) -> bool:
        return self._provider is not None

    def shutdown(self, timeout: float = 5.0) -> bool:
        """Flush buffered spans (bounded by *timeout* seconds) and stop exporting.

        Returns False if the flush did not complete in time.
        """
        if self._closed or self._provider is None:
            self._closed = True
            return True
        self._closed = True

        flushed = self._provider.force_flush(timeout_millis=int(timeout * 1000))
        if not flushed:
            log.warning("Span flush did not finish within %.1fs; dropping the rest", timeout)
        self._provider.shutdown()
        log.info("Tracer shut down")
        return flushed


def noop_tracing() -> TracingHandle:
    return TracingHandle(trace.NoOpTracer())


def _build_exporter(settings: Settings) -> SpanExporter:
    if settings.otel_exporter_otlp_endpoint:
        return OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)
    # Falls back to OTEL_EXPORTER_OTLP_TRACES_ENDPOINT / OTEL_EXPORTER_OTLP_ENDPOINT
    return OTLPSpanExporter()


def init_tracer(
    settings: Settings,
    exporter: Optional[SpanExporter] = None,
    install_global: bool = True,
) -> TracingHandle:
    """Create the batch-exporting tracer.

    Raises StartupError on failure, unless ``settings.tracing_required`` is
    off, in which case tracing degrades to a no-op tracer.
    """
    try:
        resource = Resource.create({
            SERVICE_NAME: settings.service_name,
            SERVICE_VERSION: settings.app_version,
            "vcs.commit": commit_hash(settings),
        })
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(
            BatchSpanProcessor(exporter if exporter is not None else _build_exporter(settings))
        )
    except Exception as e:
        if settings.tracing_required:
            raise StartupError(f"Tracer initialization failed: {e}") from e
        log.warning("Tracer initialization failed, continuing without tracing: %s", e)
        return noop_tracing()

    if install_global:
        trace.set_tracer_provider(provider)

    log.info("Tracer initialized for service %s", settings.service_name)
    return TracingHandle(provider.get_tracer(TRACER_NAME), provider)
