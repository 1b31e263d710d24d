from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

_PROVIDER: TracerProvider | None = None
logger = logging.getLogger(__name__)


def configure_tracing() -> TracerProvider:
    """Install the global tracer provider once; spans from the engine and the
    REST adapter are exported when OTEL_EXPORTER_OTLP_ENDPOINT is set."""
    global _PROVIDER
    if _PROVIDER is not None:
        return _PROVIDER

    service_name = os.getenv("OTEL_SERVICE_NAME", "ordersync")
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
    if endpoint:
        try:
            exporter = OTLPSpanExporter(
                endpoint=endpoint,
                insecure=endpoint.startswith("http://"),
            )
            provider.add_span_processor(BatchSpanProcessor(exporter))
        except Exception:
            logger.exception("otel_exporter_setup_failed")

    trace.set_tracer_provider(provider)
    set_global_textmap(TraceContextTextMapPropagator())
    _PROVIDER = provider
    return provider


def configure_otel(app: FastAPI) -> None:
    if getattr(app.state, "otel_instrumented", False):
        return
    provider = configure_tracing()
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
    app.state.otel_instrumented = True
