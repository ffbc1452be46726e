# src/qrcoded/tracing.py

import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    SimpleSpanProcessor,
    ConsoleSpanExporter,
)


def configure_tracing(service_name: str = "qrcoded") -> None:
    """
    Install the OpenTelemetry tracer provider.

    QR_TRACES_EXPORTER=console (default) prints finished spans to stdout;
    QR_TRACES_EXPORTER=none keeps span context for log correlation but
    exports nothing.
    """
    if isinstance(trace.get_tracer_provider(), TracerProvider):
        return

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    exporter = os.getenv("QR_TRACES_EXPORTER", "console").lower()
    if exporter == "console":
        # Synchronous export: worker threads end spans themselves and a
        # batch thread could outlive pytest's captured stdout.
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
