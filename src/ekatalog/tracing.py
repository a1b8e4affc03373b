# src/ekatalog/tracing.py

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    SimpleSpanProcessor,
    ConsoleSpanExporter,
)


def configure_tracing(service_name: str = "ekatalog") -> None:
    """
    Configure OpenTelemetry tracing with a console exporter.

    Store reads/writes, membership transitions and sync tiers each open a
    span, so the exporter shows which fallback tier served a load.
    """
    # If there's already a provider, don't reconfigure
    if isinstance(trace.get_tracer_provider(), TracerProvider):
        return

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    # SimpleSpanProcessor exports synchronously; a batch worker can write to
    # stdout after pytest has closed its capture file.
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
