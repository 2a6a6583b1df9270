"""OpenTelemetry setup for the StreamFlow stream client.

Provides a configurable TracerProvider:
  - **dev** (default): ConsoleSpanExporter — spans print to stdout.
  - **prod**: OTLPSpanExporter — ships spans to an OTLP-compatible collector.

Spans emitted by the client:
  - ``streamflow.turn``   one user turn, from request to last record.
  - ``streamflow.stream`` consumption of the event stream, with counters for
    records seen per mode and records dropped.
"""

from __future__ import annotations

import logging
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

logger = logging.getLogger(__name__)

_SERVICE_NAME = "streamflow-client"
_TRACER_NAME = "streamflow"
_initialized = False


def init_telemetry() -> None:
    """Install the global TracerProvider once.

    ``OTEL_EXPORTER=otlp`` selects the OTLP gRPC exporter (endpoint from
    ``OTEL_EXPORTER_OTLP_ENDPOINT``); ``OTEL_EXPORTER=none`` installs a provider
    without exporters; anything else prints spans to the console.
    """
    global _initialized
    if _initialized:
        return

    provider = TracerProvider(resource=Resource.create({"service.name": _SERVICE_NAME}))

    exporter_type = os.environ.get("OTEL_EXPORTER", "console").lower()
    if exporter_type == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )

            endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
            logger.info("[Telemetry] OTLP exporter → %s", endpoint)
        except ImportError:
            logger.warning("[Telemetry] OTLP exporter not installed — falling back to console.")
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    elif exporter_type == "none":
        logger.info("[Telemetry] Tracing enabled without exporters.")
    else:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        logger.info("[Telemetry] Console exporter active (dev mode).")

    trace.set_tracer_provider(provider)
    _initialized = True


def get_tracer() -> trace.Tracer:
    """Return the StreamFlow tracer (safe to call before ``init_telemetry``)."""
    return trace.get_tracer(_TRACER_NAME)
