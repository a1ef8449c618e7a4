# src/azexporter/core/telemetry.py
"""Initializes OpenTelemetry tracing for the exporter."""

import logging
import os

from opentelemetry import trace

logger = logging.getLogger(__name__)

# Environment variable for the OTel collector endpoint
OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318")


def initialize_telemetry():
    """
    Configures the TracerProvider so tick and collector spans are exported via OTLP/HTTP.
    Without this call spans go to the no-op provider.
    """
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    resource = Resource(attributes={SERVICE_NAME: "azexporter"})

    tracer_provider = TracerProvider(resource=resource)
    span_exporter = OTLPSpanExporter(endpoint=f"{OTEL_EXPORTER_OTLP_ENDPOINT}/v1/traces")
    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
    trace.set_tracer_provider(tracer_provider)
    logger.info(f"OpenTelemetry initialized. Exporting to: {OTEL_EXPORTER_OTLP_ENDPOINT}")


tracer = trace.get_tracer("azexporter.tracer")
