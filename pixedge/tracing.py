from __future__ import annotations

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.celery import CeleryInstrumentor
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from .config import parse_bool

logger = logging.getLogger("pixedge.tracing")


def _build_exporter(endpoint: str):
    if endpoint:
        return OTLPSpanExporter(endpoint=endpoint, insecure=True)
    return ConsoleSpanExporter()


def configure_tracing(app) -> bool:
    if not parse_bool(os.environ.get("PIXEDGE_OTEL_ENABLED", "false")):
        return False

    service_name = os.environ.get("PIXEDGE_OTEL_SERVICE_NAME", "pixedge")
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "")

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(_build_exporter(endpoint)))
    trace.set_tracer_provider(provider)

    FlaskInstrumentor().instrument_app(app)
    # Telegram and webhook calls go through requests.
    RequestsInstrumentor().instrument()
    CeleryInstrumentor().instrument()
    logger.info("Tracing enabled for %s (%s)", service_name, endpoint or "console")
    return True
