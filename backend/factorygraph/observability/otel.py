"""Tracing setup for the graph worker process."""

from __future__ import annotations

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from sqlalchemy.ext.asyncio import AsyncEngine

from factorygraph import __version__
from factorygraph.config import Settings, get_settings

TRACER_NAME = "factorygraph"


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME, __version__)


def build_tracer_provider(settings: Settings, exporter: SpanExporter | None = None) -> TracerProvider:
    """Provider tagged with the worker's identity. Spans go to the OTLP collector unless ``exporter`` is given."""
    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": __version__,
            "service.namespace": TRACER_NAME,
        }
    )
    provider = TracerProvider(resource=resource)
    if exporter is None:
        exporter = OTLPSpanExporter(endpoint=settings.otel_endpoint, insecure=True)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def configure_otel(engine: AsyncEngine, settings: Settings | None = None) -> TracerProvider:
    """Install the worker's tracer provider and trace database and GitHub calls."""
    settings = settings or get_settings()
    provider = build_tracer_provider(settings)
    trace.set_tracer_provider(provider)

    HTTPXClientInstrumentor().instrument(tracer_provider=provider)
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=provider)
    return provider
