from __future__ import annotations

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Span

from app.core.config import Settings
from app.platform.security.context import AuthContext


_provider: TracerProvider | None = None
_exporters_attached = False


def _tracer_provider(settings: Settings) -> TracerProvider:
    global _provider

    if _provider is None:
        resource = Resource.create(
            {
                "service.name": settings.app_name,
                "service.version": settings.app_version,
                "deployment.environment": settings.app_env,
            }
        )
        _provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings) -> TracerProvider | None:
    """Installs the tracer provider and the exporters named in the settings, once per process."""

    global _exporters_attached

    if not settings.otel_enabled:
        return None

    provider = _tracer_provider(settings)
    if _exporters_attached:
        return provider

    if settings.otel_exporter_otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    _exporters_attached = True
    return provider


def setup_inmemory_otel(settings: Settings) -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _tracer_provider(settings).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def annotate_caller(span: Span, ctx: AuthContext | None) -> None:
    """Tags a span with the resolved caller and its organization."""

    if ctx is None or not span.is_recording():
        return
    span.set_attribute("enduser.id", ctx.user_id)
    if ctx.organization_id:
        span.set_attribute("organization_id", ctx.organization_id)
    if ctx.role is not None:
        span.set_attribute("enduser.role", ctx.role.value)


def server_request_hook(span: Span | None, scope: dict[str, Any]) -> None:
    if span is None or not span.is_recording():
        return
    for name, value in scope.get("headers", []):
        if name == b"x-correlation-id" and value:
            span.set_attribute("correlation_id", value.decode("latin-1"))
            return
