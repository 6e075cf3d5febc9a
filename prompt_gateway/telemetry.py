"""Correlation identifiers and tracing setup for the gateway."""
from __future__ import annotations

import logging
import os
from contextvars import ContextVar, Token
from typing import Optional

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter

logger = logging.getLogger(__name__)

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_otlp_processor: Optional[SpanProcessor] = None


def _otlp_configured() -> bool:
    return bool(
        os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
    )


def get_tracer_provider(service_name: str) -> TracerProvider:
    """Return the process-wide SDK tracer provider, installing one if needed."""

    current = trace.get_tracer_provider()
    if isinstance(current, TracerProvider):
        return current
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    trace.set_tracer_provider(provider)
    return provider


def configure_tracing(app: FastAPI, service_name: str) -> TracerProvider:
    """Instrument ``app`` and ship spans over OTLP when an endpoint is configured.

    The exporter reads its endpoint and headers from the standard
    ``OTEL_EXPORTER_OTLP_*`` variables.
    """

    global _otlp_processor
    provider = get_tracer_provider(service_name)
    if _otlp_processor is None and _otlp_configured():
        _otlp_processor = BatchSpanProcessor(OTLPSpanExporter())
        provider.add_span_processor(_otlp_processor)
        logger.info("OTLP span export enabled", extra={"service": service_name})
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
    return provider


def attach_span_exporter(exporter: SpanExporter, service_name: str) -> SpanProcessor:
    """Forward finished spans to ``exporter`` as soon as they end."""

    processor = SimpleSpanProcessor(exporter)
    get_tracer_provider(service_name).add_span_processor(processor)
    return processor


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def set_correlation_id(value: str) -> Token:
    return correlation_id_var.set(value)


def reset_correlation_id(token: Token) -> None:
    correlation_id_var.reset(token)


__all__ = [
    "attach_span_exporter",
    "configure_tracing",
    "correlation_id_var",
    "get_correlation_id",
    "get_tracer_provider",
    "reset_correlation_id",
    "set_correlation_id",
]
