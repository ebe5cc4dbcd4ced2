"""Logging and tracing utilities for the Intervia middleware."""

from __future__ import annotations

import logging
from logging.config import dictConfig

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from intervia.core.config import Settings

_TRACER_INITIALISED = False


def parse_headers(header_string: str | None) -> dict[str, str]:
    """Parse ``key=value`` pairs separated by commas into a header mapping."""

    if not header_string:
        return {}
    headers: dict[str, str] = {}
    for item in header_string.split(","):
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            continue
        headers[key.strip()] = value.strip()
    return headers


def configure_logging(settings: Settings) -> logging.Logger:
    """Configure the root handler and return the application logger."""

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": settings.log_format}},
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": level,
                }
            },
            "root": {"handlers": ["default"], "level": level},
            # web3 and httpx are chatty at INFO
            "loggers": {
                "httpx": {"level": max(level, logging.WARNING)},
                "web3": {"level": max(level, logging.WARNING)},
            },
        }
    )

    logger = logging.getLogger("intervia")
    logger.setLevel(level)
    return logger


def build_resource(settings: Settings) -> Resource:
    """Describe this middleware instance for the span backend."""

    return Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.namespace": "intervia",
            "deployment.environment": settings.environment,
            "intervia.ledger.rpc_url": settings.ledger_rpc_url,
            "intervia.graph.database": settings.stardog_database,
        }
    )


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP span exporter for the ticket operation spans.

    Returns ``None`` when tracing is disabled or this process already
    installed a provider.
    """

    global _TRACER_INITIALISED

    if _TRACER_INITIALISED or not settings.otel_enabled:
        return None

    provider = TracerProvider(resource=build_resource(settings))

    exporter_kwargs: dict[str, object] = {}
    if settings.otel_exporter_otlp_endpoint:
        exporter_kwargs["endpoint"] = settings.otel_exporter_otlp_endpoint
    headers = parse_headers(settings.otel_exporter_otlp_headers)
    if headers:
        exporter_kwargs["headers"] = headers

    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))

    trace.set_tracer_provider(provider)
    _TRACER_INITIALISED = True
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    """Flush pending ticket spans and release the exporter."""

    if provider is None:
        return

    global _TRACER_INITIALISED
    provider.shutdown()
    _TRACER_INITIALISED = False
