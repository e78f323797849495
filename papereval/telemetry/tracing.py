"""
OpenTelemetry tracing for papereval.

Spans are always recorded by an SDK tracer provider so that in-process
exporters can observe them. Remote export is opt-in:

- ``PAPEREVAL_OTLP_ENDPOINT`` (or ``OTEL_EXPORTER_OTLP_ENDPOINT``) sends
  spans over OTLP/HTTP when the ``otlp`` extra is installed.
- ``PAPEREVAL_TRACE_CONSOLE=1`` prints finished spans to stdout.
- ``PAPEREVAL_TRACE_SAMPLE_RATIO`` samples root spans (default 1.0).

Example:
    ```python
    from papereval.telemetry import get_tracer

    tracer = get_tracer(__name__)
    with tracer.start_as_current_span("papereval.reliability"):
        ...
    ```
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from pydantic import BaseModel, Field, ValidationError

try:
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
except ModuleNotFoundError:  # pragma: no cover - otlp extra not installed
    OTLPSpanExporter = None  # type: ignore

logger = logging.getLogger(__name__)

SERVICE_NAME = "papereval"
_TRUTHY = {"1", "true", "yes", "on"}

_provider: Optional[TracerProvider] = None
_provider_lock = threading.Lock()


class TracingSettings(BaseModel):
    """Exporter and sampling settings for the tracer provider."""

    service_name: str = Field(default=SERVICE_NAME, description="service.name resource attribute")
    otlp_endpoint: Optional[str] = Field(default=None, description="OTLP/HTTP traces endpoint")
    console: bool = Field(default=False, description="Print finished spans to stdout")
    sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0, description="Root span sampling ratio")

    @classmethod
    def from_env(cls, **overrides) -> "TracingSettings":
        """Read settings from the environment; keyword overrides win."""
        values = {
            "otlp_endpoint": os.getenv("PAPEREVAL_OTLP_ENDPOINT")
            or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
            or None,
            "console": os.getenv("PAPEREVAL_TRACE_CONSOLE", "").strip().lower() in _TRUTHY,
        }
        ratio = os.getenv("PAPEREVAL_TRACE_SAMPLE_RATIO", "").strip()
        if ratio:
            values["sample_ratio"] = ratio
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _build_provider(settings: TracingSettings) -> TracerProvider:
    provider = TracerProvider(
        resource=Resource.create({"service.name": settings.service_name}),
        sampler=ParentBased(TraceIdRatioBased(settings.sample_ratio)),
    )

    if settings.otlp_endpoint:
        if OTLPSpanExporter is None:
            logger.warning(
                "OTLP endpoint %s configured but opentelemetry-exporter-otlp-proto-http "
                "is not installed; spans stay local",
                settings.otlp_endpoint,
            )
        else:
            exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint, timeout=5)
            provider.add_span_processor(BatchSpanProcessor(exporter))
            logger.debug("Exporting spans to %s", settings.otlp_endpoint)

    if settings.console:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    return provider


def initialize_tracer(
    service_name: str = SERVICE_NAME,
    otlp_endpoint: Optional[str] = None,
    settings: Optional[TracingSettings] = None,
):
    """Install the global tracer provider once and return a tracer.

    Later calls return a tracer from the already installed provider; their
    arguments are ignored.

    Args:
        service_name: Value of the ``service.name`` resource attribute
        otlp_endpoint: Overrides the endpoint read from the environment
        settings: Complete settings; skips the environment lookup

    Returns:
        Tracer named ``service_name``
    """
    global _provider

    if _provider is None:
        with _provider_lock:
            if _provider is None:
                if settings is None:
                    try:
                        settings = TracingSettings.from_env(
                            service_name=service_name, otlp_endpoint=otlp_endpoint
                        )
                    except ValidationError as exc:
                        logger.warning("Invalid tracing environment, using defaults: %s", exc)
                        settings = TracingSettings(
                            service_name=service_name, otlp_endpoint=otlp_endpoint
                        )
                _provider = _build_provider(settings)
                trace.set_tracer_provider(_provider)
                logger.debug(
                    "Tracer provider installed for '%s' (sample ratio %.2f)",
                    settings.service_name,
                    settings.sample_ratio,
                )

    return trace.get_tracer(service_name)


def ensure_tracing_initialized(service_name: str = SERVICE_NAME):
    return initialize_tracer(service_name)


def get_tracer(name: Optional[str] = None):
    """Tracer for ``name`` (defaults to this module), initialising on first use."""
    ensure_tracing_initialized()
    return trace.get_tracer(name or __name__)


def shutdown_tracing() -> None:
    """Flush and close exporters of the installed provider."""
    if _provider is not None:
        _provider.force_flush()
        _provider.shutdown()


__all__ = [
    "TracingSettings",
    "initialize_tracer",
    "ensure_tracing_initialized",
    "get_tracer",
    "shutdown_tracing",
]
