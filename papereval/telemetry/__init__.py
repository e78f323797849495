"""Tracing setup shared by the evaluation modules."""

from .tracing import (
    TracingSettings,
    ensure_tracing_initialized,
    get_tracer,
    initialize_tracer,
    shutdown_tracing,
)

__all__ = [
    "TracingSettings",
    "initialize_tracer",
    "ensure_tracing_initialized",
    "get_tracer",
    "shutdown_tracing",
]
