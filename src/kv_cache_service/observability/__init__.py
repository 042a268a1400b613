"""Observability: structured logging and tracing."""

from kv_cache_service.observability.logging import (
    bind_operation_context,
    clear_operation_context,
    configure_logging,
)
from kv_cache_service.observability.tracing import (
    configure_tracing,
    configure_tracing_with_exporter,
    disable_tracing,
    get_tracer,
    traced_operation,
)

__all__ = [
    "bind_operation_context",
    "clear_operation_context",
    "configure_logging",
    "configure_tracing",
    "configure_tracing_with_exporter",
    "disable_tracing",
    "get_tracer",
    "traced_operation",
]
