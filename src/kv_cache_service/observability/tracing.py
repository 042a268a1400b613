"""OpenTelemetry tracing for cache operations."""

from __future__ import annotations

import time
from collections.abc import Callable, Coroutine
from functools import wraps
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

import structlog

from kv_cache_core.exceptions import StoreFaultError

if TYPE_CHECKING:
    from kv_cache_core.config.settings import Settings

logger = structlog.get_logger()

# Module-level tracer, set by configure_tracing(); None while disabled.
_tracer: Any = None

P = ParamSpec("P")
R = TypeVar("R")


def configure_tracing(settings: Settings) -> None:
    """Configure OpenTelemetry tracing based on settings.

    All OTEL imports are deferred so the SDK is only needed when an
    exporter is selected.
    """
    global _tracer

    if settings.otel_exporter == "none":
        _tracer = None
        return

    from opentelemetry import trace
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider

    resource = Resource.create({"service.name": settings.otel_service_name})
    provider = TracerProvider(resource=resource)

    if settings.otel_exporter == "console":
        from opentelemetry.sdk.trace.export import (
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )

        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    elif settings.otel_exporter == "otlp":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        exporter = OTLPSpanExporter(endpoint=settings.otel_endpoint)
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer("kv-cache-facade")
    logger.info("tracing_configured", exporter=settings.otel_exporter)


def configure_tracing_with_exporter(service_name: str, exporter: Any) -> None:  # noqa: ANN401
    """Enable tracing with a caller-supplied span exporter (used by tests).

    Uses a private TracerProvider so the global provider is left alone.
    """
    global _tracer

    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import SimpleSpanProcessor

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    _tracer = provider.get_tracer("kv-cache-facade")


def disable_tracing() -> None:
    """Turn span creation off."""
    global _tracer
    _tracer = None


def get_tracer() -> Any:  # noqa: ANN401
    """Return the active tracer, or None when tracing is disabled."""
    return _tracer


def traced_operation(
    operation: str,
) -> Callable[
    [Callable[P, Coroutine[Any, Any, R]]], Callable[P, Coroutine[Any, Any, R]]
]:
    """Async decorator that wraps a cache operation in a ``cache.<operation>`` span.

    The key is taken from the first positional argument after ``self``.
    Noop when tracing is disabled (_tracer is None).
    """

    def decorator(
        fn: Callable[P, Coroutine[Any, Any, R]],
    ) -> Callable[P, Coroutine[Any, Any, R]]:
        @wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            if _tracer is None:
                return await fn(*args, **kwargs)

            with _tracer.start_as_current_span(f"cache.{operation}") as span:
                span.set_attribute("cache.operation", operation)
                if len(args) > 1 and isinstance(args[1], str):
                    span.set_attribute("cache.key", args[1])
                start = time.monotonic()
                try:
                    result = await fn(*args, **kwargs)
                    span.set_attribute("cache.status", "ok")
                    return result
                except StoreFaultError as exc:
                    span.set_attribute("cache.status", "fault")
                    span.set_attribute("cache.error", str(exc))
                    raise
                except Exception as exc:
                    span.set_attribute("cache.status", "error")
                    span.set_attribute("cache.error", str(exc))
                    raise
                finally:
                    elapsed = time.monotonic() - start
                    span.set_attribute("cache.duration_seconds", round(elapsed, 6))

        return wrapper

    return decorator
