"""OpenTelemetry tracing configuration for the gallery service.

Provides:
- Tracer provider setup driven by environment variables
- FastAPI request instrumentation
- Correlation helpers (current trace/span id, span attribute enrichment)

Environment Variables:
    GALLERY_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    GALLERY_REQUIRE_OTEL: Set to "1" to fail startup if tracing cannot initialize
    GALLERY_OTEL_SERVICE_NAME: Service name for spans (default: "gallery")
    GALLERY_OTEL_EXPORTER: Exporter type - "otlp" or "console" (default: "otlp")
    GALLERY_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP/HTTP endpoint URL (optional)
    GALLERY_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests

Spans never carry request bodies, object content, raw object keys or
credentials.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
    from opentelemetry.sdk.trace.export import SpanExporter

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None
_is_configured: bool = False
_test_exporter: Any = None  # Reference to InMemorySpanExporter for testing


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and GALLERY_REQUIRE_OTEL=1."""

    pass


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip()


def _create_otlp_exporter(endpoint: str | None) -> SpanExporter:
    """Create OTLP/HTTP exporter."""
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

    if endpoint:
        return OTLPSpanExporter(endpoint=endpoint)
    return OTLPSpanExporter()


def _create_console_exporter() -> SpanExporter:
    """Create console exporter for development."""
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter

    return ConsoleSpanExporter()


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing for the gallery service.

    Idempotent - safe to call multiple times.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If GALLERY_REQUIRE_OTEL=1 and configuration fails.
    """
    global _tracer_provider, _is_configured, _test_exporter

    enabled = _get_env_bool("GALLERY_OTEL_ENABLED", False)
    require_otel = _get_env_bool("GALLERY_REQUIRE_OTEL", False)
    test_capture = _get_env_bool("GALLERY_OTEL_TEST_CAPTURE", False)

    if not enabled:
        _is_configured = True
        logger.debug("OpenTelemetry tracing disabled (GALLERY_OTEL_ENABLED not set)")
        return False

    # The global provider can only be set once; keep reusing the test exporter.
    if _test_exporter is not None and test_capture:
        return True

    if _is_configured and _tracer_provider is not None:
        return True

    _is_configured = True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

        service_name = _get_env_str("GALLERY_OTEL_SERVICE_NAME", "gallery")
        exporter_type = _get_env_str("GALLERY_OTEL_EXPORTER", "otlp")
        endpoint = _get_env_str("GALLERY_OTEL_EXPORTER_OTLP_ENDPOINT", "")

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

        if test_capture:
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        elif exporter_type == "console":
            provider.add_span_processor(SimpleSpanProcessor(_create_console_exporter()))
        else:
            provider.add_span_processor(BatchSpanProcessor(_create_otlp_exporter(endpoint or None)))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            exporter_type if not test_capture else "in-memory",
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if require_otel:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False


def instrument_fastapi(app: Any) -> None:
    """Instrument FastAPI application with OpenTelemetry.

    Args:
        app: FastAPI application instance.
    """
    if not _get_env_bool("GALLERY_OTEL_ENABLED", False):
        return

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app, excluded_urls="health")
        logger.debug("FastAPI instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


def get_current_trace_id() -> str | None:
    """Get the current trace ID for logging correlation.

    Returns:
        Hex string of current trace ID, or None if no active span.
    """
    from opentelemetry import trace

    ctx = trace.get_current_span().get_span_context()
    if not ctx.is_valid:
        return None
    return format(ctx.trace_id, "032x")


def set_span_attributes(attributes: dict[str, Any]) -> None:
    """Set attributes on the current span.

    Args:
        attributes: Dictionary of attribute key-value pairs; None values are skipped.
    """
    from opentelemetry import trace

    span = trace.get_current_span()
    if not span.is_recording():
        return
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, str(value))


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from in-memory exporter (for testing).

    Returns:
        List of captured spans if GALLERY_OTEL_TEST_CAPTURE=1, else empty list.
    """
    if _test_exporter is not None:
        return list(_test_exporter.get_finished_spans())
    return []


def clear_test_spans() -> None:
    """Clear captured spans from in-memory exporter (for testing)."""
    if _test_exporter is not None:
        _test_exporter.clear()


def reset_tracing() -> None:
    """Reset tracing configuration (for testing).

    The OpenTelemetry TracerProvider cannot be replaced once set, so the
    test exporter reference is kept and only its spans are cleared.
    """
    global _is_configured

    if _test_exporter is not None:
        _test_exporter.clear()
    _is_configured = False
