"""Gallery object storage OpenTelemetry tracing integration.

Provides the decorator that wraps Bucket operations in spans.

Spans never carry raw object keys: only a SHA256 of the key, the backend
name and result sizes are exported.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

from gallery.storage.models import ListPage, ObjectMetadata

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_TRACER_NAME = "gallery.bucket"


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def _is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool("GALLERY_OTEL_ENABLED", False)


def _key_argument(args: tuple[Any, ...], kwargs: dict[str, Any]) -> str | None:
    if args and isinstance(args[0], str):
        return args[0]
    for name in ("key", "prefix"):
        value = kwargs.get(name)
        if isinstance(value, str):
            return value
    return None


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace Bucket operations with OpenTelemetry.

    Emits ``gallery.bucket.<operation>`` spans with safe attributes
    (no raw keys, no paths, no credentials).

    Args:
        operation: Operation name (e.g., "open_reader", "list_page").

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return func(self, *args, **kwargs)

            tracer = trace.get_tracer(_TRACER_NAME)
            with tracer.start_as_current_span(f"{_TRACER_NAME}.{operation}") as span:
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                key = _key_argument(args, kwargs)
                if key:
                    key_sha256 = hashlib.sha256(key.encode("utf-8")).hexdigest()
                    span.set_attribute("gallery.object_key_sha256", key_sha256)

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    code = getattr(e, "code", None)
                    if code is not None:
                        span.set_attribute("gallery.error_code", str(code.value))
                    raise

                if result is not None:
                    _add_result_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any) -> None:
    """Add result-based attributes to span safely."""
    try:
        if isinstance(result, ObjectMetadata):
            span.set_attribute("gallery.object_size_bytes", result.size)
            if result.content_type:
                span.set_attribute("gallery.object_content_type", result.content_type)
        elif isinstance(result, ListPage):
            span.set_attribute("gallery.page_object_count", len(result.objects))
            span.set_attribute("gallery.page_has_more", result.next_page_token is not None)
        elif isinstance(result, bytes):
            span.set_attribute("gallery.object_size_bytes", len(result))
    except Exception as e:
        logger.debug("Failed to add result attributes to span: %s", e)
