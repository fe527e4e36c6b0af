"""Gallery FastAPI application factory.

This module provides the create_app() factory for bootstrapping the gallery API.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

from gallery.api.errors import (
    GalleryHttpError,
    gallery_http_error_handler,
    generic_exception_handler,
    http_exception_handler,
    request_validation_error_handler,
    storage_error_handler,
)
from gallery.api.middleware.request_id import RequestIdMiddleware
from gallery.api.routes.gallery import router as gallery_router
from gallery.api.routes.health import GALLERY_VERSION
from gallery.api.routes.health import router as health_router
from gallery.observability.tracing import configure_tracing, instrument_fastapi
from gallery.storage.bucket import Bucket
from gallery.storage.errors import InvalidArgumentError, ObjectStorageError
from gallery.storage.limits import DEFAULT_MAX_UPLOAD_BYTES

logger = logging.getLogger(__name__)


def create_app(
    bucket: Bucket,
    *,
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> FastAPI:
    """Create and configure the gallery FastAPI application.

    This factory:
    - Stores the shared Bucket and upload ceiling on app.state
    - Registers RequestIdMiddleware (X-Request-Id on every response)
    - Registers exception handlers for the JSON error envelope
    - Mounts the health router before the gallery router, whose
      catch-all ``/{key:path}`` would otherwise shadow ``/health``
    - Closes the bucket when the application shuts down

    Args:
        bucket: Open bucket shared by every request handler.
        max_upload_bytes: Largest accepted upload in bytes.

    Returns:
        Configured FastAPI application instance.

    Raises:
        InvalidArgumentError: If max_upload_bytes is negative.
    """
    if max_upload_bytes < 0:
        raise InvalidArgumentError(f"max_upload_bytes must be >= 0, got {max_upload_bytes}")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Serving %s bucket", bucket.backend_name)
        try:
            yield
        finally:
            bucket.close()

    app = FastAPI(
        title="Gallery",
        description="Image gallery over a pluggable object storage bucket",
        version=GALLERY_VERSION,
        lifespan=lifespan,
    )

    app.state.bucket = bucket
    app.state.max_upload_bytes = max_upload_bytes

    configure_tracing()

    app.add_middleware(RequestIdMiddleware)

    instrument_fastapi(app)

    app.add_exception_handler(GalleryHttpError, gallery_http_error_handler)
    app.add_exception_handler(ObjectStorageError, storage_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(gallery_router)

    return app
