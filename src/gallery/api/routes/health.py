"""Health check endpoint for the gallery service."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter(tags=["Health"])

GALLERY_VERSION = "1.0.0"


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    time: str
    version: str
    backend: str


@router.get("/health", response_model=HealthResponse)
def get_health(request: Request) -> HealthResponse:
    """Health check endpoint.

    Does not touch the bucket; it only reports which driver is configured.
    The X-Request-Id header is added by the request ID middleware.

    Args:
        request: The incoming request (used for app state access).

    Returns:
        HealthResponse with status "ok", current time, version and backend name.
    """
    return HealthResponse(
        status="ok",
        time=datetime.now(UTC).isoformat(),
        version=GALLERY_VERSION,
        backend=request.app.state.bucket.backend_name,
    )
