"""Gallery API middleware package."""

from gallery.api.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
