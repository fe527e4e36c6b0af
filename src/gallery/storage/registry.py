"""Bucket URL scheme registry.

Maps a URL scheme (``mem``, ``file``, ``s3``, ``gs``) to the opener that
builds the matching Bucket. Driver modules register themselves when they are
imported, so adding a backend never requires editing a central switch.
Fail-closed: unknown schemes raise UnknownSchemeError.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING
from urllib.parse import SplitResult, urlsplit

from gallery.storage.errors import DuplicateSchemeError, UnknownSchemeError

if TYPE_CHECKING:
    from gallery.storage.bucket import Bucket

logger = logging.getLogger(__name__)

BucketOpener = Callable[[SplitResult], "Bucket"]

_openers: dict[str, BucketOpener] = {}
_lock = threading.Lock()


def register_scheme(scheme: str, opener: BucketOpener) -> None:
    """Register the opener for a URL scheme.

    Args:
        scheme: URL scheme, case-insensitive (e.g. "s3").
        opener: Callable receiving the parsed URL and returning a Bucket.

    Raises:
        DuplicateSchemeError: If the scheme is already registered.
    """
    normalized = scheme.lower()
    with _lock:
        if normalized in _openers:
            raise DuplicateSchemeError(normalized)
        _openers[normalized] = opener
    logger.debug("Registered bucket scheme: %s", normalized)


def unregister_scheme(scheme: str) -> None:
    """Remove a scheme registration (no-op when absent)."""
    with _lock:
        _openers.pop(scheme.lower(), None)


def registered_schemes() -> frozenset[str]:
    """Return the set of registered URL schemes."""
    with _lock:
        return frozenset(_openers)


def open_bucket(url: str) -> Bucket:
    """Open the Bucket described by ``url``.

    Args:
        url: Bucket URL such as ``mem://``, ``file:///srv/images``
            or ``s3://my-bucket?region=eu-west-1``.

    Returns:
        A Bucket from the driver registered for the URL's scheme.

    Raises:
        UnknownSchemeError: If no driver handles the scheme.
        ObjectStorageError: If the driver cannot open the bucket.
    """
    parsed = urlsplit(url.strip())
    scheme = parsed.scheme.lower()
    with _lock:
        opener = _openers.get(scheme)
    if opener is None:
        raise UnknownSchemeError(scheme)

    bucket = opener(parsed)
    logger.info("Opened %s bucket for scheme %s://", bucket.backend_name, scheme)
    return bucket
