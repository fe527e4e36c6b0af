"""Upload size guard.

Bounds how many bytes a single upload may commit. The declared size is
checked before any writer is opened; the actual byte count is enforced while
streaming, so a missing or understated Content-Length cannot get past it.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import IO

from gallery.storage.bucket import DEFAULT_CHUNK_SIZE, ObjectWriter
from gallery.storage.errors import InvalidArgumentError, UploadTooLargeError

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 100_000_000

# Allowance for multipart boundaries and part headers around the file body.
MULTIPART_OVERHEAD_BYTES = 64 * 1024


def check_declared_size(declared: int | None, limit: int, *, key: str | None = None) -> None:
    """Reject an upload whose declared size exceeds ``limit``.

    Args:
        declared: Size announced by the client, or None when unknown.
        limit: Maximum accepted size in bytes.
        key: Target key, for error context.

    Raises:
        UploadTooLargeError: If ``declared`` is greater than ``limit``.
    """
    if declared is not None and declared > limit:
        logger.info("Rejected upload by declared size: size=%d limit=%d", declared, limit)
        raise UploadTooLargeError(limit=limit, size=declared, key=key)


def check_declared_request_size(
    content_length: int | None,
    limit: int,
    *,
    overhead: int = MULTIPART_OVERHEAD_BYTES,
) -> None:
    """Reject a multipart request that cannot fit an upload of ``limit`` bytes.

    The request length counts the form encoding as well as the file, so this
    is a coarse guard only; the exact limit applies to the file part itself.

    Raises:
        UploadTooLargeError: If ``content_length`` exceeds ``limit + overhead``.
    """
    if content_length is not None and content_length > limit + overhead:
        logger.info(
            "Rejected upload by request length: size=%d limit=%d", content_length, limit
        )
        raise UploadTooLargeError(limit=limit, size=content_length)


class SizeLimitedWriter:
    """Wrap an ObjectWriter and enforce a byte ceiling while streaming.

    The write that would cross the limit aborts the inner writer and raises
    UploadTooLargeError; nothing is committed for that upload.
    """

    def __init__(self, inner: ObjectWriter, limit: int) -> None:
        if limit < 0:
            raise InvalidArgumentError(f"Upload limit must be non-negative, got {limit}")
        self._inner = inner
        self._limit = limit

    @property
    def key(self) -> str:
        return self._inner.key

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def bytes_written(self) -> int:
        return self._inner.bytes_written

    def write(self, data: bytes) -> int:
        attempted = self._inner.bytes_written + len(data)
        if attempted > self._limit:
            self._inner.abort()
            logger.info(
                "Rejected upload while streaming: key=%s size>=%d limit=%d",
                self._inner.key,
                attempted,
                self._limit,
            )
            raise UploadTooLargeError(limit=self._limit, size=attempted, key=self._inner.key)
        return self._inner.write(data)

    def close(self) -> None:
        self._inner.close()

    def abort(self) -> None:
        self._inner.abort()

    def __enter__(self) -> SizeLimitedWriter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._inner.__exit__(exc_type, exc, tb)


def copy_stream(
    source: IO[bytes],
    writer: ObjectWriter | SizeLimitedWriter,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Copy ``source`` into ``writer`` until end of stream.

    Does not close the writer.

    Returns:
        Number of bytes copied.
    """
    total = 0
    while True:
        chunk = source.read(chunk_size)
        if not chunk:
            return total
        total += writer.write(chunk)
