"""Gallery Bucket interface definition.

Provides the Bucket abstract base class every storage driver implements,
together with the stream handles (ObjectReader, ObjectWriter) and the lazy
ObjectLister the Bucket hands out.

The public methods on these classes hold the portable behaviour (key
validation, closed-state checks, idempotent close, tracing); drivers only
fill in the underscore-prefixed hooks.
"""

from __future__ import annotations

import logging
import mimetypes
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Iterator
from datetime import datetime
from types import TracebackType

from gallery.storage.errors import (
    InvalidArgumentError,
    InvalidKeyError,
    ObjectNotFoundError,
    StreamClosedError,
)
from gallery.storage.models import ListPage, ObjectMetadata
from gallery.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_PAGE_SIZE = 1000
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def validate_key(key: str) -> None:
    """Raise InvalidKeyError unless key is a non-empty string."""
    if not isinstance(key, str) or not key:
        raise InvalidKeyError("Object key must be a non-empty string", key=key or None)


def guess_content_type(key: str) -> str:
    """Infer a best-effort content type from the key's extension."""
    return mimetypes.guess_type(key)[0] or DEFAULT_CONTENT_TYPE


class ObjectReader(ABC):
    """Sequential byte stream over one object.

    ``read()`` returns ``b""`` exactly at end of stream; every other failure
    raises an ObjectStorageError. ``close()`` is idempotent so it is safe to
    call from ``finally`` blocks even after a read error.
    """

    def __init__(self, metadata: ObjectMetadata) -> None:
        self._metadata = metadata
        self._closed = False

    @property
    def metadata(self) -> ObjectMetadata:
        return self._metadata

    @property
    def key(self) -> str:
        return self._metadata.key

    @property
    def size(self) -> int:
        return self._metadata.size

    @property
    def content_type(self) -> str | None:
        return self._metadata.content_type

    @property
    def modified(self) -> datetime:
        return self._metadata.modified

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (all remaining bytes when negative).

        Returns:
            The bytes read; ``b""`` signals end of stream.

        Raises:
            StreamClosedError: If the reader was already closed.
            ObjectStorageError: If the backend read fails.
        """
        if self._closed:
            raise StreamClosedError("Read from closed reader", key=self.key)
        if size == 0:
            return b""
        return self._read(size)

    def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield chunks until end of stream."""
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                return
            yield chunk

    def __iter__(self) -> Iterator[bytes]:
        return self.iter_chunks()

    def close(self) -> None:
        """Release backend resources. Calling close twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._close()

    def __enter__(self) -> ObjectReader:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @abstractmethod
    def _read(self, size: int) -> bytes:
        """Backend read; ``size`` is positive or -1 for "everything left"."""
        ...

    def _close(self) -> None:
        """Release backend resources (connections, file handles)."""


class ObjectWriter(ABC):
    """Buffered byte sink for one object.

    Written bytes become visible only once ``close()`` returns successfully.
    ``close()`` surfaces any deferred failure (final flush, upload), so
    callers must check it, not just the individual writes. ``abort()``
    discards everything written so far.

    As a context manager the writer commits on normal exit and aborts when
    the block raises.
    """

    def __init__(self, key: str, content_type: str) -> None:
        self._key = key
        self._content_type = content_type
        self._bytes_written = 0
        self._closed = False

    @property
    def key(self) -> str:
        return self._key

    @property
    def content_type(self) -> str:
        return self._content_type

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        """Buffer ``data`` for the object and return the number of bytes taken.

        Raises:
            StreamClosedError: If the writer was closed or aborted.
            ObjectStorageError: If the backend rejects the write.
        """
        if self._closed:
            raise StreamClosedError("Write to closed writer", key=self._key)
        if not data:
            return 0
        chunk = bytes(data)
        self._write(chunk)
        self._bytes_written += len(chunk)
        return len(chunk)

    def close(self) -> None:
        """Commit the object.

        Raises:
            StreamClosedError: If the writer was already closed or aborted.
            ObjectStorageError: If the commit fails; the object is then not
                considered present.
        """
        if self._closed:
            raise StreamClosedError("Writer already closed", key=self._key)
        self._closed = True
        self._commit()
        logger.debug("Committed object: key=%s bytes=%d", self._key, self._bytes_written)

    def abort(self) -> None:
        """Discard buffered bytes without committing. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._abort()
        logger.debug("Aborted write: key=%s bytes=%d", self._key, self._bytes_written)

    def __enter__(self) -> ObjectWriter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._closed:
            return
        if exc_type is None:
            self.close()
        else:
            self.abort()

    @abstractmethod
    def _write(self, data: bytes) -> None:
        ...

    @abstractmethod
    def _commit(self) -> None:
        """Make the written bytes durable and visible."""
        ...

    @abstractmethod
    def _abort(self) -> None:
        ...


class ObjectLister(Iterator[ObjectMetadata]):
    """Lazy iterator over a bucket listing.

    Pages are fetched on demand through ``fetch_page``; a page is requested
    only once the previous one is drained. ``StopIteration`` marks the end.
    Each lister owns its cursor, so several listers over one bucket never
    interfere.
    """

    def __init__(
        self,
        fetch_page: Callable[[str | None], ListPage],
        *,
        page_token: str | None = None,
    ) -> None:
        self._fetch_page = fetch_page
        self._buffer: deque[ObjectMetadata] = deque()
        self._page_token = page_token
        self._done = False

    @property
    def page_token(self) -> str | None:
        """Token of the next unfetched page (None before the first fetch or at the end)."""
        return self._page_token

    def __iter__(self) -> ObjectLister:
        return self

    def __next__(self) -> ObjectMetadata:
        while not self._buffer:
            if self._done:
                raise StopIteration
            page = self._fetch_page(self._page_token)
            self._buffer.extend(page.objects)
            self._page_token = page.next_page_token
            self._done = page.next_page_token is None
        return self._buffer.popleft()


class Bucket(ABC):
    """Abstract base class for a storage namespace handle.

    One Bucket is opened per process and shared by all requests, so every
    implementation must be safe for concurrent use. Readers and writers it
    returns are per-operation and must not be shared.

    Implementations:
    - MemoryBucket: in-process map (``mem://``)
    - FilesystemBucket: local directory (``file://``)
    - S3Bucket: S3-compatible object storage (``s3://``)
    - GCSBucket: Google Cloud Storage via its S3 interoperability API (``gs://``)
    """

    def __init__(self) -> None:
        self._closed = False

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        ...

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise StreamClosedError("Bucket is closed")

    @traced_storage_operation("open_reader")
    def open_reader(self, key: str) -> ObjectReader:
        """Open a reader positioned at offset 0.

        Raises:
            ObjectNotFoundError: If no object exists for key.
            InvalidKeyError: If key is empty or refused by the driver.
            StorageBackendError: If the backend cannot complete the read.
        """
        self._check_open()
        validate_key(key)
        return self._open_reader(key)

    @traced_storage_operation("open_writer")
    def open_writer(self, key: str, *, content_type: str | None = None) -> ObjectWriter:
        """Open a writer that creates or overwrites the object on close.

        Args:
            key: Object key.
            content_type: MIME type; guessed from the key when omitted.

        Raises:
            InvalidKeyError: If key is empty or refused by the driver.
            StorageBackendError: If the backend cannot start the write.
        """
        self._check_open()
        validate_key(key)
        return self._open_writer(key, content_type or guess_content_type(key))

    def list(self, prefix: str = "", *, page_size: int | None = None) -> ObjectLister:
        """Return a fresh lazy lister over objects whose key starts with prefix."""
        self._check_open()
        size = _resolve_page_size(page_size)

        def fetch(page_token: str | None) -> ListPage:
            return self.list_page(prefix, page_token=page_token, page_size=size)

        return ObjectLister(fetch)

    @traced_storage_operation("list_page")
    def list_page(
        self,
        prefix: str = "",
        *,
        page_token: str | None = None,
        page_size: int | None = None,
    ) -> ListPage:
        """Fetch a single page of the listing.

        Args:
            prefix: Only keys starting with this prefix are listed.
            page_token: Token from a previous page; None starts from the beginning.
            page_size: Maximum number of objects on the page.

        Returns:
            ListPage whose ``next_page_token`` is None on the last page.
        """
        self._check_open()
        return self._list_page(prefix, page_token, _resolve_page_size(page_size))

    @traced_storage_operation("attributes")
    def attributes(self, key: str) -> ObjectMetadata:
        """Return metadata for key without reading its content.

        Raises:
            ObjectNotFoundError: If no object exists for key.
        """
        self._check_open()
        validate_key(key)
        return self._attributes(key)

    def exists(self, key: str) -> bool:
        """Return True when an object exists for key."""
        try:
            self.attributes(key)
        except ObjectNotFoundError:
            return False
        return True

    @traced_storage_operation("delete")
    def delete(self, key: str) -> None:
        """Delete the object.

        Raises:
            ObjectNotFoundError: If no object exists for key.
        """
        self._check_open()
        validate_key(key)
        self._delete(key)

    def read_all(self, key: str) -> bytes:
        """Read the whole object into memory."""
        with self.open_reader(key) as reader:
            return reader.read()

    def write_all(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        """Write ``data`` as the full content of key and commit it."""
        with self.open_writer(key, content_type=content_type) as writer:
            writer.write(data)

    def close(self) -> None:
        """Release driver resources. Further operations raise StreamClosedError."""
        if self._closed:
            return
        self._closed = True
        self._close()
        logger.debug("Closed %s bucket", self.backend_name)

    def __enter__(self) -> Bucket:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @abstractmethod
    def _open_reader(self, key: str) -> ObjectReader:
        ...

    @abstractmethod
    def _open_writer(self, key: str, content_type: str) -> ObjectWriter:
        ...

    @abstractmethod
    def _list_page(self, prefix: str, page_token: str | None, page_size: int) -> ListPage:
        ...

    @abstractmethod
    def _attributes(self, key: str) -> ObjectMetadata:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...

    def _close(self) -> None:
        """Release driver resources."""


def _resolve_page_size(page_size: int | None) -> int:
    if page_size is None:
        return DEFAULT_PAGE_SIZE
    if page_size <= 0:
        raise InvalidArgumentError(f"page_size must be positive, got {page_size}")
    return page_size
