"""Gallery in-memory Bucket driver (``mem://``).

Objects live in a process-local dict guarded by a lock. Useful for
development, tests, and demos; nothing survives a restart.
"""

from __future__ import annotations

import bisect
import hashlib
import io
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import SplitResult

from gallery.storage.bucket import Bucket, ObjectReader, ObjectWriter
from gallery.storage.errors import ObjectNotFoundError
from gallery.storage.models import ListPage, ObjectMetadata
from gallery.storage.registry import register_scheme

logger = logging.getLogger(__name__)

MEMORY_SCHEME = "mem"


@dataclass(frozen=True)
class _Entry:
    data: bytes
    metadata: ObjectMetadata


class _MemoryReader(ObjectReader):
    def __init__(self, entry: _Entry) -> None:
        super().__init__(entry.metadata)
        self._stream = io.BytesIO(entry.data)

    def _read(self, size: int) -> bytes:
        return self._stream.read(size)

    def _close(self) -> None:
        self._stream.close()


class _MemoryWriter(ObjectWriter):
    def __init__(self, bucket: MemoryBucket, key: str, content_type: str) -> None:
        super().__init__(key, content_type)
        self._bucket = bucket
        self._buffer = io.BytesIO()

    def _write(self, data: bytes) -> None:
        self._buffer.write(data)

    def _commit(self) -> None:
        data = self._buffer.getvalue()
        self._buffer.close()
        self._bucket._store(self.key, data, self.content_type)

    def _abort(self) -> None:
        self._buffer.close()


class MemoryBucket(Bucket):
    """Bucket backed by a process-local dictionary.

    A sorted key index keeps listings in lexicographic order; the page token
    is the last key of the previous page, so a listing interleaved with
    writes still returns every surviving key exactly once.
    """

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self._objects: dict[str, _Entry] = {}
        self._keys: list[str] = []

    @property
    def backend_name(self) -> str:
        return "memory"

    def _store(self, key: str, data: bytes, content_type: str) -> None:
        metadata = ObjectMetadata(
            key=key,
            size=len(data),
            modified=datetime.now(UTC),
            content_type=content_type,
            etag=hashlib.md5(data, usedforsecurity=False).hexdigest(),
        )
        with self._lock:
            if key not in self._objects:
                bisect.insort(self._keys, key)
            self._objects[key] = _Entry(data=data, metadata=metadata)

    def _get(self, key: str) -> _Entry:
        with self._lock:
            entry = self._objects.get(key)
        if entry is None:
            raise ObjectNotFoundError(key=key)
        return entry

    def _open_reader(self, key: str) -> ObjectReader:
        return _MemoryReader(self._get(key))

    def _open_writer(self, key: str, content_type: str) -> ObjectWriter:
        return _MemoryWriter(self, key, content_type)

    def _list_page(self, prefix: str, page_token: str | None, page_size: int) -> ListPage:
        with self._lock:
            if page_token is None:
                start = bisect.bisect_left(self._keys, prefix)
            else:
                start = bisect.bisect_right(self._keys, page_token)

            objects: list[ObjectMetadata] = []
            index = start
            while index < len(self._keys) and len(objects) < page_size:
                key = self._keys[index]
                if not key.startswith(prefix):
                    break
                objects.append(self._objects[key].metadata)
                index += 1

            has_more = index < len(self._keys) and self._keys[index].startswith(prefix)

        next_token = objects[-1].key if objects and has_more else None
        return ListPage(objects=objects, next_page_token=next_token)

    def _attributes(self, key: str) -> ObjectMetadata:
        return self._get(key).metadata

    def _delete(self, key: str) -> None:
        with self._lock:
            if key not in self._objects:
                raise ObjectNotFoundError(key=key)
            del self._objects[key]
            index = bisect.bisect_left(self._keys, key)
            del self._keys[index]

    def _close(self) -> None:
        with self._lock:
            self._objects.clear()
            self._keys.clear()


def open_memory_bucket(url: SplitResult) -> MemoryBucket:
    """Open a fresh, empty in-memory bucket. Host and path are ignored."""
    return MemoryBucket()


register_scheme(MEMORY_SCHEME, open_memory_bucket)
