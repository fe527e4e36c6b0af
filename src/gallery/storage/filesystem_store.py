"""Gallery filesystem Bucket driver (``file://``).

Stores each object as a plain file under a base directory, with:
- Path traversal protection
- Atomic commit (temp file + rename on writer close)
- A JSON sidecar per object holding its content type

Layout:
    {base_dir}/{key}                 # content
    {base_dir}/{key}.attrs           # {"content_type": ...}
    {base_dir}/.gallery-tmp/         # in-flight writes, never listed

Environment Variables:
    GALLERY_FILE_BUCKET_DIR: Base directory used when the URL has no path
        (default: tempfile.gettempdir() / gallery_objects)
"""

from __future__ import annotations

import errno
import hashlib
import json
import logging
import os
import tempfile
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import IO
from urllib.parse import SplitResult, parse_qs, unquote

from gallery.storage.bucket import Bucket, ObjectReader, ObjectWriter
from gallery.storage.errors import (
    InvalidKeyError,
    ObjectNotFoundError,
    ObjectStorageError,
    PermissionDeniedError,
    StorageBackendError,
)
from gallery.storage.models import ListPage, ObjectMetadata
from gallery.storage.registry import register_scheme

logger = logging.getLogger(__name__)

FILE_SCHEME = "file"
GALLERY_FILE_BUCKET_DIR_ENV = "GALLERY_FILE_BUCKET_DIR"

_ATTRS_SUFFIX = ".attrs"
_TMP_DIR_NAME = ".gallery-tmp"


def _is_path_traversal(key: str) -> bool:
    """Check if a key contains path traversal sequences.

    Detects:
    - ".." segments
    - Absolute paths (starting with / or ~, or drive letters like C:)
    - Backslashes (Windows path separators)
    - Null bytes
    """
    if "\x00" in key or "\\" in key:
        return True
    if key.startswith("/") or key.startswith("~"):
        return True
    if len(key) >= 2 and key[1] == ":":
        return True
    return any(segment == ".." for segment in key.split("/"))


def _validate_key(key: str) -> None:
    """Validate object key and raise if this driver cannot store it."""
    if _is_path_traversal(key):
        raise InvalidKeyError("Invalid key: path traversal detected", key=key)
    segments = key.split("/")
    if any(segment in ("", ".") for segment in segments):
        raise InvalidKeyError("Invalid key: empty path segment", key=key)
    if segments[0] == _TMP_DIR_NAME or key.endswith(_ATTRS_SUFFIX):
        raise InvalidKeyError("Invalid key: reserved name", key=key)


def _translate_os_error(exc: OSError, key: str | None, action: str) -> ObjectStorageError:
    """Map an OSError onto the portable error taxonomy."""
    if isinstance(exc, FileNotFoundError) or exc.errno == errno.ENOENT:
        return ObjectNotFoundError(key=key)
    if isinstance(exc, PermissionError):
        return PermissionDeniedError(f"Permission denied during {action}", key=key, cause=exc)
    if isinstance(exc, (FileExistsError, IsADirectoryError, NotADirectoryError)):
        # An object and a directory cannot share a path segment.
        return InvalidKeyError(
            f"Key conflicts with an existing object or directory during {action}", key=key
        )
    return StorageBackendError(f"Failed to {action}: {exc}", key=key, cause=exc)


class _FileReader(ObjectReader):
    def __init__(self, metadata: ObjectMetadata, handle: IO[bytes]) -> None:
        super().__init__(metadata)
        self._handle = handle

    def _read(self, size: int) -> bytes:
        try:
            return self._handle.read(size)
        except OSError as e:
            raise _translate_os_error(e, self.key, "read object") from e

    def _close(self) -> None:
        self._handle.close()


class _FileWriter(ObjectWriter):
    def __init__(
        self,
        bucket: FilesystemBucket,
        key: str,
        content_type: str,
        handle: IO[bytes],
        tmp_path: Path,
    ) -> None:
        super().__init__(key, content_type)
        self._bucket = bucket
        self._handle = handle
        self._tmp_path = tmp_path

    def _write(self, data: bytes) -> None:
        try:
            self._handle.write(data)
        except OSError as e:
            raise _translate_os_error(e, self.key, "write object") from e

    def _commit(self) -> None:
        try:
            self._handle.flush()
            os.fsync(self._handle.fileno())
            self._handle.close()
            self._bucket._install(self.key, self._tmp_path, self.content_type)
        except OSError as e:
            self._discard()
            raise _translate_os_error(e, self.key, "commit object") from e

    def _abort(self) -> None:
        self._discard()

    def _discard(self) -> None:
        self._handle.close()
        self._tmp_path.unlink(missing_ok=True)


class FilesystemBucket(Bucket):
    """Bucket backed by a local directory.

    Listings scan one directory at a time in key order and use the last key
    of the previous page as the page token.
    """

    def __init__(self, base_dir: str | Path | None = None, *, create_dir: bool = True) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                GALLERY_FILE_BUCKET_DIR env var or OS temp directory.
            create_dir: Create the base directory when missing.

        Raises:
            StorageBackendError: If the base directory is missing and
                create_dir is False, or cannot be created.
        """
        super().__init__()
        if base_dir is None:
            base_dir = os.environ.get(GALLERY_FILE_BUCKET_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "gallery_objects"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        if create_dir:
            try:
                self._base_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageBackendError(
                    f"Failed to create bucket directory: {e}", cause=e
                ) from e
        elif not self._base_dir.is_dir():
            raise StorageBackendError(f"Bucket directory does not exist: {self._base_dir}")

        logger.debug("FilesystemBucket initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _object_path(self, key: str) -> Path:
        """Resolve the content path for key, validating it stays under base_dir."""
        _validate_key(key)
        path = self._base_dir / key
        try:
            path.resolve().relative_to(self._base_dir)
        except ValueError as e:
            raise InvalidKeyError(
                "Path resolves outside bucket directory", key=key
            ) from e
        return path

    def _attrs_path(self, path: Path) -> Path:
        return path.with_name(path.name + _ATTRS_SUFFIX)

    def _read_content_type(self, path: Path) -> str | None:
        attrs_file = self._attrs_path(path)
        try:
            data = json.loads(attrs_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read attributes %s: %s", attrs_file, e)
            return None
        content_type = data.get("content_type")
        return str(content_type) if content_type else None

    def _metadata(self, key: str, path: Path) -> ObjectMetadata:
        st = path.stat()
        return ObjectMetadata(
            key=key,
            size=st.st_size,
            modified=datetime.fromtimestamp(st.st_mtime, tz=UTC),
            content_type=self._read_content_type(path),
            etag=f"{st.st_mtime_ns:x}-{st.st_size:x}",
        )

    def _install(self, key: str, tmp_path: Path, content_type: str) -> None:
        """Move a finished temp file into place and record its attributes."""
        path = self._object_path(key)
        if path.is_dir():
            raise IsADirectoryError(errno.EISDIR, "Key names an existing directory", str(path))
        path.parent.mkdir(parents=True, exist_ok=True)
        attrs_tmp = tmp_path.with_name(tmp_path.name + _ATTRS_SUFFIX)
        attrs_tmp.write_text(json.dumps({"content_type": content_type}), encoding="utf-8")
        os.replace(attrs_tmp, self._attrs_path(path))
        os.replace(tmp_path, path)

    def _open_reader(self, key: str) -> ObjectReader:
        path = self._object_path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key=key)
        try:
            metadata = self._metadata(key, path)
            handle = path.open("rb")
        except OSError as e:
            raise _translate_os_error(e, key, "open object") from e
        return _FileReader(metadata, handle)

    def _open_writer(self, key: str, content_type: str) -> ObjectWriter:
        self._object_path(key)
        tmp_dir = self._base_dir / _TMP_DIR_NAME
        try:
            tmp_dir.mkdir(exist_ok=True)
            key_hash = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
            fd, tmp_name = tempfile.mkstemp(prefix=f"{key_hash}.", dir=tmp_dir)
            handle = os.fdopen(fd, "wb")
        except OSError as e:
            raise _translate_os_error(e, key, "open writer") from e
        return _FileWriter(self, key, content_type, handle, Path(tmp_name))

    def _iter_keys(self, rel_dir: str, prefix: str, after: str | None) -> Iterator[str]:
        """Yield keys under ``rel_dir`` in lexicographic order, one directory at a time.

        Directories sort as ``name/`` so that ``a.png`` comes before ``a/x.png``,
        matching plain string order of the full keys. Subtrees that cannot hold
        a key matching ``prefix`` or sorting after ``after`` are never opened.
        """
        entries: list[tuple[str, bool]] = []
        try:
            with os.scandir(self._base_dir / rel_dir) as it:
                for entry in it:
                    if entry.is_dir(follow_symlinks=False):
                        if not rel_dir and entry.name == _TMP_DIR_NAME:
                            continue
                        entries.append((f"{rel_dir}{entry.name}/", True))
                    elif not entry.name.endswith(_ATTRS_SUFFIX):
                        entries.append((f"{rel_dir}{entry.name}", False))
        except FileNotFoundError:
            if not rel_dir:
                raise
            # Removed after its parent was scanned.
            return
        entries.sort()

        for name, is_dir in entries:
            if is_dir:
                if not (name.startswith(prefix) or prefix.startswith(name)):
                    continue
                if after is not None and after >= name and not after.startswith(name):
                    continue
                yield from self._iter_keys(name, prefix, after)
            elif name.startswith(prefix) and (after is None or name > after):
                yield name

    def _list_page(self, prefix: str, page_token: str | None, page_size: int) -> ListPage:
        objects: list[ObjectMetadata] = []
        next_token: str | None = None
        keys = self._iter_keys("", prefix, page_token)
        try:
            for key in keys:
                if len(objects) == page_size:
                    next_token = objects[-1].key
                    break
                try:
                    objects.append(self._metadata(key, self._base_dir / key))
                except FileNotFoundError:
                    # Deleted between scan and stat.
                    continue
                except OSError as e:
                    raise _translate_os_error(e, key, "stat object") from e
        except OSError as e:
            raise _translate_os_error(e, None, "list objects") from e
        finally:
            keys.close()
        return ListPage(objects=objects, next_page_token=next_token)

    def _attributes(self, key: str) -> ObjectMetadata:
        path = self._object_path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key=key)
        try:
            return self._metadata(key, path)
        except OSError as e:
            raise _translate_os_error(e, key, "stat object") from e

    def _delete(self, key: str) -> None:
        path = self._object_path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key=key)
        try:
            path.unlink()
            self._attrs_path(path).unlink(missing_ok=True)
        except OSError as e:
            raise _translate_os_error(e, key, "delete object") from e
        self._prune_empty_dirs(path.parent)
        logger.debug("Deleted object: key=%s", key)

    def _prune_empty_dirs(self, directory: Path) -> None:
        while directory != self._base_dir:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent


def open_filesystem_bucket(url: SplitResult) -> FilesystemBucket:
    """Open a FilesystemBucket from ``file:///abs/dir[?create_dir=false]``."""
    query = parse_qs(url.query)
    create_dir = query.get("create_dir", ["true"])[-1].strip().lower() not in ("0", "false", "no")
    raw_path = unquote(url.path or "")
    return FilesystemBucket(raw_path or None, create_dir=create_dir)


register_scheme(FILE_SCHEME, open_filesystem_bucket)
