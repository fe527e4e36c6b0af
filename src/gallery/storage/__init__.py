"""Gallery Object Storage Abstraction.

One Bucket contract (open_reader, open_writer, list) over heterogeneous
backends, with a portable error taxonomy and stream-based I/O.

Backends (selected by bucket URL scheme):
- mem://      MemoryBucket: process-local map (dev/test)
- file://     FilesystemBucket: local directory
- s3://       S3Bucket: AWS S3 and S3-compatible stores
- gs://       GCSBucket: Google Cloud Storage (S3 interoperability API)

Importing this package registers every bundled driver with the scheme
registry; ``open_bucket(url)`` then dispatches on the URL scheme.
"""

from gallery.storage import filesystem_store, gcs_store, memory_store, s3_store  # noqa: F401
from gallery.storage.bucket import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_PAGE_SIZE,
    Bucket,
    ObjectLister,
    ObjectReader,
    ObjectWriter,
)
from gallery.storage.errors import (
    DuplicateSchemeError,
    ErrorCode,
    InvalidArgumentError,
    InvalidKeyError,
    ObjectNotFoundError,
    ObjectStorageError,
    PermissionDeniedError,
    StorageBackendError,
    StreamClosedError,
    UnknownSchemeError,
    UploadTooLargeError,
    error_code_of,
)
from gallery.storage.limits import (
    DEFAULT_MAX_UPLOAD_BYTES,
    SizeLimitedWriter,
    check_declared_request_size,
    check_declared_size,
    copy_stream,
)
from gallery.storage.models import ListPage, ObjectMetadata
from gallery.storage.registry import open_bucket, register_scheme, registered_schemes

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MAX_UPLOAD_BYTES",
    "DEFAULT_PAGE_SIZE",
    "Bucket",
    "DuplicateSchemeError",
    "ErrorCode",
    "InvalidArgumentError",
    "InvalidKeyError",
    "ListPage",
    "ObjectLister",
    "ObjectMetadata",
    "ObjectNotFoundError",
    "ObjectReader",
    "ObjectStorageError",
    "ObjectWriter",
    "PermissionDeniedError",
    "SizeLimitedWriter",
    "StorageBackendError",
    "StreamClosedError",
    "UnknownSchemeError",
    "UploadTooLargeError",
    "check_declared_request_size",
    "check_declared_size",
    "copy_stream",
    "error_code_of",
    "open_bucket",
    "register_scheme",
    "registered_schemes",
]
