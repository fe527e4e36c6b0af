"""Gallery object storage error types.

Every exception raised by the storage layer is an ObjectStorageError carrying
one of a small closed set of portable codes. Drivers translate backend
failures (botocore ClientError, OSError, ...) into these types at the Bucket
boundary so callers never branch on backend-specific exceptions.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Portable error codes shared by all storage backends."""

    NOT_FOUND = "NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INTERNAL = "INTERNAL"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        code: Portable error code.
        key: Object key associated with the operation (if applicable).
    """

    default_code = ErrorCode.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        code: ErrorCode | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.key = key
        self.code = code or self.default_code

    def __str__(self) -> str:
        parts = [self.message]
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when no object exists for the requested key."""

    default_code = ErrorCode.NOT_FOUND

    def __init__(self, message: str = "Object not found", *, key: str | None = None) -> None:
        super().__init__(message, key=key)


class PermissionDeniedError(ObjectStorageError):
    """Raised when the backend refuses access to the bucket or object."""

    default_code = ErrorCode.PERMISSION_DENIED

    def __init__(
        self,
        message: str = "Permission denied",
        *,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, key=key)
        self.cause = cause


class StorageBackendError(ObjectStorageError):
    """Raised when the storage backend cannot complete an operation.

    This error indicates the backend itself failed (disk full, network error,
    unexpected service response) rather than a logical error like
    object not found.
    """

    default_code = ErrorCode.INTERNAL

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, key=key)
        self.cause = cause


class InvalidArgumentError(ObjectStorageError):
    """Raised when the caller supplied an argument the bucket cannot accept."""

    default_code = ErrorCode.INVALID_ARGUMENT

    def __init__(self, message: str = "Invalid argument", *, key: str | None = None) -> None:
        super().__init__(message, key=key)


class InvalidKeyError(InvalidArgumentError):
    """Raised for empty keys or keys a driver refuses (e.g. path traversal)."""

    def __init__(
        self, message: str = "Invalid key", *, key: str | None = None
    ) -> None:
        super().__init__(message, key=key)


class StreamClosedError(InvalidArgumentError):
    """Raised on use of a reader, writer or bucket after it was closed."""


class UploadTooLargeError(InvalidArgumentError):
    """Raised when an upload exceeds the configured size ceiling.

    Attributes:
        limit: Maximum accepted size in bytes.
        size: Declared or observed size that crossed the limit.
    """

    def __init__(
        self,
        *,
        limit: int,
        size: int,
        key: str | None = None,
    ) -> None:
        super().__init__(f"Upload of {size} bytes exceeds limit of {limit} bytes", key=key)
        self.limit = limit
        self.size = size


class UnknownSchemeError(InvalidArgumentError):
    """Raised when a bucket URL names a scheme no driver registered."""

    def __init__(self, scheme: str) -> None:
        super().__init__(f"No storage driver registered for scheme: {scheme!r}")
        self.scheme = scheme


class DuplicateSchemeError(InvalidArgumentError):
    """Raised when two drivers try to register the same scheme."""

    def __init__(self, scheme: str) -> None:
        super().__init__(f"Storage driver already registered for scheme: {scheme!r}")
        self.scheme = scheme


def error_code_of(exc: BaseException) -> ErrorCode:
    """Return the portable code for any exception.

    Exceptions raised outside the storage layer map to INTERNAL.
    """
    if isinstance(exc, ObjectStorageError):
        return exc.code
    return ErrorCode.INTERNAL
