"""Gallery S3 Bucket driver (``s3://``).

Works against AWS S3 and S3-compatible services (MinIO, Ceph, R2, ...)
through boto3. Credentials come from the standard boto3 chain (environment,
shared config, instance profile).

URL form:
    s3://<bucket>[?region=<name>&endpoint=<url>&use_path_style=true]
"""

from __future__ import annotations

import logging
import tempfile
from datetime import UTC, datetime
from typing import IO, Any
from urllib.parse import SplitResult, parse_qs

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from gallery.storage.bucket import Bucket, ObjectReader, ObjectWriter
from gallery.storage.errors import (
    InvalidArgumentError,
    InvalidKeyError,
    ObjectNotFoundError,
    ObjectStorageError,
    PermissionDeniedError,
    StorageBackendError,
)
from gallery.storage.models import ListPage, ObjectMetadata
from gallery.storage.registry import register_scheme

logger = logging.getLogger(__name__)

S3_SCHEME = "s3"

# Uploads spill from memory to a temp file past this size.
SPOOL_MAX_BYTES = 8 * 1024 * 1024

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchBucket"})
_PERMISSION_CODES = frozenset(
    {
        "403",
        "AccessDenied",
        "Forbidden",
        "AllAccessDisabled",
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
    }
)
_INVALID_ARGUMENT_CODES = frozenset({"InvalidArgument", "InvalidRequest"})


def translate_client_error(exc: Exception, key: str | None, action: str) -> ObjectStorageError:
    """Map a botocore exception onto the portable error taxonomy."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error") or {}
        code = str(error.get("Code") or "")
        status = str((exc.response.get("ResponseMetadata") or {}).get("HTTPStatusCode") or "")
        if code in _NOT_FOUND_CODES or status == "404":
            return ObjectNotFoundError(key=key)
        if code in _PERMISSION_CODES or status == "403":
            return PermissionDeniedError(f"Permission denied during {action}", key=key, cause=exc)
        if code == "KeyTooLongError":
            return InvalidKeyError("Key too long", key=key)
        if code in _INVALID_ARGUMENT_CODES:
            return InvalidArgumentError(f"Invalid request during {action}: {code}", key=key)
    return StorageBackendError(f"Failed to {action}: {exc}", key=key, cause=exc)


def _strip_etag(etag: str | None) -> str | None:
    return etag.strip('"') if etag else None


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class _S3Reader(ObjectReader):
    def __init__(self, metadata: ObjectMetadata, body: Any) -> None:
        super().__init__(metadata)
        self._body = body

    def _read(self, size: int) -> bytes:
        try:
            return self._body.read(None if size < 0 else size)
        except (BotoCoreError, ClientError) as e:
            raise translate_client_error(e, self.key, "read object") from e

    def _close(self) -> None:
        self._body.close()


class _S3Writer(ObjectWriter):
    def __init__(self, bucket: S3Bucket, key: str, content_type: str) -> None:
        super().__init__(key, content_type)
        self._bucket = bucket
        self._buffer: IO[bytes] = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES)

    def _write(self, data: bytes) -> None:
        try:
            self._buffer.write(data)
        except OSError as e:
            raise StorageBackendError(f"Failed to buffer upload: {e}", key=self.key, cause=e) from e

    def _commit(self) -> None:
        try:
            self._buffer.seek(0)
            self._bucket._upload(self.key, self._buffer, self.content_type)
        finally:
            self._buffer.close()

    def _abort(self) -> None:
        self._buffer.close()


class S3Bucket(Bucket):
    """Bucket backed by an S3-compatible object store.

    Listings page server-side with ``list_objects_v2``; the page token is the
    service's continuation token. Writes are spooled locally and uploaded on
    writer close, so nothing is visible until the commit succeeds.
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        client: BaseClient | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
        use_path_style: bool = False,
        access_key: str | None = None,
        secret_key: str | None = None,
    ) -> None:
        super().__init__()
        if not bucket_name:
            raise InvalidArgumentError("S3 bucket URL is missing the bucket name")
        self._bucket_name = bucket_name
        self._client = client or self._create_client(
            region=region,
            endpoint_url=endpoint_url,
            use_path_style=use_path_style,
            access_key=access_key,
            secret_key=secret_key,
        )

    @property
    def backend_name(self) -> str:
        return "s3"

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    def _client_config(self, use_path_style: bool) -> Config:
        return Config(
            signature_version="s3v4",
            s3={"addressing_style": "path" if use_path_style else "virtual"},
        )

    def _create_client(
        self,
        *,
        region: str | None,
        endpoint_url: str | None,
        use_path_style: bool,
        access_key: str | None,
        secret_key: str | None,
    ) -> BaseClient:
        client_kwargs: dict[str, Any] = {"config": self._client_config(use_path_style)}
        if region:
            client_kwargs["region_name"] = region
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        if access_key and secret_key:
            client_kwargs["aws_access_key_id"] = access_key
            client_kwargs["aws_secret_access_key"] = secret_key
        return boto3.client("s3", **client_kwargs)

    def _upload(self, key: str, fileobj: IO[bytes], content_type: str) -> None:
        try:
            self._client.upload_fileobj(
                Fileobj=fileobj,
                Bucket=self._bucket_name,
                Key=key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("s3 upload failed: bucket=%s error=%s", self._bucket_name, e)
            raise translate_client_error(e, key, "upload object") from e

    def _open_reader(self, key: str) -> ObjectReader:
        try:
            response = self._client.get_object(Bucket=self._bucket_name, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise translate_client_error(e, key, "open object") from e

        metadata = ObjectMetadata(
            key=key,
            size=int(response.get("ContentLength") or 0),
            modified=_as_utc(response.get("LastModified")),
            content_type=response.get("ContentType"),
            etag=_strip_etag(response.get("ETag")),
        )
        return _S3Reader(metadata, response["Body"])

    def _open_writer(self, key: str, content_type: str) -> ObjectWriter:
        return _S3Writer(self, key, content_type)

    def _list_page(self, prefix: str, page_token: str | None, page_size: int) -> ListPage:
        params: dict[str, Any] = {
            "Bucket": self._bucket_name,
            "Prefix": prefix,
            "MaxKeys": page_size,
        }
        if page_token:
            params["ContinuationToken"] = page_token

        try:
            response = self._client.list_objects_v2(**params)
        except (BotoCoreError, ClientError) as e:
            raise translate_client_error(e, None, "list objects") from e

        objects = [
            ObjectMetadata(
                key=str(item["Key"]),
                size=int(item.get("Size") or 0),
                modified=_as_utc(item.get("LastModified")),
                etag=_strip_etag(item.get("ETag")),
            )
            for item in response.get("Contents", []) or []
        ]
        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return ListPage(objects=objects, next_page_token=next_token or None)

    def _attributes(self, key: str) -> ObjectMetadata:
        try:
            response = self._client.head_object(Bucket=self._bucket_name, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise translate_client_error(e, key, "head object") from e
        return ObjectMetadata(
            key=key,
            size=int(response.get("ContentLength") or 0),
            modified=_as_utc(response.get("LastModified")),
            content_type=response.get("ContentType"),
            etag=_strip_etag(response.get("ETag")),
        )

    def _delete(self, key: str) -> None:
        # DeleteObject succeeds for missing keys; head first to report NOT_FOUND.
        self._attributes(key)
        try:
            self._client.delete_object(Bucket=self._bucket_name, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise translate_client_error(e, key, "delete object") from e

    def _close(self) -> None:
        close = getattr(self._client, "close", None)
        if callable(close):
            close()


def _query_flag(query: dict[str, list[str]], name: str) -> bool:
    return query.get(name, [""])[-1].strip().lower() in ("1", "true", "yes")


def _query_value(query: dict[str, list[str]], name: str) -> str | None:
    value = query.get(name, [""])[-1].strip()
    return value or None


def open_s3_bucket(url: SplitResult) -> S3Bucket:
    """Open an S3Bucket from ``s3://bucket?region=..&endpoint=..&use_path_style=true``."""
    query = parse_qs(url.query)
    return S3Bucket(
        url.netloc,
        region=_query_value(query, "region"),
        endpoint_url=_query_value(query, "endpoint"),
        use_path_style=_query_flag(query, "use_path_style"),
    )


register_scheme(S3_SCHEME, open_s3_bucket)
