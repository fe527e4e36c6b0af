"""Gallery Google Cloud Storage Bucket driver (``gs://``).

Talks to Cloud Storage through its S3-interoperable XML API with boto3, so
it shares the S3 driver's streaming, paging and error translation.
Authentication uses a Cloud Storage HMAC key.

URL form:
    gs://<bucket>[?endpoint=<url>]

Environment Variables:
    GALLERY_GCS_HMAC_ACCESS_ID: HMAC access ID (falls back to the boto3 chain)
    GALLERY_GCS_HMAC_SECRET: HMAC secret
"""

from __future__ import annotations

import logging
import os
from typing import IO
from urllib.parse import SplitResult, parse_qs

from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from gallery.storage.registry import register_scheme
from gallery.storage.s3_store import S3Bucket, translate_client_error

logger = logging.getLogger(__name__)

GCS_SCHEME = "gs"
GCS_DEFAULT_ENDPOINT = "https://storage.googleapis.com"
GCS_REGION = "auto"

GALLERY_GCS_HMAC_ACCESS_ID_ENV = "GALLERY_GCS_HMAC_ACCESS_ID"
GALLERY_GCS_HMAC_SECRET_ENV = "GALLERY_GCS_HMAC_SECRET"


class GCSBucket(S3Bucket):
    """Bucket backed by Google Cloud Storage via the interoperability API."""

    def __init__(
        self,
        bucket_name: str,
        *,
        client: BaseClient | None = None,
        endpoint_url: str | None = None,
        access_id: str | None = None,
        secret: str | None = None,
    ) -> None:
        super().__init__(
            bucket_name,
            client=client,
            region=GCS_REGION,
            endpoint_url=endpoint_url or GCS_DEFAULT_ENDPOINT,
            use_path_style=True,
            access_key=access_id or os.environ.get(GALLERY_GCS_HMAC_ACCESS_ID_ENV),
            secret_key=secret or os.environ.get(GALLERY_GCS_HMAC_SECRET_ENV),
        )

    @property
    def backend_name(self) -> str:
        return "gcs"

    def _client_config(self, use_path_style: bool) -> Config:
        # The interop API rejects the default flexible-checksum headers.
        return Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            request_checksum_calculation="when_required",
            response_checksum_validation="when_required",
        )

    def _upload(self, key: str, fileobj: IO[bytes], content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=fileobj,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("gcs upload failed: bucket=%s error=%s", self.bucket_name, e)
            raise translate_client_error(e, key, "upload object") from e


def open_gcs_bucket(url: SplitResult) -> GCSBucket:
    """Open a GCSBucket from ``gs://bucket[?endpoint=..]``."""
    query = parse_qs(url.query)
    endpoint = query.get("endpoint", [""])[-1].strip() or None
    return GCSBucket(url.netloc, endpoint_url=endpoint)


register_scheme(GCS_SCHEME, open_gcs_bucket)
