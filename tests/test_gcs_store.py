"""Tests for the Google Cloud Storage Bucket driver (gs://)."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from gallery.storage.errors import ObjectNotFoundError
from gallery.storage.gcs_store import (
    GALLERY_GCS_HMAC_ACCESS_ID_ENV,
    GALLERY_GCS_HMAC_SECRET_ENV,
    GCS_DEFAULT_ENDPOINT,
    GCSBucket,
)
from gallery.storage.registry import open_bucket


class TestGCSScheme:
    """Tests for gs:// URL opening and client configuration."""

    def test_interop_endpoint_and_checksums(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """gs:// targets the interoperability endpoint with HMAC credentials."""
        monkeypatch.setenv(GALLERY_GCS_HMAC_ACCESS_ID_ENV, "GOOG1EXAMPLE")
        monkeypatch.setenv(GALLERY_GCS_HMAC_SECRET_ENV, "hmac-secret")

        with patch("gallery.storage.s3_store.boto3.client") as make_client:
            bucket = open_bucket("gs://family-photos")

        assert isinstance(bucket, GCSBucket)
        assert bucket.backend_name == "gcs"
        assert bucket.bucket_name == "family-photos"

        kwargs = make_client.call_args.kwargs
        assert kwargs["endpoint_url"] == GCS_DEFAULT_ENDPOINT
        assert kwargs["region_name"] == "auto"
        assert kwargs["aws_access_key_id"] == "GOOG1EXAMPLE"
        assert kwargs["aws_secret_access_key"] == "hmac-secret"
        config = kwargs["config"]
        assert config.s3 == {"addressing_style": "path"}
        assert config.request_checksum_calculation == "when_required"
        assert config.response_checksum_validation == "when_required"

    def test_endpoint_override(self) -> None:
        """?endpoint= points the driver at an emulator."""
        with patch("gallery.storage.s3_store.boto3.client") as make_client:
            open_bucket("gs://photos?endpoint=http://localhost:4443")

        assert make_client.call_args.kwargs["endpoint_url"] == "http://localhost:4443"

    def test_without_hmac_uses_default_chain(self) -> None:
        """Without HMAC variables no explicit credentials are passed."""
        with patch("gallery.storage.s3_store.boto3.client") as make_client:
            open_bucket("gs://photos")

        assert "aws_access_key_id" not in make_client.call_args.kwargs


class TestGCSBucket:
    """Tests for GCS-specific request shaping."""

    def test_upload_uses_put_object(self) -> None:
        """Commits go through a single put_object with the content type."""
        client = MagicMock()
        uploaded: dict[str, Any] = {}

        def capture(**kwargs: Any) -> None:
            uploaded["body"] = kwargs["Body"].read()
            uploaded["kwargs"] = kwargs

        client.put_object.side_effect = capture
        bucket = GCSBucket("photos", client=client)

        bucket.write_all("sunset.jpg", b"orange")

        assert uploaded["body"] == b"orange"
        assert uploaded["kwargs"]["Bucket"] == "photos"
        assert uploaded["kwargs"]["Key"] == "sunset.jpg"
        assert uploaded["kwargs"]["ContentType"] == "image/jpeg"
        client.upload_fileobj.assert_not_called()

    def test_errors_translated_like_s3(self) -> None:
        """Interop error responses share the S3 translation."""
        from botocore.exceptions import ClientError

        client = MagicMock()
        client.get_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey"}, "ResponseMetadata": {"HTTPStatusCode": 404}},
            "GetObject",
        )
        bucket = GCSBucket("photos", client=client)

        with pytest.raises(ObjectNotFoundError):
            bucket.open_reader("missing.jpg")
