"""Pytest configuration and fixtures for gallery tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from gallery.storage.filesystem_store import FilesystemBucket
from gallery.storage.memory_store import MemoryBucket

GALLERY_ENV_VARS = (
    "GALLERY_BUCKET_URL",
    "GALLERY_HOST",
    "GALLERY_MAX_UPLOAD_BYTES",
    "GALLERY_LOG_LEVEL",
    "GALLERY_LIST_ON_STARTUP",
    "GALLERY_FILE_BUCKET_DIR",
    "GALLERY_GCS_HMAC_ACCESS_ID",
    "GALLERY_GCS_HMAC_SECRET",
    "GALLERY_OTEL_ENABLED",
    "GALLERY_REQUIRE_OTEL",
    "GALLERY_OTEL_SERVICE_NAME",
    "GALLERY_OTEL_EXPORTER",
    "GALLERY_OTEL_TEST_CAPTURE",
    "GALLERY_OTEL_EXPORTER_OTLP_ENDPOINT",
    "PORT",
)


@pytest.fixture(autouse=True)
def clean_gallery_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test without GALLERY_* configuration leaking from the shell."""
    for name in GALLERY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def memory_bucket() -> Iterator[MemoryBucket]:
    """Return an empty in-memory bucket."""
    bucket = MemoryBucket()
    yield bucket
    bucket.close()


@pytest.fixture
def fs_bucket(tmp_path: Path) -> Iterator[FilesystemBucket]:
    """Return a filesystem bucket rooted in a fresh temp directory."""
    bucket = FilesystemBucket(base_dir=tmp_path / "bucket")
    yield bucket
    bucket.close()
