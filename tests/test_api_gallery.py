"""Tests for the gallery HTTP routes.

Tests cover:
A) Listing page renders one thumbnail per object
B) Upload stores myFile under its filename, then renders the listing
C) GET /{key} streams bytes with the stored content type; 404 when missing
D) Upload ceiling enforced by declared and actual size (400, nothing stored)
E) Storage failures map to the JSON error envelope (404/400/502/500)
"""

from __future__ import annotations

import asyncio
from collections.abc import MutableMapping

import pytest
from fastapi.testclient import TestClient
from httpx import Response

from gallery.api.main import create_app
from gallery.storage.bucket import ObjectReader
from gallery.storage.errors import PermissionDeniedError, StorageBackendError
from gallery.storage.memory_store import MemoryBucket

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 4


@pytest.fixture
def client(memory_bucket: MemoryBucket) -> TestClient:
    """Create a test client over an empty in-memory bucket."""
    return TestClient(create_app(memory_bucket))


def _upload(
    client: TestClient, filename: str, data: bytes, content_type: str = "image/png"
) -> Response:
    return client.post("/", files={"myFile": (filename, data, content_type)})


class TrackingBucket(MemoryBucket):
    """MemoryBucket that remembers every reader it opens."""

    def __init__(self) -> None:
        super().__init__()
        self.opened: list[ObjectReader] = []

    def _open_reader(self, key: str) -> ObjectReader:
        reader = super()._open_reader(key)
        self.opened.append(reader)
        return reader


class TestListing:
    """Tests for GET /."""

    def test_empty_bucket_renders_form(self, client: TestClient) -> None:
        """The page renders the upload form even with no objects."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert 'name="myFile"' in response.text
        assert 'enctype="multipart/form-data"' in response.text
        assert "<img" not in response.text

    def test_lists_every_object(self, client: TestClient, memory_bucket: MemoryBucket) -> None:
        """Each key appears as a thumbnail link."""
        memory_bucket.write_all("a.png", b"a")
        memory_bucket.write_all("b.jpg", b"b")

        response = client.get("/")

        assert response.text.count("<img") == 2
        assert 'src="/a.png"' in response.text
        assert 'src="/b.jpg"' in response.text

    def test_keys_are_url_encoded_and_escaped(
        self, client: TestClient, memory_bucket: MemoryBucket
    ) -> None:
        """Keys are percent-encoded in URLs and HTML-escaped in text."""
        memory_bucket.write_all("my cat.png", b"a")
        memory_bucket.write_all("<b>.png", b"b")

        response = client.get("/")

        assert 'src="/my%20cat.png"' in response.text
        assert "<b>.png" not in response.text
        assert "&lt;b&gt;.png" in response.text


class TestUpload:
    """Tests for POST /."""

    def test_upload_then_fetch(self, client: TestClient) -> None:
        """An uploaded image is listed and served back byte for byte."""
        payload = PNG_BYTES[:1024]

        response = _upload(client, "cat.png", payload)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert 'src="/cat.png"' in response.text
        assert "Uploaded cat.png" in response.text

        fetched = client.get("/cat.png")
        assert fetched.status_code == 200
        assert fetched.content == payload
        assert fetched.headers["content-type"] == "image/png"
        assert fetched.headers["content-length"] == "1024"

    def test_upload_overwrites(self, client: TestClient) -> None:
        """Uploading the same filename twice keeps the latest bytes."""
        _upload(client, "cat.png", b"first")
        _upload(client, "cat.png", b"second")

        assert client.get("/cat.png").content == b"second"
        assert client.get("/").text.count("<img") == 1

    def test_part_content_type_stored(
        self, client: TestClient, memory_bucket: MemoryBucket
    ) -> None:
        """The part's content type is stored as sent."""
        _upload(client, "photo.jpg", b"jpeg", content_type="image/jpeg")

        assert memory_bucket.attributes("photo.jpg").content_type == "image/jpeg"

    def test_nested_filename(self, client: TestClient) -> None:
        """Filenames with slashes are stored and served under the same key."""
        _upload(client, "albums/2024/cat.png", b"nested")

        assert client.get("/albums/2024/cat.png").content == b"nested"

    def test_missing_field(self, client: TestClient, memory_bucket: MemoryBucket) -> None:
        """A form without myFile is rejected with 400."""
        response = client.post("/", files={"otherField": ("cat.png", b"x", "image/png")})

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_FILE"
        assert list(memory_bucket.list()) == []

    def test_non_file_field(self, client: TestClient) -> None:
        """A plain text myFile field is not a file."""
        response = client.post("/", data={"myFile": "not a file"})

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_FILE"

    def test_empty_filename(self, client: TestClient, memory_bucket: MemoryBucket) -> None:
        """A file part without a filename is rejected with 400."""
        response = _upload(client, "", b"x")

        assert response.status_code == 400
        assert response.json()["code"] in ("MISSING_FILE", "MISSING_FILENAME")
        assert list(memory_bucket.list()) == []


class TestUploadLimit:
    """Tests for the upload size ceiling."""

    def test_declared_oversize_rejected_before_reading(
        self, client: TestClient, memory_bucket: MemoryBucket
    ) -> None:
        """A Content-Length over the limit is rejected and nothing is stored."""
        request = client.build_request(
            "POST", "/", files={"myFile": ("huge.png", b"x" * 16, "image/png")}
        )
        request.headers["Content-Length"] = "200000000"

        response = client.send(request)

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INVALID_ARGUMENT"
        assert body["details"] == {"limit": 100_000_000, "size": 200_000_000}
        assert not memory_bucket.exists("huge.png")
        assert "huge.png" not in client.get("/").text

    def test_actual_oversize_rejected(self, memory_bucket: MemoryBucket) -> None:
        """Without a Content-Length the received size is still enforced."""
        client = TestClient(create_app(memory_bucket, max_upload_bytes=1000))
        request = client.build_request(
            "POST", "/", files={"myFile": ("big.png", b"x" * 4000, "image/png")}
        )
        del request.headers["Content-Length"]

        response = client.send(request)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_ARGUMENT"
        assert not memory_bucket.exists("big.png")

    def test_upload_at_exact_limit_accepted(self, memory_bucket: MemoryBucket) -> None:
        """A file of exactly the ceiling is stored despite the multipart framing."""
        client = TestClient(create_app(memory_bucket, max_upload_bytes=1000))

        response = _upload(client, "exact.png", b"x" * 1000)

        assert response.status_code == 200
        assert memory_bucket.read_all("exact.png") == b"x" * 1000

    def test_upload_one_byte_over_limit_rejected(self, memory_bucket: MemoryBucket) -> None:
        """One byte past the ceiling is rejected even though the request length is close."""
        client = TestClient(create_app(memory_bucket, max_upload_bytes=1000))

        response = _upload(client, "over.png", b"x" * 1001)

        assert response.status_code == 400
        assert response.json()["details"] == {"limit": 1000, "size": 1001}
        assert not memory_bucket.exists("over.png")

    def test_upload_under_limit_accepted(self, memory_bucket: MemoryBucket) -> None:
        """Uploads below the ceiling succeed."""
        client = TestClient(create_app(memory_bucket, max_upload_bytes=2000))

        response = _upload(client, "small.png", b"x" * 500)

        assert response.status_code == 200
        assert memory_bucket.read_all("small.png") == b"x" * 500

    def test_negative_limit_rejected(self, memory_bucket: MemoryBucket) -> None:
        """create_app refuses a negative ceiling."""
        from gallery.storage.errors import InvalidArgumentError

        with pytest.raises(InvalidArgumentError):
            create_app(memory_bucket, max_upload_bytes=-1)


class TestServeObject:
    """Tests for GET /{key}."""

    def test_missing_key_is_404(self, client: TestClient) -> None:
        """Unknown keys return 404 with the error envelope."""
        response = client.get("/missing.png")

        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "NOT_FOUND"
        assert body["request_id"] == response.headers["X-Request-Id"]

    def test_percent_encoded_key(self, client: TestClient, memory_bucket: MemoryBucket) -> None:
        """Percent-encoded paths are decoded to the stored key."""
        memory_bucket.write_all("my cat.png", b"spaces")

        assert client.get("/my%20cat.png").content == b"spaces"

    def test_unknown_type_served_as_octet_stream(
        self, client: TestClient, memory_bucket: MemoryBucket
    ) -> None:
        """Objects without a known type fall back to application/octet-stream."""
        memory_bucket.write_all("blob", b"\x00\x01")

        response = client.get("/blob")

        assert response.headers["content-type"] == "application/octet-stream"

    def test_etag_header(self, client: TestClient, memory_bucket: MemoryBucket) -> None:
        """The object's etag is sent as a quoted ETag header."""
        memory_bucket.write_all("cat.png", b"x")
        etag = memory_bucket.attributes("cat.png").etag

        response = client.get("/cat.png")

        assert response.headers["etag"] == f'"{etag}"'

    def test_reader_closed_after_response(self) -> None:
        """The reader is closed once the body has been streamed."""
        bucket = TrackingBucket()
        bucket.write_all("cat.png", PNG_BYTES)
        client = TestClient(create_app(bucket))

        assert client.get("/cat.png").content == PNG_BYTES
        [reader] = bucket.opened
        assert reader.closed

    def test_reader_closed_when_send_fails_before_body(self) -> None:
        """A client gone before the response starts still gets its reader closed."""
        bucket = TrackingBucket()
        bucket.write_all("cat.png", PNG_BYTES)
        app = create_app(bucket)
        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": "/cat.png",
            "raw_path": b"/cat.png",
            "query_string": b"",
            "root_path": "",
            "headers": [(b"host", b"testserver")],
            "client": ("testclient", 50000),
            "server": ("testserver", 80),
        }

        async def receive() -> dict[str, object]:
            await asyncio.Event().wait()
            return {"type": "http.disconnect"}

        async def send(message: MutableMapping[str, object]) -> None:
            if message["type"] == "http.response.start":
                raise OSError("client went away")

        with pytest.raises(OSError, match="client went away"):
            asyncio.run(app(scope, receive, send))

        [reader] = bucket.opened
        assert reader.closed

    def test_method_not_allowed(self, client: TestClient) -> None:
        """Unsupported methods use the error envelope too."""
        response = client.delete("/cat.png")

        assert response.status_code == 405
        assert response.json()["code"] == "METHOD_NOT_ALLOWED"


class FailingBucket(MemoryBucket):
    """MemoryBucket whose reads fail with a configurable error."""

    def __init__(self, error: Exception) -> None:
        super().__init__()
        self.error = error

    def _open_reader(self, key: str) -> ObjectReader:
        raise self.error


class TestStorageFailures:
    """Tests for storage errors surfacing through HTTP."""

    def test_permission_denied_is_502(self) -> None:
        """Backend permission problems are a bad gateway, not a client error."""
        client = TestClient(create_app(FailingBucket(PermissionDeniedError(key="cat.png"))))

        response = client.get("/cat.png")

        assert response.status_code == 502
        assert response.json()["code"] == "PERMISSION_DENIED"

    def test_backend_error_is_500_without_details(self) -> None:
        """Internal failures return a generic message."""
        error = StorageBackendError("disk on fire at /srv/secret", key="cat.png")
        client = TestClient(create_app(FailingBucket(error)))

        response = client.get("/cat.png")

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "INTERNAL"
        assert "/srv/secret" not in body["message"]

    def test_unexpected_exception_is_500(self) -> None:
        """Non-storage exceptions are caught by the generic handler."""
        client = TestClient(
            create_app(FailingBucket(RuntimeError("boom"))), raise_server_exceptions=False
        )

        response = client.get("/cat.png")

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"


class TestRequestId:
    """Tests for X-Request-Id propagation."""

    def test_generated_when_missing(self, client: TestClient) -> None:
        """Every response carries a generated UUID request id."""
        request_id = client.get("/").headers["X-Request-Id"]

        assert len(request_id) == 36
        assert request_id.count("-") == 4

    def test_echoes_incoming(self, client: TestClient) -> None:
        """An incoming request id is echoed back, also on errors."""
        response = client.get("/missing.png", headers={"X-Request-Id": "req-123"})

        assert response.headers["X-Request-Id"] == "req-123"
        assert response.json()["request_id"] == "req-123"


class TestLifespan:
    """Tests for application shutdown."""

    def test_bucket_closed_on_shutdown(self) -> None:
        """Leaving the client context closes the shared bucket."""
        bucket = MemoryBucket()

        with TestClient(create_app(bucket)) as client:
            assert client.get("/").status_code == 200
            assert not bucket.closed

        assert bucket.closed
