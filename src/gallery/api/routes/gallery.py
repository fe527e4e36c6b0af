"""Gallery routes: list, upload and serve images.

Endpoints:
- GET  /        render the listing page
- POST /        upload the multipart field ``myFile`` then render the listing page
- GET  /{key}   stream the object's bytes

Objects are stored under the client-supplied filename as-is; only the
selected driver's own key rules apply.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import IO

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.types import Receive, Scope, Send

from gallery.api.errors import GalleryHttpError
from gallery.api.rendering import UPLOAD_FIELD, render_index
from gallery.storage.bucket import Bucket, ObjectReader, guess_content_type
from gallery.storage.errors import ObjectStorageError
from gallery.storage.limits import (
    SizeLimitedWriter,
    check_declared_request_size,
    check_declared_size,
    copy_stream,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Gallery"])


def get_bucket(request: Request) -> Bucket:
    """Return the process-wide Bucket injected by create_app()."""
    bucket: Bucket = request.app.state.bucket
    return bucket


def get_max_upload_bytes(request: Request) -> int:
    """Return the configured upload ceiling."""
    limit: int = request.app.state.max_upload_bytes
    return limit


def _declared_content_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise GalleryHttpError(
            status_code=400,
            code="BAD_REQUEST",
            message="Invalid Content-Length header",
        ) from e


def _list_page_html(bucket: Bucket, max_upload_bytes: int, message: str | None = None) -> str:
    keys = [obj.key for obj in bucket.list()]
    return render_index(keys, max_upload_bytes=max_upload_bytes, message=message)


def _store_upload(
    bucket: Bucket,
    key: str,
    source: IO[bytes],
    content_type: str | None,
    limit: int,
) -> int:
    """Stream ``source`` into the bucket, aborting when it crosses ``limit``."""
    with SizeLimitedWriter(bucket.open_writer(key, content_type=content_type), limit) as writer:
        return copy_stream(source, writer)


def _stream_object(reader: ObjectReader) -> Iterator[bytes]:
    try:
        yield from reader.iter_chunks()
    except ObjectStorageError as e:
        logger.error("Read failed mid-stream: key=%s code=%s", reader.key, e.code.value)
        raise


class ObjectResponse(StreamingResponse):
    """Stream an ObjectReader and close it however the response ends.

    The reader is closed after the body is sent, and also when the client
    disconnects or sending fails before the first chunk.
    """

    def __init__(self, reader: ObjectReader, media_type: str, headers: dict[str, str]) -> None:
        super().__init__(_stream_object(reader), media_type=media_type, headers=headers)
        self.reader = reader

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.reader.close()


@router.get("/", response_class=HTMLResponse)
def list_images(
    bucket: Bucket = Depends(get_bucket),
    max_upload_bytes: int = Depends(get_max_upload_bytes),
) -> HTMLResponse:
    """Render the listing page with every object key in the bucket."""
    return HTMLResponse(_list_page_html(bucket, max_upload_bytes))


@router.post("/", response_class=HTMLResponse)
async def upload_image(
    request: Request,
    bucket: Bucket = Depends(get_bucket),
    max_upload_bytes: int = Depends(get_max_upload_bytes),
) -> HTMLResponse:
    """Store the uploaded ``myFile`` under its filename, then render the listing.

    The request length is checked coarsely before the body is read; the file
    part is then held to the exact limit, both by its parsed size and while
    streaming into the bucket.
    """
    check_declared_request_size(_declared_content_length(request), max_upload_bytes)

    form = await request.form(max_files=1)
    try:
        upload = form.get(UPLOAD_FIELD)
        if not isinstance(upload, UploadFile):
            raise GalleryHttpError(
                status_code=400,
                code="MISSING_FILE",
                message=f"Multipart field {UPLOAD_FIELD!r} with a file is required",
            )
        if not upload.filename:
            raise GalleryHttpError(
                status_code=400,
                code="MISSING_FILENAME",
                message="Uploaded file has no filename",
            )

        key = upload.filename
        check_declared_size(upload.size, max_upload_bytes, key=key)
        content_type = upload.content_type or guess_content_type(key)

        written = await run_in_threadpool(
            _store_upload, bucket, key, upload.file, content_type, max_upload_bytes
        )
        logger.info("Stored upload: key=%s bytes=%d", key, written)
    finally:
        await form.close()

    html = await run_in_threadpool(
        _list_page_html, bucket, max_upload_bytes, f"Uploaded {key}"
    )
    return HTMLResponse(html)


@router.get("/{key:path}")
def get_image(key: str, bucket: Bucket = Depends(get_bucket)) -> ObjectResponse:
    """Stream the object's bytes; 404 when the key does not exist."""
    reader = bucket.open_reader(key)
    headers = {"Content-Length": str(reader.size)}
    if reader.metadata.etag:
        headers["ETag"] = f'"{reader.metadata.etag}"'
    return ObjectResponse(
        reader,
        media_type=reader.content_type or guess_content_type(key),
        headers=headers,
    )
