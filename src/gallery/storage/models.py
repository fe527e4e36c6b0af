"""Gallery object storage data models.

Provides typed dataclasses for object metadata and listing pages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class ObjectMetadata:
    """Snapshot of one object's attributes at listing (or head) time.

    Attributes:
        key: Key of the object within the bucket namespace.
        size: Size of the object content in bytes.
        modified: Last modification timestamp (UTC).
        content_type: MIME type of the content, when the backend records one.
        etag: Backend entity tag, when available.
    """

    key: str
    size: int
    modified: datetime
    content_type: str | None = None
    etag: str | None = None

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert metadata to dictionary for JSON serialization."""
        return {
            "key": self.key,
            "size": self.size,
            "modified": self.modified.isoformat(),
            "content_type": self.content_type,
            "etag": self.etag,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str | int | None]) -> ObjectMetadata:
        """Create metadata from dictionary."""
        modified_raw = data["modified"]
        if isinstance(modified_raw, datetime):
            modified = modified_raw
        else:
            modified = datetime.fromisoformat(str(modified_raw))

        size_raw = data.get("size")
        content_type_raw = data.get("content_type")
        etag_raw = data.get("etag")

        return cls(
            key=str(data["key"]),
            size=int(size_raw) if size_raw is not None else 0,
            modified=modified,
            content_type=str(content_type_raw) if content_type_raw else None,
            etag=str(etag_raw) if etag_raw else None,
        )


@dataclass(frozen=True)
class ListPage:
    """One page of a bucket listing.

    Attributes:
        objects: Metadata for the objects on this page, in backend order.
        next_page_token: Opaque token for the next page, or None when the
            listing is complete.
    """

    objects: list[ObjectMetadata] = field(default_factory=list)
    next_page_token: str | None = None
