"""HTML rendering for the gallery pages."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

UPLOAD_FIELD = "myFile"

_ENV = Environment(
    loader=FileSystemLoader(Path(__file__).parent / "templates"),
    autoescape=select_autoescape(["html"]),
)


def render_index(
    keys: Iterable[str],
    *,
    max_upload_bytes: int,
    message: str | None = None,
    title: str = "Gallery",
) -> str:
    """Render the listing page with one thumbnail per object key."""
    template = _ENV.get_template("index.html")
    return template.render(
        title=title,
        keys=list(keys),
        message=message,
        upload_field=UPLOAD_FIELD,
        max_upload_mb=max_upload_bytes // 1_000_000,
    )
