"""Gallery CLI.

Usage:
    python -m gallery serve
    python -m gallery ls <bucket-url> [--prefix PREFIX] [--long]

``serve`` reads its configuration from the environment (see gallery.config).

Exit codes:
    0: Success
    1: Configuration or storage error
"""

from __future__ import annotations

import argparse
import logging
import sys

from gallery.config import ConfigError, Settings, load_settings
from gallery.observability.tracing import TracingConfigError
from gallery.storage.bucket import Bucket
from gallery.storage.errors import ObjectStorageError
from gallery.storage.registry import open_bucket

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _log_startup_listing(bucket: Bucket) -> None:
    count = 0
    for obj in bucket.list():
        logger.info("Found object: key=%s size=%d", obj.key, obj.size)
        count += 1
    logger.info("Bucket holds %d object(s)", count)


def run_server(settings: Settings) -> None:
    """Open the configured bucket and serve the gallery until interrupted.

    Args:
        settings: Validated startup configuration.

    Raises:
        ObjectStorageError: If the bucket cannot be opened or listed.
    """
    import uvicorn

    from gallery.api.main import create_app

    bucket = open_bucket(settings.bucket_url)
    try:
        if settings.list_on_startup:
            _log_startup_listing(bucket)
        app = create_app(bucket, max_upload_bytes=settings.max_upload_bytes)
    except Exception:
        bucket.close()
        raise

    logger.info("Listening on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


def cmd_serve(args: argparse.Namespace) -> int:
    """Load settings from the environment and run the HTTP server."""
    try:
        settings = load_settings()
    except ConfigError as e:
        _configure_logging("INFO")
        logger.error("Invalid configuration: %s", e)
        return 1

    _configure_logging(settings.log_level)
    try:
        run_server(settings)
    except ObjectStorageError as e:
        logger.error("Cannot open bucket: %s (%s)", e, e.code.value)
        return 1
    except TracingConfigError as e:
        logger.error("Tracing setup failed: %s", e)
        return 1
    return 0


def cmd_ls(args: argparse.Namespace) -> int:
    """Print every key under the prefix, one per line."""
    _configure_logging("WARNING")
    try:
        with open_bucket(args.url) as bucket:
            for obj in bucket.list(args.prefix):
                if args.long:
                    print(f"{obj.size:>12}  {obj.modified.isoformat()}  {obj.key}")
                else:
                    print(obj.key)
    except ObjectStorageError as e:
        print(f"error: {e} ({e.code.value})", file=sys.stderr)
        return 1
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="gallery",
        description="Image gallery over a pluggable object storage bucket",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser(
        "serve",
        help="Run the HTTP server (configured via GALLERY_* environment variables)",
    )

    ls_parser = subparsers.add_parser(
        "ls",
        help="List object keys in a bucket",
    )
    ls_parser.add_argument(
        "url",
        metavar="BUCKET_URL",
        help="Bucket URL, e.g. mem://, file:///srv/images or s3://my-bucket",
    )
    ls_parser.add_argument(
        "--prefix",
        default="",
        help="Only list keys starting with this prefix",
    )
    ls_parser.add_argument(
        "--long",
        action="store_true",
        default=False,
        help="Also print size and modification time",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "serve":
        return cmd_serve(args)

    if args.command == "ls":
        return cmd_ls(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
