"""Gallery service configuration.

Settings are read once from the process environment at startup. A missing
bucket URL or an unparsable number is a fatal ConfigError: the service must
not start serving with a half-valid configuration.

Environment Variables:
    GALLERY_BUCKET_URL: Bucket connection URL (required), e.g. "mem://",
        "file:///srv/gallery", "s3://my-bucket?region=eu-west-1", "gs://my-bucket"
    PORT: TCP listen port (default: 8080)
    GALLERY_HOST: Bind address (default: 0.0.0.0)
    GALLERY_MAX_UPLOAD_BYTES: Upload size ceiling in bytes (default: 100000000)
    GALLERY_LOG_LEVEL: Logging level name (default: INFO)
    GALLERY_LIST_ON_STARTUP: Set to "0" to skip logging every object key at startup
        (default: enabled)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from gallery.storage.limits import DEFAULT_MAX_UPLOAD_BYTES

GALLERY_BUCKET_URL_ENV = "GALLERY_BUCKET_URL"
PORT_ENV = "PORT"
GALLERY_HOST_ENV = "GALLERY_HOST"
GALLERY_MAX_UPLOAD_BYTES_ENV = "GALLERY_MAX_UPLOAD_BYTES"
GALLERY_LOG_LEVEL_ENV = "GALLERY_LOG_LEVEL"
GALLERY_LIST_ON_STARTUP_ENV = "GALLERY_LIST_ON_STARTUP"

DEFAULT_PORT = 8080
DEFAULT_HOST = "0.0.0.0"
DEFAULT_LOG_LEVEL = "INFO"


class ConfigError(Exception):
    """Raised when the environment does not describe a valid configuration."""

    pass


@dataclass(frozen=True)
class Settings:
    """Startup configuration.

    Attributes:
        bucket_url: Bucket connection URL; its scheme selects the driver.
        port: TCP listen port.
        host: Bind address.
        max_upload_bytes: Largest accepted upload in bytes.
        log_level: Logging level name.
        list_on_startup: Log every object key once the bucket is open.
    """

    bucket_url: str
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    log_level: str = DEFAULT_LOG_LEVEL
    list_on_startup: bool = True


def _get_env_bool(env: Mapping[str, str], key: str, default: bool = False) -> bool:
    """Get boolean from environment mapping."""
    val = env.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


def _get_env_int(env: Mapping[str, str], key: str, default: int, *, minimum: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from the environment.

    Args:
        environ: Mapping to read instead of ``os.environ`` (for tests).

    Returns:
        Validated Settings.

    Raises:
        ConfigError: If GALLERY_BUCKET_URL is missing or a value is invalid.
    """
    env = os.environ if environ is None else environ

    bucket_url = env.get(GALLERY_BUCKET_URL_ENV, "").strip()
    if not bucket_url:
        raise ConfigError(f"{GALLERY_BUCKET_URL_ENV} is required")

    port = _get_env_int(env, PORT_ENV, DEFAULT_PORT, minimum=1)
    if port > 65535:
        raise ConfigError(f"{PORT_ENV} must be <= 65535, got {port}")

    log_level = env.get(GALLERY_LOG_LEVEL_ENV, "").strip().upper() or DEFAULT_LOG_LEVEL
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"{GALLERY_LOG_LEVEL_ENV} is not a logging level: {log_level!r}")

    return Settings(
        bucket_url=bucket_url,
        port=port,
        host=env.get(GALLERY_HOST_ENV, "").strip() or DEFAULT_HOST,
        max_upload_bytes=_get_env_int(
            env, GALLERY_MAX_UPLOAD_BYTES_ENV, DEFAULT_MAX_UPLOAD_BYTES, minimum=0
        ),
        log_level=log_level,
        list_on_startup=_get_env_bool(env, GALLERY_LIST_ON_STARTUP_ENV, True),
    )
