"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from gallery.config import ConfigError, Settings, load_settings
from gallery.storage.limits import DEFAULT_MAX_UPLOAD_BYTES


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self) -> None:
        """Only the bucket URL is required."""
        settings = load_settings({"GALLERY_BUCKET_URL": "mem://"})

        assert settings == Settings(bucket_url="mem://")
        assert settings.port == 8080
        assert settings.host == "0.0.0.0"
        assert settings.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES
        assert settings.log_level == "INFO"
        assert settings.list_on_startup is True

    def test_all_values(self) -> None:
        """Every variable is honoured."""
        settings = load_settings(
            {
                "GALLERY_BUCKET_URL": " s3://photos?region=eu-west-1 ",
                "PORT": "9090",
                "GALLERY_HOST": "127.0.0.1",
                "GALLERY_MAX_UPLOAD_BYTES": "5000000",
                "GALLERY_LOG_LEVEL": "debug",
                "GALLERY_LIST_ON_STARTUP": "false",
            }
        )

        assert settings.bucket_url == "s3://photos?region=eu-west-1"
        assert settings.port == 9090
        assert settings.host == "127.0.0.1"
        assert settings.max_upload_bytes == 5_000_000
        assert settings.log_level == "DEBUG"
        assert settings.list_on_startup is False

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without an explicit mapping os.environ is used."""
        monkeypatch.setenv("GALLERY_BUCKET_URL", "file:///srv/gallery")
        monkeypatch.setenv("PORT", "8000")

        settings = load_settings()

        assert settings.bucket_url == "file:///srv/gallery"
        assert settings.port == 8000

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_bucket_url_required(self, value: str | None) -> None:
        """A missing or blank bucket URL is fatal."""
        env = {} if value is None else {"GALLERY_BUCKET_URL": value}

        with pytest.raises(ConfigError, match="GALLERY_BUCKET_URL"):
            load_settings(env)

    @pytest.mark.parametrize("port", ["abc", "0", "-1", "70000"])
    def test_invalid_port(self, port: str) -> None:
        """Ports must be integers in 1..65535."""
        with pytest.raises(ConfigError, match="PORT"):
            load_settings({"GALLERY_BUCKET_URL": "mem://", "PORT": port})

    def test_invalid_upload_limit(self) -> None:
        """The upload ceiling must be a non-negative integer."""
        with pytest.raises(ConfigError, match="GALLERY_MAX_UPLOAD_BYTES"):
            load_settings({"GALLERY_BUCKET_URL": "mem://", "GALLERY_MAX_UPLOAD_BYTES": "1e6"})
        with pytest.raises(ConfigError):
            load_settings({"GALLERY_BUCKET_URL": "mem://", "GALLERY_MAX_UPLOAD_BYTES": "-5"})

    def test_invalid_log_level(self) -> None:
        """Unknown logging level names are rejected."""
        with pytest.raises(ConfigError, match="GALLERY_LOG_LEVEL"):
            load_settings({"GALLERY_BUCKET_URL": "mem://", "GALLERY_LOG_LEVEL": "LOUD"})
