"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Adapters never read these settings directly: dependencies.py builds an
explicit config object for each one from the Settings instance.

Mock modes enable local development without Dropbox, R2 or FFmpeg.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "Clip Archive API"
    api_version: str = "v1"
    port: int = Field(
        default=3000,
        description="Port for the development server"
    )

    # Remote store selection
    storage_backend: Literal["dropbox", "r2", "mock"] = Field(
        default="dropbox",
        description="Which remote store holds the archive."
    )

    # Dropbox Configuration
    dropbox_access_token: str = Field(
        default="",
        description="Dropbox API access token. Required for the dropbox backend."
    )
    dropbox_api_url: str = Field(
        default="https://api.dropboxapi.com",
        description="Dropbox RPC endpoint host"
    )
    dropbox_content_url: str = Field(
        default="https://content.dropboxapi.com",
        description="Dropbox content (upload) endpoint host"
    )
    dropbox_link_mode: Literal["temporary", "shared"] = Field(
        default="temporary",
        description="Temporary links expire after four hours; shared links are permanent."
    )

    # R2/S3 Storage Configuration
    r2_account_id: str = Field(
        default="",
        description="Cloudflare account ID for R2"
    )
    r2_access_key_id: str = Field(
        default="",
        description="R2 access key ID"
    )
    r2_secret_access_key: str = Field(
        default="",
        description="R2 secret access key"
    )
    r2_bucket_name: str = Field(
        default="clip-archive",
        description="R2 bucket name for clip storage"
    )
    r2_endpoint_url: Optional[str] = Field(
        default=None,
        description="R2 endpoint URL. Auto-constructed from account_id if not provided."
    )
    r2_link_expiry_seconds: int = Field(
        default=3600,
        description="Lifetime of presigned playback links"
    )

    # Archive behavior
    archive_folder: str = Field(
        default="/audio",
        description="Remote folder that holds every archived clip"
    )
    naming_strategy: Literal["sequential", "fixed"] = Field(
        default="sequential",
        description="sequential: 'Clip #0001'. fixed: one name, renamed by the store on conflict."
    )
    clip_name_prefix: str = Field(
        default="Clip",
        description="Name prefix for sequential naming"
    )
    ordinal_width: int = Field(
        default=4,
        ge=1,
        description="Zero-pad width of the sequential ordinal"
    )
    fixed_clip_name: str = Field(
        default="clip",
        description="Base name used by the fixed naming strategy"
    )
    display_prefix: str = Field(
        default="",
        description="Label prepended to display names in archive listings"
    )
    target_format: Literal["mp3", "wav", "ogg", "webm", "m4a", "flac"] = Field(
        default="mp3",
        description="Archival encoding. Uploads in any other format are transcoded."
    )

    # Transcoding
    transcoder_mock_mode: bool = Field(
        default=False,
        description="Use a pass-through transcoder instead of FFmpeg."
    )
    ffmpeg_path: str = Field(
        default="ffmpeg",
        description="Path to the ffmpeg binary"
    )

    # Uploads
    upload_dir: Path = Field(
        default=Path("uploads"),
        description="Directory for temporary upload artifacts"
    )
    max_upload_size_mb: int = Field(
        default=25,
        description="Maximum clip size in MB"
    )

    # Timeouts and fan-out
    remote_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for each remote store call"
    )
    transcode_timeout_seconds: float = Field(
        default=120.0,
        description="Timeout for a single transcode"
    )
    link_concurrency: int = Field(
        default=8,
        ge=1,
        description="Maximum concurrent link resolutions per archive request"
    )

    # Static frontend
    static_dir: Optional[Path] = Field(
        default=None,
        description="Directory of static assets served at /, e.g. 'public'"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def r2_endpoint(self) -> str:
        """
        Construct R2 endpoint URL from account ID.

        R2 endpoints follow the pattern: https://{account_id}.r2.cloudflarestorage.com
        """
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set for the chosen backend.

        Returns list of missing required fields.
        """
        missing = []

        if self.storage_backend == "dropbox" and not self.dropbox_access_token:
            missing.append("DROPBOX_ACCESS_TOKEN")

        if self.storage_backend == "r2":
            if not self.r2_account_id and not self.r2_endpoint_url:
                missing.append("R2_ACCOUNT_ID or R2_ENDPOINT_URL")
            if not self.r2_access_key_id:
                missing.append("R2_ACCESS_KEY_ID")
            if not self.r2_secret_access_key:
                missing.append("R2_SECRET_ACCESS_KEY")

        if not self.archive_folder.startswith("/"):
            missing.append("ARCHIVE_FOLDER (must start with '/')")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. For tests, call
    get_settings.cache_clear() or override the dependency.
    """
    return Settings()
