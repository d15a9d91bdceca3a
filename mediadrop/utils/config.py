"""
Environment configuration loader for mediadrop.

Loads Google service-account credentials, the target Drive folder and upload
tuning knobs from a .env file or environment variables.
"""

import os
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Drive only accepts resumable chunks in multiples of 256 KiB
CHUNK_GRANULARITY_KB = 256


@dataclass
class UploaderConfig:
    """Uploader environment configuration."""

    # Google service account
    google_client_email: str
    google_private_key: str = field(repr=False)

    # Target folder
    drive_folder_id: str

    # Resumable uploads
    chunk_size_bytes: int = CHUNK_GRANULARITY_KB * 1024
    chunk_timeout_seconds: int = 30
    chunk_max_retries: int = 1
    max_video_size_mb: int = 500

    # Batch uploads
    max_parallel_uploads: int = 4

    # Image compression
    image_max_width: int = 1920
    image_quality: int = 80
    compress_images: bool = True

    # Plain API calls (session creation, photo uploads)
    request_timeout_seconds: int = 60

    @property
    def max_video_size_bytes(self) -> int:
        return self.max_video_size_mb * 1024 * 1024

    def validate(self) -> None:
        """
        Check numeric settings.

        Raises:
            ValueError: If a setting is out of range
        """
        granularity = CHUNK_GRANULARITY_KB * 1024
        if self.chunk_size_bytes <= 0 or self.chunk_size_bytes % granularity:
            raise ValueError(
                f"Chunk size must be a positive multiple of {CHUNK_GRANULARITY_KB}KB "
                f"(got {self.chunk_size_bytes} bytes)"
            )
        if self.chunk_max_retries < 0:
            raise ValueError("CHUNK_MAX_RETRIES cannot be negative")
        if self.max_parallel_uploads < 1:
            raise ValueError("MAX_PARALLEL_UPLOADS must be at least 1")
        if not 1 <= self.image_quality <= 95:
            raise ValueError(f"IMAGE_QUALITY must be between 1 and 95 (got {self.image_quality})")
        if self.image_max_width < 1:
            raise ValueError("IMAGE_MAX_WIDTH must be positive")

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "UploaderConfig":
        """
        Load configuration from environment variables.

        Loads the .env file at the project root (or ``env_file``) if present,
        then reads from os.environ. Variables already set in the environment
        win over the file.

        Returns:
            UploaderConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        env_path = env_file or Path(__file__).parent.parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        client_email = os.getenv("GOOGLE_CLIENT_EMAIL")
        private_key = os.getenv("GOOGLE_PRIVATE_KEY")
        folder_id = os.getenv("GOOGLE_DRIVE_FOLDER_ID")

        if not client_email:
            raise ValueError(
                "GOOGLE_CLIENT_EMAIL environment variable is required. "
                "Set it in .env or export it."
            )
        if not private_key:
            raise ValueError(
                "GOOGLE_PRIVATE_KEY environment variable is required. "
                "Set it in .env or export it."
            )
        if not folder_id:
            raise ValueError(
                "GOOGLE_DRIVE_FOLDER_ID environment variable is required. "
                "Set it in .env or export it."
            )

        config = cls(
            google_client_email=client_email,
            # Keys pasted into .env files usually carry escaped newlines
            google_private_key=private_key.replace("\\n", "\n"),
            drive_folder_id=folder_id,
            chunk_size_bytes=_int_env("UPLOAD_CHUNK_SIZE_KB", CHUNK_GRANULARITY_KB) * 1024,
            chunk_timeout_seconds=_int_env("CHUNK_TIMEOUT_SECONDS", 30),
            chunk_max_retries=_int_env("CHUNK_MAX_RETRIES", 1),
            max_video_size_mb=_int_env("MAX_VIDEO_SIZE_MB", 500),
            max_parallel_uploads=_int_env("MAX_PARALLEL_UPLOADS", 4),
            image_max_width=_int_env("IMAGE_MAX_WIDTH", 1920),
            image_quality=_int_env("IMAGE_QUALITY", 80),
            compress_images=os.getenv("COMPRESS_IMAGES", "true").lower() == "true",
            request_timeout_seconds=_int_env("REQUEST_TIMEOUT_SECONDS", 60),
        )
        config.validate()
        return config


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


# Global config instance (lazy-loaded)
_config: Optional[UploaderConfig] = None


def get_config() -> UploaderConfig:
    """
    Get or create uploader configuration singleton.

    Example:
        >>> config = get_config()
        >>> print(config.drive_folder_id)
        1AbCdEfGh
    """
    global _config
    if _config is None:
        _config = UploaderConfig.from_env()
    return _config
