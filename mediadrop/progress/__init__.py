"""Per-file upload progress shared by concurrent uploads."""

from .progress import (
    COMPLETE,
    IMAGE_AFTER_COMPRESSION,
    IMAGE_BEFORE_COMPRESSION,
    VIDEO_SESSION_CREATED,
    VIDEO_VALIDATED,
    UploadProgress,
    video_chunk_progress,
)

__all__ = [
    "COMPLETE",
    "IMAGE_AFTER_COMPRESSION",
    "IMAGE_BEFORE_COMPRESSION",
    "VIDEO_SESSION_CREATED",
    "VIDEO_VALIDATED",
    "UploadProgress",
    "video_chunk_progress",
]
