"""
Upload pipeline for mediadrop.

Provides chunk planning, the resumable chunk uploader, and the photo/video
upload functions built on them.
"""

from .chunks import Chunk, ChunkOutcome, content_range, plan_chunks, parse_range_header
from .resumable import ChunkResponse, ResumableUploadResult, ResumableUploader
from .media import (
    MediaKind,
    MediaUploadResult,
    detect_media_kind,
    upload_captured_photo,
    upload_media_batch,
    upload_media_file,
    upload_photo,
    upload_video,
)

__all__ = [
    "Chunk",
    "ChunkOutcome",
    "content_range",
    "plan_chunks",
    "parse_range_header",
    "ChunkResponse",
    "ResumableUploadResult",
    "ResumableUploader",
    "MediaKind",
    "MediaUploadResult",
    "detect_media_kind",
    "upload_captured_photo",
    "upload_media_batch",
    "upload_media_file",
    "upload_photo",
    "upload_video",
]
