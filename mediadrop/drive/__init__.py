"""
Google Drive access for mediadrop.

Provides the Drive client used for resumable sessions, single-request
photo uploads and raw session PUTs, plus the exceptions it raises.
"""

from .client import DriveClient, DRIVE_SCOPES, DRIVE_UPLOAD_URL
from .errors import (
    ChunkUploadError,
    DriveApiError,
    DriveAuthError,
    DriveError,
    SessionExpiredError,
)

__all__ = [
    "DriveClient",
    "DRIVE_SCOPES",
    "DRIVE_UPLOAD_URL",
    "ChunkUploadError",
    "DriveApiError",
    "DriveAuthError",
    "DriveError",
    "SessionExpiredError",
]
