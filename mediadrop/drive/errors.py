"""Exceptions raised at the Google Drive boundary."""

from typing import Optional


class DriveError(Exception):
    """Base class for Drive failures."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DriveAuthError(DriveError):
    """Service-account credentials are missing or rejected."""


class DriveApiError(DriveError):
    """Drive answered with an error status or an unusable response."""


class SessionExpiredError(DriveError):
    """The resumable session URL is gone (404/410) and must be recreated."""


class ChunkUploadError(DriveError):
    """A resumable chunk could not be delivered."""

    def __init__(
        self,
        message: str,
        chunk_index: int,
        total_chunks: int,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
