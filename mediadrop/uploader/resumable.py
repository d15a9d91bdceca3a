"""
Chunked resumable uploads against a Drive session URL.

The uploader walks a file from offset 0, PUTting one chunk at a time. After
every 308 it continues from the offset Drive reports in the ``Range``
header, so bytes the server did not keep are sent again. A failed chunk is
retried (once by default) after asking Drive for the session's committed
offset; 404/410 end the upload because the session is gone.

Example usage:
    >>> from mediadrop.uploader import ResumableUploader
    >>> uploader = ResumableUploader(client, chunk_size=256 * 1024,
    ...                              on_progress=lambda sent, total: print(sent, total))
    >>> url = client.create_upload_session("speech.mp4", "video/mp4", file_size=size)
    >>> result = uploader.upload(url, "./videos/speech.mp4")
    >>> if result.success:
    ...     print(f"Drive file ID: {result.file_id}")
"""

import io
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterator, Optional, Tuple, Union

import requests

from mediadrop.drive.client import DriveClient, parse_file_resource
from mediadrop.drive.errors import ChunkUploadError, DriveError, SessionExpiredError
from mediadrop.uploader.chunks import (
    CHUNK_GRANULARITY,
    ChunkOutcome,
    classify_status,
    content_range,
    count_chunks,
    parse_range_header,
    validate_chunk_size,
)
from mediadrop.utils.config import UploaderConfig
from mediadrop.utils.logging import get_logger
from mediadrop.utils.metrics import get_metrics
from mediadrop.utils.retry import RetryConfig, is_transient_error, retry_call

# Module logger
logger = get_logger(__name__)

# Module metrics
metrics = get_metrics()

DEFAULT_CHUNK_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 1
SESSION_GONE_STATUSES = (404, 410)

ProgressCallback = Callable[[int, int], None]
UploadSource = Union[str, Path, bytes, BinaryIO]


@dataclass
class ChunkResponse:
    """
    Interpreted answer to a chunk PUT or status query.

    Attributes:
        outcome: PARTIAL, COMPLETE or FAILED
        status_code: HTTP status (None for network errors and timeouts)
        next_offset: Offset the next chunk must start at
        resource: Drive file resource when the upload completed
        error_message: Failure description
    """

    outcome: ChunkOutcome
    status_code: Optional[int]
    next_offset: int
    resource: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None


@dataclass
class ResumableUploadResult:
    """
    Result of a resumable upload.

    Attributes:
        success: Whether Drive confirmed the upload
        upload_url: Session URL used
        total_bytes: File size
        bytes_uploaded: Bytes Drive has committed
        chunks_sent: Chunk PUTs issued (retries included)
        retries: Chunk retries performed
        duration_seconds: Wall time of the upload
        file_id: Drive file ID (None if failed)
        resource: Drive file resource returned on completion
        error_message: Error description (None if successful)
    """

    success: bool
    upload_url: str
    total_bytes: int
    bytes_uploaded: int
    chunks_sent: int
    retries: int
    duration_seconds: float
    file_id: Optional[str] = None
    resource: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None


@dataclass
class _UploadState:
    offset: int = 0
    chunks_sent: int = 0
    retries: int = 0
    needs_resync: bool = False


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, SessionExpiredError):
        return False
    # Network errors, timeouts and stalled 308s carry no status
    if isinstance(error, ChunkUploadError) and error.status_code is None:
        return True
    return is_transient_error(error)


@contextmanager
def _open_source(source: UploadSource, total_size: Optional[int]) -> Iterator[Tuple[BinaryIO, int]]:
    if isinstance(source, (bytes, bytearray)):
        yield io.BytesIO(source), len(source)
    elif isinstance(source, (str, Path)):
        path = Path(source)
        with open(path, "rb") as stream:
            yield stream, path.stat().st_size if total_size is None else total_size
    else:
        if total_size is None:
            source.seek(0, os.SEEK_END)
            total_size = source.tell()
        yield source, total_size


class ResumableUploader:
    """
    Sends a file to a Drive resumable session in sequential chunks.

    Args:
        client: DriveClient used for the raw PUTs
        chunk_size: Bytes per chunk, a positive multiple of 256 KiB
        chunk_timeout: Seconds before a chunk PUT is abandoned
        max_retries: Extra attempts for a failed chunk
        retry_delay: Base backoff delay before a retry
        on_progress: Called with (bytes_committed, total_bytes) after each chunk
    """

    def __init__(
        self,
        client: DriveClient,
        chunk_size: int = CHUNK_GRANULARITY,
        chunk_timeout: float = DEFAULT_CHUNK_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = 1.0,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        validate_chunk_size(chunk_size)
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")

        self.client = client
        self.chunk_size = chunk_size
        self.chunk_timeout = chunk_timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.on_progress = on_progress

    @classmethod
    def from_config(
        cls,
        client: DriveClient,
        config: UploaderConfig,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "ResumableUploader":
        return cls(
            client,
            chunk_size=config.chunk_size_bytes,
            chunk_timeout=config.chunk_timeout_seconds,
            max_retries=config.chunk_max_retries,
            on_progress=on_progress,
        )

    # ------------------------------------------------------------------
    # Single requests
    # ------------------------------------------------------------------

    def send_chunk(self, upload_url: str, data: bytes, start: int, total_size: int) -> ChunkResponse:
        """
        PUT one chunk and interpret Drive's answer.

        Never raises for HTTP errors, network errors or timeouts; those come
        back as FAILED responses.
        """
        header = content_range(start, start + len(data) - 1, total_size)
        try:
            response = self.client.send_chunk(upload_url, data, header, timeout=self.chunk_timeout)
        except requests.Timeout:
            return ChunkResponse(
                ChunkOutcome.FAILED, None, start,
                error_message=f"timeout after {self.chunk_timeout}s",
            )
        except requests.RequestException as e:
            return ChunkResponse(
                ChunkOutcome.FAILED, None, start, error_message=f"network error: {e}"
            )

        outcome = classify_status(response.status_code)

        if outcome is ChunkOutcome.COMPLETE:
            return ChunkResponse(
                outcome, response.status_code, total_size,
                resource=parse_file_resource(response),
            )

        if outcome is ChunkOutcome.PARTIAL:
            try:
                next_offset = parse_range_header(response.headers.get("Range"))
            except ValueError as e:
                return ChunkResponse(ChunkOutcome.FAILED, response.status_code, start, error_message=str(e))
            if next_offset <= start:
                return ChunkResponse(
                    ChunkOutcome.FAILED, None, start,
                    error_message="server stored no bytes from this chunk",
                )
            return ChunkResponse(outcome, response.status_code, next_offset)

        return ChunkResponse(
            outcome, response.status_code, start,
            error_message=f"{response.status_code} {response.reason}",
        )

    def query_offset(self, upload_url: str, total_size: int) -> ChunkResponse:
        """
        Ask Drive how far a session has got.

        Raises:
            SessionExpiredError: If the session no longer exists
        """
        try:
            response = self.client.query_upload_status(upload_url, total_size, timeout=self.chunk_timeout)
        except requests.RequestException as e:
            logger.warning(f"Upload status query failed: {e}")
            return ChunkResponse(ChunkOutcome.FAILED, None, 0, error_message=str(e))

        if response.status_code in SESSION_GONE_STATUSES:
            raise SessionExpiredError(
                f"Upload session expired ({response.status_code})", status_code=response.status_code
            )

        outcome = classify_status(response.status_code)
        if outcome is ChunkOutcome.COMPLETE:
            return ChunkResponse(
                outcome, response.status_code, total_size, resource=parse_file_resource(response)
            )
        if outcome is ChunkOutcome.PARTIAL:
            try:
                next_offset = parse_range_header(response.headers.get("Range"))
            except ValueError as e:
                return ChunkResponse(ChunkOutcome.FAILED, response.status_code, 0, error_message=str(e))
            return ChunkResponse(outcome, response.status_code, next_offset)

        return ChunkResponse(
            outcome, response.status_code, 0,
            error_message=f"{response.status_code} {response.reason}",
        )

    # ------------------------------------------------------------------
    # Whole upload
    # ------------------------------------------------------------------

    def upload(
        self,
        upload_url: str,
        source: UploadSource,
        total_size: Optional[int] = None,
    ) -> ResumableUploadResult:
        """
        Upload ``source`` to ``upload_url`` chunk by chunk.

        Args:
            upload_url: Session URL from DriveClient.create_upload_session
            source: File path, bytes, or a seekable binary stream
            total_size: Size override (required only for unsized streams)

        Returns:
            ResumableUploadResult with success status and transfer details
        """
        start_time = time.time()
        state = _UploadState()
        total = total_size or 0

        try:
            with _open_source(source, total_size) as (stream, total):
                total_chunks = count_chunks(total, self.chunk_size)
                logger.info(
                    f"Starting resumable upload: {total} bytes, {total_chunks} chunks"
                )
                resource = self._upload_stream(upload_url, stream, total, total_chunks, state)
        except (DriveError, OSError) as e:
            logger.error(f"Resumable upload failed: {e}")
            return ResumableUploadResult(
                success=False,
                upload_url=upload_url,
                total_bytes=total,
                bytes_uploaded=state.offset,
                chunks_sent=state.chunks_sent,
                retries=state.retries,
                duration_seconds=time.time() - start_time,
                error_message=str(e),
            )

        return ResumableUploadResult(
            success=True,
            upload_url=upload_url,
            total_bytes=total,
            bytes_uploaded=total,
            chunks_sent=state.chunks_sent,
            retries=state.retries,
            duration_seconds=time.time() - start_time,
            file_id=resource.get("id"),
            resource=resource,
        )

    def _upload_stream(
        self,
        upload_url: str,
        stream: BinaryIO,
        total: int,
        total_chunks: int,
        state: _UploadState,
    ) -> Dict[str, Any]:
        while True:
            index = min(state.offset // self.chunk_size, total_chunks - 1)
            response = self._deliver_chunk(upload_url, stream, total, index, total_chunks, state)

            if response.outcome is ChunkOutcome.COMPLETE:
                state.offset = total
                self._report(total, total)
                logger.info(f"Final chunk {index + 1}/{total_chunks} uploaded, upload complete")
                return response.resource or {}

            state.offset = response.next_offset
            self._report(state.offset, total)
            logger.info(f"Chunk {index + 1}/{total_chunks} uploaded successfully")

            if state.offset >= total:
                # Every byte is stored but Drive has not confirmed the file yet
                status = self.query_offset(upload_url, total)
                if status.outcome is ChunkOutcome.COMPLETE:
                    return status.resource or {}
                raise ChunkUploadError(
                    "Upload did not finalize after the last chunk",
                    chunk_index=index,
                    total_chunks=total_chunks,
                    status_code=status.status_code,
                )

    def _deliver_chunk(
        self,
        upload_url: str,
        stream: BinaryIO,
        total: int,
        index: int,
        total_chunks: int,
        state: _UploadState,
    ) -> ChunkResponse:
        attempts = [0]

        def attempt() -> ChunkResponse:
            attempts[0] += 1
            if state.needs_resync:
                state.needs_resync = False
                status = self.query_offset(upload_url, total)
                if status.outcome is ChunkOutcome.COMPLETE:
                    return status
                if status.outcome is ChunkOutcome.PARTIAL:
                    logger.info(f"Resuming chunk {index + 1}/{total_chunks} at offset {status.next_offset}")
                    state.offset = status.next_offset
                    if state.offset >= total:
                        return status

            stream.seek(state.offset)
            data = stream.read(min(self.chunk_size, total - state.offset))
            state.chunks_sent += 1
            response = self.send_chunk(upload_url, data, state.offset, total)
            metrics.record_chunk(response.outcome.value)

            if response.outcome is ChunkOutcome.FAILED:
                logger.error(
                    f"Chunk {index + 1}/{total_chunks} failed: {response.error_message}"
                )
                if response.status_code in SESSION_GONE_STATUSES:
                    raise SessionExpiredError(
                        f"Upload session expired ({response.status_code})",
                        status_code=response.status_code,
                    )
                raise ChunkUploadError(
                    f"Chunk {index + 1}/{total_chunks} failed: {response.error_message}",
                    chunk_index=index,
                    total_chunks=total_chunks,
                    status_code=response.status_code,
                )
            return response

        def on_retry(attempt_number: int, error: Exception, delay: float) -> None:
            logger.info(f"Retrying chunk {index + 1}/{total_chunks}")
            state.retries += 1
            state.needs_resync = True
            metrics.record_chunk_retry()

        try:
            return retry_call(
                attempt,
                RetryConfig(
                    max_attempts=self.max_retries + 1,
                    base_delay=self.retry_delay,
                    max_delay=30.0,
                    exceptions=(ChunkUploadError,),
                    retry_if=_is_retryable,
                    on_retry=on_retry,
                ),
                name=f"chunk {index + 1}/{total_chunks}",
            )
        except ChunkUploadError as e:
            if attempts[0] > 1:
                raise ChunkUploadError(
                    f"Failed to upload chunk {index + 1}/{total_chunks} after retry",
                    chunk_index=index,
                    total_chunks=total_chunks,
                    status_code=e.status_code,
                ) from e
            raise

    def _report(self, sent: int, total: int) -> None:
        if self.on_progress is not None:
            self.on_progress(sent, total)
