"""
Photo and video uploads to Google Drive.

Photos are compressed to JPEG and sent in a single request. Videos go
through a resumable session and are sent in chunks. Camera captures arrive
as base64 data URLs and are uploaded as PNG.

Example usage:
    >>> from mediadrop.uploader import upload_media_batch
    >>> from mediadrop.progress import UploadProgress
    >>> progress = UploadProgress()
    >>> results = upload_media_batch(["cake.jpg", "speech.mp4"], client, config, progress)
    >>> for result in results:
    ...     print(result.upload_id, result.success, result.file_id)
"""

import mimetypes
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from mediadrop.compressor import compress_image, decode_data_url
from mediadrop.drive.client import DriveClient
from mediadrop.drive.errors import DriveError
from mediadrop.progress import (
    COMPLETE,
    IMAGE_AFTER_COMPRESSION,
    IMAGE_BEFORE_COMPRESSION,
    VIDEO_SESSION_CREATED,
    VIDEO_VALIDATED,
    UploadProgress,
    video_chunk_progress,
)
from mediadrop.uploader.resumable import ResumableUploader
from mediadrop.utils.config import UploaderConfig
from mediadrop.utils.logging import (
    clear_correlation_id,
    get_logger,
    log_function_call,
    set_correlation_id,
)
from mediadrop.utils.metrics import get_metrics

# Module logger
logger = get_logger(__name__)

# Module metrics
metrics = get_metrics()

CAPTURED_PHOTO_MIME = "image/png"


class MediaKind(str, Enum):
    """What kind of media a file holds, from its MIME type."""

    IMAGE = "image"
    VIDEO = "video"
    CAPTURED = "captured"
    UNSUPPORTED = "unsupported"


@dataclass
class MediaUploadResult:
    """
    Result of uploading one photo or video.

    Attributes:
        success: Whether Drive confirmed the upload
        upload_id: Progress key (``<filename>-<index>``)
        local_path: Source path (empty for captured photos)
        kind: Media kind
        file_id: Drive file ID (None if failed)
        file_name: Name the file got in Drive
        bytes_uploaded: Bytes sent to Drive
        duration_seconds: Upload time in seconds
        error_message: Error description (None if successful)
    """

    success: bool
    upload_id: str
    local_path: str
    kind: MediaKind
    file_id: Optional[str]
    file_name: Optional[str]
    bytes_uploaded: int
    duration_seconds: float
    error_message: Optional[str] = None


def detect_media_kind(path: Union[str, Path]) -> Tuple[MediaKind, Optional[str]]:
    """
    Classify a file by the MIME type its name implies.

    Example:
        >>> detect_media_kind("speech.mp4")
        (<MediaKind.VIDEO: 'video'>, 'video/mp4')
    """
    mime_type, _ = mimetypes.guess_type(str(path))
    if mime_type is None:
        return MediaKind.UNSUPPORTED, None
    if mime_type.startswith("image/"):
        return MediaKind.IMAGE, mime_type
    if mime_type.startswith("video/"):
        return MediaKind.VIDEO, mime_type
    return MediaKind.UNSUPPORTED, mime_type


def make_upload_id(path: Union[str, Path], index: int) -> str:
    return f"{Path(path).name}-{index}"


def upload_photo(
    path: Union[str, Path],
    client: DriveClient,
    config: UploaderConfig,
    progress: Optional[UploadProgress] = None,
    upload_id: Optional[str] = None,
) -> MediaUploadResult:
    """
    Compress a photo and upload it in one request.

    Raises:
        CompressionError: If the image cannot be decoded
        DriveError: If Drive rejects the upload
    """
    path = Path(path)
    progress = progress if progress is not None else UploadProgress()
    upload_id = upload_id or make_upload_id(path, 0)
    start_time = time.time()

    progress.update(upload_id, IMAGE_BEFORE_COMPRESSION)
    if config.compress_images:
        image = compress_image(path, max_width=config.image_max_width, quality=config.image_quality)
        data, mime_type, name = image.data, image.mime_type, f"{path.stem}.jpg"
    else:
        mime_type = detect_media_kind(path)[1] or "application/octet-stream"
        data, name = path.read_bytes(), path.name
    progress.update(upload_id, IMAGE_AFTER_COMPRESSION)

    resource = client.upload_file_bytes(name, data, mime_type)
    progress.update(upload_id, COMPLETE)

    return MediaUploadResult(
        success=True,
        upload_id=upload_id,
        local_path=str(path),
        kind=MediaKind.IMAGE,
        file_id=resource.get("id"),
        file_name=resource.get("name", name),
        bytes_uploaded=len(data),
        duration_seconds=time.time() - start_time,
    )


def upload_video(
    path: Union[str, Path],
    client: DriveClient,
    config: UploaderConfig,
    progress: Optional[UploadProgress] = None,
    upload_id: Optional[str] = None,
) -> MediaUploadResult:
    """
    Upload a video through a resumable session.

    Raises:
        ValueError: If the video exceeds MAX_VIDEO_SIZE_MB
        DriveError: If the session cannot be created or a chunk fails
    """
    path = Path(path)
    progress = progress if progress is not None else UploadProgress()
    upload_id = upload_id or make_upload_id(path, 0)
    start_time = time.time()

    file_size = path.stat().st_size
    if file_size > config.max_video_size_bytes:
        raise ValueError(f"Video file must be less than {config.max_video_size_mb}MB")
    progress.update(upload_id, VIDEO_VALIDATED)

    mime_type = detect_media_kind(path)[1] or "video/mp4"
    upload_url = client.create_upload_session(path.name, mime_type, file_size=file_size)
    progress.update(upload_id, VIDEO_SESSION_CREATED)

    uploader = ResumableUploader.from_config(
        client,
        config,
        on_progress=lambda committed, total: progress.update(
            upload_id, video_chunk_progress(committed, total)
        ),
    )
    result = uploader.upload(upload_url, path, total_size=file_size)
    if not result.success:
        raise DriveError(result.error_message or "Video upload failed")
    progress.update(upload_id, COMPLETE)

    return MediaUploadResult(
        success=True,
        upload_id=upload_id,
        local_path=str(path),
        kind=MediaKind.VIDEO,
        file_id=result.file_id,
        file_name=result.resource.get("name", path.name),
        bytes_uploaded=result.bytes_uploaded,
        duration_seconds=time.time() - start_time,
    )


@log_function_call
def upload_captured_photo(
    data_url: str,
    client: DriveClient,
    config: UploaderConfig,
    progress: Optional[UploadProgress] = None,
) -> MediaUploadResult:
    """
    Upload a camera capture given as a base64 data URL.

    The file is named ``photo-<epoch ms>.png``.

    Raises:
        ValueError: If the data URL is empty or not valid base64
        DriveError: If Drive rejects the upload
        OSError: If the connection to Drive breaks (raised unchanged)
    """
    start_time = time.time()
    data, _ = decode_data_url(data_url)
    name = f"photo-{int(time.time() * 1000)}.png"
    upload_id = f"{name}-0"

    set_correlation_id(upload_id)
    if progress is not None:
        progress.start(upload_id)
    metrics.upload_started()
    try:
        with metrics.track_upload():
            resource = client.upload_file_bytes(name, data, CAPTURED_PHOTO_MIME)
    except Exception as e:
        logger.error(f"Photo upload failed for {name}: {str(e) or type(e).__name__}")
        metrics.record_upload_failure(MediaKind.CAPTURED.value)
        if progress is not None:
            progress.reset(upload_id)
        raise
    finally:
        metrics.upload_finished()
        if progress is not None:
            progress.finish(upload_id)
        clear_correlation_id()

    if progress is not None:
        progress.update(upload_id, COMPLETE)
    metrics.record_upload_success(len(data), MediaKind.CAPTURED.value)
    logger.info(f"Photo uploaded successfully to Google Drive: {resource.get('id')}")

    return MediaUploadResult(
        success=True,
        upload_id=upload_id,
        local_path="",
        kind=MediaKind.CAPTURED,
        file_id=resource.get("id"),
        file_name=resource.get("name", name),
        bytes_uploaded=len(data),
        duration_seconds=time.time() - start_time,
    )


def upload_media_file(
    path: Union[str, Path],
    client: DriveClient,
    config: UploaderConfig,
    progress: Optional[UploadProgress] = None,
    upload_id: Optional[str] = None,
) -> MediaUploadResult:
    """
    Upload one photo or video, picking the route from its MIME type.

    Never raises: failures come back as a result with ``success=False`` and
    the file's progress reset to 0.

    Args:
        path: Local file to upload
        client: Drive client
        config: Uploader configuration
        progress: Shared progress tracker (a private one is used if None)
        upload_id: Progress key (defaults to ``<filename>-0``)

    Returns:
        MediaUploadResult with success status and details
    """
    path = Path(path)
    progress = progress if progress is not None else UploadProgress()
    upload_id = upload_id or make_upload_id(path, 0)
    kind, mime_type = detect_media_kind(path)
    start_time = time.time()

    set_correlation_id(upload_id)
    progress.start(upload_id)
    metrics.upload_started()
    logger.info(f"Uploading {kind.value}: {path}")

    try:
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        with metrics.track_upload():
            if kind is MediaKind.IMAGE:
                result = upload_photo(path, client, config, progress, upload_id)
            elif kind is MediaKind.VIDEO:
                result = upload_video(path, client, config, progress, upload_id)
            else:
                raise ValueError(f"Unsupported media type: {mime_type or 'unknown'}")
    except Exception as e:
        error_msg = str(e) or type(e).__name__
        logger.error(f"Upload failed for {path.name}: {error_msg}")
        progress.reset(upload_id)
        metrics.record_upload_failure(kind.value)
        return MediaUploadResult(
            success=False,
            upload_id=upload_id,
            local_path=str(path),
            kind=kind,
            file_id=None,
            file_name=None,
            bytes_uploaded=0,
            duration_seconds=time.time() - start_time,
            error_message=error_msg,
        )
    finally:
        progress.finish(upload_id)
        metrics.upload_finished()
        clear_correlation_id()

    metrics.record_upload_success(result.bytes_uploaded, kind.value)
    logger.info(
        f"Uploaded {path.name} in {result.duration_seconds:.2f}s, file ID: {result.file_id}"
    )
    return result


def upload_media_batch(
    paths: Sequence[Union[str, Path]],
    client: DriveClient,
    config: UploaderConfig,
    progress: Optional[UploadProgress] = None,
) -> List[MediaUploadResult]:
    """
    Upload several files concurrently.

    Uses at most ``config.max_parallel_uploads`` worker threads. Results are
    returned in the order of ``paths``; one failure does not stop the others.

    Example:
        >>> results = upload_media_batch(["a.jpg", "b.mp4"], client, config)
        >>> all(r.success for r in results)
        True
    """
    if not paths:
        return []

    progress = progress if progress is not None else UploadProgress()
    workers = min(config.max_parallel_uploads, len(paths))
    logger.info(f"Uploading {len(paths)} files with {workers} workers")

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mediadrop-upload") as pool:
        futures = [
            pool.submit(upload_media_file, path, client, config, progress, make_upload_id(path, index))
            for index, path in enumerate(paths)
        ]
        results = [future.result() for future in futures]

    # Log summary
    successful = sum(1 for r in results if r.success)
    total_bytes = sum(r.bytes_uploaded for r in results if r.success)
    total_mb = total_bytes / (1024 * 1024)

    logger.info(
        f"Batch upload complete: {successful}/{len(results)} successful, "
        f"{total_mb:.2f}MB uploaded"
    )

    return results
