"""
Unit tests for photo and video uploads.

The Drive client is a MagicMock; photos are real images generated with
Pillow so the compression step runs for real.
"""

import base64
import io
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from mediadrop.drive.errors import DriveApiError, DriveError
from mediadrop.progress import UploadProgress
from mediadrop.uploader.media import (
    MediaKind,
    MediaUploadResult,
    detect_media_kind,
    upload_captured_photo,
    upload_media_batch,
    upload_media_file,
    upload_photo,
    upload_video,
)
from mediadrop.utils.config import UploaderConfig
from mediadrop.utils.logging import get_correlation_id, set_correlation_id

SESSION_URL = "https://www.googleapis.com/upload/drive/v3/files?upload_id=abc"


def _config(**overrides) -> UploaderConfig:
    values = dict(
        google_client_email="svc@example.com",
        google_private_key="key",
        drive_folder_id="folder123",
    )
    values.update(overrides)
    return UploaderConfig(**values)


def _client() -> MagicMock:
    client = MagicMock()
    client.upload_file_bytes.side_effect = lambda name, data, mime: {"id": f"id-{name}", "name": name}
    client.create_upload_session.return_value = SESSION_URL

    done = MagicMock()
    done.status_code = 200
    done.headers = {}
    done.json.return_value = {"id": "video-1", "name": "speech.mp4"}
    client.send_chunk.return_value = done
    return client


def _image(path: Path, size=(400, 300)) -> Path:
    Image.new("RGB", size, (120, 60, 30)).save(path)
    return path


def _video(path: Path, size=1000) -> Path:
    path.write_bytes(b"\x00" * size)
    return path


def _recording_progress():
    progress = UploadProgress()
    events = []
    progress.add_listener(lambda upload_id, pct: events.append((upload_id, pct)))
    return progress, events


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("mediadrop.utils.retry.time.sleep"):
        yield


class TestDetectMediaKind:
    """Tests for detect_media_kind."""

    @pytest.mark.parametrize(
        "name, kind",
        [
            ("cake.jpg", MediaKind.IMAGE),
            ("guests.PNG", MediaKind.IMAGE),
            ("speech.mp4", MediaKind.VIDEO),
            ("dance.mov", MediaKind.VIDEO),
            ("notes.txt", MediaKind.UNSUPPORTED),
            ("no_extension", MediaKind.UNSUPPORTED),
        ],
    )
    def test_kinds(self, name, kind):
        """Test media kind detection by extension."""
        assert detect_media_kind(name)[0] is kind

    def test_returns_mime_type(self):
        """Test that the guessed MIME type is returned."""
        assert detect_media_kind("speech.mp4") == (MediaKind.VIDEO, "video/mp4")


class TestUploadPhoto:
    """Tests for upload_photo."""

    def test_compressed_as_jpeg(self, tmp_path: Path):
        """Test that photos are compressed and uploaded as JPEG."""
        source = _image(tmp_path / "cake.png")
        client = _client()
        progress, events = _recording_progress()
        progress.start("cake.png-0")

        result = upload_photo(source, client, _config(image_max_width=200), progress, "cake.png-0")

        name, data, mime = client.upload_file_bytes.call_args.args
        assert name == "cake.jpg"
        assert mime == "image/jpeg"
        with Image.open(io.BytesIO(data)) as img:
            assert img.size == (200, 150)
        assert result.success
        assert result.file_id == "id-cake.jpg"
        assert result.bytes_uploaded == len(data)
        assert [pct for _, pct in events] == [0, 10, 30, 100]

    def test_without_compression(self, tmp_path: Path):
        """Test uploading the original photo bytes."""
        source = _image(tmp_path / "cake.png")
        client = _client()

        upload_photo(source, client, _config(compress_images=False))

        name, data, mime = client.upload_file_bytes.call_args.args
        assert name == "cake.png"
        assert mime == "image/png"
        assert data == source.read_bytes()


class TestUploadVideo:
    """Tests for upload_video."""

    def test_resumable_upload(self, tmp_path: Path):
        """Test a video upload through a resumable session."""
        source = _video(tmp_path / "speech.mp4")
        client = _client()
        progress, events = _recording_progress()
        progress.start("speech.mp4-0")

        result = upload_video(source, client, _config(), progress, "speech.mp4-0")

        client.create_upload_session.assert_called_once_with("speech.mp4", "video/mp4", file_size=1000)
        assert client.send_chunk.call_args.args[2] == "bytes 0-999/1000"
        assert result.success
        assert result.kind is MediaKind.VIDEO
        assert result.file_id == "video-1"
        assert [pct for _, pct in events] == [0, 5, 10, 95, 100]

    def test_too_large(self, tmp_path: Path):
        """Test that oversized videos are rejected before any request."""
        source = _video(tmp_path / "speech.mp4", size=2 * 1024 * 1024)
        client = _client()

        with pytest.raises(ValueError, match="Video file must be less than 1MB"):
            upload_video(source, client, _config(max_video_size_mb=1))
        client.create_upload_session.assert_not_called()

    def test_chunk_failure_raises(self, tmp_path: Path):
        """Test that a failed chunk raises DriveError."""
        source = _video(tmp_path / "speech.mp4")
        client = _client()
        failed = MagicMock(status_code=400, reason="Bad Request", headers={})
        client.send_chunk.return_value = failed

        with pytest.raises(DriveError, match="Chunk 1/1 failed"):
            upload_video(source, client, _config())


class TestUploadMediaFile:
    """Tests for upload_media_file."""

    def test_photo_success(self, tmp_path: Path):
        """Test a successful photo upload."""
        source = _image(tmp_path / "cake.jpg")
        progress = UploadProgress()

        result = upload_media_file(source, _client(), _config(), progress)

        assert isinstance(result, MediaUploadResult)
        assert result.success
        assert result.upload_id == "cake.jpg-0"
        assert progress.get("cake.jpg-0") == 100
        assert progress.is_idle()

    def test_video_success(self, tmp_path: Path):
        """Test a successful video upload."""
        source = _video(tmp_path / "speech.mp4")

        result = upload_media_file(source, _client(), _config(), upload_id="speech.mp4-4")

        assert result.success
        assert result.upload_id == "speech.mp4-4"
        assert result.bytes_uploaded == 1000

    def test_drive_failure_resets_progress(self, tmp_path: Path):
        """Test that a Drive failure resets progress to 0."""
        source = _image(tmp_path / "cake.jpg")
        client = _client()
        client.upload_file_bytes.side_effect = DriveApiError("Drive upload failed: 500", status_code=500)
        progress, events = _recording_progress()

        result = upload_media_file(source, client, _config(), progress)

        assert not result.success
        assert result.error_message == "Drive upload failed: 500"
        assert result.file_id is None
        assert events[-1] == ("cake.jpg-0", 0)
        assert progress.is_idle()

    def test_oversized_video(self, tmp_path: Path):
        """Test that an oversized video comes back as a failed result."""
        source = _video(tmp_path / "speech.mp4", size=2 * 1024 * 1024)

        result = upload_media_file(source, _client(), _config(max_video_size_mb=1))

        assert not result.success
        assert result.error_message == "Video file must be less than 1MB"

    def test_unsupported_type(self, tmp_path: Path):
        """Test that unsupported files are rejected."""
        source = tmp_path / "notes.txt"
        source.write_text("hello")

        result = upload_media_file(source, _client(), _config())

        assert not result.success
        assert result.kind is MediaKind.UNSUPPORTED
        assert result.error_message == "Unsupported media type: text/plain"

    def test_missing_file(self, tmp_path: Path):
        """Test that a missing file is reported."""
        result = upload_media_file(tmp_path / "gone.jpg", _client(), _config())

        assert not result.success
        assert "File not found" in result.error_message

    def test_corrupt_image(self, tmp_path: Path):
        """Test that an unreadable image is reported."""
        source = tmp_path / "broken.jpg"
        source.write_bytes(b"not really a jpeg")

        result = upload_media_file(source, _client(), _config())

        assert not result.success
        assert "Cannot read image" in result.error_message


class TestUploadCapturedPhoto:
    """Tests for upload_captured_photo."""

    def test_uploads_png(self):
        """Test uploading a captured PNG frame."""
        client = _client()
        payload = b"\x89PNG\r\n\x1a\nfake"
        data_url = "data:image/png;base64," + base64.b64encode(payload).decode()
        progress = UploadProgress()

        result = upload_captured_photo(data_url, client, _config(), progress)

        name, data, mime = client.upload_file_bytes.call_args.args
        assert re.fullmatch(r"photo-\d+\.png", name)
        assert data == payload
        assert mime == "image/png"
        assert result.kind is MediaKind.CAPTURED
        assert result.file_id == f"id-{name}"
        assert progress.is_idle()

    def test_invalid_data(self):
        """Test that an empty data URL is rejected."""
        client = _client()

        with pytest.raises(ValueError):
            upload_captured_photo("", client, _config())
        client.upload_file_bytes.assert_not_called()

    def test_drive_failure_propagates(self):
        """Test that Drive errors propagate to the caller."""
        client = _client()
        client.upload_file_bytes.side_effect = DriveApiError("quota", status_code=403)
        data_url = base64.b64encode(b"png").decode()

        with pytest.raises(DriveApiError):
            upload_captured_photo(data_url, client, _config())

    @patch("mediadrop.uploader.media.metrics")
    def test_transport_error_resets_progress(self, mock_metrics):
        """Test that a broken connection is recorded, resets progress and propagates."""
        client = _client()
        seen_ids = []

        def broken(name, data, mime):
            seen_ids.append((name, get_correlation_id()))
            raise ConnectionResetError("socket closed")

        client.upload_file_bytes.side_effect = broken
        progress, events = _recording_progress()
        set_correlation_id("caller")

        with pytest.raises(ConnectionResetError):
            upload_captured_photo(base64.b64encode(b"png").decode(), client, _config(), progress)

        name, corr_id = seen_ids[0]
        assert corr_id == f"{name}-0"
        assert [pct for _, pct in events] == [0, 0]
        assert progress.is_idle()
        mock_metrics.record_upload_failure.assert_called_once_with("captured")
        mock_metrics.upload_finished.assert_called_once()
        assert get_correlation_id() != "caller"


class TestUploadMediaBatch:
    """Tests for upload_media_batch."""

    def test_results_in_input_order(self, tmp_path: Path):
        """Test that batch results follow input order."""
        files = [
            _image(tmp_path / "a.jpg"),
            _video(tmp_path / "b.mp4"),
            tmp_path / "c.txt",
            _image(tmp_path / "d.png"),
        ]
        files[2].write_text("nope")
        progress = UploadProgress()

        results = upload_media_batch(files, _client(), _config(), progress)

        assert [r.upload_id for r in results] == ["a.jpg-0", "b.mp4-1", "c.txt-2", "d.png-3"]
        assert [r.success for r in results] == [True, True, False, True]
        assert progress.is_idle()
        assert set(progress.snapshot()) == {"a.jpg-0", "b.mp4-1", "c.txt-2", "d.png-3"}

    def test_worker_count_bounded(self, tmp_path: Path):
        """Test that the thread pool respects max_parallel_uploads."""
        files = [_image(tmp_path / f"p{i}.jpg", size=(20, 20)) for i in range(5)]

        with patch("mediadrop.uploader.media.ThreadPoolExecutor", wraps=ThreadPoolExecutor) as pool:
            results = upload_media_batch(files, _client(), _config(max_parallel_uploads=2))

        assert pool.call_args.kwargs["max_workers"] == 2
        assert all(r.success for r in results)

    def test_empty_batch(self):
        """Test an empty batch."""
        assert upload_media_batch([], _client(), _config()) == []

    def test_each_file_has_own_correlation_id(self, tmp_path: Path):
        """Test that every file in a batch uploads under its own correlation ID."""
        files = [_image(tmp_path / "a.jpg", size=(20, 20)), _image(tmp_path / "b.jpg", size=(20, 20))]
        client = _client()
        seen = {}

        def record(name, data, mime):
            seen[name] = get_correlation_id()
            return {"id": f"id-{name}", "name": name}

        client.upload_file_bytes.side_effect = record

        results = upload_media_batch(files, client, _config())

        assert all(r.success for r in results)
        assert seen == {"a.jpg": "a.jpg-0", "b.jpg": "b.jpg-1"}
