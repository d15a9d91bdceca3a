"""
HTTP API for browser uploads.

Endpoints:
    POST /api/upload/photo      - JSON {imageBase64}; uploads a camera capture
    POST /api/upload/video-url  - JSON {filename, mimeType, fileSize?}; creates
                                  a resumable session and returns its URL
    POST /api/upload/proxy      - raw body, ?uploadUrl=...&filename=...; PUTs
                                  the whole body to an existing session
    POST /api/upload/video      - raw body, ?filename=...; spools to a temp
                                  file and runs the chunked upload server-side
    GET  /health                - liveness

Every error answer is JSON ``{"error": "..."}``.

Example usage:
    >>> server = create_server("127.0.0.1", 3000, client, config)
    >>> server.serve_forever()
"""

import json
import os
import tempfile
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

from mediadrop import __version__
from mediadrop.drive.client import DriveClient
from mediadrop.drive.errors import DriveAuthError, DriveError
from mediadrop.uploader.media import MediaKind, detect_media_kind, upload_captured_photo
from mediadrop.uploader.resumable import ResumableUploader
from mediadrop.utils.config import UploaderConfig
from mediadrop.utils.logging import clear_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)

# Request bodies are copied to disk in blocks of this size
SPOOL_BLOCK_SIZE = 1024 * 1024


class ApiError(Exception):
    """Error answered to the client with a status code."""

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def _error_status(error: DriveError) -> int:
    if isinstance(error, DriveAuthError):
        return 500
    if error.status_code is not None and 400 <= error.status_code < 600:
        return error.status_code
    return 500


def make_handler(client: DriveClient, config: UploaderConfig) -> type:
    """Build a request handler class bound to ``client`` and ``config``."""

    class UploadHandler(BaseHTTPRequestHandler):
        """HTTP request handler for the upload API."""

        server_version = f"mediadrop/{__version__}"

        # Request body bytes not yet read
        _unread = 0

        def log_message(self, format: str, *args: Any) -> None:
            """Override to use our logger instead of stderr."""
            logger.info(f"{self.address_string()} - {format % args}")

        def send_error(
            self, code: int, message: Optional[str] = None, explain: Optional[str] = None
        ) -> None:
            """Answer protocol-level errors (bad request line, unknown method) as JSON."""
            try:
                short, _ = self.responses[code]
            except KeyError:
                short = "Error"
            self.log_error("code %d, message %s", code, message)
            self.close_connection = True

            body = json.dumps({"error": message or short}).encode()
            has_body = code >= 200 and code not in (204, 304)
            self.send_response(code, message)
            self.send_header("Connection", "close")
            if has_body:
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if has_body and self.command != "HEAD":
                self.wfile.write(body)

        # --------------------------------------------------------------
        # Dispatch
        # --------------------------------------------------------------

        def do_GET(self) -> None:  # noqa: N802
            path = urlsplit(self.path).path
            if path == "/health":
                self._send_json(200, {"status": "ok", "version": __version__})
            else:
                self._send_json(404, {"error": "Not found"})

        def do_POST(self) -> None:  # noqa: N802
            parts = urlsplit(self.path)
            routes = {
                "/api/upload/photo": self._upload_photo,
                "/api/upload/video-url": self._create_video_url,
                "/api/upload/proxy": self._proxy_upload,
                "/api/upload/video": self._upload_video,
            }
            try:
                self._unread = self._content_length()
            except ApiError as e:
                self._unread = 0
                self.close_connection = True
                self._send_json(e.status, {"error": e.message})
                return

            route = routes.get(parts.path)
            if route is None:
                self._drain()
                self._send_json(404, {"error": "Not found"})
                return

            query = {key: values[0] for key, values in parse_qs(parts.query).items()}
            set_correlation_id(f"{parts.path}-{id(self)}")
            try:
                status, payload = route(query)
            except ApiError as e:
                logger.error(f"{parts.path} failed: {e.message}")
                status, payload = e.status, {"error": e.message}
            except Exception as e:
                logger.error(f"Unexpected error in {parts.path}: {e}", exc_info=True)
                status, payload = 500, {"error": str(e) or "Unexpected server error"}
            finally:
                clear_correlation_id()
            # Unread body bytes would otherwise reset the connection
            self._drain()
            self._send_json(status, payload)

        # --------------------------------------------------------------
        # Routes
        # --------------------------------------------------------------

        def _upload_photo(self, query: Dict[str, str]) -> Tuple[int, Dict[str, Any]]:
            body = self._read_json()
            image_base64 = body.get("imageBase64")
            if not image_base64:
                raise ApiError("No imageBase64 provided", 400)

            try:
                result = upload_captured_photo(image_base64, client, config)
            except ValueError as e:
                raise ApiError(str(e), 400) from e
            except DriveError as e:
                raise ApiError(f"Failed to upload photo: {e}", 500) from e
            return 200, {"fileId": result.file_id}

        def _create_video_url(self, query: Dict[str, str]) -> Tuple[int, Dict[str, Any]]:
            body = self._read_json()
            filename = body.get("filename")
            mime_type = body.get("mimeType")
            if not filename or not mime_type:
                raise ApiError(
                    "Missing required fields: filename and mimeType are required", 400
                )

            file_size = body.get("fileSize")
            if file_size is not None and (
                isinstance(file_size, bool) or not isinstance(file_size, int) or file_size < 0
            ):
                raise ApiError("fileSize must be a non-negative integer", 400)

            try:
                upload_url = client.create_upload_session(filename, mime_type, file_size=file_size)
            except DriveError as e:
                raise ApiError(e.message, 500) from e
            return 200, {
                "uploadUrl": upload_url,
                "message": f"Resumable upload URL created for {filename}",
            }

        def _proxy_upload(self, query: Dict[str, str]) -> Tuple[int, Dict[str, Any]]:
            upload_url = query.get("uploadUrl")
            length = self._unread
            if not upload_url or not length:
                raise ApiError("Missing file or upload URL", 400)

            filename = query.get("filename") or "upload"
            mime_type = self.headers.get("Content-Type") or "application/octet-stream"
            data = self._read(length)

            try:
                resource = client.put_file(upload_url, data, mime_type, filename=filename)
            except DriveError as e:
                raise ApiError(str(e), _error_status(e)) from e
            return 200, {
                "success": True,
                "fileId": resource["id"],
                "fileName": filename,
            }

        def _upload_video(self, query: Dict[str, str]) -> Tuple[int, Dict[str, Any]]:
            filename = query.get("filename")
            length = self._unread
            if not filename or not length:
                raise ApiError("No valid video file uploaded", 400)
            if length > config.max_video_size_bytes:
                raise ApiError(f"Video file must be less than {config.max_video_size_mb}MB", 400)

            mime_type = self.headers.get("Content-Type")
            if not mime_type or not mime_type.startswith("video/"):
                kind, guessed = detect_media_kind(filename)
                mime_type = guessed if kind is MediaKind.VIDEO else "video/mp4"

            spool_path = self._spool_body(length)
            try:
                upload_url = client.create_upload_session(filename, mime_type, file_size=length)
                result = ResumableUploader.from_config(client, config).upload(
                    upload_url, spool_path, total_size=length
                )
            except DriveError as e:
                raise ApiError(e.message, _error_status(e)) from e
            finally:
                os.remove(spool_path)

            if not result.success:
                raise ApiError(result.error_message or "Video upload failed", 500)
            return 200, {"fileId": result.file_id}

        # --------------------------------------------------------------
        # Helpers
        # --------------------------------------------------------------

        def _content_length(self) -> int:
            try:
                length = int(self.headers.get("Content-Length") or 0)
            except ValueError:
                raise ApiError("Invalid Content-Length header", 400) from None
            if length < 0:
                raise ApiError("Invalid Content-Length header", 400)
            return length

        def _read(self, size: int) -> bytes:
            data = self.rfile.read(min(size, self._unread))
            self._unread -= len(data)
            return data

        def _drain(self) -> None:
            while self._unread > 0:
                if not self._read(SPOOL_BLOCK_SIZE):
                    break

        def _read_json(self) -> Dict[str, Any]:
            raw = self._read(self._unread)
            try:
                body = json.loads(raw or b"null")
            except ValueError:
                raise ApiError("Invalid JSON in request body", 400) from None
            if not isinstance(body, dict):
                raise ApiError("Invalid JSON in request body", 400)
            return body

        def _spool_body(self, length: int) -> str:
            fd, path = tempfile.mkstemp(prefix="mediadrop-", suffix=".upload")
            remaining = length
            try:
                with os.fdopen(fd, "wb") as spool:
                    while remaining > 0:
                        block = self._read(min(SPOOL_BLOCK_SIZE, remaining))
                        if not block:
                            raise ApiError("Request body ended early", 400)
                        spool.write(block)
                        remaining -= len(block)
            except BaseException:
                os.remove(path)
                raise
            return path

        def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
            body = json.dumps(payload).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

    return UploadHandler


def create_server(
    host: str,
    port: int,
    client: DriveClient,
    config: UploaderConfig,
) -> ThreadingHTTPServer:
    """Bind the upload API to ``host:port`` (port 0 picks a free port)."""
    server = ThreadingHTTPServer((host, port), make_handler(client, config))
    server.daemon_threads = True
    return server


def run_server(
    host: str = "0.0.0.0",
    port: int = 3000,
    client: Optional[DriveClient] = None,
    config: Optional[UploaderConfig] = None,
) -> None:
    """
    Run the upload API until interrupted.

    Args:
        host: Interface to bind
        port: HTTP port to listen on
        client: Drive client (built from config if None)
        config: Uploader configuration (loaded from the environment if None)
    """
    if config is None:
        from mediadrop.utils.config import get_config

        config = get_config()
    client = client or DriveClient(config)

    logger.info(f"Starting upload server on port {port}")
    server = create_server(host, port, client, config)
    try:
        logger.info(f"Upload server listening on http://{host}:{server.server_address[1]}")
        logger.info("Endpoints: /api/upload/photo, /api/upload/video-url, "
                    "/api/upload/proxy, /api/upload/video, /health")
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Upload server shutting down")
    finally:
        server.server_close()
