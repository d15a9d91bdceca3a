"""
Google Drive v3 client.

Wraps the handful of Drive calls the uploader needs:

- service-account access tokens (google-auth)
- resumable session creation (raw HTTP, the session URL comes back in the
  Location header)
- single-request media uploads through ``files().create`` for photos
  (google-api-python-client)
- raw PUTs against a session URL: chunks, status queries and whole-file
  proxy uploads

Example usage:
    >>> from mediadrop.drive import DriveClient
    >>> client = DriveClient(get_config())
    >>> url = client.create_upload_session("speech.mp4", "video/mp4", file_size=52_428_800)
    >>> client.upload_file_bytes("cake.jpg", jpeg_bytes, "image/jpeg")
    {'id': '1xYz...', 'name': 'cake.jpg'}
"""

import io
import json
import threading
import time
from typing import Any, BinaryIO, Dict, Optional, Union

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from mediadrop.drive.errors import DriveApiError, DriveAuthError
from mediadrop.utils.config import UploaderConfig
from mediadrop.utils.logging import get_logger, log_function_call
from mediadrop.utils.metrics import get_metrics
from mediadrop.utils.retry import (
    CircuitBreaker,
    CircuitBreakerError,
    RetryConfig,
    is_transient_error,
    retry_call,
)

# Module logger
logger = get_logger(__name__)

# Module metrics
metrics = get_metrics()

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Attempts for session creation and photo uploads
API_MAX_ATTEMPTS = 3

SESSION_ERROR_MESSAGES = {
    401: "Authentication failed - check Google credentials",
    403: "Permission denied - check Google Drive folder permissions",
    404: "Google Drive folder not found - check folder ID",
}


class DriveClient:
    """
    Google Drive client bound to one service account and target folder.

    Args:
        config: Uploader configuration (credentials, folder, timeouts)
        session: requests session for raw HTTP calls (created if None)
        credentials: Pre-built google-auth credentials (built from config if None)
    """

    def __init__(
        self,
        config: UploaderConfig,
        session: Optional[requests.Session] = None,
        credentials: Optional[Any] = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self._credentials = credentials
        self._token_lock = threading.Lock()
        # googleapiclient services are not thread-safe; keep one per thread
        self._local = threading.local()
        self._breaker = CircuitBreaker(
            failure_threshold=5,
            timeout=60.0,
            expected_exception=(requests.RequestException, DriveApiError),
        )

    def __repr__(self) -> str:
        return f"DriveClient(folder={self.config.drive_folder_id!r})"

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _get_credentials(self) -> Any:
        if self._credentials is None:
            try:
                self._credentials = service_account.Credentials.from_service_account_info(
                    {
                        "type": "service_account",
                        "client_email": self.config.google_client_email,
                        "private_key": self.config.google_private_key,
                        "token_uri": GOOGLE_TOKEN_URI,
                    },
                    scopes=DRIVE_SCOPES,
                )
            except (ValueError, GoogleAuthError) as e:
                raise DriveAuthError(f"Invalid Google service account credentials: {e}") from e
        return self._credentials

    def get_access_token(self) -> str:
        """
        Return a valid OAuth access token, refreshing it when needed.

        Raises:
            DriveAuthError: If credentials cannot be built or refreshed
        """
        with self._token_lock:
            credentials = self._get_credentials()
            if not credentials.valid:
                logger.debug("Refreshing Google access token")
                try:
                    credentials.refresh(Request())
                except (GoogleAuthError, requests.RequestException) as e:
                    metrics.record_drive_error(operation="auth", error_type=type(e).__name__)
                    raise DriveAuthError(f"Failed to get access token: {e}") from e
            if not credentials.token:
                raise DriveAuthError("Failed to get access token")
            return credentials.token

    def _drive_service(self) -> Any:
        service = getattr(self._local, "service", None)
        if service is None:
            service = build(
                "drive",
                "v3",
                credentials=self._get_credentials(),
                cache_discovery=False,
            )
            self._local.service = service
        return service

    # ------------------------------------------------------------------
    # Resumable sessions
    # ------------------------------------------------------------------

    @log_function_call
    def create_upload_session(
        self,
        filename: str,
        mime_type: str,
        file_size: Optional[int] = None,
        folder_id: Optional[str] = None,
    ) -> str:
        """
        Initiate a resumable upload and return its session URL.

        Args:
            filename: Name the file gets in Drive
            mime_type: MIME type of the media
            file_size: Total size in bytes, if known
            folder_id: Parent folder (defaults to the configured folder)

        Returns:
            Session URL to PUT chunks against

        Raises:
            ValueError: If filename or mime_type is empty
            DriveAuthError: If no access token can be obtained
            DriveApiError: If Drive rejects the request or is unreachable
        """
        if not filename or not mime_type:
            raise ValueError("filename and mime_type are required")

        size_label = f"{file_size / 1024 / 1024:.2f}MB" if file_size else "unknown size"
        logger.info(f"Creating resumable upload for: {filename} ({size_label})")

        headers = {
            "Authorization": f"Bearer {self.get_access_token()}",
            "Content-Type": "application/json; charset=UTF-8",
            "X-Upload-Content-Type": mime_type,
        }
        if file_size is not None:
            headers["X-Upload-Content-Length"] = str(file_size)

        body = {
            "name": filename,
            "parents": [folder_id or self.config.drive_folder_id],
            "mimeType": mime_type,
        }

        try:
            upload_url = retry_call(
                lambda: self._breaker.call(self._post_session, headers, body),
                RetryConfig(
                    max_attempts=API_MAX_ATTEMPTS,
                    base_delay=1.0,
                    max_delay=10.0,
                    retry_if=is_transient_error,
                ),
                name="create_upload_session",
            )
        except requests.Timeout as e:
            raise DriveApiError("Request timeout - Google Drive API is slow to respond") from e
        except requests.ConnectionError as e:
            raise DriveApiError("Network error - unable to reach Google Drive API") from e
        except CircuitBreakerError as e:
            raise DriveApiError("Google Drive is failing repeatedly, upload paused") from e

        logger.info(f"Resumable upload URL created for {filename}")
        return upload_url

    def _post_session(self, headers: Dict[str, str], body: Dict[str, Any]) -> str:
        with metrics.track_drive_call("session"):
            response = self.session.post(
                DRIVE_UPLOAD_URL,
                params={"uploadType": "resumable"},
                headers=headers,
                data=json.dumps(body),
                timeout=self.config.request_timeout_seconds,
            )

        logger.info(
            f"Resumable upload initiation response: {response.status_code} {response.reason}"
        )

        if not response.ok:
            metrics.record_drive_error(operation="session", error_type=str(response.status_code))
            logger.error(
                f"Error initiating resumable upload: {response.status_code} {response.reason}: "
                f"{response.text[:500]}"
            )
            message = SESSION_ERROR_MESSAGES.get(
                response.status_code,
                f"Failed to initiate upload: {response.status_code} {response.reason}",
            )
            raise DriveApiError(message, status_code=response.status_code)

        upload_url = response.headers.get("Location")
        if not upload_url:
            metrics.record_drive_error(operation="session", error_type="missing_location")
            raise DriveApiError(
                "No upload URL returned from Google Drive", status_code=response.status_code
            )
        return upload_url

    def send_chunk(
        self,
        upload_url: str,
        data: bytes,
        content_range: str,
        timeout: float,
    ) -> requests.Response:
        """
        PUT one chunk to a session URL.

        HTTP errors are returned, not raised; connection errors and timeouts
        propagate as requests exceptions.
        """
        with metrics.track_drive_call("chunk"):
            return self.session.put(
                upload_url,
                data=data,
                headers={
                    "Content-Range": content_range,
                    "Content-Length": str(len(data)),
                },
                timeout=timeout,
            )

    def query_upload_status(
        self,
        upload_url: str,
        total_size: int,
        timeout: float,
    ) -> requests.Response:
        """Ask Drive how many bytes of a session it has committed."""
        with metrics.track_drive_call("status"):
            return self.session.put(
                upload_url,
                data=b"",
                headers={
                    "Content-Range": f"bytes */{total_size}",
                    "Content-Length": "0",
                },
                timeout=timeout,
            )

    @log_function_call
    def put_file(
        self,
        upload_url: str,
        data: Union[bytes, BinaryIO],
        mime_type: str,
        filename: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Upload a whole file to a session URL in one request.

        Returns:
            Drive file resource (``id`` and ``name`` at least)

        Raises:
            DriveApiError: If Drive answers with a non-2xx status
        """
        logger.info(f"Proxying upload to Google Drive for: {filename or 'unnamed file'}")

        with metrics.track_drive_call("put"):
            response = self.session.put(
                upload_url,
                data=data,
                headers={"Content-Type": mime_type or "application/octet-stream"},
                timeout=self.config.request_timeout_seconds,
            )

        if not response.ok:
            metrics.record_drive_error(operation="put", error_type=str(response.status_code))
            logger.error(f"Drive upload error: {response.text[:500]}")
            raise DriveApiError(
                f"Drive upload failed: {response.status_code}", status_code=response.status_code
            )

        result = parse_file_resource(response, fallback_name=filename)
        logger.info(f"Successfully uploaded to Google Drive: {result}")
        return result

    # ------------------------------------------------------------------
    # Single-request media uploads
    # ------------------------------------------------------------------

    @log_function_call
    def upload_file_bytes(
        self,
        name: str,
        data: bytes,
        mime_type: str,
        folder_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a Drive file from an in-memory payload.

        Args:
            name: File name in Drive
            data: File content
            mime_type: MIME type of the content
            folder_id: Parent folder (defaults to the configured folder)

        Returns:
            Drive file resource with ``id`` and ``name``

        Raises:
            DriveAuthError: If credentials are invalid
            DriveApiError: If Drive rejects the upload
        """
        body = {
            "name": name,
            "parents": [folder_id or self.config.drive_folder_id],
            "mimeType": mime_type,
        }

        def _create() -> Dict[str, Any]:
            media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)
            try:
                with metrics.track_drive_call("create"):
                    return (
                        self._drive_service()
                        .files()
                        .create(body=body, media_body=media, fields="id,name")
                        .execute()
                    )
            except HttpError as e:
                status = e.resp.status
                metrics.record_drive_error(operation="create", error_type=str(status))
                raise DriveApiError(
                    f"Drive upload failed: {status} {getattr(e, 'reason', '')}".strip(),
                    status_code=status,
                ) from e

        try:
            resource = retry_call(
                _create,
                RetryConfig(
                    max_attempts=API_MAX_ATTEMPTS,
                    base_delay=1.0,
                    max_delay=10.0,
                    retry_if=is_transient_error,
                ),
                name="upload_file_bytes",
            )
        except GoogleAuthError as e:
            raise DriveAuthError(f"Failed to get access token: {e}") from e

        logger.info(f"Uploaded {name} ({len(data)} bytes), file ID: {resource.get('id')}")
        return resource


def parse_file_resource(response: requests.Response, fallback_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Read the Drive file resource from a successful upload response.

    Drive normally answers with JSON; when it does not, a placeholder ID of
    the form ``uploaded_<epoch ms>`` is returned so callers still get an ID.
    """
    try:
        result = response.json()
    except ValueError:
        logger.info("Response is not JSON, creating basic result")
        result = None

    if not isinstance(result, dict):
        result = {}

    result.setdefault("id", f"uploaded_{int(time.time() * 1000)}")
    if fallback_name is not None:
        result.setdefault("name", fallback_name)
    return result
