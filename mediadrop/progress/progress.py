"""
Progress tracking across concurrent uploads.

Each upload is keyed by an ID of the form ``<filename>-<index>`` and moves
through fixed milestones:

- image: 0 on start, 10 before compression, 30 after, 100 when Drive confirms
- video: 0 on start, 5 after validation, 10 once the session exists, then
  ``10 + committed / total * 85`` (halves rounded up) after every chunk,
  100 when done

A failed upload is reset to 0. Listeners registered with ``add_listener`` are
called with ``(upload_id, percent)`` on every change.
"""

import threading
from typing import Callable, Dict, List, Set

from mediadrop.utils.logging import get_logger

logger = get_logger(__name__)

IMAGE_BEFORE_COMPRESSION = 10
IMAGE_AFTER_COMPRESSION = 30

VIDEO_VALIDATED = 5
VIDEO_SESSION_CREATED = 10
VIDEO_CHUNK_SPAN = 85

COMPLETE = 100

ProgressListener = Callable[[str, int], None]


def video_chunk_progress(committed: int, total: int) -> int:
    """
    Percentage for a video after ``committed`` of ``total`` bytes are stored.

    Example:
        >>> video_chunk_progress(512, 1024)
        53
    """
    if total <= 0:
        return VIDEO_SESSION_CREATED + VIDEO_CHUNK_SPAN
    fraction = min(max(committed / total, 0.0), 1.0)
    # Halves round up
    return VIDEO_SESSION_CREATED + int(fraction * VIDEO_CHUNK_SPAN + 0.5)


class UploadProgress:
    """Thread-safe map of upload ID to percent complete."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._percent: Dict[str, int] = {}
        self._active: Set[str] = set()
        self._listeners: List[ProgressListener] = []

    def add_listener(self, listener: ProgressListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def start(self, upload_id: str) -> None:
        with self._lock:
            self._percent[upload_id] = 0
            self._active.add(upload_id)
        self._notify(upload_id, 0)

    def update(self, upload_id: str, percent: float) -> int:
        """
        Move an upload forward.

        Values are clamped to 0..100 and never lower the stored percentage.

        Returns:
            The percentage now stored
        """
        value = int(min(max(round(percent), 0), COMPLETE))
        with self._lock:
            current = self._percent.get(upload_id, 0)
            if value <= current and upload_id in self._percent:
                return current
            self._percent[upload_id] = value
        self._notify(upload_id, value)
        return value

    def reset(self, upload_id: str) -> None:
        with self._lock:
            self._percent[upload_id] = 0
        self._notify(upload_id, 0)

    def finish(self, upload_id: str) -> None:
        with self._lock:
            self._active.discard(upload_id)

    def get(self, upload_id: str) -> int:
        with self._lock:
            return self._percent.get(upload_id, 0)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._percent)

    def active_uploads(self) -> List[str]:
        with self._lock:
            return sorted(self._active)

    def is_idle(self) -> bool:
        with self._lock:
            return not self._active

    def overall(self) -> float:
        """Mean percentage over every tracked upload (0 when none)."""
        with self._lock:
            if not self._percent:
                return 0.0
            return sum(self._percent.values()) / len(self._percent)

    def _notify(self, upload_id: str, percent: int) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(upload_id, percent)
            except Exception as e:
                logger.warning(f"Progress listener failed for {upload_id}: {e}")
