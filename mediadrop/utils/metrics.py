"""
Prometheus metrics for upload monitoring.

Tracks upload success/failure rates, chunk outcomes, Drive API latency and
compression effectiveness.

Metrics Provided:
    - upload_requests_total: Counter for media uploads by status and kind
    - upload_bytes_total: Counter for bytes delivered to Drive
    - upload_duration_seconds: Histogram for per-file upload latency
    - chunk_requests_total: Counter for resumable chunks by outcome
    - chunk_retries_total: Counter for chunk retries
    - drive_api_errors_total: Counter for Drive API errors
    - drive_api_duration_seconds: Histogram for Drive API latency
    - compression_ratio: Histogram of compressed/original size
    - active_uploads: Gauge for uploads in flight

Usage:
    from mediadrop.utils.metrics import get_metrics

    metrics = get_metrics()
    with metrics.track_upload():
        result = upload_media_file(...)

    # Start metrics server:
    python -m mediadrop.utils.metrics --port 9090
"""

import os
import signal
from contextlib import nullcontext
from typing import Any, Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    start_http_server,
    REGISTRY,
)

from mediadrop.utils.logging import get_logger

# Module-level logger
logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

class PrometheusMetrics:
    """
    Centralized Prometheus metrics for mediadrop.

    Example:
        >>> metrics = PrometheusMetrics(registry=CollectorRegistry())
        >>> metrics.record_upload_success(bytes_uploaded=1024, kind="image")
    """

    def __init__(self, enabled: bool = True, registry: Optional[Any] = None) -> None:
        """
        Initialize metrics collectors.

        Args:
            enabled: Whether metrics collection is enabled
            registry: Custom Prometheus registry (uses default if None)
        """
        self.enabled = enabled
        self.registry = registry if registry is not None else REGISTRY

        if not self.enabled:
            logger.info("Metrics collection disabled")
            return

        # ====================================================================
        # Media Uploads
        # ====================================================================

        self.upload_requests = Counter(
            name="upload_requests_total",
            documentation="Total number of media uploads",
            labelnames=["status", "kind"],  # status: success/failure, kind: image/video
            registry=self.registry,
        )

        self.upload_bytes = Counter(
            name="upload_bytes_total",
            documentation="Total bytes uploaded to Google Drive",
            registry=self.registry,
        )

        self.upload_duration = Histogram(
            name="upload_duration_seconds",
            documentation="Time spent uploading a single media file",
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
            registry=self.registry,
        )

        self.active_uploads = Gauge(
            name="active_uploads",
            documentation="Number of media uploads currently in flight",
            registry=self.registry,
        )

        # ====================================================================
        # Resumable Chunks
        # ====================================================================

        self.chunk_requests = Counter(
            name="chunk_requests_total",
            documentation="Resumable upload chunk requests",
            labelnames=["outcome"],  # partial, complete, failed
            registry=self.registry,
        )

        self.chunk_retries = Counter(
            name="chunk_retries_total",
            documentation="Chunk retries after a failed chunk",
            registry=self.registry,
        )

        # ====================================================================
        # Drive API
        # ====================================================================

        self.drive_api_errors = Counter(
            name="drive_api_errors_total",
            documentation="Total Google Drive API errors",
            labelnames=["operation", "error_type"],  # operation: session/chunk/create/put
            registry=self.registry,
        )

        self.drive_api_duration = Histogram(
            name="drive_api_duration_seconds",
            documentation="Google Drive API call latency",
            labelnames=["operation"],
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry,
        )

        # ====================================================================
        # Compression
        # ====================================================================

        self.compression_ratio = Histogram(
            name="compression_ratio",
            documentation="Compressed size divided by original size",
            buckets=[0.05, 0.1, 0.2, 0.3, 0.5, 0.75, 1.0, 1.5],
            registry=self.registry,
        )

        self.app_info = Info(
            name="application",
            documentation="Application metadata",
            registry=self.registry,
        )
        self.app_info.info({"name": "mediadrop", "version": "0.1.0"})

        logger.debug("PrometheusMetrics initialized with all collectors")

    def track_upload(self):
        """
        Context manager timing one media upload.

        Example:
            >>> with metrics.track_upload():
            ...     upload_video(path, client, config)
        """
        if not self.enabled:
            return nullcontext()

        return self.upload_duration.time()

    def track_drive_call(self, operation: str):
        """Context manager timing a Drive API call."""
        if not self.enabled:
            return nullcontext()

        return self.drive_api_duration.labels(operation=operation).time()

    def upload_started(self) -> None:
        if self.enabled:
            self.active_uploads.inc()

    def upload_finished(self) -> None:
        if self.enabled:
            self.active_uploads.dec()

    def record_upload_success(self, bytes_uploaded: int, kind: str = "unknown") -> None:
        """
        Record successful upload.

        Args:
            bytes_uploaded: Number of bytes sent to Drive
            kind: Media kind (image, video, captured)
        """
        if not self.enabled:
            return

        self.upload_requests.labels(status="success", kind=kind).inc()
        self.upload_bytes.inc(bytes_uploaded)

    def record_upload_failure(self, kind: str = "unknown") -> None:
        if not self.enabled:
            return

        self.upload_requests.labels(status="failure", kind=kind).inc()

    def record_chunk(self, outcome: str) -> None:
        if not self.enabled:
            return

        self.chunk_requests.labels(outcome=outcome).inc()

    def record_chunk_retry(self) -> None:
        if not self.enabled:
            return

        self.chunk_retries.inc()

    def record_drive_error(self, operation: str, error_type: str) -> None:
        """
        Record Drive API error.

        Args:
            operation: Drive operation (session, chunk, create, put)
            error_type: Error type (exception class name or HTTP status)
        """
        if not self.enabled:
            return

        self.drive_api_errors.labels(operation=operation, error_type=error_type).inc()

    def record_compression(self, original_bytes: int, compressed_bytes: int) -> None:
        if not self.enabled or original_bytes <= 0:
            return

        self.compression_ratio.observe(compressed_bytes / original_bytes)


# ============================================================================
# Global Metrics Instance
# ============================================================================

_metrics_instance: Optional[PrometheusMetrics] = None


def get_metrics() -> PrometheusMetrics:
    """
    Get global metrics instance (singleton).

    Collection is disabled when METRICS_ENABLED=false.
    """
    global _metrics_instance

    if _metrics_instance is None:
        enabled = os.getenv("METRICS_ENABLED", "true").lower() == "true"
        _metrics_instance = PrometheusMetrics(enabled=enabled)

    return _metrics_instance


# ============================================================================
# Metrics Server
# ============================================================================

def start_metrics_server(port: int = 9090, addr: str = "0.0.0.0", block: bool = True) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)
        addr: Address to bind to (default: 0.0.0.0 - all interfaces)
        block: Wait forever after starting (standalone mode)
    """
    logger.info(f"Starting Prometheus metrics server on {addr}:{port}")

    start_http_server(port=port, addr=addr)
    logger.info(f"Metrics server running at http://{addr}:{port}/metrics")

    if not block:
        return

    try:
        signal.pause()
    except KeyboardInterrupt:
        logger.info("Metrics server shutting down")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="mediadrop metrics server")
    parser.add_argument("--port", type=int, default=9090, help="Metrics server port (default: 9090)")
    parser.add_argument("--addr", type=str, default="0.0.0.0", help="Address to bind to")

    args = parser.parse_args()
    get_metrics()
    start_metrics_server(port=args.port, addr=args.addr)
