"""
mediadrop

Uploads photos and videos to a Google Drive folder: client-side image
compression, Drive's resumable upload protocol for videos, retries and
progress tracking across concurrent uploads.

This package provides modular components for each stage:
- compressor: Image resizing and JPEG re-encoding
- drive: Google Drive API client (sessions, media uploads)
- uploader: Chunked resumable uploads and batch orchestration
- progress: Per-file and aggregate upload progress
- server: HTTP API for browser clients
- utils: Logging, configuration, retry and metrics helpers
"""

__version__ = "0.1.0"

from mediadrop.utils.logging import setup_logging

# Initialize default logging configuration
setup_logging()
