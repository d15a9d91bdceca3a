"""
Chunk planning and status interpretation for Drive resumable uploads.

A file of ``total`` bytes is sent as ``ceil(total / chunk_size)`` chunks.
Each PUT carries ``Content-Range: bytes <start>-<end>/<total>``. Drive answers
308 (Resume Incomplete) with a ``Range: bytes=0-<last>`` header while more
data is expected, and 200/201 with the file resource once the last byte
arrives.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

# Drive requires every chunk except the last to be a multiple of this
CHUNK_GRANULARITY = 256 * 1024

# HTTP 308 "Resume Incomplete"
RESUME_INCOMPLETE = 308

_RANGE_HEADER = re.compile(r"^\s*bytes\s*=\s*(\d+)\s*-\s*(\d+)\s*$", re.IGNORECASE)


class ChunkOutcome(str, Enum):
    """How Drive answered a chunk PUT."""

    PARTIAL = "partial"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class Chunk:
    """
    One byte range of a file.

    Attributes:
        index: 0-based chunk number
        start: First byte offset (inclusive)
        end: Last byte offset (inclusive)
    """

    index: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def content_range(self, total_size: int) -> str:
        return content_range(self.start, self.end, total_size)


def validate_chunk_size(chunk_size: int) -> None:
    """
    Raises:
        ValueError: If chunk_size is not a positive multiple of 256 KiB
    """
    if chunk_size <= 0 or chunk_size % CHUNK_GRANULARITY:
        raise ValueError(
            f"Chunk size must be a positive multiple of {CHUNK_GRANULARITY} bytes "
            f"(got {chunk_size})"
        )


def content_range(start: int, end: int, total_size: int) -> str:
    """
    Build a Content-Range header value.

    Example:
        >>> content_range(0, 262143, 1000000)
        'bytes 0-262143/1000000'
        >>> content_range(0, -1, 0)
        'bytes */0'
    """
    if total_size == 0:
        return "bytes */0"
    return f"bytes {start}-{end}/{total_size}"


def plan_chunks(total_size: int, chunk_size: int) -> List[Chunk]:
    """
    Split ``total_size`` bytes into consecutive chunks.

    Args:
        total_size: File size in bytes
        chunk_size: Bytes per chunk (the last chunk may be shorter)

    Returns:
        Chunks covering [0, total_size) in order; empty for an empty file

    Raises:
        ValueError: If total_size is negative or chunk_size is invalid
    """
    if total_size < 0:
        raise ValueError(f"total_size cannot be negative (got {total_size})")
    validate_chunk_size(chunk_size)

    total_chunks = math.ceil(total_size / chunk_size)
    chunks = []
    for index in range(total_chunks):
        start = index * chunk_size
        end = min(start + chunk_size, total_size) - 1
        chunks.append(Chunk(index=index, start=start, end=end))
    return chunks


def count_chunks(total_size: int, chunk_size: int) -> int:
    return math.ceil(total_size / chunk_size) if total_size > 0 else 1


def classify_status(status_code: int) -> ChunkOutcome:
    """
    Map an HTTP status from a chunk PUT to an outcome.

    308 means the chunk was stored and more is expected, 2xx means the
    upload is complete, anything else is a failure.
    """
    if status_code == RESUME_INCOMPLETE:
        return ChunkOutcome.PARTIAL
    if 200 <= status_code < 300:
        return ChunkOutcome.COMPLETE
    return ChunkOutcome.FAILED


def parse_range_header(value: Optional[str]) -> int:
    """
    Next byte offset Drive expects, from a 308 ``Range`` header.

    Example:
        >>> parse_range_header("bytes=0-524287")
        524288
        >>> parse_range_header(None)
        0

    Raises:
        ValueError: If the header is present but malformed
    """
    if value is None or not value.strip():
        # No Range header: Drive has not stored any bytes yet
        return 0
    match = _RANGE_HEADER.match(value)
    if not match:
        raise ValueError(f"Malformed Range header: {value!r}")
    return int(match.group(2)) + 1
