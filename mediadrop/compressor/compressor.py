"""
Client-side image compression.

Scales photos down to a maximum width and re-encodes them as JPEG before
upload, so phone-sized originals do not travel at full resolution. Also
handles the base64 data URLs produced by camera captures.

Example usage:
    >>> from mediadrop.compressor import compress_image
    >>> image = compress_image("./photos/cake.png", max_width=1920, quality=80)
    >>> print(image.width, image.height, len(image.data))
    1920 1440 412233
"""

import base64
import binascii
import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from mediadrop.utils.logging import get_logger, log_function_call
from mediadrop.utils.metrics import get_metrics

# Module logger
logger = get_logger(__name__)

# Module metrics
metrics = get_metrics()

DEFAULT_MAX_WIDTH = 1920
DEFAULT_QUALITY = 80
OUTPUT_MIME_TYPE = "image/jpeg"
DEFAULT_DATA_URL_MIME = "image/png"

_DATA_URL_PREFIX = re.compile(r"^data:(image/[\w.+-]+);base64,", re.IGNORECASE)


class CompressionError(Exception):
    """Raised when an image cannot be decoded or re-encoded."""


@dataclass
class CompressedImage:
    """
    Result of compressing one image.

    Attributes:
        data: JPEG-encoded bytes
        width: Output width in pixels
        height: Output height in pixels
        original_size: Size of the input in bytes
        mime_type: Always image/jpeg
    """

    data: bytes
    width: int
    height: int
    original_size: int
    mime_type: str = OUTPUT_MIME_TYPE

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def ratio(self) -> float:
        """Compressed size divided by original size."""
        if self.original_size <= 0:
            return 1.0
        return self.size / self.original_size


def scaled_dimensions(width: int, height: int, max_width: int) -> Tuple[int, int]:
    """
    Dimensions after fitting ``width`` into ``max_width``.

    Images already narrow enough keep their size; wider ones are scaled
    down keeping the aspect ratio.

    Example:
        >>> scaled_dimensions(4000, 3000, 1920)
        (1920, 1440)
    """
    if width <= max_width:
        return width, height
    new_height = max(1, round(height * max_width / width))
    return max_width, new_height


@log_function_call
def compress_image(
    source: Union[str, Path, bytes],
    max_width: int = DEFAULT_MAX_WIDTH,
    quality: int = DEFAULT_QUALITY,
) -> CompressedImage:
    """
    Resize and re-encode an image as JPEG.

    Args:
        source: Image path or raw encoded bytes
        max_width: Maximum output width in pixels
        quality: JPEG quality (1-95)

    Returns:
        CompressedImage with the JPEG payload and output dimensions

    Raises:
        ValueError: If max_width or quality is out of range
        CompressionError: If the input is not a readable image
    """
    if max_width < 1:
        raise ValueError(f"max_width must be positive (got {max_width})")
    if not 1 <= quality <= 95:
        raise ValueError(f"quality must be between 1 and 95 (got {quality})")

    if isinstance(source, (bytes, bytearray)):
        raw = bytes(source)
    else:
        path = Path(source)
        if not path.is_file():
            raise CompressionError(f"Image not found: {path}")
        raw = path.read_bytes()

    try:
        with Image.open(io.BytesIO(raw)) as img:
            img = ImageOps.exif_transpose(img)
            width, height = scaled_dimensions(img.width, img.height, max_width)
            if (width, height) != img.size:
                img = img.resize((width, height), Image.Resampling.LANCZOS)

            # JPEG has no alpha channel; flatten onto white like a canvas export
            if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
                rgba = img.convert("RGBA")
                background = Image.new("RGB", rgba.size, (255, 255, 255))
                background.paste(rgba, mask=rgba.getchannel("A"))
                img = background
            elif img.mode != "RGB":
                img = img.convert("RGB")

            buffer = io.BytesIO()
            img.save(buffer, format="JPEG", quality=quality, optimize=True)
    except (UnidentifiedImageError, OSError) as e:
        raise CompressionError(f"Cannot read image: {e}") from e

    result = CompressedImage(
        data=buffer.getvalue(),
        width=width,
        height=height,
        original_size=len(raw),
    )
    metrics.record_compression(result.original_size, result.size)

    logger.info(
        f"Compressed image to {width}x{height}: {result.original_size} -> {result.size} bytes "
        f"({result.ratio:.0%})"
    )
    return result


def decode_data_url(value: str) -> Tuple[bytes, str]:
    """
    Decode a base64 image, with or without a ``data:image/...;base64,`` prefix.

    Returns:
        Tuple of (decoded bytes, MIME type). The MIME type defaults to
        image/png when the prefix is missing.

    Raises:
        ValueError: If the value is empty or not valid base64
    """
    if not value or not value.strip():
        raise ValueError("No image data provided")

    value = value.strip()
    mime_type = DEFAULT_DATA_URL_MIME
    match = _DATA_URL_PREFIX.match(value)
    if match:
        mime_type = match.group(1).lower()
        value = value[match.end():]

    try:
        data = base64.b64decode(value, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e

    if not data:
        raise ValueError("No image data provided")
    return data, mime_type


def encode_data_url(data: bytes, mime_type: str = OUTPUT_MIME_TYPE) -> str:
    """Encode bytes as a ``data:`` URL."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
