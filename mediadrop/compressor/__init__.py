"""
Image compression module.

Scales photos down and re-encodes them as JPEG before upload, and decodes
base64 data URLs from camera captures.
"""

from .compressor import (
    CompressedImage,
    CompressionError,
    compress_image,
    decode_data_url,
    encode_data_url,
    scaled_dimensions,
)

__all__ = [
    "CompressedImage",
    "CompressionError",
    "compress_image",
    "decode_data_url",
    "encode_data_url",
    "scaled_dimensions",
]
