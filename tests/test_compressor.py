"""
Unit tests for image compression.

Images are generated with Pillow in temporary directories so no fixtures
need to be checked in.
"""

import base64
import io
from pathlib import Path

import pytest
from PIL import Image

from mediadrop.compressor import (
    CompressionError,
    compress_image,
    decode_data_url,
    encode_data_url,
    scaled_dimensions,
)


def _png_bytes(size=(64, 48), mode="RGB", color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class TestScaledDimensions:
    """Tests for scaled_dimensions."""

    def test_downscales_keeping_aspect(self):
        """Test downscaling keeps the aspect ratio."""
        assert scaled_dimensions(4000, 3000, 1920) == (1920, 1440)

    def test_never_upscales(self):
        """Test that small images are never enlarged."""
        assert scaled_dimensions(800, 600, 1920) == (800, 600)

    def test_exact_width(self):
        """Test an image already at the maximum width."""
        assert scaled_dimensions(1920, 1080, 1920) == (1920, 1080)

    def test_extreme_aspect_keeps_one_pixel(self):
        """Test that very wide images keep at least one pixel of height."""
        assert scaled_dimensions(10000, 1, 100) == (100, 1)


class TestCompressImage:
    """Tests for compress_image."""

    def test_resizes_large_image(self, tmp_path: Path):
        """Test compressing an image file wider than the limit."""
        source = tmp_path / "wide.png"
        Image.new("RGB", (400, 300), (10, 120, 200)).save(source)

        result = compress_image(source, max_width=200, quality=80)

        assert (result.width, result.height) == (200, 150)
        assert result.mime_type == "image/jpeg"
        assert result.original_size == source.stat().st_size
        with Image.open(io.BytesIO(result.data)) as img:
            assert img.format == "JPEG"
            assert img.size == (200, 150)

    def test_small_image_keeps_size(self):
        """Test that a small image keeps its dimensions."""
        result = compress_image(_png_bytes((64, 48)), max_width=1920)

        assert (result.width, result.height) == (64, 48)
        assert result.size == len(result.data)

    def test_transparent_image_flattened(self):
        """Test that alpha images are flattened to RGB."""
        data = _png_bytes((32, 32), mode="RGBA", color=(0, 0, 0, 0))

        result = compress_image(data)

        with Image.open(io.BytesIO(result.data)) as img:
            assert img.mode == "RGB"
            # Fully transparent pixels end up white
            r, g, b = img.getpixel((16, 16))
            assert min(r, g, b) > 240

    def test_grayscale_converted(self):
        """Test that grayscale images are converted to RGB."""
        result = compress_image(_png_bytes((20, 20), mode="L", color=128))
        with Image.open(io.BytesIO(result.data)) as img:
            assert img.mode == "RGB"

    def test_lower_quality_is_smaller(self, tmp_path: Path):
        """Test that lower JPEG quality produces fewer bytes."""
        source = tmp_path / "noise.png"
        img = Image.effect_noise((300, 300), 80).convert("RGB")
        img.save(source)

        high = compress_image(source, quality=95)
        low = compress_image(source, quality=20)

        assert low.size < high.size
        assert low.ratio < high.ratio

    def test_missing_file(self, tmp_path: Path):
        """Test that a missing file raises CompressionError."""
        with pytest.raises(CompressionError, match="Image not found"):
            compress_image(tmp_path / "missing.jpg")

    def test_not_an_image(self):
        """Test that unreadable bytes raise CompressionError."""
        with pytest.raises(CompressionError, match="Cannot read image"):
            compress_image(b"definitely not an image")

    @pytest.mark.parametrize("kwargs", [{"max_width": 0}, {"quality": 0}, {"quality": 100}])
    def test_invalid_parameters(self, kwargs):
        """Test that invalid width or quality is rejected."""
        with pytest.raises(ValueError):
            compress_image(_png_bytes(), **kwargs)


class TestDataUrls:
    """Tests for data URL decoding and encoding."""

    def test_decode_with_prefix(self):
        """Test decoding a data URL with a PNG prefix."""
        payload = _png_bytes()
        data, mime = decode_data_url("data:image/png;base64," + base64.b64encode(payload).decode())

        assert data == payload
        assert mime == "image/png"

    def test_decode_jpeg_prefix(self):
        """Test that the MIME type comes from the prefix."""
        _, mime = decode_data_url("data:image/jpeg;base64," + base64.b64encode(b"abc").decode())
        assert mime == "image/jpeg"

    def test_decode_without_prefix_defaults_to_png(self):
        """Test that bare base64 defaults to image/png."""
        data, mime = decode_data_url(base64.b64encode(b"raw-bytes").decode())

        assert data == b"raw-bytes"
        assert mime == "image/png"

    @pytest.mark.parametrize("value", ["", "   ", "data:image/png;base64,"])
    def test_decode_empty(self, value):
        """Test that empty input is rejected."""
        with pytest.raises(ValueError, match="No image data"):
            decode_data_url(value)

    def test_decode_invalid_base64(self):
        """Test that invalid base64 is rejected."""
        with pytest.raises(ValueError, match="Invalid base64"):
            decode_data_url("data:image/png;base64,@@not-base64@@")

    def test_encode_then_decode(self):
        """Test that an encoded data URL decodes back to its bytes."""
        url = encode_data_url(b"\x89PNG", "image/png")

        assert url.startswith("data:image/png;base64,")
        assert decode_data_url(url) == (b"\x89PNG", "image/png")
