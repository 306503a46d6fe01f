"""Tests for menu file validation and image recompression."""

import io
import random

import pytest
from PIL import Image

from core.config import get_settings
from services.extraction.exceptions import CompressionExhaustedError, ValidationError
from services.images.normalize import (
    MenuFile,
    compress_for_model,
    compression_ladder,
    prepare_for_model,
    validate_content_type,
    validate_file_size,
    validate_menu_files,
)


def create_noise_image(
    width: int, height: int, mode: str = "RGB", format: str = "PNG"
) -> bytes:
    """Create an incompressible test image in memory."""
    channels = len(mode)
    data = random.Random(0).randbytes(width * height * channels)
    img = Image.frombytes(mode, (width, height), data)
    output = io.BytesIO()
    img.save(output, format=format)
    return output.getvalue()


@pytest.mark.parametrize(
    "content_type",
    ["application/pdf", "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"],
)
def test_allowed_content_types(content_type):
    validate_content_type(content_type)


@pytest.mark.parametrize("content_type", ["text/plain", "image/tiff", ""])
def test_rejected_content_types(content_type):
    with pytest.raises(ValidationError, match="Unsupported file type"):
        validate_content_type(content_type)


def test_empty_file_is_rejected():
    with pytest.raises(ValidationError, match="empty"):
        validate_file_size(0, "menu.jpg")


def test_file_over_limit_is_rejected():
    with pytest.raises(ValidationError, match="Maximum size is 10MB"):
        validate_file_size(10 * 1024 * 1024 + 1, "menu.jpg")


def test_too_many_files_is_rejected():
    files = [MenuFile(f"p{i}.pdf", "application/pdf", b"%PDF") for i in range(7)]
    with pytest.raises(ValidationError, match="Maximum 6 pages"):
        validate_menu_files(files)


def test_no_files_is_rejected():
    with pytest.raises(ValidationError):
        validate_menu_files([])


def test_ladder_goes_from_gentle_to_aggressive():
    steps = list(compression_ladder(min_quality=40, min_dimension=1024))
    assert steps[0] == (None, 85)
    assert steps[-1] == (1024, 40)
    assert all(quality >= 40 for _, quality in steps)
    assert all(side is None or side >= 1024 for side, _ in steps)


def test_small_file_and_pdf_pass_through():
    small = MenuFile("menu.png", "image/png", create_noise_image(20, 20))
    assert compress_for_model(small, max_bytes=1024 * 1024) is small

    pdf = MenuFile("menu.pdf", "application/pdf", b"%PDF" + b"0" * 5000)
    assert compress_for_model(pdf, max_bytes=100) is pdf


def test_oversized_image_is_recompressed_to_jpeg():
    original = MenuFile("menu.png", "image/png", create_noise_image(1200, 1200))
    limit = 3 * 1024 * 1024
    assert original.size > limit

    compressed = compress_for_model(original, max_bytes=limit)

    assert compressed.size <= limit
    assert compressed.content_type == "image/jpeg"
    assert compressed.filename == "menu.png"
    assert Image.open(io.BytesIO(compressed.data)).format == "JPEG"


def test_transparent_image_is_flattened():
    original = MenuFile("menu.png", "image/png", create_noise_image(600, 600, mode="RGBA"))
    compressed = compress_for_model(original, max_bytes=original.size - 1)
    assert Image.open(io.BytesIO(compressed.data)).mode == "RGB"


def test_compression_exhausted():
    original = MenuFile("menu.png", "image/png", create_noise_image(300, 300))
    with pytest.raises(CompressionExhaustedError) as exc_info:
        compress_for_model(original, max_bytes=1000)
    assert exc_info.value.error_code == "compression_exhausted"


def test_unreadable_image_is_a_validation_error():
    broken = MenuFile("menu.jpg", "image/jpeg", b"definitely not a jpeg")
    with pytest.raises(ValidationError, match="not a readable image"):
        compress_for_model(broken, max_bytes=4)


def test_prepare_for_model_keeps_order():
    files = [
        MenuFile("a.pdf", "application/pdf", b"%PDF-a"),
        MenuFile("b.png", "image/png", create_noise_image(10, 10)),
    ]
    assert [f.filename for f in prepare_for_model(files)] == ["a.pdf", "b.png"]


@pytest.fixture
def small_limits(monkeypatch):
    monkeypatch.setenv("MAX_PAGES", "2")
    monkeypatch.setenv("MAX_UPLOAD_BYTES", str(1024 * 1024))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_default_limits_come_from_settings(small_limits):
    files = [MenuFile(f"p{i}.pdf", "application/pdf", b"%PDF") for i in range(3)]
    with pytest.raises(ValidationError, match="Maximum 2 pages"):
        validate_menu_files(files)
    with pytest.raises(ValidationError, match="Maximum size is 1MB"):
        validate_file_size(1024 * 1024 + 1, "menu.jpg")
