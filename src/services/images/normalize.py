"""Intake checks and recompression for uploaded menu files.

This module validates the files a person submits (count, declared type,
size) and shrinks photos that are larger than the vision model accepts.
Recompression walks a ladder of (longest side, JPEG quality) steps from
gentle to aggressive and stops at the first encoding under the ceiling.
PDFs are passed through untouched.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, replace

from PIL import Image, ImageOps, UnidentifiedImageError
from PIL.Image import Image as PILImage

from core.config import get_settings
from services.extraction.exceptions import CompressionExhaustedError, ValidationError


logger = logging.getLogger(__name__)

# Longest-side targets tried in order; None keeps the original size
DIMENSION_STEPS: tuple[int | None, ...] = (None, 3072, 2048, 1536, 1024)
QUALITY_STEPS: tuple[int, ...] = (85, 75, 65, 55, 45)

PDF_MIME_TYPE = "application/pdf"
ALLOWED_MIME_TYPES = frozenset(
    {
        PDF_MIME_TYPE,
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
    }
)


@dataclass(frozen=True, slots=True)
class MenuFile:
    """One source file of a menu: a PDF or a photo of a page."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_pdf(self) -> bool:
        return self.content_type == PDF_MIME_TYPE


def validate_content_type(content_type: str) -> None:
    """Validate that the content type is a PDF or a supported image format.

    Raises:
        ValidationError: If content type is not allowed
    """
    if content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(
            f"Unsupported file type: {content_type or 'unknown'}. "
            "Upload a PDF or a JPEG, PNG, GIF or WebP image."
        )


def validate_file_size(
    size: int, filename: str = "file", per_file_limit: int | None = None
) -> None:
    """Validate that a file is non-empty and within the per-file limit.

    Raises:
        ValidationError: If the file is empty or too large
    """
    if size == 0:
        raise ValidationError(f"{filename} is empty.")
    if per_file_limit is None:
        per_file_limit = get_settings().MAX_UPLOAD_BYTES
    if size > per_file_limit:
        limit_mb = per_file_limit // (1024 * 1024)
        raise ValidationError(f"{filename} is too large. Maximum size is {limit_mb}MB.")


def validate_menu_files(
    files: Sequence[MenuFile],
    max_pages: int | None = None,
    per_file_limit: int | None = None,
) -> None:
    """Check every file before anything is stored or sent to the model.

    Raises:
        ValidationError: On the first file that fails, or a bad file count
    """
    if not files:
        raise ValidationError("No files provided.")
    if max_pages is None:
        max_pages = get_settings().MAX_PAGES
    if len(files) > max_pages:
        raise ValidationError(f"Too many files. Maximum {max_pages} pages allowed.")
    for menu_file in files:
        validate_content_type(menu_file.content_type)
        validate_file_size(menu_file.size, menu_file.filename, per_file_limit)


def _to_rgb(image: PILImage) -> PILImage:
    """Flatten to RGB; transparent areas become white."""
    if image.mode == "RGB":
        return image
    if image.mode == "P":
        image = image.convert("RGBA")
    if image.mode in ("RGBA", "LA"):
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.split()[-1])
        return background
    return image.convert("RGB")


def _resize_longest_side(image: PILImage, target: int | None) -> PILImage:
    width, height = image.size
    if target is None or max(width, height) <= target:
        return image
    scale = target / max(width, height)
    new_size = (max(1, int(width * scale)), max(1, int(height * scale)))
    return image.resize(new_size, Image.Resampling.LANCZOS)


def compression_ladder(
    min_quality: int | None = None, min_dimension: int | None = None
) -> Iterator[tuple[int | None, int]]:
    """Yield (longest side, quality) steps from gentlest to most aggressive."""
    settings = get_settings()
    if min_quality is None:
        min_quality = settings.COMPRESSION_MIN_QUALITY
    if min_dimension is None:
        min_dimension = settings.COMPRESSION_MIN_DIMENSION
    qualities = [q for q in QUALITY_STEPS if q > min_quality] + [min_quality]
    for dimension in DIMENSION_STEPS:
        if dimension is not None and dimension < min_dimension:
            continue
        for quality in qualities:
            yield dimension, quality


def compress_for_model(
    menu_file: MenuFile,
    max_bytes: int | None = None,
    min_quality: int | None = None,
    min_dimension: int | None = None,
) -> MenuFile:
    """Return a version of `menu_file` no larger than `max_bytes`.

    Files already under the ceiling and PDFs are returned unchanged.
    Recompressed images are re-encoded as JPEG with EXIF orientation applied.

    Raises:
        ValidationError: If the bytes are not a readable image
        CompressionExhaustedError: If the floor is reached while still too big
    """
    if max_bytes is None:
        max_bytes = get_settings().MODEL_MAX_FILE_BYTES
    if menu_file.is_pdf or menu_file.size <= max_bytes:
        return menu_file

    try:
        image: PILImage = Image.open(io.BytesIO(menu_file.data))
        image = ImageOps.exif_transpose(image)
        image = _to_rgb(image)
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("Could not open %s for recompression: %s", menu_file.filename, e)
        raise ValidationError(f"{menu_file.filename} is not a readable image.") from e

    for dimension, quality in compression_ladder(min_quality, min_dimension):
        resized = _resize_longest_side(image, dimension)
        output = io.BytesIO()
        resized.save(output, format="JPEG", quality=quality, optimize=True)
        encoded = output.getvalue()
        if len(encoded) <= max_bytes:
            logger.info(
                "Recompressed %s from %d to %d bytes (side=%s, quality=%d)",
                menu_file.filename,
                menu_file.size,
                len(encoded),
                dimension or max(image.size),
                quality,
            )
            return replace(menu_file, content_type="image/jpeg", data=encoded)

    logger.warning(
        "Compression exhausted for %s (%d bytes)", menu_file.filename, menu_file.size
    )
    raise CompressionExhaustedError()


def prepare_for_model(
    files: Sequence[MenuFile],
    max_bytes: int | None = None,
    min_quality: int | None = None,
    min_dimension: int | None = None,
) -> list[MenuFile]:
    """Recompress every oversized image, preserving order."""
    return [
        compress_for_model(f, max_bytes, min_quality, min_dimension) for f in files
    ]
