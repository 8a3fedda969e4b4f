"""Pure sizing, validation and naming helpers for the image upscaler."""

import re
import time
from typing import Optional, Tuple

from .exceptions import ValidationError
from .models import ImageDimensions

MAX_FILE_SIZE_BYTES = 50 * 1024 * 1024

SUPPORTED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "image/avif",
        "image/bmp",
        "image/tiff",
        "image/gif",
    }
)
SUPPORTED_FORMATS_LABEL = "JPEG, PNG, WebP, AVIF, BMP, TIFF, GIF"

_SIZE_UNITS = ("B", "KB", "MB", "GB")
_MAX_NAME_LENGTH = 50


def calculate_upscale_factor(
    current: ImageDimensions, target_max_dimension: int = 2560
) -> float:
    """
    Calculate the magnification needed to bring the longest side to a target.

    Args:
        current: Current image dimensions
        target_max_dimension: Desired length of the longest side

    Returns:
        The scale factor, never below 1.0
    """
    max_current = current.max_dimension
    if max_current >= target_max_dimension:
        return 1.0
    return target_max_dimension / max_current


def calculate_resize_dimensions(
    original: ImageDimensions, max_dimension: int
) -> Tuple[ImageDimensions, bool]:
    """
    Calculate dimensions that fit the longest side within ``max_dimension``.

    Each axis is rounded independently, so the aspect ratio may drift by up
    to half a pixel per axis.

    Args:
        original: Source image dimensions
        max_dimension: Upper bound for the longest side

    Returns:
        Tuple of (dimensions, was_resized)
    """
    max_original = original.max_dimension
    if max_original <= max_dimension:
        return original, False

    scale = max_dimension / max_original
    resized = ImageDimensions(
        width=max(1, round(original.width * scale)),
        height=max(1, round(original.height * scale)),
    )
    return resized, True


def format_file_size(size_in_bytes: int) -> str:
    """Format a byte count using base-1024 units with one decimal place."""
    if size_in_bytes <= 0:
        return "0 B"

    value = float(size_in_bytes)
    unit_index = 0
    while value >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit_index += 1
    return f"{value:.1f} {_SIZE_UNITS[unit_index]}"


def validate_image_file(
    mime_type: str,
    size_in_bytes: int,
    max_size: int = MAX_FILE_SIZE_BYTES,
) -> Tuple[bool, Optional[str]]:
    """
    Check a submitted file's declared type and size.

    Returns:
        Tuple of (valid, error_message); the message is None when valid
    """
    if mime_type.lower() not in SUPPORTED_MIME_TYPES:
        return (
            False,
            f"Unsupported file type: {mime_type}. "
            f"Supported formats: {SUPPORTED_FORMATS_LABEL}",
        )

    if size_in_bytes > max_size:
        return (
            False,
            f"File too large: {format_file_size(size_in_bytes)}. "
            f"Maximum size: {format_file_size(max_size)}",
        )

    return True, None


def sanitize_file_name(name: str) -> str:
    """
    Turn an arbitrary file name into a safe base name.

    The extension is dropped, whitespace runs become underscores and
    anything outside ``[A-Za-z0-9_-]`` is removed. The result is capped at
    50 characters; an empty result falls back to a time-based name.
    """
    without_ext = re.sub(r"\.[^/.]+$", "", name)
    sanitized = re.sub(r"\s+", "_", without_ext)
    sanitized = re.sub(r"[^a-zA-Z0-9_-]", "", sanitized)[:_MAX_NAME_LENGTH]
    return sanitized or f"image_{int(time.time() * 1000)}"


def generate_processed_file_name(
    original_name: str,
    prefix: Optional[str] = None,
    index: Optional[int] = None,
) -> str:
    """
    Build the output name for a processed image.

    Args:
        original_name: Name the file was submitted with
        prefix: Optional user-supplied name prefix
        index: Zero-based position in the batch (surfaced one-based)

    Returns:
        ``<prefix>_<n>``, ``image_<n>`` or the sanitized original name
    """
    if prefix and index is not None:
        return f"{sanitize_file_name(prefix)}_{index + 1}"
    if index is not None:
        return f"image_{index + 1}"
    return sanitize_file_name(original_name)


def ensure_valid_image_file(
    mime_type: str, size_in_bytes: int, max_size: int = MAX_FILE_SIZE_BYTES
) -> None:
    """Raise ``ValidationError`` when ``validate_image_file`` rejects a file."""
    valid, error = validate_image_file(mime_type, size_in_bytes, max_size)
    if not valid:
        raise ValidationError(error)
