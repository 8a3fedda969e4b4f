"""Pillow-backed decode, resize and encode helpers for the image upscaler."""

import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError as PILUnidentifiedImageError

from .exceptions import DecodeError
from .models import ImageDimensions

OUTPUT_FORMAT = "PNG"
OUTPUT_MIME_TYPE = "image/png"
OUTPUT_EXTENSION = "png"

_PASSTHROUGH_MODES = {"RGB", "RGBA", "L", "LA"}


def decode_image(data: bytes) -> Tuple[Image.Image, ImageDimensions]:
    """
    Decode image bytes and read their intrinsic dimensions.

    Multi-frame formats (GIF, TIFF) yield their first frame.

    Raises:
        DecodeError: If the bytes are not a readable image
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (
        OSError,
        SyntaxError,
        ValueError,
        Image.DecompressionBombError,
        PILUnidentifiedImageError,
    ) as exc:
        raise DecodeError(f"Invalid image file: {exc}") from exc

    width, height = image.size
    if width <= 0 or height <= 0:
        raise DecodeError("Invalid image file: image has no pixels")
    return image, ImageDimensions(width=width, height=height)


def normalize_mode(image: Image.Image) -> Image.Image:
    """Convert palette, CMYK and high bit depth images to an RGB(A) mode."""
    if image.mode in _PASSTHROUGH_MODES:
        return image
    has_alpha = image.mode.endswith("A") or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def resize_image(image: Image.Image, dimensions: ImageDimensions) -> Image.Image:
    """Resize with the Lanczos filter."""
    return normalize_mode(image).resize(
        (dimensions.width, dimensions.height), Image.Resampling.LANCZOS
    )


def encode_image(image: Image.Image, format_type: str = OUTPUT_FORMAT) -> bytes:
    """Encode an image into the given format."""
    output_stream = io.BytesIO()
    normalize_mode(image).save(output_stream, format=format_type, compress_level=6)
    return output_stream.getvalue()


def ensure_output_format(data: bytes) -> Tuple[bytes, ImageDimensions]:
    """
    Return bytes in the canonical output format along with their size.

    Bytes that are already PNG are kept as-is; anything else is re-encoded.
    """
    image, dimensions = decode_image(data)
    if image.format == OUTPUT_FORMAT:
        return data, dimensions
    return encode_image(image), dimensions
