"""Image transform utilities for the images queue pipeline."""

import io
import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .exceptions import ImageDecodeError

# Content kind -> Pillow format name
SUPPORTED_FORMATS: Dict[str, str] = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/gif": "GIF",
    "image/bmp": "BMP",
    "image/webp": "WEBP",
    "image/tiff": "TIFF",
}

EXTENSION_CONTENT_TYPES: Dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}

DEFAULT_PATTERNS = "*.png;*.jpg;*.jpeg;*.gif;*.bmp;*.webp"

JPEG_QUALITY = 90


@dataclass(frozen=True)
class TransformResult:
    """Encoded output of a resize together with the dimensions involved."""

    data: bytes
    content_type: str
    source_size: Tuple[int, int]
    target_size: Tuple[int, int]


def content_type_for(file_name: str) -> Optional[str]:
    """
    Infer the content kind of a file from its extension.

    Args:
        file_name: File name or path

    Returns:
        MIME type, or None when the extension is not a supported image type
    """
    _, ext = os.path.splitext(file_name)
    return EXTENSION_CONTENT_TYPES.get(ext.lower())


def half_dimensions(width: int, height: int) -> Tuple[int, int]:
    """Halve both dimensions, never going below one pixel."""
    return max(1, width // 2), max(1, height // 2)


def derive_output_name(original_file_name: str, suffix: str = "-50") -> str:
    """
    Calculate the deterministic result object name for an original file name.

    Args:
        original_file_name: Name the producer saw on disk, e.g. "a.png"
        suffix: Marker inserted before the extension

    Returns:
        Result object name, e.g. "a-50.png"
    """
    stem, ext = os.path.splitext(os.path.basename(original_file_name))
    return f"{stem}{suffix}{ext}"


def decode_image(image_bytes: bytes) -> "Image.Image":
    """Decode and fully load image bytes, raising ImageDecodeError on bad input."""
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError, SyntaxError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Cannot decode image: {e}") from e
    return image


def encode_image(image: "Image.Image", content_type: str) -> bytes:
    """Encode an image in the format that belongs to the content kind."""
    format_type = SUPPORTED_FORMATS.get(content_type.lower())
    if format_type is None:
        raise ImageDecodeError(f"Unsupported content kind: {content_type}")

    save_kwargs = {}
    if format_type == "JPEG":
        if image.mode not in ("RGB", "L", "CMYK"):
            image = image.convert("RGB")
        save_kwargs["quality"] = JPEG_QUALITY

    output_stream = io.BytesIO()
    try:
        image.save(output_stream, format=format_type, **save_kwargs)
    except (OSError, ValueError) as e:
        raise ImageDecodeError(f"Cannot encode image as {format_type}: {e}") from e
    return output_stream.getvalue()


def resize_half(image_bytes: bytes, content_type: str) -> TransformResult:
    """
    Decode, halve and re-encode an image in its original format.

    Halving both sides keeps the aspect ratio by construction.

    Args:
        image_bytes: Raw encoded image
        content_type: Declared content kind of the bytes

    Returns:
        TransformResult with the encoded bytes and both dimensions

    Raises:
        ImageDecodeError: If the content kind is unsupported or the bytes are corrupt
    """
    if content_type.lower() not in SUPPORTED_FORMATS:
        raise ImageDecodeError(f"Unsupported content kind: {content_type}")

    image = decode_image(image_bytes)
    source_size = (image.width, image.height)
    target_size = half_dimensions(*source_size)

    resized = image.resize(target_size, Image.Resampling.LANCZOS)
    return TransformResult(
        data=encode_image(resized, content_type),
        content_type=content_type.lower(),
        source_size=source_size,
        target_size=target_size,
    )
