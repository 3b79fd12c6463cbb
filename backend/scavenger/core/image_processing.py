"""Image normalization for identification requests.

Captured stills are downscaled so the larger side fits ``max_dimension``,
re-encoded as JPEG at a fixed quality, and fingerprinted with a truncated
SHA-256 of the encoded bytes.  The fingerprint doubles as the scan cache key,
so the whole transform must be deterministic for a given input.
"""

from __future__ import annotations

import hashlib
import io
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from scavenger.core.config import get_settings
from scavenger.services.ai.common.errors import DecodeError

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------

DEFAULT_MAX_DIMENSION = 1024
DEFAULT_QUALITY = 80
DEFAULT_FINGERPRINT_LENGTH = 16

# JPEG over WebP: every upstream vision API decodes it.
OUTPUT_FORMAT = "JPEG"
OUTPUT_CONTENT_TYPE = "image/jpeg"


@dataclass(frozen=True)
class NormalizedImage:
    """Encoded still ready for upload, plus its cache key."""

    data: bytes
    width: int
    height: int
    fingerprint: str
    content_type: str = OUTPUT_CONTENT_TYPE


def fingerprint(data: bytes, length: int = DEFAULT_FINGERPRINT_LENGTH) -> str:
    """Return the first *length* hex chars of the SHA-256 of *data*."""
    return hashlib.sha256(data).hexdigest()[:length]


def target_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Fit (*width*, *height*) inside a *max_dimension* square, never upscaling."""
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width >= height:
        return max_dimension, max(1, round(height * max_dimension / width))
    return max(1, round(width * max_dimension / height)), max_dimension


def _decode(raw: bytes) -> Image.Image:
    if not raw:
        raise DecodeError("Empty image payload")
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc
    return img


def _to_rgb(img: Image.Image) -> Image.Image:
    # JPEG has no alpha channel; flatten onto white.
    if img.mode in ("P", "PA", "LA"):
        img = img.convert("RGBA")
    if img.mode == "RGBA":
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def normalize_image(
    raw: bytes,
    *,
    max_dimension: int | None = None,
    quality: int | None = None,
    fingerprint_length: int | None = None,
) -> NormalizedImage:
    """Decode, orient, resize and re-encode *raw* image bytes.

    Raises ``DecodeError`` when the payload is not an image Pillow can read.
    """
    settings = get_settings()
    max_dimension = max_dimension or settings.image_max_dimension
    quality = quality or settings.image_quality
    fingerprint_length = fingerprint_length or settings.fingerprint_length

    img = _decode(raw)
    img = ImageOps.exif_transpose(img)  # auto-orient
    img = _to_rgb(img)

    width, height = target_size(img.width, img.height, max_dimension)
    if (width, height) != img.size:
        img = img.resize((width, height), Image.LANCZOS)

    buf = io.BytesIO()
    img.save(buf, format=OUTPUT_FORMAT, quality=quality)
    data = buf.getvalue()

    logger.debug(
        "Normalized image: %d -> %d bytes (%dx%d)",
        len(raw),
        len(data),
        width,
        height,
    )
    return NormalizedImage(
        data=data,
        width=width,
        height=height,
        fingerprint=fingerprint(data, fingerprint_length),
    )


def normalize_images(raws: Iterable[bytes], **kwargs) -> list[NormalizedImage]:
    """Normalize each payload independently, preserving input order."""
    return [normalize_image(raw, **kwargs) for raw in raws]
