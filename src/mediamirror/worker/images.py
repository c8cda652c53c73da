"""
Image rendition rendering with Pillow.

Renditions are fit inside a square bound, keep their aspect ratio, are never
enlarged, and are always written as baseline RGB JPEG.
"""

from __future__ import annotations

import io
from collections.abc import Iterable

from PIL import Image, ImageOps, UnidentifiedImageError

from mediamirror.exceptions import UnsupportedPayloadError

CANONICAL_BOUND = 2000
JPEG_QUALITY = 80

# Transparent areas are composited onto white before JPEG encoding
BACKGROUND = (255, 255, 255)


def _to_rgb(img: Image.Image) -> Image.Image:
    if img.mode == "P" and "transparency" in img.info:
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, BACKGROUND)
        background.paste(img, mask=img.getchannel("A"))
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def _decode(data: bytes, source: str) -> Image.Image:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            # Applies and strips EXIF orientation
            upright = ImageOps.exif_transpose(img)
            return _to_rgb(upright)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise UnsupportedPayloadError(source, f"cannot decode image: {e}") from e


def _encode(img: Image.Image, bound: int, quality: int) -> bytes:
    copy = img.copy()
    copy.thumbnail((bound, bound), Image.Resampling.LANCZOS)
    out = io.BytesIO()
    copy.save(out, format="JPEG", quality=quality, optimize=True)
    return out.getvalue()


def render_rendition(data: bytes, bound: int, quality: int = JPEG_QUALITY, *, source: str = "image") -> bytes:
    """
    Render one JPEG rendition that fits inside bound x bound.

    Raises:
        UnsupportedPayloadError: If the bytes are not a decodable image
    """
    return _encode(_decode(data, source), bound, quality)


def render_renditions(
    data: bytes,
    widths: Iterable[int],
    *,
    canonical_bound: int = CANONICAL_BOUND,
    quality: int = JPEG_QUALITY,
    source: str = "image",
) -> list[tuple[int | None, bytes]]:
    """
    Decode once and render the canonical rendition plus one per width.

    Returns:
        [(None, canonical_jpeg), (width, jpeg), ...] in input order
    """
    img = _decode(data, source)
    renditions: list[tuple[int | None, bytes]] = [(None, _encode(img, canonical_bound, quality))]
    for width in widths:
        renditions.append((width, _encode(img, width, quality)))
    return renditions
