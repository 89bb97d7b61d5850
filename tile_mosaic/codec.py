"""Image decoding, JPEG encoding and base64 transport text."""

from __future__ import annotations

import base64
import binascii
import io

import numpy as np
from PIL import Image

DEFAULT_QUALITY = 90


class ImageDecodeError(ValueError):
    """Uploaded bytes are not a decodable image."""


class EncodeError(RuntimeError):
    """The finished mosaic could not be encoded."""


def decode_image(data: bytes) -> np.ndarray:
    """Decode JPEG / PNG / GIF / BMP / TIFF / WebP bytes into (H, W, 3) uint8."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return np.array(img.convert("RGB"), dtype=np.uint8)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"Cannot decode image: {exc}") from exc


def encode_jpeg(image: np.ndarray, quality: int = DEFAULT_QUALITY) -> bytes:
    """Encode an (H, W, 3) uint8 array as JPEG."""
    buf = io.BytesIO()
    try:
        Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8)).convert("RGB").save(
            buf, format="JPEG", quality=quality,
        )
    except (OSError, ValueError, TypeError) as exc:
        raise EncodeError(f"Failed to encode image: {exc}") from exc
    return buf.getvalue()


def to_transport_text(data: bytes) -> str:
    """Standard base64 so the JPEG can travel inside JSON."""
    return base64.b64encode(data).decode("ascii")


def from_transport_text(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as exc:
        raise ImageDecodeError(f"Invalid base64 payload: {exc}") from exc
