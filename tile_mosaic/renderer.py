"""Tile loading, point-sample resizing and rectangular blitting."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image


class TileLoadError(OSError):
    """A tile could not be opened or decoded."""

    def __init__(self, key: str, reason: object) -> None:
        super().__init__(f"Cannot load tile {key}: {reason}")
        self.key = key


def load_tile_pixels(key: str | Path) -> np.ndarray:
    """Open and decode a tile (format auto-detected).

    Returns:
        (H, W, 3) uint8 array.

    Raises:
        TileLoadError: the file is missing, unreadable or not an image.
    """
    try:
        with Image.open(key) as img:
            return np.array(img.convert("RGB"), dtype=np.uint8)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise TileLoadError(str(key), exc) from exc


def resize(image: np.ndarray, target_width: int) -> np.ndarray:
    """Nearest-neighbour downsample to *target_width*, keeping aspect ratio.

    The stride is ``src_w // target_width`` (at least 1), and the output
    is ``target_width x src_h // stride``.  When the tile is narrower than
    *target_width* the unsampled columns stay zero.  Degenerate sizes are
    clamped so the result is always at least 1x1.
    """
    if image.ndim == 2:
        image = image[:, :, np.newaxis]
    src_h, src_w, channels = image.shape
    target_width = max(1, int(target_width))

    ratio = max(1, src_w // target_width)
    out_h = max(1, src_h // ratio)

    out = np.zeros((out_h, target_width, channels), dtype=np.uint8)
    sampled = image[::ratio, ::ratio][:out_h, :target_width]
    out[: sampled.shape[0], : sampled.shape[1]] = sampled
    return out


def blit(
    canvas: np.ndarray,
    tile: np.ndarray,
    x: int,
    y: int,
    width: int,
    height: int,
) -> None:
    """Copy *tile* into the ``width x height`` rectangle at (x, y).

    Only the overlap of tile, rectangle and canvas is written; nothing is
    blended.
    """
    canvas_h, canvas_w = canvas.shape[:2]
    w = min(width, tile.shape[1], canvas_w - x)
    h = min(height, tile.shape[0], canvas_h - y)
    if w <= 0 or h <= 0:
        return
    canvas[y:y + h, x:x + w] = tile[:h, :w, :3]


def fill(
    canvas: np.ndarray,
    color: tuple[int, int, int],
    x: int,
    y: int,
    width: int,
    height: int,
) -> None:
    """Paint a flat rectangle, clipped to the canvas."""
    canvas[y:y + height, x:x + width] = np.asarray(color, dtype=np.uint8)[:3]
