"""Tile library scanning: average colour per tile, keyed by file path."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

import numpy as np
from PIL import Image

from tile_mosaic.color_utils import Color, average_color
from tile_mosaic.config import MosaicConfig
from tile_mosaic.matcher import TilePool

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = MosaicConfig.SUPPORTED_EXTENSIONS


class TileIndex(Mapping[str, Color]):
    """Read-only mapping of tile path to average colour.

    Built once and shared by every request; each mosaic works on its own
    :class:`TilePool` obtained from :meth:`clone`.
    """

    def __init__(self, entries: Mapping[str, Color] | None = None) -> None:
        self._entries = MappingProxyType(dict(entries or {}))

    def __getitem__(self, key: str) -> Color:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"TileIndex({len(self)} tiles)"

    def clone(self) -> TilePool:
        """Independent, mutable copy for one mosaic run."""
        return TilePool(self._entries)


def is_image_file(name: str | Path) -> bool:
    return Path(name).suffix.lower() in IMAGE_EXTENSIONS


def _tile_color(path: Path) -> Color:
    with Image.open(path) as img:
        fmt = img.format
        rgb = img.convert("RGB")
    color = average_color(np.asarray(rgb, dtype=np.uint8))
    logger.debug("Indexed %s (%s) colour=(%.1f, %.1f, %.1f)", path, fmt, *color)
    return color


def build_tile_index(directory: str | Path) -> TileIndex:
    """Scan *directory* (non-recursively) and index every decodable image.

    Unreadable or corrupt files are skipped with a warning.  A missing or
    empty directory gives an empty index rather than an error.
    """
    folder = Path(directory)
    logger.info("Building tile index from %s ...", folder)

    if not folder.is_dir():
        logger.warning("Tiles directory '%s' does not exist", folder)
        return TileIndex()

    try:
        candidates = sorted(f for f in folder.iterdir() if f.is_file())
    except OSError as exc:
        logger.warning("Cannot read tiles directory '%s': %s", folder, exc)
        return TileIndex()

    entries: dict[str, Color] = {}
    for path in candidates:
        if not is_image_file(path.name):
            logger.debug("Skipping non-image file: %s", path.name)
            continue
        try:
            entries[str(path)] = _tile_color(path)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.warning("Skipping tile %s: %s", path, exc)

    if not entries:
        logger.warning("No usable tiles in %s; every cell will use the fallback colour", folder)
    logger.info("Tile index ready  (%d tiles)", len(entries))
    return TileIndex(entries)
