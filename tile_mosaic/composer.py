"""Mosaic composition: grid traversal, tile matching and compositing."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import numpy as np

from tile_mosaic.color_utils import Color, cell_color
from tile_mosaic.matcher import EXHAUSTION_POLICIES, Matched, NoMatch, TilePool, nearest
from tile_mosaic.renderer import TileLoadError, blit, fill, load_tile_pixels, resize
from tile_mosaic.tile_index import TileIndex

logger = logging.getLogger(__name__)


class InvalidTileSizeError(ValueError):
    """Tile size is not a positive integer inside the accepted range."""


class CompositionCancelled(RuntimeError):
    """The caller asked the composition to stop before it finished."""


@dataclass
class MosaicResult:
    """Finished canvas plus per-run statistics."""

    image: np.ndarray
    tile_size: int
    cells: int = 0
    matched: int = 0
    fallbacks: int = 0
    refills: int = 0
    failed_tiles: list[str] = field(default_factory=list)

    @property
    def size(self) -> tuple[int, int]:
        """(width, height) of the canvas."""
        return self.image.shape[1], self.image.shape[0]


def validate_tile_size(
    value: object,
    minimum: int = 5,
    maximum: int = 200,
) -> int:
    """Parse and range-check a tile size coming from a user boundary."""
    not_positive = "Tile size must be a positive integer"
    if isinstance(value, bool) or value is None:
        raise InvalidTileSizeError(not_positive)
    if isinstance(value, int):
        size = value
    else:
        try:
            size = int(str(value).strip())
        except ValueError:
            raise InvalidTileSizeError(not_positive) from None
    if size <= 0:
        raise InvalidTileSizeError(not_positive)
    if size < minimum or size > maximum:
        msg = f"Tile size must be between {minimum} and {maximum} pixels"
        raise InvalidTileSizeError(msg)
    return size


def iter_cells(width: int, height: int, tile_size: int):
    """Yield (x, y, w, h) for every cell, row-major, clipped at the edges."""
    for y in range(0, height, tile_size):
        for x in range(0, width, tile_size):
            yield x, y, min(tile_size, width - x), min(tile_size, height - y)


class _Run:
    """State for one composition: canvas, private pool and counters."""

    def __init__(
        self,
        source: np.ndarray,
        index: TileIndex,
        sample_mode: str,
        exhaustion: str,
        fallback_color: tuple[int, int, int],
        cancel: threading.Event | None,
    ) -> None:
        self.source = source
        self.index = index
        self.pool: TilePool = index.clone()
        self.sample_mode = sample_mode
        self.exhaustion = exhaustion
        self.fallback_color = fallback_color
        self.cancel = cancel
        self.canvas = np.empty_like(source)
        self.canvas[:, :] = np.asarray(fallback_color, dtype=np.uint8)
        self.stats_lock = threading.Lock()
        self.matched = 0
        self.fallbacks = 0
        self.refills = 0
        self.failed: list[str] = []

    def _match(self, target: Color) -> Matched | NoMatch:
        if self.exhaustion != "refill":
            return nearest(target, self.pool)
        outcome, refilled = self.pool.take_nearest_or_refill(target, self.index)
        if refilled:
            with self.stats_lock:
                self.refills += 1
            logger.debug("Tile pool exhausted, refilled from %d tiles", len(self.index))
        return outcome

    def process(self, cell: tuple[int, int, int, int]) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise CompositionCancelled("Mosaic composition cancelled")

        x, y, w, h = cell
        target = cell_color(self.source[y:y + h, x:x + w], self.sample_mode)
        outcome = self._match(target)

        if not isinstance(outcome, Matched):
            fill(self.canvas, self.fallback_color, x, y, w, h)
            with self.stats_lock:
                self.fallbacks += 1
            return

        try:
            tile = resize(load_tile_pixels(outcome.key), w)
        except TileLoadError as exc:
            logger.warning("Failed to process tile %s: %s", outcome.key, exc)
            fill(self.canvas, self.fallback_color, x, y, w, h)
            with self.stats_lock:
                self.fallbacks += 1
                self.failed.append(outcome.key)
            return

        blit(self.canvas, tile, x, y, w, h)
        with self.stats_lock:
            self.matched += 1


def compose(
    source: np.ndarray,
    tile_size: int,
    index: TileIndex,
    *,
    sample_mode: str = "average",
    exhaustion: str = "refill",
    fallback_color: tuple[int, int, int] = (0, 0, 0),
    workers: int = 1,
    cancel: threading.Event | None = None,
) -> MosaicResult:
    """Build a photo mosaic of *source* from the tiles in *index*.

    Args:
        source:         (H, W, 3) uint8 source pixels.
        tile_size:      Cell edge in pixels; edge cells are clipped.
        index:          Shared tile index; never mutated.
        sample_mode:    ``"average"`` or ``"corner"`` cell colour.
        exhaustion:     ``"refill"`` reuses the library once the pool is
                        empty, ``"fill"`` paints remaining cells flat.
        fallback_color: Colour of cells without a usable tile.
        workers:        Threads rendering cells concurrently.
        cancel:         Event checked before each cell.

    Returns:
        :class:`MosaicResult` whose ``image`` has the shape of *source*.

    Raises:
        InvalidTileSizeError: ``tile_size`` is not positive.
        CompositionCancelled: *cancel* was set mid-run.
    """
    if isinstance(tile_size, bool) or not isinstance(tile_size, (int, np.integer)) or tile_size <= 0:
        msg = f"Tile size must be a positive integer, got {tile_size!r}"
        raise InvalidTileSizeError(msg)
    if exhaustion not in EXHAUSTION_POLICIES:
        available = ", ".join(EXHAUSTION_POLICIES)
        msg = f"Unknown exhaustion policy '{exhaustion}'. Available: {available}"
        raise ValueError(msg)
    cell_color(source[:1, :1], sample_mode)  # rejects unknown modes up front

    tile_size = int(tile_size)
    height, width = source.shape[:2]
    source = source[:, :, :3]
    run = _Run(source, index, sample_mode, exhaustion, fallback_color, cancel)
    cells = list(iter_cells(width, height, tile_size))

    logger.info(
        "Composing %dx%d mosaic  | tile=%d  cells=%d  tiles=%d  sample=%s",
        width, height, tile_size, len(cells), len(index), sample_mode,
    )
    t0 = time.perf_counter()

    if workers > 1 and len(cells) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(run.process, cell) for cell in cells]
            try:
                for future in futures:
                    future.result()
            except CompositionCancelled:
                for future in futures:
                    future.cancel()
                raise
    else:
        for cell in cells:
            run.process(cell)

    logger.info(
        "Mosaic done  | matched=%d  fallbacks=%d  refills=%d  (%.2f s)",
        run.matched, run.fallbacks, run.refills, time.perf_counter() - t0,
    )
    return MosaicResult(
        image=run.canvas,
        tile_size=tile_size,
        cells=len(cells),
        matched=run.matched,
        fallbacks=run.fallbacks,
        refills=run.refills,
        failed_tiles=run.failed,
    )
