"""Nearest-colour tile selection without replacement."""

from __future__ import annotations

import math
import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

from tile_mosaic.color_utils import Color, distance

EXHAUSTION_POLICIES = ("refill", "fill")


@dataclass(frozen=True)
class Matched:
    key: str
    color: Color
    distance: float


class NoMatch:
    """Outcome of :func:`nearest` on an empty pool."""

    _instance: NoMatch | None = None

    def __new__(cls) -> NoMatch:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_MATCH"


NO_MATCH = NoMatch()


class TilePool:
    """Mutable, request-scoped set of candidate tiles.

    Tiles are removed as they are matched so that no tile appears twice
    in one mosaic (until the pool is refilled).  All mutation goes through
    the pool lock.
    """

    def __init__(self, entries: Mapping[str, Color] | None = None) -> None:
        self._entries: dict[str, Color] = dict(entries or {})
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def items(self) -> list[tuple[str, Color]]:
        return list(self._entries.items())

    def remove(self, key: str) -> None:
        with self._lock:
            del self._entries[key]

    def refill(self, entries: Mapping[str, Color]) -> None:
        """Restore every tile of *entries* (usually the shared index)."""
        with self._lock:
            self._entries = dict(entries)

    def _take_nearest(self, target: Color) -> Matched | NoMatch:
        # Caller holds the lock.
        best_key: str | None = None
        best_color: Color | None = None
        smallest = math.inf
        for key, color in self._entries.items():
            dist = distance(target, color)
            if dist < smallest:
                best_key, best_color, smallest = key, color, dist

        if best_key is None or best_color is None:
            return NO_MATCH

        del self._entries[best_key]
        return Matched(best_key, best_color, smallest)

    def take_nearest(self, target: Color) -> Matched | NoMatch:
        """Scan for the closest tile and remove it, as one locked step."""
        with self._lock:
            return self._take_nearest(target)

    def take_nearest_or_refill(
        self,
        target: Color,
        entries: Mapping[str, Color],
    ) -> tuple[Matched | NoMatch, bool]:
        """Like :meth:`take_nearest`, refilling from *entries* once if empty.

        The emptiness check, the refill and the retry share one lock
        acquisition, so concurrent callers refill at most once per
        exhaustion.

        Returns:
            (outcome, refilled)
        """
        with self._lock:
            outcome = self._take_nearest(target)
            if isinstance(outcome, Matched):
                return outcome, False
            self._entries = dict(entries)
            return self._take_nearest(target), True


def nearest(target: Color, pool: TilePool) -> Matched | NoMatch:
    """Pick the pool entry closest to *target* and remove it from the pool.

    Linear scan, O(n) per call.  On equal distances the first entry seen
    wins; pool order is not part of the contract.  An empty pool gives
    :data:`NO_MATCH`.
    """
    return pool.take_nearest(target)
