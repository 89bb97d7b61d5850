"""Colour value type, region averaging and Euclidean colour distance."""

from __future__ import annotations

import math
from typing import NamedTuple

import numpy as np

SAMPLE_MODES = ("average", "corner")


class Color(NamedTuple):
    """RGB triple on the 0-255 scale of 8-bit pixels."""

    r: float
    g: float
    b: float


BLACK = Color(0.0, 0.0, 0.0)


def average_color(region: np.ndarray) -> Color:
    """Mean of each channel over every pixel of an (H, W, C) region.

    Only the first three channels are used (alpha is ignored).  A
    zero-area region yields black instead of dividing by zero.
    """
    if region.ndim != 3 or region.shape[0] == 0 or region.shape[1] == 0:
        return BLACK
    mean = region[:, :, :3].reshape(-1, 3).astype(np.float64).mean(axis=0)
    return Color(float(mean[0]), float(mean[1]), float(mean[2]))


def distance(a: Color, b: Color) -> float:
    """Euclidean distance between two colours in RGB space."""
    return math.sqrt((b[0] - a[0]) ** 2 + (b[1] - a[1]) ** 2 + (b[2] - a[2]) ** 2)


def cell_color(region: np.ndarray, mode: str = "average") -> Color:
    """Representative colour of a mosaic cell.

    Args:
        region: (h, w, 3) slice of the source image.
        mode:   ``"average"`` (whole cell) or ``"corner"`` (top-left pixel).
    """
    if mode == "average":
        return average_color(region)
    if mode == "corner":
        return average_color(region[:1, :1])
    available = ", ".join(SAMPLE_MODES)
    msg = f"Unknown sample mode '{mode}'. Available: {available}"
    raise ValueError(msg)
