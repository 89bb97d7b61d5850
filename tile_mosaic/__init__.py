"""
Tile Mosaic
===========

Rebuild any image out of a library of small tile images.  Every grid
cell of the source gets the unused tile whose average colour is
closest (Euclidean RGB), and the result is encoded as JPEG.

- **Library**: build a colour index of a tile folder once
- **Compose**: match, resize and paste tiles cell by cell
- **Serve**: JSON upload API and a command-line interface
"""

__version__ = "1.0.0"

from tile_mosaic.codec import decode_image, encode_jpeg, to_transport_text
from tile_mosaic.color_utils import Color, average_color, distance
from tile_mosaic.composer import MosaicResult, compose, validate_tile_size
from tile_mosaic.config import MosaicConfig
from tile_mosaic.matcher import NO_MATCH, Matched, TilePool, nearest
from tile_mosaic.renderer import load_tile_pixels, resize
from tile_mosaic.tile_index import TileIndex, build_tile_index

__all__ = [
    "NO_MATCH",
    "Color",
    "Matched",
    "MosaicConfig",
    "MosaicResult",
    "TileIndex",
    "TilePool",
    "average_color",
    "build_tile_index",
    "compose",
    "decode_image",
    "distance",
    "encode_jpeg",
    "load_tile_pixels",
    "nearest",
    "resize",
    "to_transport_text",
    "validate_tile_size",
]
