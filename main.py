#!/usr/bin/env python3
"""
main.py — Quick-start entry point.

Drop tile images into ``tiles/`` and run:

    python main.py compose my_photo.jpg --tile-size 20

Or start the upload API:

    python main.py serve --port 8080
"""

from tile_mosaic.cli import app

if __name__ == "__main__":
    app()
