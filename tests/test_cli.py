"""Smoke tests for the command-line interface."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image
from typer.testing import CliRunner

from tile_mosaic.cli import app

runner = CliRunner()


def _save_solid(path: Path, width: int, height: int, color: tuple[int, int, int]) -> Path:
    arr = np.empty((height, width, 3), dtype=np.uint8)
    arr[:, :] = color
    Image.fromarray(arr).save(path)
    return path


def _make_tiles(folder: Path) -> Path:
    folder.mkdir()
    _save_solid(folder / "red.png", 30, 30, (255, 0, 0))
    _save_solid(folder / "green.png", 30, 30, (0, 255, 0))
    return folder


def test_compose_writes_jpeg(tmp_path: Path) -> None:
    tiles = _make_tiles(tmp_path / "tiles")
    source = _save_solid(tmp_path / "photo.png", 45, 30, (200, 10, 10))
    output = tmp_path / "out" / "mosaic.jpg"

    result = runner.invoke(app, [
        "compose", str(source),
        "--tiles", str(tiles),
        "--tile-size", "15",
        "--output", str(output),
    ])

    assert result.exit_code == 0, result.output
    assert output.exists(), "CLI did not write the mosaic"
    with Image.open(output) as img:
        assert img.format == "JPEG"
        assert img.size == (45, 30)


def test_compose_rejects_bad_tile_size(tmp_path: Path) -> None:
    source = _save_solid(tmp_path / "photo.png", 20, 20, (0, 0, 0))
    output = tmp_path / "mosaic.jpg"

    result = runner.invoke(app, [
        "compose", str(source), "--tiles", str(tmp_path), "--tile-size", "0",
        "--output", str(output),
    ])

    assert result.exit_code == 2
    assert not output.exists()


def test_compose_missing_source(tmp_path: Path) -> None:
    result = runner.invoke(app, [
        "compose", str(tmp_path / "nope.jpg"), "--tiles", str(tmp_path),
    ])
    assert result.exit_code == 1


def test_index_lists_tiles(tmp_path: Path) -> None:
    tiles = _make_tiles(tmp_path / "tiles")

    result = runner.invoke(app, ["index", str(tiles)])

    assert result.exit_code == 0, result.output
    assert "red.png" in result.output
    assert "green.png" in result.output
    assert "255.0" in result.output


def test_index_empty_folder(tmp_path: Path) -> None:
    result = runner.invoke(app, ["index", str(tmp_path)])
    assert result.exit_code == 0
    assert "No usable tiles" in result.output
