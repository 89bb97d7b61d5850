"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path

import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from tile_mosaic.api import create_app
from tile_mosaic.codec import EncodeError, ImageDecodeError, decode_image, encode_jpeg
from tile_mosaic.composer import InvalidTileSizeError, compose, validate_tile_size
from tile_mosaic.config import MosaicConfig
from tile_mosaic.tile_index import build_tile_index

app = typer.Typer(
    name="tile-mosaic",
    help="Build photo mosaics out of a library of tile images.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _setup_logging(verbose: bool, level_name: str | None = None) -> None:
    if verbose:
        level = logging.DEBUG
    elif level_name:
        level = getattr(logging, level_name.upper(), logging.INFO)
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
        force=True,
    )


# Defaults come from MosaicConfig - single source of truth
_DEFAULTS = MosaicConfig()


# -- compose command ---------------------------------------------------

@app.command("compose")
def compose_command(
    source: Path = typer.Argument(..., help="Path to the source image"),
    tiles_dir: Path = typer.Option(
        _DEFAULTS.tiles_dir, "--tiles", "-t", help="Folder with tile images",
    ),
    output: Path = typer.Option(Path("output/mosaic.jpg"), "--output", "-o"),
    tile_size: int = typer.Option(
        _DEFAULTS.tile_size, "--tile-size", "-s",
        help=f"Cell edge in pixels ({_DEFAULTS.min_tile_size}-{_DEFAULTS.max_tile_size})",
    ),
    sample_mode: str = typer.Option(
        _DEFAULTS.sample_mode, "--sample", help="'average' or 'corner'",
    ),
    exhaustion: str = typer.Option(
        _DEFAULTS.exhaustion, "--exhaustion", help="'refill' or 'fill'",
    ),
    quality: int = typer.Option(_DEFAULTS.jpeg_quality, "--quality", "-q"),
    workers: int = typer.Option(_DEFAULTS.workers, "--workers", "-w"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Compose a mosaic of SOURCE and save it as JPEG."""
    _setup_logging(verbose)
    t_total = time.perf_counter()

    try:
        size = validate_tile_size(tile_size, _DEFAULTS.min_tile_size, _DEFAULTS.max_tile_size)
    except InvalidTileSizeError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from None

    try:
        image = decode_image(source.read_bytes())
    except (OSError, ImageDecodeError) as exc:
        console.print(f"[red]Cannot read {source}: {exc}[/red]")
        raise typer.Exit(1) from None

    index = build_tile_index(tiles_dir)
    try:
        result = compose(
            image, size, index,
            sample_mode=sample_mode,
            exhaustion=exhaustion,
            fallback_color=_DEFAULTS.fallback_color,
            workers=workers,
        )
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from None

    try:
        data = encode_jpeg(result.image, quality)
    except EncodeError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from None

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)

    w, h = result.size
    elapsed = time.perf_counter() - t_total
    console.print(
        f"[green]✓[/green] Saved to {output}  "
        f"[dim]{w}x{h}  cells={result.cells}  matched={result.matched}"
        f"  fallbacks={result.fallbacks}  time={elapsed:.2f}s[/dim]"
    )


# -- index command -----------------------------------------------------

@app.command("index")
def index_command(
    tiles_dir: Path = typer.Argument(_DEFAULTS.tiles_dir, help="Folder with tile images"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Scan TILES_DIR and list the average colour of every tile."""
    _setup_logging(verbose)
    index = build_tile_index(tiles_dir)

    if not index:
        console.print(f"\n[yellow]No usable tiles found in {tiles_dir}/[/yellow]\n")
        raise typer.Exit(0)

    table = Table(title=f"{len(index)} tiles in {tiles_dir}")
    table.add_column("Tile")
    table.add_column("R", justify="right")
    table.add_column("G", justify="right")
    table.add_column("B", justify="right")
    for key, color in index.items():
        table.add_row(Path(key).name, f"{color.r:.1f}", f"{color.g:.1f}", f"{color.b:.1f}")
    console.print(table)


# -- serve command -----------------------------------------------------

@app.command("serve")
def serve_command(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Listen port"),
    tiles_dir: Path | None = typer.Option(None, "--tiles", "-t", help="Folder with tile images"),
    env_file: Path | None = typer.Option(None, "--env-file", help="Path to a .env file"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Run the HTTP API (settings from the environment / .env)."""
    cfg = MosaicConfig.from_env(env_file)
    _setup_logging(verbose, cfg.log_level)

    overrides = {}
    if host:
        overrides["server_host"] = host
    if port:
        overrides["server_port"] = port
    if tiles_dir:
        overrides["tiles_dir"] = tiles_dir
    if overrides:
        cfg = replace(cfg, **overrides)

    console.print(Panel.fit(
        f"[bold]TILE MOSAIC SERVER[/bold]\n"
        f"Listening: {cfg.server_host}:{cfg.server_port}  |  Tiles: {cfg.tiles_dir}\n"
        f"Sample: {cfg.sample_mode}  |  Exhaustion: {cfg.exhaustion}  |  Workers: {cfg.workers}",
        border_style="cyan",
    ))

    uvicorn.run(
        create_app(cfg),
        host=cfg.server_host,
        port=cfg.server_port,
        log_level=cfg.log_level.lower(),
    )


if __name__ == "__main__":
    app()
