"""Centralised configuration via a frozen dataclass."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

from dotenv import load_dotenv

from tile_mosaic.color_utils import SAMPLE_MODES
from tile_mosaic.matcher import EXHAUSTION_POLICIES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MosaicConfig:
    """All tuneable parameters for the mosaic service.

    Attributes:
        tiles_dir:       Folder scanned once at startup for tile images.
        server_host:     Interface the HTTP server binds to.
        server_port:     Port the HTTP server listens on.
        max_file_size:   Upload size limit in bytes.
        log_level:       Root log level name for ``serve``.
        tile_size:       Default cell edge in pixels for the CLI.
        min_tile_size:   Smallest tile size accepted at the boundary.
        max_tile_size:   Largest tile size accepted at the boundary.
        sample_mode:     Cell colour - "average" (whole cell) or "corner".
        exhaustion:      Empty pool policy - "refill" (reuse tiles) or "fill".
        fallback_color:  Flat colour for cells without a usable tile.
        jpeg_quality:    Quality of the encoded output.
        workers:         Threads used to render cells within one mosaic.
        request_timeout: Seconds before an HTTP composition is cancelled.
        cors_origins:    Origins allowed by the CORS middleware.
    """

    # Tile library
    tiles_dir: Path = field(default_factory=lambda: Path("tiles"))

    # Server
    server_host: str = "0.0.0.0"
    server_port: int = 8080
    max_file_size: int = 10 * 1024 * 1024
    log_level: str = "info"
    request_timeout: float = 60.0
    cors_origins: tuple[str, ...] = ("*",)

    # Composition
    tile_size: int = 20
    min_tile_size: int = 5
    max_tile_size: int = 200
    sample_mode: str = "average"  # "average" | "corner"
    exhaustion: str = "refill"  # "refill" | "fill"
    fallback_color: tuple[int, int, int] = (0, 0, 0)
    workers: int = 1

    # Output
    jpeg_quality: int = 90

    SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
        {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".webp"}
    )

    def __post_init__(self) -> None:
        for name in _CHECKED_FIELDS:
            _check_field(name, getattr(self, name))

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> MosaicConfig:
        """Build a config from environment variables (and a ``.env`` file).

        Variables are the upper-case field names, e.g. ``TILES_DIR`` or
        ``SERVER_PORT``.  Values that fail to parse or fall outside their
        allowed range keep their default.
        """
        load_dotenv(dotenv_path=env_file)
        defaults = cls()
        overrides: dict[str, object] = {}

        for f in fields(cls):
            if f.name.isupper():
                continue
            raw = os.getenv(f.name.upper())
            if raw is None or raw == "":
                continue
            default = getattr(defaults, f.name)
            try:
                value = _coerce(raw, default)
                if f.name in _CHECKED_FIELDS:
                    _check_field(f.name, value)
                overrides[f.name] = value
            except ValueError:
                logger.warning(
                    "Ignoring invalid %s=%r, using default %r",
                    f.name.upper(), raw, default,
                )

        return cls(**overrides)


def _coerce(raw: str, default: object) -> object:
    if isinstance(default, Path):
        return Path(raw)
    if isinstance(default, bool):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, tuple):
        parts = [p.strip() for p in raw.split(",") if p.strip()]
        if default and isinstance(default[0], int):
            values = tuple(int(p) for p in parts)
            if len(values) != len(default):
                msg = f"expected {len(default)} values"
                raise ValueError(msg)
            return values
        return tuple(parts)
    return raw


_CHECKED_FIELDS = ("sample_mode", "exhaustion", "fallback_color", "workers", "jpeg_quality")


def _check_field(name: str, value: object) -> None:
    """Raise ValueError if *value* is not allowed for field *name*."""
    if name == "sample_mode" and value not in SAMPLE_MODES:
        msg = f"sample_mode must be one of {', '.join(SAMPLE_MODES)}, got {value!r}"
        raise ValueError(msg)
    if name == "exhaustion" and value not in EXHAUSTION_POLICIES:
        msg = f"exhaustion must be one of {', '.join(EXHAUSTION_POLICIES)}, got {value!r}"
        raise ValueError(msg)
    if name == "fallback_color":
        channels = tuple(value) if isinstance(value, (tuple, list)) else ()
        if len(channels) != 3 or not all(
            isinstance(c, int) and not isinstance(c, bool) and 0 <= c <= 255 for c in channels
        ):
            msg = f"fallback_color must be three integers in 0-255, got {value!r}"
            raise ValueError(msg)
    if name == "workers" and (not isinstance(value, int) or value < 1):
        msg = f"workers must be at least 1, got {value!r}"
        raise ValueError(msg)
    if name == "jpeg_quality" and (not isinstance(value, int) or not 1 <= value <= 100):
        msg = f"jpeg_quality must be between 1 and 100, got {value!r}"
        raise ValueError(msg)
