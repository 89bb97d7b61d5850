"""JSON HTTP API around the mosaic core (FastAPI)."""

from __future__ import annotations

import asyncio
import logging
import threading
import time

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from tile_mosaic.codec import EncodeError, ImageDecodeError, decode_image, encode_jpeg, to_transport_text
from tile_mosaic.composer import CompositionCancelled, InvalidTileSizeError, compose, validate_tile_size
from tile_mosaic.config import MosaicConfig
from tile_mosaic.tile_index import TileIndex, build_tile_index

logger = logging.getLogger(__name__)

SERVICE_NAME = "mosaic-app"


class MosaicResponse(BaseModel):
    mosaicImg: str
    duration: float


class ErrorResponse(BaseModel):
    error: str
    message: str
    code: int


class HealthResponse(BaseModel):
    status: str
    service: str
    tiles: int


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, code=status_code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(
    config: MosaicConfig | None = None,
    index: TileIndex | None = None,
) -> FastAPI:
    """Build the API application.

    The tile index is built here (unless one is passed in) and kept on
    ``app.state``; request handlers only ever read it.
    """
    cfg = config or MosaicConfig()
    if index is None:
        index = build_tile_index(cfg.tiles_dir)

    app = FastAPI(title="Tile Mosaic")
    app.state.config = cfg
    app.state.tile_index = index

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_form(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
            for err in exc.errors()
        )
        logger.warning("Rejected malformed request to %s: %s", request.url.path, problems)
        return error_response(400, "Invalid form data", problems or "Malformed request")

    @app.get("/api/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        return HealthResponse(
            status="healthy",
            service=SERVICE_NAME,
            tiles=len(request.app.state.tile_index),
        )

    @app.post(
        "/api/file/upload",
        status_code=201,
        response_model=MosaicResponse,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse},
                   503: {"model": ErrorResponse}},
    )
    async def upload(
        request: Request,
        imgUpload: UploadFile | None = File(None),  # noqa: N803
        tileSize: str | None = Form(None),  # noqa: N803
    ):
        """Accept an image + tile size, return the mosaic as base64 JPEG."""
        t0 = time.perf_counter()
        cfg: MosaicConfig = request.app.state.config

        if imgUpload is None:
            return error_response(400, "No file uploaded", "Form field 'imgUpload' is required")

        data = await imgUpload.read(cfg.max_file_size + 1)
        if len(data) > cfg.max_file_size:
            limit_mb = cfg.max_file_size / (1024 * 1024)
            return error_response(
                400, "File too large", f"File size exceeds {limit_mb:g}MB limit",
            )

        try:
            tile_size = validate_tile_size(tileSize, cfg.min_tile_size, cfg.max_tile_size)
        except InvalidTileSizeError as exc:
            return error_response(400, "Invalid tile size", str(exc))

        try:
            source = decode_image(data)
        except ImageDecodeError as exc:
            logger.error("Failed to decode image: %s", exc)
            return error_response(400, "Invalid image format", str(exc))

        logger.info(
            "Processing mosaic request  | file=%s  bytes=%d  size=%dx%d  tileSize=%d",
            imgUpload.filename, len(data), source.shape[1], source.shape[0], tile_size,
        )

        cancel = threading.Event()

        def _render() -> bytes:
            result = compose(
                source,
                tile_size,
                request.app.state.tile_index,
                sample_mode=cfg.sample_mode,
                exhaustion=cfg.exhaustion,
                fallback_color=cfg.fallback_color,
                workers=cfg.workers,
                cancel=cancel,
            )
            return encode_jpeg(result.image, cfg.jpeg_quality)

        # The worker thread polls the event between cells.
        deadline = asyncio.get_running_loop().call_later(cfg.request_timeout, cancel.set)
        try:
            jpeg = await run_in_threadpool(_render)
        except CompositionCancelled:
            logger.error("Mosaic generation timed out after %.1f s", cfg.request_timeout)
            return error_response(
                503, "Mosaic generation timed out",
                f"Processing exceeded {cfg.request_timeout:g} seconds",
            )
        except EncodeError as exc:
            logger.error("Failed to generate mosaic: %s", exc)
            return error_response(500, "Failed to generate mosaic", str(exc))
        except Exception as exc:
            logger.exception("Unexpected failure while generating mosaic")
            return error_response(500, "Failed to generate mosaic", str(exc))
        finally:
            deadline.cancel()

        duration = round(time.perf_counter() - t0, 2)
        return MosaicResponse(mosaicImg=to_transport_text(jpeg), duration=duration)

    return app
