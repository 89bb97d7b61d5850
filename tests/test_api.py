"""Tests for the JSON upload API."""

from __future__ import annotations

import io
import threading
from pathlib import Path

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from tile_mosaic import api
from tile_mosaic.codec import EncodeError, decode_image, from_transport_text
from tile_mosaic.composer import CompositionCancelled
from tile_mosaic.config import MosaicConfig
from tile_mosaic.tile_index import build_tile_index


def image_bytes(width: int, height: int, color=(255, 0, 0), fmt: str = "JPEG") -> bytes:
    arr = np.empty((height, width, 3), dtype=np.uint8)
    arr[:, :] = color
    buf = io.BytesIO()
    Image.fromarray(arr).save(buf, format=fmt)
    return buf.getvalue()


def upload(client: TestClient, data: bytes | None, tile_size: str | None):
    files = {"imgUpload": ("test.jpg", data, "image/jpeg")} if data is not None else None
    form = {"tileSize": tile_size} if tile_size is not None else {}
    return client.post("/api/file/upload", files=files, data=form)


# -- Fixtures ----------------------------------------------------------

@pytest.fixture
def tiles_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "tiles"
    folder.mkdir()
    for name, color in [("red.png", (255, 0, 0)), ("blue.png", (0, 0, 255))]:
        arr = np.empty((40, 40, 3), dtype=np.uint8)
        arr[:, :] = color
        Image.fromarray(arr).save(folder / name)
    return folder


@pytest.fixture
def config(tiles_dir: Path) -> MosaicConfig:
    return MosaicConfig(tiles_dir=tiles_dir, max_file_size=1024 * 1024)


@pytest.fixture
def client(config: MosaicConfig) -> TestClient:
    return TestClient(api.create_app(config))


# -- Health ------------------------------------------------------------

class TestHealth:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json() == {"status": "healthy", "service": "mosaic-app", "tiles": 2}

    def test_index_is_injected(self, config: MosaicConfig, tmp_path: Path) -> None:
        index = build_tile_index(tmp_path / "nowhere")
        app = api.create_app(config, index)
        assert app.state.tile_index is index
        assert TestClient(app).get("/api/health").json()["tiles"] == 0


# -- Upload ------------------------------------------------------------

class TestUpload:
    def test_valid_request(self, client: TestClient) -> None:
        resp = upload(client, image_bytes(50, 30), "20")

        assert resp.status_code == 201
        body = resp.json()
        assert set(body) == {"mosaicImg", "duration"}
        assert isinstance(body["duration"], float)
        assert body["duration"] == round(body["duration"], 2)
        mosaic = decode_image(from_transport_text(body["mosaicImg"]))
        assert mosaic.shape == (30, 50, 3)

    def test_png_upload(self, client: TestClient) -> None:
        resp = upload(client, image_bytes(25, 25, fmt="PNG"), "5")
        assert resp.status_code == 201

    def test_empty_tile_library_still_succeeds(self, tmp_path: Path) -> None:
        cfg = MosaicConfig(tiles_dir=tmp_path / "missing")
        resp = upload(TestClient(api.create_app(cfg)), image_bytes(20, 20), "10")
        assert resp.status_code == 201

    @pytest.mark.parametrize("tile_size", ["0", "-5", "invalid", "4", "201", ""])
    def test_invalid_tile_size(self, client: TestClient, tile_size: str) -> None:
        resp = upload(client, image_bytes(20, 20), tile_size)

        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Invalid tile size"
        assert body["code"] == 400
        assert body["message"]

    def test_missing_tile_size(self, client: TestClient) -> None:
        resp = upload(client, image_bytes(20, 20), None)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid tile size"

    def test_missing_file(self, client: TestClient) -> None:
        resp = upload(client, None, "20")
        assert resp.status_code == 400
        assert resp.json()["error"] == "No file uploaded"

    def test_not_an_image(self, client: TestClient) -> None:
        resp = upload(client, b"plain text, not pixels", "20")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid image format"

    def test_file_too_large(self, tiles_dir: Path) -> None:
        cfg = MosaicConfig(tiles_dir=tiles_dir, max_file_size=100)
        resp = upload(TestClient(api.create_app(cfg)), image_bytes(64, 64), "20")
        assert resp.status_code == 400
        assert resp.json()["error"] == "File too large"

    def test_encode_failure_is_internal_error(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken(*args, **kwargs):
            raise EncodeError("Failed to encode image: corrupted canvas")

        monkeypatch.setattr(api, "encode_jpeg", broken)
        resp = upload(client, image_bytes(20, 20), "10")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Failed to generate mosaic"

    def test_timeout_cancels_composition(
        self, tiles_dir: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        seen: list[threading.Event] = []

        def slow(*args, cancel: threading.Event, **kwargs):
            seen.append(cancel)
            cancel.wait(5.0)
            raise CompositionCancelled("Mosaic composition cancelled")

        monkeypatch.setattr(api, "compose", slow)
        cfg = MosaicConfig(tiles_dir=tiles_dir, request_timeout=0.05)
        resp = upload(TestClient(api.create_app(cfg)), image_bytes(20, 20), "10")

        assert resp.status_code == 503
        assert resp.json()["code"] == 503
        assert seen and seen[0].is_set()

    def test_unexpected_failure_is_internal_error(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken(*args, **kwargs):
            raise RuntimeError("tile library went away")

        monkeypatch.setattr(api, "compose", broken)
        resp = upload(client, image_bytes(20, 20), "10")

        assert resp.status_code == 500
        body = resp.json()
        assert body["error"] == "Failed to generate mosaic"
        assert body["code"] == 500
        assert "tile library went away" in body["message"]

    def test_text_in_file_field_is_bad_request(self, client: TestClient) -> None:
        resp = client.post("/api/file/upload", data={"imgUpload": "abc", "tileSize": "20"})

        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Invalid form data"
        assert body["code"] == 400
        assert "imgUpload" in body["message"]
