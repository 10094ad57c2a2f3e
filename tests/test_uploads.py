"""Tests for LocalBlobStore and the upload endpoint."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.core.errors import NotFoundError, ValidationError
from app.infrastructure.uploads import LocalBlobStore
from app.main import create_app

from tests.helpers import auth_headers, make_settings


class TestLocalBlobStore:
    """Image files on disk."""

    def test_save_and_delete(self, tmp_path) -> None:
        blobs = LocalBlobStore(str(tmp_path / "uploads"))
        name = blobs.save("cover", "image/png", b"\x89PNG")
        assert name.startswith("cover-") and name.endswith(".png")
        assert blobs.exists(name)
        assert blobs.path_for(name).read_bytes() == b"\x89PNG"

        blobs.delete(name)
        assert not blobs.exists(name)
        with pytest.raises(NotFoundError):
            blobs.delete(name)

    def test_names_are_unique(self, tmp_path) -> None:
        blobs = LocalBlobStore(str(tmp_path))
        names = {blobs.save("image", "image/jpeg", b"x") for _ in range(5)}
        assert len(names) == 5

    def test_rejects_non_images(self, tmp_path) -> None:
        blobs = LocalBlobStore(str(tmp_path))
        with pytest.raises(ValidationError):
            blobs.save("image", "text/plain", b"hello")
        with pytest.raises(ValidationError):
            blobs.save("image", "", b"hello")

    def test_rejects_oversized(self, tmp_path) -> None:
        blobs = LocalBlobStore(str(tmp_path), max_size_mb=1)
        with pytest.raises(ValidationError):
            blobs.save("image", "image/png", b"0" * (1048576 + 1))

    def test_rejects_traversal(self, tmp_path) -> None:
        blobs = LocalBlobStore(str(tmp_path))
        for bad in ("../secret", "a/b.png", "..", ""):
            with pytest.raises(ValidationError):
                blobs.path_for(bad)


class TestUploadEndpoint:
    """POST /uploads and GET /uploads/{name}."""

    def test_upload_roundtrip(self, tmp_path) -> None:
        app = create_app(make_settings(tmp_path))
        with TestClient(app) as client:
            response = client.post(
                "/uploads",
                files={"image": ("photo.png", b"\x89PNG-data", "image/png")},
                headers=auth_headers("u1"),
            )
            assert response.status_code == 201
            filename = response.json()["filename"]
            assert filename.endswith(".png")

            served = client.get(f"/uploads/{filename}")
            assert served.status_code == 200
            assert served.content == b"\x89PNG-data"
            assert client.get("/uploads/missing.png").status_code == 404

    def test_upload_rejects_text(self, tmp_path) -> None:
        app = create_app(make_settings(tmp_path))
        with TestClient(app) as client:
            response = client.post(
                "/uploads",
                files={"image": ("notes.txt", b"hello", "text/plain")},
                headers=auth_headers("u1"),
            )
            assert response.status_code == 422
