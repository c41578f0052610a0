"""Tests for image storage and serving."""
import asyncio

import pytest

from app.images.schemas import ImageValidationError
from app.images.service import ImageStorageService

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def images(tmp_path):
    return ImageStorageService(upload_dir=str(tmp_path / "up"), db_path=":memory:", max_size_bytes=1024)


class TestValidate:

    def test_rejects_unsupported_type(self, images):
        with pytest.raises(ImageValidationError, match="Invalid image type"):
            images.validate(b"%PDF", "application/pdf")

    def test_rejects_oversized(self, images):
        with pytest.raises(ImageValidationError, match="less than"):
            images.validate(b"x" * 1025, "image/png")

    def test_rejects_empty(self, images):
        with pytest.raises(ImageValidationError, match="empty"):
            images.validate(b"", "image/png")

    @pytest.mark.parametrize("mime_type", ["image/jpeg", "image/png", "image/gif", "image/webp"])
    def test_accepts_supported_types(self, images, mime_type):
        images.validate(b"data", mime_type)


class TestSaveImage:

    @pytest.mark.asyncio
    async def test_saved_image_is_retrievable(self, images, tmp_path):
        metadata = await images.save_image("owner-1", PNG_BYTES, "image/png")

        assert metadata.stored_filename == f"{metadata.id}.png"
        path = images.get_image_path(metadata.id)
        assert path == tmp_path / "up" / "messages" / metadata.stored_filename
        assert path.read_bytes() == PNG_BYTES
        assert images.get_image(metadata.id).owner_id == "owner-1"

    @pytest.mark.asyncio
    async def test_rejected_image_writes_nothing(self, images, tmp_path):
        with pytest.raises(ImageValidationError):
            await images.save_image("owner-1", b"x" * 2048, "image/png")
        assert list((tmp_path / "up" / "messages").iterdir()) == []

    def test_unknown_image(self, images):
        assert images.get_image("missing") is None
        assert images.get_image_path("missing") is None


class TestServeImage:

    def test_get_image_endpoint(self, api_client):
        service = ImageStorageService.get_instance()
        metadata = asyncio.run(service.save_image("owner-1", PNG_BYTES, "image/png"))

        response = api_client.get(f"/images/{metadata.id}")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content == PNG_BYTES

    def test_unknown_image_is_404(self, api_client):
        assert api_client.get("/images/does-not-exist").status_code == 404
