"""FastAPI router serving stored message images."""
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse

from .service import ImageStorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])


def get_image_url(request: Request, image_id: str) -> str:
    """Generate the public URL for an image."""
    base_url = str(request.base_url).rstrip("/")
    return f"{base_url}/images/{image_id}"


@router.get("/{image_id}")
async def get_image(image_id: str) -> FileResponse:
    """Serve a stored image with its recorded MIME type.

    Raises:
        HTTPException 404: If the image is unknown or missing on disk
    """
    service = ImageStorageService.get_instance()
    metadata = service.get_image(image_id)
    file_path = service.get_image_path(image_id) if metadata else None
    if metadata is None or file_path is None:
        raise HTTPException(status_code=404, detail="Image not found")

    return FileResponse(path=file_path, media_type=metadata.mime_type)
