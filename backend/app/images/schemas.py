"""Pydantic schemas for stored images."""
import time
import uuid

from pydantic import BaseModel, Field

# Upper bound on a single image upload
MAX_IMAGE_SIZE_BYTES = 5 * 1024 * 1024

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class ImageValidationError(ValueError):
    """Raised when an upload is not an accepted image."""


class ImageMetadata(BaseModel):
    """Metadata for a stored image.

    ``id`` doubles as the public storage identifier of the image.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Image ID")
    owner_id: str = Field(..., description="User ID who uploaded the image")
    stored_filename: str = Field(..., description="Filename on disk (UUID-based)")
    mime_type: str = Field(..., description="MIME type of the image")
    size_bytes: int = Field(..., description="Image size in bytes")
    uploaded_at: float = Field(default_factory=time.time, description="Upload timestamp")
