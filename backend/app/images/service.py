"""Image storage service.

Handles image storage on disk and metadata tracking in DuckDB.
Images are stored in: {upload_dir}/messages/{uuid}.{ext}
"""
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

import duckdb

from .schemas import (
    ALLOWED_IMAGE_TYPES,
    MAX_IMAGE_SIZE_BYTES,
    ImageMetadata,
    ImageValidationError,
)

logger = logging.getLogger(__name__)


class ImageStorageService:
    """Service for storing message images."""

    _instance: Optional["ImageStorageService"] = None
    _upload_dir: str = "uploads"
    _db_path: str = "images.duckdb"
    _folder: str = "messages"

    def __init__(
        self,
        upload_dir: Optional[str] = None,
        db_path: Optional[str] = None,
        max_size_bytes: int = MAX_IMAGE_SIZE_BYTES,
    ):
        """Initialize the image storage service."""
        if upload_dir:
            self._upload_dir = upload_dir
        if db_path:
            self._db_path = db_path
        self._max_size_bytes = max_size_bytes

        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._ensure_upload_dir()
        self._initialize_db()

    @property
    def max_size_bytes(self) -> int:
        return self._max_size_bytes

    @classmethod
    def get_instance(
        cls,
        upload_dir: Optional[str] = None,
        db_path: Optional[str] = None,
        max_size_bytes: int = MAX_IMAGE_SIZE_BYTES,
    ) -> "ImageStorageService":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls(upload_dir, db_path, max_size_bytes)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        if cls._instance and cls._instance._connection:
            cls._instance._connection.close()
        cls._instance = None

    def _ensure_upload_dir(self) -> None:
        Path(self._upload_dir, self._folder).mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS image_metadata (
                id VARCHAR PRIMARY KEY,
                owner_id VARCHAR NOT NULL,
                stored_filename VARCHAR NOT NULL,
                mime_type VARCHAR NOT NULL,
                size_bytes BIGINT NOT NULL,
                uploaded_at TIMESTAMP NOT NULL
            )
        """)

    def validate(self, content: bytes, mime_type: str) -> None:
        """Check type and size of an upload before anything is stored.

        Raises:
            ImageValidationError: If the MIME type is not accepted or the
                image is too large.
        """
        if mime_type not in ALLOWED_IMAGE_TYPES:
            raise ImageValidationError(
                "Invalid image type. Only JPEG, PNG, GIF, WEBP allowed"
            )
        if len(content) > self._max_size_bytes:
            raise ImageValidationError(
                f"Image must be less than {self._max_size_bytes // (1024 * 1024)}MB"
            )
        if not content:
            raise ImageValidationError("Image is empty")

    async def save_image(self, owner_id: str, content: bytes, mime_type: str) -> ImageMetadata:
        """Validate and store an image, returning its metadata.

        Args:
            owner_id: User ID who uploaded the image
            content: Image content as bytes
            mime_type: MIME type of the image

        Returns:
            ImageMetadata whose ``id`` is the public storage identifier

        Raises:
            ImageValidationError: If the upload is rejected
        """
        self.validate(content, mime_type)

        image_id = str(uuid.uuid4())
        stored_filename = f"{image_id}{ALLOWED_IMAGE_TYPES[mime_type]}"
        file_path = Path(self._upload_dir, self._folder, stored_filename)
        file_path.write_bytes(content)
        logger.info(f"Saved image: {file_path} ({len(content)} bytes)")

        metadata = ImageMetadata(
            id=image_id,
            owner_id=owner_id,
            stored_filename=stored_filename,
            mime_type=mime_type,
            size_bytes=len(content),
        )
        self._get_connection().execute(
            """
            INSERT INTO image_metadata
            (id, owner_id, stored_filename, mime_type, size_bytes, uploaded_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                metadata.id,
                metadata.owner_id,
                metadata.stored_filename,
                metadata.mime_type,
                metadata.size_bytes,
                datetime.fromtimestamp(metadata.uploaded_at),
            ]
        )
        return metadata

    def get_image(self, image_id: str) -> Optional[ImageMetadata]:
        """Get image metadata by ID."""
        result = self._get_connection().execute(
            """
            SELECT id, owner_id, stored_filename, mime_type, size_bytes, uploaded_at
            FROM image_metadata
            WHERE id = ?
            """,
            [image_id]
        ).fetchone()

        if not result:
            return None

        return ImageMetadata(
            id=result[0],
            owner_id=result[1],
            stored_filename=result[2],
            mime_type=result[3],
            size_bytes=result[4],
            uploaded_at=result[5].timestamp() if result[5] else 0,
        )

    def get_image_path(self, image_id: str) -> Optional[Path]:
        """Get the path on disk for an image ID."""
        metadata = self.get_image(image_id)
        if not metadata:
            return None

        file_path = Path(self._upload_dir, self._folder, metadata.stored_filename)
        if not file_path.exists():
            return None

        return file_path
