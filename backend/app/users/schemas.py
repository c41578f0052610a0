"""Pydantic schemas and identifier helpers for users."""
import uuid
from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field


def is_valid_id(value: object) -> bool:
    """Return True if *value* is a well-formed identifier (a UUID string)."""
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _check_id(value: str) -> str:
    if not is_valid_id(value):
        raise ValueError("Invalid ID")
    return value


# Identifier type used at every boundary that accepts a user or message id.
EntityId = Annotated[str, AfterValidator(_check_id)]


class User(BaseModel):
    """Public user record returned by the API."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    fullname: str
    email: str = ""
    avatar: Optional[str] = None
    createdAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
